# -*- coding: utf-8 -*-

import pathlib

# discovery, see the PT-104 / CM3 programmer's guides
DISCOVERY_PORT = 23  # telnet port, used as both source and destination
BROADCAST_ADDR = "255.255.255.255"
DISCOVERY_WINDOW = 0.5  # seconds to wait for broadcast replies

KEEPALIVE_PERIOD = 10.0  # seconds
AUTO_UNLOCK_DEADLINE = 15.0  # device unlocks itself without a keepalive

RECV_BUFFER_SIZE = 1024  # bytes, larger than any datagram the loggers send
RECV_POLL_INTERVAL = 0.1  # seconds between checks for transport shutdown

DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line

USER_DIR = pathlib.Path.home().joinpath(".picolog_udp")
