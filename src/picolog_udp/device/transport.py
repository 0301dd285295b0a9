"""UDP transport to a single logger, plus the discovery broadcast."""

from __future__ import annotations

import select
import socket
import threading
import time
from typing import Callable, Optional

from loguru import logger

from picolog_udp.types import SessionClosedError
from picolog_udp.util.defaults import (
    BROADCAST_ADDR,
    DISCOVERY_PORT,
    DISCOVERY_WINDOW,
    RECV_BUFFER_SIZE,
    RECV_POLL_INTERVAL,
)


class UdpTransport:
    """A UDP socket connected to one device.

    Request/response pairing during the handshake is positional, the protocol
    has no correlation identifiers. `receive_one` must therefore not be used
    once `subscribe_continuous` has started the background receive loop.

    Parameters
    ----------
    poll_interval : float
        How often the receive loop checks whether the transport was closed
    """

    def __init__(self, poll_interval: float = RECV_POLL_INTERVAL):
        self._sock: Optional[socket.socket] = None
        self._peer: Optional[tuple[str, int]] = None
        self._poll_interval = poll_interval
        self._closing = threading.Event()
        self._recv_thread: Optional[threading.Thread] = None

    def __repr__(self):
        return f"UdpTransport(peer={self._peer}, open={self.is_open()})"

    @property
    def peer(self) -> Optional[tuple[str, int]]:
        return self._peer

    @property
    def local_address(self) -> Optional[tuple[str, int]]:
        if self._sock is None:
            return None
        return self._sock.getsockname()

    def is_open(self) -> bool:
        return self._sock is not None and not self._closing.is_set()

    def connect(self, address: str, port: int) -> None:
        """Bind an ephemeral local port and fix the remote peer.

        UDP has no handshake, so this never talks to the device.
        """
        if self._sock is not None:
            raise RuntimeError(f"Transport already connected to {self._peer}")
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.connect((address, port))
        except OSError:
            sock.close()
            raise
        self._sock = sock
        self._peer = (address, port)
        logger.debug("UDP transport {} -> {}:{}", sock.getsockname(), address, port)

    def send(self, data: bytes) -> None:
        """Send one datagram to the peer. Socket errors propagate."""
        if not self.is_open():
            raise SessionClosedError(f"Transport to {self._peer} is closed")
        logger.trace("send {} -> {}", data.hex(" "), self._peer)
        self._sock.send(data)

    def receive_one(self, timeout: Optional[float] = None) -> bytes:
        """Block until one datagram arrives from the peer.

        Raises
        ------
        TimeoutError
            If `timeout` seconds pass without a datagram
        """
        if not self.is_open():
            raise SessionClosedError(f"Transport to {self._peer} is closed")
        if self._recv_thread is not None:
            raise RuntimeError("receive_one called while the receive loop is running")
        self._sock.settimeout(timeout)
        try:
            data = self._sock.recv(RECV_BUFFER_SIZE)
        finally:
            self._sock.settimeout(None)
        logger.trace("recv {} <- {}", data.hex(" "), self._peer)
        return data

    def subscribe_continuous(
        self,
        on_packet: Callable[[bytes], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        """Start a background thread calling `on_packet` for every datagram.

        The loop runs until the transport is closed. A socket error raised
        after `close` was requested is expected and swallowed; any other
        error (or an exception from `on_packet`) ends the loop and is passed
        to `on_error`.
        """
        if not self.is_open():
            raise SessionClosedError(f"Transport to {self._peer} is closed")
        if self._recv_thread is not None:
            raise RuntimeError("Receive loop already running")
        self._recv_thread = threading.Thread(
            target=self._receive_loop,
            args=(on_packet, on_error),
            name=f"udp-recv-{self._peer[0]}:{self._peer[1]}",
            daemon=True,
        )
        self._recv_thread.start()

    def _receive_loop(self, on_packet, on_error):
        sock = self._sock
        try:
            while not self._closing.is_set():
                readable, _, _ = select.select([sock], [], [], self._poll_interval)
                if not readable:
                    continue
                data = sock.recv(RECV_BUFFER_SIZE)
                on_packet(data)
        except (OSError, ValueError) as e:
            # ValueError: select on a socket closed underneath us (fileno -1)
            if self._closing.is_set():
                logger.debug("Receive loop for {} stopped on close: {}", self._peer, e)
                return
            self._report_failure(e, on_error)
        except Exception as e:
            self._report_failure(e, on_error)

    def _report_failure(self, exc, on_error):
        logger.opt(exception=exc).error("Receive loop for {} failed", self._peer)
        if on_error is not None:
            on_error(exc)

    def close(self) -> None:
        """Close the socket and stop the receive loop. Safe to call twice."""
        if self._sock is None or self._closing.is_set():
            return
        self._closing.set()
        thread = self._recv_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._poll_interval * 10)
            if thread.is_alive():
                logger.warning("Receive loop for {} did not stop in time", self._peer)
        self._sock.close()
        logger.debug("UDP transport to {} closed", self._peer)


def broadcast_and_collect(
    payload: bytes,
    wait_window: float = DISCOVERY_WINDOW,
    host_ip: str = "",
    port: int = DISCOVERY_PORT,
    broadcast_addr: str = BROADCAST_ADDR,
) -> list[tuple[bytes, str]]:
    """Broadcast `payload` and return every reply queued after `wait_window`.

    The socket is bound to `port` on `host_ip` and the payload is sent to the
    same port on `broadcast_addr`. Replies arriving after the window are
    missed.

    Returns
    -------
    list[tuple[bytes, str]]
        (datagram, sender address) pairs in the order they were drained
    """
    result = []
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind((host_ip, port))
        sock.sendto(payload, (broadcast_addr, port))
        logger.debug(
            "Broadcast {!r} to {}:{} from {}", payload, broadcast_addr, port, host_ip
        )

        time.sleep(wait_window)

        sock.setblocking(False)
        while True:
            try:
                data, (address, _) = sock.recvfrom(RECV_BUFFER_SIZE)
            except BlockingIOError:
                break
            result.append((data, address))
    logger.debug("Collected {} broadcast replies", len(result))
    return result
