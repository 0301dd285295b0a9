# -*- coding: utf-8 -*-
"""
Utility functions and constants for picolog_udp.

This module provides:

- Protocol and timing constants (`defaults`)
- Logging configuration and management (`logging`)
- Named session configurations stored in an INI file (`sysconfig`, import it
  directly: `from picolog_udp.util.sysconfig import load_session_config`)

Examples
--------
Logging to the console while streaming:
```python
from picolog_udp.util import start_log
start_log(log_to_file=False, log_to_stdout=True, log_level="DEBUG")
```

See Also
--------
picolog_udp.util.logging : Logging configuration
picolog_udp.util.sysconfig : Stored session configurations
"""

from .defaults import (
    AUTO_UNLOCK_DEADLINE,
    BROADCAST_ADDR,
    DEFAULT_LOGLEVEL,
    DISCOVERY_PORT,
    DISCOVERY_WINDOW,
    KEEPALIVE_PERIOD,
    RECV_BUFFER_SIZE,
    RECV_POLL_INTERVAL,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_path,
    shutdown_log,
    start_log,
)

__all__ = [
    "AUTO_UNLOCK_DEADLINE",
    "BROADCAST_ADDR",
    "DEFAULT_LOGLEVEL",
    "DISCOVERY_PORT",
    "DISCOVERY_WINDOW",
    "KEEPALIVE_PERIOD",
    "RECV_BUFFER_SIZE",
    "RECV_POLL_INTERVAL",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_path",
    "shutdown_log",
    "start_log",
]
