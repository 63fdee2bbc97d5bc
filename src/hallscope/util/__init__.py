# -*- coding: utf-8 -*-
"""
Utility functions and constants for hallscope.

- Logging configuration and management
- Default values shared by the client, the session and the mock host
- Hardware (serial) port detection
- A small callback `Signal` used between session components

Persisted settings live in `hallscope.util.settings` and are imported from
there directly (they depend on `hallscope.types`).

See Also
--------
hallscope.util.logging : Logging configuration
hallscope.util.settings : INI-backed operator settings
"""
# everything here will be exported at top level of hallscope.util

from .check_hw import get_hw_ports
from .defaults import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_dir,
    log_default_path_client,
    log_default_path_host,
    shutdown_client_log,
    start_client_log,
    start_host_log,
)
from .signal import Signal

__all__ = [
    "get_hw_ports",
    "DEFAULT_HOST_ADDR",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_PORT",
    "DEFAULT_RETRIES",
    "DEFAULT_TIMEOUT",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_dir",
    "log_default_path_client",
    "log_default_path_host",
    "shutdown_client_log",
    "start_client_log",
    "start_host_log",
    "Signal",
]
