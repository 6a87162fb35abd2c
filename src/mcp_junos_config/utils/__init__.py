"""Utility modules for session retries, logging and auditing."""
from .connection import with_retry, open_with_retry
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
    get_netconf_logger,
)

__all__ = [
    "with_retry",
    "open_with_retry",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "get_netconf_logger",
]
