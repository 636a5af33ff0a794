"""Public logging API for edudesk packages.

This package wraps Python's ``logging`` module with opinionated defaults for
stream emission and structured context propagation.
"""

from .config import configure_logging, get_logger, scrub
from .context import REDACTED, bind_context, clear_context, get_context, log_context

__all__ = [
    "REDACTED",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_context",
    "get_logger",
    "log_context",
    "scrub",
]
