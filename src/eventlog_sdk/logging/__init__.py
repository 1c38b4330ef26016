"""
Structured logging for eventlog_sdk.

Provides:
    - JSONFormatter / ConsoleFormatter
    - Context variables (session, stream, subject) injected into every record
    - setup_logging() for applications embedding the SDK
"""

from eventlog_sdk.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from eventlog_sdk.logging.formatters import ConsoleFormatter, JSONFormatter
from eventlog_sdk.logging.setup import (
    NOISY_LOGGERS,
    generate_session_id,
    get_logger,
    setup_logging,
)

__all__ = [
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "JSONFormatter",
    "ConsoleFormatter",
    "setup_logging",
    "get_logger",
    "generate_session_id",
    "NOISY_LOGGERS",
]
