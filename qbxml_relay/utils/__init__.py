"""Utility modules for qbxml-relay."""

from qbxml_relay.utils.logging import (
    clear_session_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_processing_result,
    new_request_id,
    set_request_id,
    set_session_context,
)
from qbxml_relay.utils.result import ConfigError, Err, ExitCode, Ok, Result

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "get_request_id",
    "new_request_id",
    "set_request_id",
    "set_session_context",
    "clear_session_context",
    "log_processing_result",
    # Result
    "Ok",
    "Err",
    "Result",
    "ConfigError",
    "ExitCode",
]
