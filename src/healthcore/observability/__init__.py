"""Observability module for structured logging."""

from .logging import (
    LogContext,
    get_logger,
    log_external_call_end,
    log_external_call_start,
    pass_id_var,
    session_id_var,
    setup_logging,
    tenant_id_var,
)

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Context
    "LogContext",
    "pass_id_var",
    "tenant_id_var",
    "session_id_var",
    # Logging helpers
    "log_external_call_start",
    "log_external_call_end",
]
