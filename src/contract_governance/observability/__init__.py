"""Structured run logging and correlation context."""

from contract_governance.observability.logging import (
    CORRELATION_KEYS,
    LoggingConfig,
    LogSession,
    active_log_session,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    set_correlation_fields,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "CORRELATION_KEYS",
    "LogSession",
    "LoggingConfig",
    "active_log_session",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
