"""Public observability primitives: structured logging for sandbox sessions."""

from blt_sandbox.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    get_active_logging_handle,
    operation_scope,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "get_active_logging_handle",
    "operation_scope",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
