"""Telemetry for agentgate: structured logging with context binding."""

from agentgate.telemetry.logger import (
    LoggerMixin,
    bind_context,
    clear_context,
    get_logger,
    log_context,
    setup_logging,
    setup_logging_from_config,
    unbind_context,
)

__all__ = [
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "log_context",
    "LoggerMixin",
]
