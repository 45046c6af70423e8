"""Shared utilities (logging configuration)."""

from .logging import (
    LoggingConfig,
    SecretRedactingFilter,
    configure_from_settings,
    configure_logging,
    get_log_path,
)

__all__ = [
    "LoggingConfig",
    "SecretRedactingFilter",
    "configure_logging",
    "configure_from_settings",
    "get_log_path",
]
