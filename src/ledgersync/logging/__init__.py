"""Logging setup for LedgerSync."""

from .config import (
    LoggingConfig,
    SecretRedactingFilter,
    get_log_config_summary,
    redact,
    setup_logging,
)

__all__ = [
    "LoggingConfig",
    "SecretRedactingFilter",
    "get_log_config_summary",
    "redact",
    "setup_logging",
]
