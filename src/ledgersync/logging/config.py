"""Logging configuration management for LedgerSync.

Every handler installed here carries a redaction filter, so Stripe secret keys
and bearer tokens never reach the console or the log file even when they
appear inside an exception message or a provider error body.
"""

import logging
import os
import re
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

NOISY_LOGGERS = ("httpx", "httpcore")

_SECRET_PATTERNS = (
    re.compile(r"\b(sk|rk)_(live|test)_[A-Za-z0-9]+"),
    re.compile(r"(Bearer\s+)[A-Za-z0-9_\-.]+"),
)


def _env(name: str, default: str) -> str:
    """Read LEDGERSYNC_<name>, falling back to the bare <name>."""
    return os.getenv(f"LEDGERSYNC_{name}", os.getenv(name, default))


def redact(text: str) -> str:
    """Mask Stripe secret keys and bearer tokens in a string."""
    text = _SECRET_PATTERNS[0].sub(r"\1_\2_****", text)
    return _SECRET_PATTERNS[1].sub(r"\1****", text)


class SecretRedactingFilter(logging.Filter):
    """Rewrite log records so credentials are never emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


@dataclass
class LoggingConfig:
    """Configuration settings for application logging."""

    level: str = "INFO"
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    cli_format_string: str = "%(message)s"
    log_to_file: bool = True
    log_file_path: Path = Path("logs/ledgersync.log")
    max_file_size_mb: int = 50
    backup_count: int = 5
    redact_secrets: bool = True
    force_reconfigure: bool = False

    @classmethod
    def from_environment(cls) -> "LoggingConfig":
        """Create logging configuration from environment variables.

        Each setting is read from ``LEDGERSYNC_LOG_*`` first and then from the
        unprefixed ``LOG_*`` name.

        Returns:
            LoggingConfig: Configuration loaded from environment
        """
        return cls(
            level=_env("LOG_LEVEL", "INFO").upper(),
            log_to_file=_env("LOG_TO_FILE", "true").lower() == "true",
            log_file_path=Path(_env("LOG_FILE_PATH", "logs/ledgersync.log")),
            max_file_size_mb=int(_env("LOG_MAX_FILE_SIZE_MB", "50")),
            backup_count=int(_env("LOG_BACKUP_COUNT", "5")),
            redact_secrets=_env("LOG_REDACT_SECRETS", "true").lower() == "true",
        )


def _console_handler(config: LoggingConfig, cli_mode: bool) -> logging.Handler:
    # stdout is reserved for command output such as ``summary show --json``
    handler = logging.StreamHandler(sys.stderr)
    fmt = config.cli_format_string if cli_mode else config.format_string
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _file_handler(config: LoggingConfig) -> logging.Handler:
    config.log_file_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        config.log_file_path,
        maxBytes=config.max_file_size_mb * 1024 * 1024,
        backupCount=config.backup_count,
    )
    handler.setFormatter(logging.Formatter(config.format_string))
    return handler


def setup_logging(
    config: LoggingConfig | None = None,
    cli_mode: bool = False,
    verbose: bool = False,
) -> None:
    """Set up centralized logging configuration for the application.

    Args:
        config: Optional logging configuration. If None, loads from environment.
        cli_mode: If True, use simplified CLI-friendly formatting
        verbose: If True, enable DEBUG level logging (overrides config level)
    """
    if config is None:
        config = LoggingConfig.from_environment()

    level = logging.DEBUG if verbose else getattr(logging, config.level)

    handlers = [_console_handler(config, cli_mode)]
    if config.log_to_file:
        handlers.append(_file_handler(config))

    if config.redact_secrets:
        redaction = SecretRedactingFilter()
        for handler in handlers:
            handler.addFilter(redaction)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=config.force_reconfigure,
    )

    # httpx logs every request URL at INFO
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_log_config_summary() -> dict[str, Any]:
    """Get a summary of current logging configuration.

    Returns:
        dict: Summary of logging configuration settings
    """
    config = LoggingConfig.from_environment()
    root_logger = logging.getLogger()

    return {
        "level": logging.getLevelName(root_logger.level),
        "handlers": [type(h).__name__ for h in root_logger.handlers],
        "log_to_file": config.log_to_file,
        "log_file_path": str(config.log_file_path),
        "redact_secrets": config.redact_secrets,
    }
