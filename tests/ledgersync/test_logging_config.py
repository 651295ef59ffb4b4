"""Tests for centralized logging configuration."""

import logging
import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any, cast

import pytest

from ledgersync.logging import (
    LoggingConfig,
    SecretRedactingFilter,
    get_log_config_summary,
    redact,
    setup_logging,
)


def _force_config(log_to_file: bool = False, **kwargs: Any) -> LoggingConfig:
    """Return a LoggingConfig that forces handler replacement."""
    return LoggingConfig(log_to_file=log_to_file, force_reconfigure=True, **kwargs)


def _stream_handlers() -> list[logging.Handler]:
    return [
        h
        for h in logging.getLogger().handlers
        if isinstance(h, logging.StreamHandler)
        and not isinstance(h, logging.FileHandler)
    ]


class TestSetupLogging:
    """Tests for setup_logging handler configuration."""

    @pytest.fixture(autouse=True)
    def _reset_root_logger(self) -> Generator[None, Any, None]:
        """Remove handlers added during each test to avoid leaking state."""
        root = logging.getLogger()
        original_handlers = list(root.handlers)
        original_level = root.level
        yield
        for handler in root.handlers:
            if handler not in original_handlers:
                handler.close()
        root.handlers = original_handlers
        root.setLevel(original_level)

    @pytest.mark.unit
    def test_console_handler_uses_stderr(self) -> None:
        """Console handler must write to stderr so JSON output on stdout stays clean."""
        setup_logging(config=_force_config(), cli_mode=False)

        handlers = _stream_handlers()
        assert handlers, "Expected at least one StreamHandler"
        for h in handlers:
            stream: object = getattr(cast(Any, h), "stream", None)
            assert stream is sys.stderr

    @pytest.mark.unit
    def test_console_handler_uses_stderr_in_cli_mode(self) -> None:
        """CLI mode should also log to stderr."""
        setup_logging(config=_force_config(), cli_mode=True)

        handlers = _stream_handlers()
        assert handlers, "Expected at least one StreamHandler"
        for h in handlers:
            stream: object = getattr(cast(Any, h), "stream", None)
            assert stream is sys.stderr

    @pytest.mark.unit
    def test_cli_mode_uses_bare_message_format(self) -> None:
        setup_logging(config=_force_config(), cli_mode=True)

        formats = [h.formatter._fmt for h in _stream_handlers() if h.formatter]
        assert "%(message)s" in formats

    @pytest.mark.unit
    def test_verbose_enables_debug(self) -> None:
        setup_logging(config=_force_config(level="WARNING"), verbose=True)
        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.unit
    def test_configured_level(self) -> None:
        setup_logging(config=_force_config(level="WARNING"))
        assert logging.getLogger().level == logging.WARNING

    @pytest.mark.unit
    def test_file_handler_created(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs" / "ledgersync.log"
        setup_logging(config=_force_config(log_to_file=True, log_file_path=log_path))

        logging.getLogger("ledgersync.test").info("hello")

        assert log_path.parent.is_dir()
        assert any(
            isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers
        )

    @pytest.mark.unit
    def test_http_client_loggers_quieted(self) -> None:
        setup_logging(config=_force_config())
        assert logging.getLogger("httpx").level == logging.WARNING


class TestLoggingConfig:
    """Tests for environment-driven logging configuration."""

    @pytest.mark.unit
    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_TO_FILE", "false")
        monkeypatch.setenv("LOG_FILE_PATH", "/tmp/custom.log")  # noqa: S108

        config = LoggingConfig.from_environment()

        assert config.level == "DEBUG"
        assert config.log_to_file is False
        assert config.log_file_path == Path("/tmp/custom.log")  # noqa: S108

    @pytest.mark.unit
    def test_summary_reports_file_settings(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOG_TO_FILE", "false")

        summary = get_log_config_summary()

        assert summary["log_to_file"] is False
        assert "handlers" in summary

    @pytest.mark.unit
    def test_prefixed_variables_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LEDGERSYNC_LOG_LEVEL", "error")

        assert LoggingConfig.from_environment().level == "ERROR"


class TestSecretRedaction:
    """Credentials are masked before records are emitted."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("key sk_test_4eC39HqLyjWDarjtT1zdp7dc", "key sk_test_****"),
            ("restricted rk_live_abc123", "restricted rk_live_****"),
            ("Authorization: Bearer tok_abc.def", "Authorization: Bearer ****"),
            ("nothing secret here", "nothing secret here"),
        ],
    )
    def test_redact(self, text: str, expected: str) -> None:
        assert redact(text) == expected

    @pytest.mark.unit
    def test_filter_rewrites_formatted_message(self) -> None:
        record = logging.LogRecord(
            "ledgersync.test",
            logging.ERROR,
            __file__,
            1,
            "Connection failed for %s",
            ("sk_live_123abc",),
            None,
        )

        assert SecretRedactingFilter().filter(record) is True
        assert record.getMessage() == "Connection failed for sk_live_****"

    @pytest.mark.unit
    def test_file_output_is_redacted(self, tmp_path: Path) -> None:
        root = logging.getLogger()
        original_handlers = list(root.handlers)
        log_path = tmp_path / "ledgersync.log"
        try:
            setup_logging(
                config=_force_config(log_to_file=True, log_file_path=log_path)
            )
            logging.getLogger("ledgersync.test").error("bad key sk_test_secret999")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                if handler not in original_handlers:
                    handler.close()
            root.handlers = original_handlers

        contents = log_path.read_text()
        assert "sk_test_secret999" not in contents
        assert "sk_test_****" in contents
