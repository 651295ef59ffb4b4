# ruff: noqa: S101,S106
"""Tests for connection management CLI commands.

Tests CLI-specific functionality: argument parsing, exit codes and error
handling. Connection logic is tested in test_credentials.py and test_service.py.
"""

import logging
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture
from typer.testing import CliRunner

from ledgersync.cli.commands.connect import app
from ledgersync.errors import InvalidCredential
from ledgersync.schemas import ConnectionMethod, ConnectionStatus
from ledgersync.service import LedgerService


class TestConnectCommands:
    """Test CLI-specific functionality for connect commands."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        """Create a CLI runner for testing."""
        return CliRunner()

    @pytest.fixture
    def mock_service(self, mocker: MockerFixture) -> MagicMock:
        """Mock LedgerService to avoid touching a real database or network."""
        service = mocker.MagicMock(spec=LedgerService)
        mocker.patch(
            "ledgersync.cli.commands.connect.LedgerService", return_value=service
        )
        return service

    @pytest.mark.unit
    def test_api_key_success(
        self,
        runner: CliRunner,
        mock_service: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        caplog.set_level(logging.INFO)
        mock_service.connect_with_api_key.return_value = ConnectionStatus(
            connected=True, method=ConnectionMethod.MANUAL_KEY, account_ref="acct_1"
        )

        result = runner.invoke(app, ["api-key", "--account", "shop", "--key", "sk_1"])

        assert result.exit_code == 0
        mock_service.connect_with_api_key.assert_awaited_once_with("shop", "sk_1")
        assert "connected (manual-key)" in caplog.text
        assert "acct_1" in caplog.text

    @pytest.mark.unit
    def test_api_key_from_environment(
        self, runner: CliRunner, mock_service: MagicMock
    ) -> None:
        mock_service.connect_with_api_key.return_value = ConnectionStatus(
            connected=True, method=ConnectionMethod.MANUAL_KEY
        )

        result = runner.invoke(
            app,
            ["api-key"],
            env={"LEDGERSYNC_ACCOUNT": "shop", "STRIPE_API_KEY": "sk_env"},
        )

        assert result.exit_code == 0
        mock_service.connect_with_api_key.assert_awaited_once_with("shop", "sk_env")

    @pytest.mark.unit
    def test_api_key_rejected(
        self,
        runner: CliRunner,
        mock_service: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        mock_service.connect_with_api_key.side_effect = InvalidCredential(
            "Invalid API key: Invalid API Key provided"
        )

        result = runner.invoke(app, ["api-key", "-a", "shop", "-k", "sk_bad"])

        assert result.exit_code == 1
        assert "Invalid API Key provided" in caplog.text
        assert "Traceback" not in result.output

    @pytest.mark.unit
    def test_api_key_requires_account(
        self, runner: CliRunner, mock_service: MagicMock
    ) -> None:
        result = runner.invoke(
            app, ["api-key", "--key", "sk_1"], env={"LEDGERSYNC_ACCOUNT": None}
        )

        assert result.exit_code == 2
        mock_service.connect_with_api_key.assert_not_called()

    @pytest.mark.unit
    def test_session(self, runner: CliRunner, mock_service: MagicMock) -> None:
        mock_service.register_delegated_session.return_value = ConnectionStatus(
            connected=True,
            method=ConnectionMethod.DELEGATED,
            account_ref="acct_9",
            livemode=True,
        )

        result = runner.invoke(
            app,
            [
                "session",
                "--account",
                "shop",
                "--access-token",
                "tok_1",
                "--account-ref",
                "acct_9",
                "--livemode",
            ],
        )

        assert result.exit_code == 0
        mock_service.register_delegated_session.assert_called_once_with(
            "shop",
            access_token="tok_1",
            provider_account_id="acct_9",
            refresh_token=None,
            livemode=True,
        )

    @pytest.mark.unit
    def test_status_not_connected(
        self,
        runner: CliRunner,
        mock_service: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        caplog.set_level(logging.INFO)
        mock_service.check_connection.return_value = ConnectionStatus(connected=False)

        result = runner.invoke(app, ["status", "--account", "shop"])

        assert result.exit_code == 0
        assert "not connected" in caplog.text

    @pytest.mark.unit
    def test_status_failure(self, runner: CliRunner, mock_service: MagicMock) -> None:
        mock_service.check_connection.side_effect = RuntimeError("database locked")

        result = runner.invoke(app, ["status", "--account", "shop"])

        assert result.exit_code == 1

    @pytest.mark.unit
    def test_remove(self, runner: CliRunner, mock_service: MagicMock) -> None:
        result = runner.invoke(app, ["remove", "--account", "shop"])

        assert result.exit_code == 0
        mock_service.disconnect.assert_called_once_with("shop")
