"""Connection management commands for LedgerSync CLI.

This module provides commands for connecting an account to Stripe with a
manual API key or a delegated session, checking connection status, and
disconnecting.
"""

import asyncio
import logging

import typer

from ledgersync.errors import InvalidCredential
from ledgersync.schemas import ConnectionStatus
from ledgersync.service import LedgerService

app = typer.Typer(help="Manage Stripe connections")
logger = logging.getLogger(__name__)

ACCOUNT_OPTION = typer.Option(
    ..., "--account", "-a", envvar="LEDGERSYNC_ACCOUNT", help="Local account id"
)


def _log_status(account: str, status: ConnectionStatus) -> None:
    if not status.connected:
        logger.info(f"❌ Account {account} is not connected to Stripe")
        if status.last_synced_at:
            logger.info(f"  Last synced: {status.last_synced_at.isoformat()}")
        return

    method = status.method.value if status.method else "unknown"
    logger.info(f"✅ Account {account} is connected ({method})")
    if status.account_ref:
        logger.info(f"  Stripe account: {status.account_ref}")
    if status.livemode is not None:
        logger.info(f"  Mode: {'live' if status.livemode else 'test'}")
    if status.connected_at:
        logger.info(f"  Connected at: {status.connected_at.isoformat()}")
    logger.info(
        "  Last synced: "
        + (status.last_synced_at.isoformat() if status.last_synced_at else "never")
    )


@app.command("api-key")
def connect_api_key(
    account: str = ACCOUNT_OPTION,
    key: str = typer.Option(
        ..., "--key", "-k", envvar="STRIPE_API_KEY", help="Stripe secret API key"
    ),
) -> None:
    """Connect an account with a manually supplied Stripe API key.

    The key is validated against Stripe's account endpoint and stored only if
    Stripe accepts it.
    """
    try:
        service = LedgerService()
        status = asyncio.run(service.connect_with_api_key(account, key))
    except InvalidCredential as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(1) from e
    except Exception as e:
        logger.error(f"❌ Connection failed: {e}")
        raise typer.Exit(1) from e

    _log_status(account, status)


@app.command("session")
def connect_session(
    account: str = ACCOUNT_OPTION,
    access_token: str = typer.Option(
        ..., "--access-token", help="Access token from the authorization flow"
    ),
    account_ref: str = typer.Option(
        ..., "--account-ref", help="Connected Stripe account id (acct_...)"
    ),
    refresh_token: str | None = typer.Option(
        None, "--refresh-token", help="Refresh token, if one was issued"
    ),
    livemode: bool | None = typer.Option(
        None, "--livemode/--testmode", help="Whether the session is in live mode"
    ),
) -> None:
    """Register a delegated session obtained from Stripe's authorization flow."""
    try:
        service = LedgerService()
        status = service.register_delegated_session(
            account,
            access_token=access_token,
            provider_account_id=account_ref,
            refresh_token=refresh_token,
            livemode=livemode,
        )
    except Exception as e:
        logger.error(f"❌ Failed to store session: {e}")
        raise typer.Exit(1) from e

    _log_status(account, status)


@app.command("status")
def connection_status(account: str = ACCOUNT_OPTION) -> None:
    """Show whether an account is connected and by which method."""
    try:
        status = LedgerService().check_connection(account)
    except Exception as e:
        logger.error(f"❌ Failed to read connection status: {e}")
        raise typer.Exit(1) from e

    _log_status(account, status)


@app.command("remove")
def disconnect(account: str = ACCOUNT_OPTION) -> None:
    """Remove stored Stripe credentials; synced records are kept."""
    try:
        LedgerService().disconnect(account)
    except Exception as e:
        logger.error(f"❌ Failed to disconnect: {e}")
        raise typer.Exit(1) from e

    logger.info(f"✅ Disconnected account {account} from Stripe")
