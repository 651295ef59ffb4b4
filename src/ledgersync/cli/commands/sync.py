"""Data synchronization commands for LedgerSync CLI.

This module provides the command that pulls balance transactions and payouts
from Stripe into the local store.
"""

import asyncio
import logging

import typer

from ledgersync.errors import NotConnected
from ledgersync.service import LedgerService

app = typer.Typer(help="Sync financial data from Stripe")
logger = logging.getLogger(__name__)


@app.command("stripe")
def sync_stripe(
    account: str = typer.Option(
        ..., "--account", "-a", envvar="LEDGERSYNC_ACCOUNT", help="Local account id"
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force full resync, ignoring the incremental watermark",
    ),
) -> None:
    """Sync balance transactions and payouts for an account.

    By default only records newer than the newest stored record are fetched.
    Use --force to re-fetch up to the full-resync caps and repair gaps.
    """
    if force:
        logger.info("🔄 Starting FORCED sync...")
        logger.info("⚠️  Stored watermarks are ignored for this run")
    else:
        logger.info("📈 Starting INCREMENTAL sync...")

    try:
        service = LedgerService()
        result = asyncio.run(service.sync(account, force=force))
    except NotConnected as e:
        logger.error(f"❌ {e}")
        logger.info("Connect first with: ledgersync connect api-key --account ...")
        raise typer.Exit(1) from e
    except Exception as e:
        logger.error(f"❌ Sync failed: {e}")
        raise typer.Exit(1) from e

    logger.info("✅ Sync completed successfully")
    logger.info(f"  Transactions: {result.transactions_count}")
    logger.info(f"  Payouts: {result.payouts_count}")
    logger.info(f"  Sales: {result.total_sales:.2f}")
    logger.info(f"  Fees: {result.total_fees:.2f}")
    logger.info(f"  Paid out: {result.total_payouts:.2f}")


@app.command("status")
def sync_status(
    account: str = typer.Option(
        ..., "--account", "-a", envvar="LEDGERSYNC_ACCOUNT", help="Local account id"
    ),
) -> None:
    """Show when an account last synced and how many records are stored."""
    try:
        service = LedgerService()
        connection = service.check_connection(account)
        counts = service.record_counts(account)
    except Exception as e:
        logger.error(f"❌ Failed to read sync status: {e}")
        raise typer.Exit(1) from e

    logger.info(f"📊 Sync status for account {account}")
    logger.info("=" * 50)
    last_synced = connection.last_synced_at
    logger.info(f"  Last synced: {last_synced.isoformat() if last_synced else 'never'}")
    for table_name, count in counts.items():
        logger.info(f"  {table_name}: {count:,} rows")
