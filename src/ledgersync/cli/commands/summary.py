"""Summary commands for LedgerSync CLI.

Summaries read only the local store; they never contact Stripe.
"""

import logging

import typer

from ledgersync.service import LedgerService

app = typer.Typer(help="Show financial summaries from the local store")
logger = logging.getLogger(__name__)


@app.callback()
def summary_callback() -> None:
    """Show financial summaries from the local store."""


@app.command("show")
def show_summary(
    account: str = typer.Option(
        ..., "--account", "-a", envvar="LEDGERSYNC_ACCOUNT", help="Local account id"
    ),
    as_json: bool = typer.Option(
        False, "--json", help="Print the summary as JSON on stdout"
    ),
) -> None:
    """Show totals and recent activity for an account."""
    try:
        summary = LedgerService().summarize(account)
    except Exception as e:
        logger.error(f"❌ Failed to build summary: {e}")
        raise typer.Exit(1) from e

    if as_json:
        typer.echo(summary.model_dump_json(indent=2))
        return

    logger.info(f"📊 Summary for account {account}")
    logger.info(f"  Sales: {summary.total_sales:.2f}")
    logger.info(f"  Fees: {summary.total_fees:.2f}")
    logger.info(f"  Net: {summary.total_net:.2f}")
    logger.info(f"  Paid out: {summary.total_payouts:.2f}")
    logger.info(f"  Pending payouts: {summary.pending_payouts:.2f}")

    if summary.recent_transactions:
        logger.info("\n🧾 Recent transactions:")
        for t in summary.recent_transactions:
            logger.info(
                f"  {t.occurred_at:%Y-%m-%d}  {t.kind.value:<10} "
                f"{t.amount:>12.2f} {t.currency.upper()}  {t.description}"
            )

    if summary.recent_payouts:
        logger.info("\n🏦 Recent payouts:")
        for p in summary.recent_payouts:
            logger.info(
                f"  {p.occurred_at:%Y-%m-%d}  {p.status.value:<12} "
                f"{p.amount:>12.2f} {p.currency.upper()}"
            )
