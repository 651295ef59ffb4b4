"""Main CLI application for LedgerSync.

This module provides the unified entry point for all LedgerSync CLI
operations, organizing commands into connection management, sync and summary
groups.
"""

import logging
from typing import Annotated

import typer
from dotenv import load_dotenv

from ..logging import setup_logging
from .commands import connect, summary, sync

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="ledgersync",
    help="LedgerSync: Stripe ledger synchronization and summaries",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose debug logging",
        ),
    ] = False,
) -> None:
    """Global options for LedgerSync CLI.

    Settings are read from LEDGERSYNC_* environment variables and from a .env
    file in the working directory. Every command takes --account (or the
    LEDGERSYNC_ACCOUNT environment variable) naming the local account.

    Examples:
      ledgersync connect api-key --account shop --key sk_test_xxx
      ledgersync sync stripe --account shop --force
      ledgersync summary show --account shop --json
    """
    load_dotenv()
    setup_logging(cli_mode=True, verbose=verbose)


app.add_typer(connect.app, name="connect", help="Manage Stripe connections")
app.add_typer(sync.app, name="sync", help="Sync data from Stripe")
app.add_typer(summary.app, name="summary", help="Show financial summaries")


def main() -> None:
    """Entry point for the LedgerSync CLI application."""
    app()


if __name__ == "__main__":
    main()
