"""Command groups for the LedgerSync CLI."""
