"""Local DuckDB storage for synced ledger records and connection state."""

from .ledger_store import LedgerStore, to_db_timestamp

__all__ = ["LedgerStore", "to_db_timestamp"]
