"""DuckDB-backed local store for synced ledger records.

Records are written with ``INSERT OR REPLACE`` keyed on
``(account_id, external_id)``, so re-fetching and re-writing a record always
leaves exactly one row carrying the most recent values.

DuckDB names the catalog of a database file after its stem, so a file called
``ledger.duckdb`` has a catalog that shadows the ``ledger`` schema. Every table
is therefore addressed as ``catalog.schema.table``.
"""

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Literal

import duckdb
import polars as pl

from ..errors import PersistenceFailed
from ..schemas import Payout, Transaction

logger = logging.getLogger(__name__)

LedgerTable = Literal["transactions", "payouts"]

_SCHEMA_FILES = [
    "app_schema.sql",
    "app_provider_connections.sql",
    "ledger_transactions.sql",
    "ledger_payouts.sql",
]

_TRANSACTION_COLUMNS = [
    "account_id",
    "external_id",
    "id",
    "kind",
    "amount",
    "currency",
    "fee",
    "net",
    "description",
    "counterparty_email",
    "status",
    "occurred_at",
    "raw_details",
    "synced_at",
]

_PAYOUT_COLUMNS = [
    "account_id",
    "external_id",
    "id",
    "amount",
    "currency",
    "arrival_date",
    "status",
    "method",
    "description",
    "occurred_at",
    "synced_at",
]


def to_db_timestamp(value: datetime) -> str:
    """Format an aware datetime as the naive UTC text DuckDB TIMESTAMP expects."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(sep=" ")


def _decimal_text(value: Decimal) -> str:
    return format(value, "f")


def quote_identifier(name: str) -> str:
    """Quote a DuckDB identifier."""
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


class LedgerStore:
    """Local record store with upsert-by-key and simple account queries."""

    def __init__(self, database_path: Path | str):
        """Initialize the store.

        Args:
            database_path: Path to the DuckDB database file
        """
        self.database_path = Path(database_path)
        self.sql_dir = Path(__file__).parent.parent / "sql" / "schema"
        self.catalog = quote_identifier(self.database_path.stem)
        self._schema_ready = False
        logger.debug(f"Initialized ledger store for database: {self.database_path}")

    @contextmanager
    def connect(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Open a connection with all tables created.

        Yields:
            duckdb.DuckDBPyConnection: An open connection, closed on exit
        """
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        conn = duckdb.connect(str(self.database_path))
        try:
            catalog = conn.execute("SELECT current_database()").fetchone()
            if catalog is not None:
                self.catalog = quote_identifier(catalog[0])
            if not self._schema_ready:
                self._create_tables(conn)
                self._schema_ready = True
            yield conn
        finally:
            conn.close()

    def _create_tables(self, conn: duckdb.DuckDBPyConnection) -> None:
        for sql_file in _SCHEMA_FILES:
            sql_path = self.sql_dir / sql_file
            if not sql_path.exists():
                raise FileNotFoundError(f"SQL schema file not found: {sql_path}")
            conn.execute(sql_path.read_text().format(catalog=self.catalog))
            logger.debug(f"Executed schema file: {sql_file}")

    def table(self, name: str) -> str:
        """Qualify a ``schema.table`` name with this database's catalog."""
        return f"{self.catalog}.{name}"

    def upsert_transactions(self, records: Sequence[Transaction]) -> int:
        """Insert or replace a batch of transactions.

        Args:
            records: Normalized transactions to write

        Returns:
            int: Number of rows written

        Raises:
            PersistenceFailed: If DuckDB rejects the batch
        """
        if not records:
            return 0

        synced_at = to_db_timestamp(datetime.now(timezone.utc))
        rows: list[dict[str, Any]] = [
            {
                "account_id": r.account_id,
                "external_id": r.external_id,
                "id": r.id,
                "kind": r.kind.value,
                "amount": _decimal_text(r.amount),
                "currency": r.currency,
                "fee": _decimal_text(r.fee),
                "net": _decimal_text(r.net),
                "description": r.description,
                "counterparty_email": r.counterparty_email,
                "status": r.status,
                "occurred_at": to_db_timestamp(r.occurred_at),
                "raw_details": json.dumps(r.raw_details, default=str),
                "synced_at": synced_at,
            }
            for r in records
        ]
        df = pl.DataFrame(rows, schema=dict.fromkeys(_TRANSACTION_COLUMNS, pl.Utf8))
        # A single INSERT OR REPLACE may not carry the same key twice
        df = df.unique(
            subset=["account_id", "external_id"], keep="last", maintain_order=True
        )

        try:
            with self.connect() as conn:
                table = self.table("ledger.transactions")
                conn.execute(f"""
                    INSERT OR REPLACE INTO {table}
                    (account_id, external_id, id, kind, amount, currency, fee, net,
                     description, counterparty_email, status, occurred_at,
                     raw_details, synced_at)
                    SELECT account_id, external_id, id, kind,
                           amount::DECIMAL(18, 4), currency,
                           fee::DECIMAL(18, 4), net::DECIMAL(18, 4),
                           description, counterparty_email, status,
                           occurred_at::TIMESTAMP, raw_details::JSON,
                           synced_at::TIMESTAMP
                    FROM df
                """)  # noqa: S608  # table is catalog-qualified constant
        except duckdb.Error as e:
            raise PersistenceFailed(f"Failed to write transactions batch: {e}") from e

        logger.debug(f"Upserted {len(df)} transaction(s)")
        return len(df)

    def upsert_payouts(self, records: Sequence[Payout]) -> int:
        """Insert or replace a batch of payouts.

        Args:
            records: Normalized payouts to write

        Returns:
            int: Number of rows written

        Raises:
            PersistenceFailed: If DuckDB rejects the batch
        """
        if not records:
            return 0

        synced_at = to_db_timestamp(datetime.now(timezone.utc))
        rows: list[dict[str, Any]] = [
            {
                "account_id": r.account_id,
                "external_id": r.external_id,
                "id": r.id,
                "amount": _decimal_text(r.amount),
                "currency": r.currency,
                "arrival_date": r.arrival_date.isoformat() if r.arrival_date else None,
                "status": r.status.value,
                "method": r.method,
                "description": r.description,
                "occurred_at": to_db_timestamp(r.occurred_at),
                "synced_at": synced_at,
            }
            for r in records
        ]
        df = pl.DataFrame(rows, schema=dict.fromkeys(_PAYOUT_COLUMNS, pl.Utf8))
        df = df.unique(
            subset=["account_id", "external_id"], keep="last", maintain_order=True
        )

        try:
            with self.connect() as conn:
                table = self.table("ledger.payouts")
                conn.execute(f"""
                    INSERT OR REPLACE INTO {table}
                    (account_id, external_id, id, amount, currency, arrival_date,
                     status, method, description, occurred_at, synced_at)
                    SELECT account_id, external_id, id, amount::DECIMAL(18, 4),
                           currency, arrival_date::DATE, status, method,
                           description, occurred_at::TIMESTAMP,
                           synced_at::TIMESTAMP
                    FROM df
                """)  # noqa: S608  # table is catalog-qualified constant
        except duckdb.Error as e:
            raise PersistenceFailed(f"Failed to write payouts batch: {e}") from e

        logger.debug(f"Upserted {len(df)} payout(s)")
        return len(df)

    def latest_occurred_at(
        self, table: LedgerTable, account_id: str
    ) -> datetime | None:
        """Return the most recent stored ``occurred_at`` for an account.

        Args:
            table: Which record set to inspect
            account_id: Local account identifier

        Returns:
            datetime | None: Aware UTC timestamp, or None when nothing is stored
        """
        table_name = self._validate_table(table)
        with self.connect() as conn:
            result = conn.execute(
                f"SELECT max(occurred_at) FROM {self.table(f'ledger.{table_name}')} WHERE account_id = ?",  # noqa: S608  # table_name validated
                [account_id],
            ).fetchone()

        latest = result[0] if result else None
        if latest is None:
            return None
        return latest.replace(tzinfo=timezone.utc)

    def list_transactions(self, account_id: str) -> list[Transaction]:
        """Load every stored transaction for an account.

        Args:
            account_id: Local account identifier

        Returns:
            list[Transaction]: Records in no particular order
        """
        columns = [c for c in _TRANSACTION_COLUMNS if c != "synced_at"]
        rows = self._select(columns, "ledger.transactions", account_id)
        return [Transaction.model_validate(row) for row in rows]

    def list_payouts(self, account_id: str) -> list[Payout]:
        """Load every stored payout for an account.

        Args:
            account_id: Local account identifier

        Returns:
            list[Payout]: Records in no particular order
        """
        columns = [c for c in _PAYOUT_COLUMNS if c != "synced_at"]
        rows = self._select(columns, "ledger.payouts", account_id)
        return [Payout.model_validate(row) for row in rows]

    def count(self, table: LedgerTable, account_id: str) -> int:
        """Count stored records for an account."""
        table_name = self._validate_table(table)
        with self.connect() as conn:
            result = conn.execute(
                f"SELECT COUNT(*) FROM {self.table(f'ledger.{table_name}')} WHERE account_id = ?",  # noqa: S608  # table_name validated
                [account_id],
            ).fetchone()
        return result[0] if result else 0

    def _select(
        self, columns: list[str], table: str, account_id: str
    ) -> list[dict[str, Any]]:
        with self.connect() as conn:
            result = conn.execute(
                f"SELECT {', '.join(columns)} FROM {self.table(table)} WHERE account_id = ?",  # noqa: S608  # fixed column list
                [account_id],
            )
            names = [desc[0] for desc in result.description]
            return [dict(zip(names, row, strict=True)) for row in result.fetchall()]

    @staticmethod
    def _validate_table(table: str) -> str:
        allowed_tables = {"transactions", "payouts"}
        if table not in allowed_tables:
            raise ValueError(
                f"Invalid table name: {table}. "
                f"Must be one of: {', '.join(sorted(allowed_tables))}"
            )
        return table
