"""Per-account connection state and connection resolution.

``CredentialStore`` is plain data access over ``app.provider_connections``.
``ConnectionResolver`` decides whether an account is connected, and by which
method, without any network I/O.
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from ..errors import NotConnected
from ..schemas import ConnectionMethod, ConnectionStatus, ProviderCredential
from ..storage import LedgerStore, to_db_timestamp

logger = logging.getLogger(__name__)


class StoredConnection(BaseModel):
    """Raw connection row as persisted."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    api_key: str | None = None
    provider_account_id: str | None = None
    livemode: bool | None = None
    connected_at: datetime | None = None
    last_synced_at: datetime | None = None


class CredentialStore:
    """Read/write access to per-account connection state."""

    def __init__(self, store: LedgerStore):
        """Initialize the credential store.

        Args:
            store: Local store whose database holds the connections table
        """
        self.store = store

    def get(self, account_id: str) -> StoredConnection | None:
        """Load the connection row for an account, if any."""
        with self.store.connect() as conn:
            table = self.store.table("app.provider_connections")
            result = conn.execute(
                f"""
                SELECT account_id, access_token, refresh_token, api_key,
                       provider_account_id, livemode, connected_at, last_synced_at
                FROM {table}
                WHERE account_id = ?
                """,  # noqa: S608
                [account_id],
            )
            columns = [desc[0] for desc in result.description]
            row = result.fetchone()

        if row is None:
            return None
        return StoredConnection.model_validate(dict(zip(columns, row, strict=True)))

    def save_delegated_session(
        self,
        account_id: str,
        access_token: str,
        provider_account_id: str,
        refresh_token: str | None = None,
        livemode: bool | None = None,
    ) -> None:
        """Record the result of a completed delegated-authorization flow."""
        with self.store.connect() as conn:
            table = self.store.table("app.provider_connections")
            conn.execute(
                f"""
                INSERT INTO {table}
                    (account_id, access_token, refresh_token, provider_account_id,
                     livemode, connected_at)
                VALUES (?, ?, ?, ?, ?, ?::TIMESTAMP)
                ON CONFLICT (account_id) DO UPDATE SET
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    provider_account_id = excluded.provider_account_id,
                    livemode = excluded.livemode,
                    connected_at = excluded.connected_at
                """,  # noqa: S608
                [
                    account_id,
                    access_token,
                    refresh_token,
                    provider_account_id,
                    livemode,
                    to_db_timestamp(datetime.now(timezone.utc)),
                ],
            )
        logger.info(f"Stored delegated session for account {account_id}")

    def save_api_key(
        self, account_id: str, api_key: str, provider_account_id: str | None
    ) -> None:
        """Record a manual API key that has already been validated."""
        with self.store.connect() as conn:
            table = self.store.table("app.provider_connections")
            conn.execute(
                f"""
                INSERT INTO {table}
                    (account_id, api_key, provider_account_id, connected_at)
                VALUES (?, ?, ?, ?::TIMESTAMP)
                ON CONFLICT (account_id) DO UPDATE SET
                    api_key = excluded.api_key,
                    provider_account_id = excluded.provider_account_id,
                    connected_at = excluded.connected_at
                """,  # noqa: S608
                [
                    account_id,
                    api_key,
                    provider_account_id,
                    to_db_timestamp(datetime.now(timezone.utc)),
                ],
            )
        logger.info(f"Stored API key connection for account {account_id}")

    def clear(self, account_id: str) -> None:
        """Forget every credential for an account; synced records are kept."""
        with self.store.connect() as conn:
            table = self.store.table("app.provider_connections")
            conn.execute(
                f"""
                UPDATE {table}
                SET access_token = NULL,
                    refresh_token = NULL,
                    api_key = NULL,
                    provider_account_id = NULL,
                    livemode = NULL,
                    connected_at = NULL
                WHERE account_id = ?
                """,  # noqa: S608
                [account_id],
            )
        logger.info(f"Cleared credentials for account {account_id}")

    def mark_synced(self, account_id: str, synced_at: datetime) -> None:
        """Set the last-sync marker."""
        with self.store.connect() as conn:
            table = self.store.table("app.provider_connections")
            conn.execute(
                f"""
                UPDATE {table}
                SET last_synced_at = ?::TIMESTAMP
                WHERE account_id = ?
                """,  # noqa: S608
                [to_db_timestamp(synced_at), account_id],
            )


class ConnectionResolver:
    """Determine whether and how an account is connected."""

    def __init__(self, credentials: CredentialStore):
        self.credentials = credentials

    def check_connection(self, account_id: str) -> ConnectionStatus:
        """Report the connection state of an account.

        A delegated session wins over a manual key when both are on file.

        Args:
            account_id: Local account identifier

        Returns:
            ConnectionStatus: ``connected=False`` when no credential is stored
        """
        row = self.credentials.get(account_id)
        if row is None:
            return ConnectionStatus(connected=False)

        if row.access_token:
            method = ConnectionMethod.DELEGATED
        elif row.api_key:
            method = ConnectionMethod.MANUAL_KEY
        else:
            return ConnectionStatus(connected=False, last_synced_at=row.last_synced_at)

        return ConnectionStatus(
            connected=True,
            method=method,
            account_ref=row.provider_account_id,
            livemode=row.livemode,
            connected_at=row.connected_at,
            last_synced_at=row.last_synced_at,
        )

    def resolve_credential(self, account_id: str) -> ProviderCredential:
        """Build the credential to pass into a sync.

        Raises:
            NotConnected: If no credential is on file
        """
        row = self.credentials.get(account_id)
        if row is not None and row.access_token:
            return ProviderCredential(
                method=ConnectionMethod.DELEGATED,
                secret=row.access_token,
                account_ref=row.provider_account_id,
            )
        if row is not None and row.api_key:
            return ProviderCredential(
                method=ConnectionMethod.MANUAL_KEY,
                secret=row.api_key,
                account_ref=row.provider_account_id,
            )
        raise NotConnected(account_id)
