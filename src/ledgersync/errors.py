"""Error taxonomy for the sync engine.

None of these are retried internally. Retrying a failed sync is always safe
because persistence is an idempotent upsert and the watermark is re-derived
from stored records on every run.
"""


class LedgerSyncError(Exception):
    """Base class for all LedgerSync errors."""


class NotConnected(LedgerSyncError):
    """No credential is on file for the account."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account '{account_id}' is not connected to Stripe")


class InvalidCredential(LedgerSyncError):
    """A manually supplied API key was rejected by the provider."""


class ProviderRequestFailed(LedgerSyncError):
    """A request to the provider returned a non-success status.

    Attributes:
        status: HTTP status code, or None when no response was received
        message: Provider error message
    """

    def __init__(self, status: int | None, message: str):
        self.status = status
        self.message = message
        prefix = f"HTTP {status}" if status is not None else "Request error"
        super().__init__(f"{prefix}: {message}")


class PersistenceFailed(LedgerSyncError):
    """The local store rejected a batch write."""
