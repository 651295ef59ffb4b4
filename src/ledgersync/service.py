"""Public entry point: connection checks, sync and summaries per account.

``LedgerService`` wires the store, credential store, Stripe client, sync engine
and aggregator together. It holds no per-account state; every call names the
account it acts on.
"""

import logging

import httpx

from .config import LedgerSyncSettings, get_settings
from .connectors import (
    ConnectionResolver,
    CredentialStore,
    PaginatedFetcher,
    StripeClient,
)
from .schemas import (
    ConnectionMethod,
    ConnectionStatus,
    LedgerSummary,
    ProviderCredential,
    SyncResult,
)
from .storage import LedgerStore
from .summary import SummaryAggregator
from .sync import LedgerSync

logger = logging.getLogger(__name__)


class LedgerService:
    """Facade over the ledger synchronization subsystem."""

    def __init__(
        self,
        settings: LedgerSyncSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the service.

        Args:
            settings: Application settings; loaded from the environment if omitted
            transport: Optional httpx transport for the Stripe client
        """
        self.settings = settings or get_settings()
        self.store = LedgerStore(self.settings.database.path)
        self.credentials = CredentialStore(self.store)
        self.resolver = ConnectionResolver(self.credentials)
        self.client = StripeClient(self.settings.provider, transport=transport)
        self.engine = LedgerSync(
            store=self.store,
            credentials=self.credentials,
            fetcher=PaginatedFetcher(self.client),
            provider_config=self.settings.provider,
            sync_config=self.settings.sync,
        )
        self.aggregator = SummaryAggregator(self.store)

    def check_connection(self, account_id: str) -> ConnectionStatus:
        """Report whether and how an account is connected (no network I/O)."""
        return self.resolver.check_connection(account_id)

    async def connect_with_api_key(
        self, account_id: str, api_key: str
    ) -> ConnectionStatus:
        """Validate a manual API key against Stripe and store it.

        The key is persisted only after Stripe accepts it.

        Raises:
            InvalidCredential: If Stripe rejects the key
        """
        credential = ProviderCredential(
            method=ConnectionMethod.MANUAL_KEY, secret=api_key
        )
        account = await self.client.retrieve_account(credential)
        self.credentials.save_api_key(account_id, api_key, account.get("id"))
        logger.info(f"Connected account {account_id} to Stripe {account.get('id')}")
        return self.check_connection(account_id)

    def register_delegated_session(
        self,
        account_id: str,
        access_token: str,
        provider_account_id: str,
        refresh_token: str | None = None,
        livemode: bool | None = None,
    ) -> ConnectionStatus:
        """Store the outcome of an externally completed authorization flow."""
        self.credentials.save_delegated_session(
            account_id,
            access_token=access_token,
            provider_account_id=provider_account_id,
            refresh_token=refresh_token,
            livemode=livemode,
        )
        return self.check_connection(account_id)

    def disconnect(self, account_id: str) -> None:
        """Forget an account's credentials; synced records are kept."""
        self.credentials.clear(account_id)

    async def sync(self, account_id: str, force: bool = False) -> SyncResult:
        """Sync an account using its stored credential.

        Raises:
            NotConnected: Before any network call, if no credential is on file
            ProviderRequestFailed: If either stream could not be fetched
            PersistenceFailed: If a batch could not be written
        """
        credential = self.resolver.resolve_credential(account_id)
        return await self.engine.sync(account_id, credential, force=force)

    def record_counts(self, account_id: str) -> dict[str, int]:
        """Count stored transactions and payouts for an account."""
        return {
            "transactions": self.store.count("transactions", account_id),
            "payouts": self.store.count("payouts", account_id),
        }

    def summarize(self, account_id: str) -> LedgerSummary:
        """Compute dashboard totals from the local store."""
        return self.aggregator.summarize(account_id)
