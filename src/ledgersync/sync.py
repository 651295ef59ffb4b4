"""Ledger synchronization engine.

A sync run resolves the watermark, fetches the transaction and payout streams
concurrently, normalizes them, and upserts them in fixed-size batches.

Failure model:
- If either fetch fails, the run fails and nothing from it is persisted.
- If a batch write fails, earlier batches stay committed. Batches are written
  oldest first, so every committed record is no newer than any uncommitted
  one and a plain re-run resumes exactly at the remainder.
- The last-sync marker is written only after both streams are persisted. A
  missing marker is harmless because the next run re-derives its watermark
  from the stored records themselves.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import TypeVar

from .config import ProviderConfig, SyncConfig
from .connectors import CredentialStore, PaginatedFetcher, Resource
from .normalizer import RecordNormalizer
from .schemas import (
    Payout,
    ProviderCredential,
    SyncResult,
    SyncWatermark,
    Transaction,
)
from .storage import LedgerStore
from .summary import total_fees, total_paid_payouts, total_sales

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", Transaction, Payout)


def oldest_first_batches(records: Sequence[RecordT], size: int) -> list[list[RecordT]]:
    """Split records into batches of at most ``size``, oldest first.

    An incremental run resumes strictly after the newest stored
    ``occurred_at``, so a batch boundary never separates records sharing a
    timestamp unless that group alone is larger than ``size``.
    """
    batches: list[list[RecordT]] = []
    current: list[RecordT] = []
    for record in sorted(records, key=lambda r: (r.occurred_at, r.external_id)):
        if len(current) == size:
            cut = len(current)
            while cut > 0 and current[cut - 1].occurred_at == record.occurred_at:
                cut -= 1
            if cut == 0:
                cut = len(current)
            batches.append(current[:cut])
            current = current[cut:]
        current.append(record)
    if current:
        batches.append(current)
    return batches


class LedgerSync:
    """Orchestrates one account's synchronization with Stripe.

    Callers should not sync the same account from two places at once; within
    one process, overlapping calls for the same account are serialized.
    """

    def __init__(
        self,
        store: LedgerStore,
        credentials: CredentialStore,
        fetcher: PaginatedFetcher,
        normalizer: RecordNormalizer | None = None,
        provider_config: ProviderConfig | None = None,
        sync_config: SyncConfig | None = None,
    ):
        """Initialize the sync engine.

        Args:
            store: Local record store
            credentials: Connection state, used to write the last-sync marker
            fetcher: Paginated fetcher bound to a Stripe client
            normalizer: Raw record converter; built from provider_config if omitted
            provider_config: Page size and fetch caps
            sync_config: Batch size and description placeholder
        """
        self.store = store
        self.credentials = credentials
        self.fetcher = fetcher
        self.provider_config = provider_config or ProviderConfig()
        self.sync_config = sync_config or SyncConfig()
        self.normalizer = normalizer or RecordNormalizer(
            unit_scale=self.provider_config.unit_scale,
            placeholder_description=self.sync_config.placeholder_description,
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def resolve_watermark(self, account_id: str, force: bool) -> SyncWatermark:
        """Work out where each stream should resume.

        The bound for each stream is the newest stored ``occurred_at``, read
        independently for transactions and payouts. A forced run ignores both.
        """
        connection = await asyncio.to_thread(self.credentials.get, account_id)
        last_synced_at = connection.last_synced_at if connection else None

        if force:
            return SyncWatermark(account_id=account_id, last_synced_at=last_synced_at)

        transactions_since = await asyncio.to_thread(
            self.store.latest_occurred_at, "transactions", account_id
        )
        payouts_since = await asyncio.to_thread(
            self.store.latest_occurred_at, "payouts", account_id
        )
        return SyncWatermark(
            account_id=account_id,
            transactions_since=transactions_since,
            payouts_since=payouts_since,
            last_synced_at=last_synced_at,
        )

    async def sync(
        self,
        account_id: str,
        credential: ProviderCredential,
        force: bool = False,
    ) -> SyncResult:
        """Synchronize one account's transactions and payouts.

        Args:
            account_id: Local account identifier
            credential: Bearer credential for the account
            force: Ignore the watermark and use the larger full-resync caps

        Returns:
            SyncResult: Counts and totals over the records fetched in this run

        Raises:
            ProviderRequestFailed: If either stream could not be fetched
            PersistenceFailed: If a batch could not be written
        """
        lock = self._locks.setdefault(account_id, asyncio.Lock())
        self._lock_users[account_id] = self._lock_users.get(account_id, 0) + 1
        try:
            async with lock:
                return await self._sync(account_id, credential, force)
        finally:
            self._lock_users[account_id] -= 1
            if not self._lock_users[account_id]:
                del self._lock_users[account_id]
                del self._locks[account_id]

    async def _sync(
        self, account_id: str, credential: ProviderCredential, force: bool
    ) -> SyncResult:
        mode = "FORCED" if force else "INCREMENTAL"
        logger.info(f"Starting {mode} sync for account {account_id}")

        watermark = await self.resolve_watermark(account_id, force)
        config = self.provider_config
        if force:
            transaction_cap = config.full_transaction_cap
            payout_cap = config.full_payout_cap
        else:
            transaction_cap = config.incremental_transaction_cap
            payout_cap = config.incremental_payout_cap

        outcomes = await asyncio.gather(
            self.fetcher.fetch(
                Resource.TRANSACTIONS,
                credential,
                max_records=transaction_cap,
                since=watermark.transactions_since,
            ),
            self.fetcher.fetch(
                Resource.PAYOUTS,
                credential,
                max_records=payout_cap,
                since=watermark.payouts_since,
            ),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error(f"❌ Sync failed for account {account_id}: {outcome}")
                raise outcome
        raw_transactions, raw_payouts = outcomes

        transactions = [
            self.normalizer.normalize_transaction(account_id, raw)
            for raw in raw_transactions
        ]
        payouts = [
            self.normalizer.normalize_payout(account_id, raw) for raw in raw_payouts
        ]

        transactions_count = await self._persist(
            self.store.upsert_transactions, transactions
        )
        payouts_count = await self._persist(self.store.upsert_payouts, payouts)

        await asyncio.to_thread(
            self.credentials.mark_synced, account_id, datetime.now(timezone.utc)
        )

        result = SyncResult(
            transactions_count=transactions_count,
            payouts_count=payouts_count,
            total_sales=total_sales(transactions),
            total_payouts=total_paid_payouts(payouts),
            total_fees=total_fees(transactions),
        )
        logger.info(
            f"✅ Synced {transactions_count} transaction(s) and "
            f"{payouts_count} payout(s) for account {account_id}"
        )
        return result

    async def _persist(
        self,
        upsert: Callable[[Sequence[RecordT]], int],
        records: Sequence[RecordT],
    ) -> int:
        written = 0
        for batch in oldest_first_batches(records, self.sync_config.batch_size):
            await asyncio.to_thread(upsert, batch)
            written += len(batch)
        return written
