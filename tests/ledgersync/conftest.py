"""Shared pytest fixtures for ledgersync tests.

This module provides an in-process simulation of the Stripe list endpoints,
raw record builders, and a settings object pointing at a temporary DuckDB file.
"""

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest

from ledgersync.config import DatabaseConfig, LedgerSyncSettings, clear_settings_cache
from ledgersync.connectors import CredentialStore, PaginatedFetcher, StripeClient
from ledgersync.storage import LedgerStore
from ledgersync.sync import LedgerSync

BASE_TIME = 1_700_000_000  # 2023-11-14T22:13:20Z

VALID_API_KEY = "sk_test_valid"


def raw_transaction(
    external_id: str,
    created: int = BASE_TIME,
    type_: str = "charge",
    amount: int = 10_000,
    fee: int = 300,
    **extra: Any,
) -> dict[str, Any]:
    """Build a raw Stripe balance transaction (minor units)."""
    record: dict[str, Any] = {
        "id": external_id,
        "object": "balance_transaction",
        "type": type_,
        "amount": amount,
        "fee": fee,
        "net": amount - fee,
        "currency": "usd",
        "status": "available",
        "created": created,
    }
    record.update(extra)
    return record


def raw_payout(
    external_id: str,
    created: int = BASE_TIME,
    amount: int = 5_000,
    status: str = "paid",
    **extra: Any,
) -> dict[str, Any]:
    """Build a raw Stripe payout (minor units)."""
    record: dict[str, Any] = {
        "id": external_id,
        "object": "payout",
        "amount": amount,
        "currency": "usd",
        "arrival_date": created + 86_400 * 2,
        "status": status,
        "method": "standard",
        "description": "STRIPE PAYOUT",
        "created": created,
    }
    record.update(extra)
    return record


@dataclass
class FakeStripe:
    """Simulated Stripe API serving cursor-paginated lists.

    Records are served newest first, like Stripe. Set ``failures`` to make a
    path return an error status, or ``endless`` to make a list report
    ``has_more`` forever with generated records.
    """

    transactions: list[dict[str, Any]] = field(default_factory=list)
    payouts: list[dict[str, Any]] = field(default_factory=list)
    failures: dict[str, int] = field(default_factory=dict)
    endless: set[str] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)

    def requests_for(self, path: str) -> list[httpx.Request]:
        """Requests received for a path, in order."""
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        """Route a request to the matching simulated endpoint."""
        self.requests.append(request)
        path = request.url.path

        if path in self.failures:
            return httpx.Response(
                self.failures[path],
                json={"error": {"message": f"Simulated failure for {path}"}},
            )

        if path == "/v1/account":
            if request.headers.get("Authorization") != f"Bearer {VALID_API_KEY}":
                return httpx.Response(
                    401, json={"error": {"message": "Invalid API Key provided"}}
                )
            return httpx.Response(
                200, json={"id": "acct_test123", "email": "owner@example.com"}
            )

        if path == "/v1/balance_transactions":
            return self._list(request, self.transactions, "txn")
        if path == "/v1/payouts":
            return self._list(request, self.payouts, "po")

        return httpx.Response(404, json={"error": {"message": "Unknown path"}})

    def _list(
        self, request: httpx.Request, records: list[dict[str, Any]], prefix: str
    ) -> httpx.Response:
        params = request.url.params
        limit = int(params.get("limit", "10"))
        starting_after = params.get("starting_after")

        if request.url.path in self.endless:
            offset = int(starting_after.rsplit("_", 1)[1]) + 1 if starting_after else 0
            data = [
                raw_transaction(f"{prefix}_gen_{offset + i}", BASE_TIME - offset - i)
                for i in range(limit)
            ]
            return httpx.Response(200, json={"data": data, "has_more": True})

        ordered = sorted(records, key=lambda r: r["created"], reverse=True)
        created_gt = params.get("created[gt]")
        if created_gt is not None:
            ordered = [r for r in ordered if r["created"] > int(created_gt)]

        start = 0
        if starting_after:
            ids = [r["id"] for r in ordered]
            start = ids.index(starting_after) + 1

        page = ordered[start : start + limit]
        return httpx.Response(
            200,
            json={"data": page, "has_more": start + limit < len(ordered)},
        )


@pytest.fixture(autouse=True)
def clean_settings_state() -> Generator[None, None, None]:
    """Clear cached settings before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def fake_stripe() -> FakeStripe:
    """Empty simulated Stripe account."""
    return FakeStripe()


@pytest.fixture
def transport(fake_stripe: FakeStripe) -> httpx.MockTransport:
    """httpx transport routed to the simulated Stripe API."""
    return httpx.MockTransport(fake_stripe.handler)


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    """Path for a throwaway DuckDB file."""
    return tmp_path / "ledger.duckdb"


@pytest.fixture
def settings(database_path: Path) -> LedgerSyncSettings:
    """Settings pointing at the temporary database with small caps."""
    return LedgerSyncSettings(
        database=DatabaseConfig(path=database_path),
        provider={
            "api_base": "https://api.stripe.test",
            "page_size": 2,
            "incremental_transaction_cap": 6,
            "full_transaction_cap": 20,
            "incremental_payout_cap": 4,
            "full_payout_cap": 10,
        },
        sync={"batch_size": 3},
    )


@pytest.fixture
def store(database_path: Path) -> LedgerStore:
    """Ledger store on the temporary database."""
    return LedgerStore(database_path)


@pytest.fixture
def credential_store(store: LedgerStore) -> CredentialStore:
    """Credential store sharing the temporary database."""
    return CredentialStore(store)


@pytest.fixture
def stripe_client(
    settings: LedgerSyncSettings, transport: httpx.MockTransport
) -> StripeClient:
    """Stripe client talking to the simulated API."""
    return StripeClient(settings.provider, transport=transport)


@pytest.fixture
def make_engine(
    settings: LedgerSyncSettings,
    store: LedgerStore,
    credential_store: CredentialStore,
    stripe_client: StripeClient,
) -> Callable[..., LedgerSync]:
    """Factory for sync engines wired to the simulated API."""

    def _make(**overrides: Any) -> LedgerSync:
        kwargs: dict[str, Any] = {
            "store": store,
            "credentials": credential_store,
            "fetcher": PaginatedFetcher(stripe_client),
            "provider_config": settings.provider,
            "sync_config": settings.sync,
        }
        kwargs.update(overrides)
        return LedgerSync(**kwargs)

    return _make
