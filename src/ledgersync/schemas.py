"""Pydantic schemas for canonical ledger records and sync results.

The canonical records are independent of the provider's raw payload shape;
``ledgersync.normalizer`` is the only place that knows about raw Stripe fields.
"""

import json
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

_RECORD_NAMESPACE = uuid.UUID("8b0f3f5e-6a43-4f39-9d43-3c0b0c7a51d2")


def local_record_id(account_id: str, external_id: str) -> str:
    """Derive the stable local key for an externally sourced record.

    The same ``(account_id, external_id)`` pair always maps to the same id, so
    re-upserting a record never changes its local identity.
    """
    return str(uuid.uuid5(_RECORD_NAMESPACE, f"{account_id}:{external_id}"))


class TransactionKind(Enum):
    """Local classification of a ledger entry."""

    CHARGE = "charge"
    PAYMENT = "payment"
    REFUND = "refund"
    PAYOUT_FEE = "payout-fee"
    FEE = "fee"


REVENUE_KINDS = frozenset({TransactionKind.CHARGE, TransactionKind.PAYMENT})


class PayoutStatus(Enum):
    """Payout lifecycle status."""

    PENDING = "pending"
    IN_TRANSIT = "in-transit"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"
    UNRECOGNIZED = "unrecognized"


OUTSTANDING_PAYOUT_STATUSES = frozenset({PayoutStatus.PENDING, PayoutStatus.IN_TRANSIT})


class ConnectionMethod(Enum):
    """How an account authenticates against the provider."""

    DELEGATED = "delegated"
    MANUAL_KEY = "manual-key"


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
        from_attributes=True,
        populate_by_name=True,
    )


def _as_utc(v: Any) -> Any:
    if isinstance(v, datetime) and v.tzinfo is None:
        # DuckDB TIMESTAMP columns hold naive UTC values
        return v.replace(tzinfo=timezone.utc)
    return v


class ProviderCredential(BaseSchema):
    """Bearer credential passed explicitly into every provider call."""

    method: ConnectionMethod
    secret: SecretStr = Field(..., description="Session access token or API key")
    account_ref: str | None = Field(
        None, description="Connected provider account id"
    )

    def auth_headers(self) -> dict[str, str]:
        """Build the request headers for this credential."""
        headers = {"Authorization": f"Bearer {self.secret.get_secret_value()}"}
        if self.method is ConnectionMethod.DELEGATED and self.account_ref:
            headers["Stripe-Account"] = self.account_ref
        return headers


class Transaction(BaseSchema):
    """Canonical balance transaction."""

    id: str = Field(..., description="Local primary key")
    account_id: str
    external_id: str = Field(..., description="Provider id, the idempotency key")
    kind: TransactionKind
    amount: Decimal = Field(..., description="Amount in major currency units")
    currency: str
    fee: Decimal = Decimal("0")
    net: Decimal
    description: str = ""
    counterparty_email: str | None = None
    status: str | None = None
    occurred_at: datetime
    raw_details: dict[str, Any] = Field(default_factory=dict)

    @field_validator("occurred_at", mode="before")
    @classmethod
    def ensure_utc(cls, v: Any) -> Any:
        """Treat naive timestamps as UTC."""
        return _as_utc(v)

    @field_validator("raw_details", mode="before")
    @classmethod
    def parse_raw_details(cls, v: Any) -> Any:
        """Accept the JSON text DuckDB returns for JSON columns."""
        if v is None:
            return {}
        if isinstance(v, (str, bytes)):
            return json.loads(v)
        return v


class Payout(BaseSchema):
    """Canonical payout."""

    id: str
    account_id: str
    external_id: str
    amount: Decimal
    currency: str
    arrival_date: date | None = None
    status: PayoutStatus
    method: str | None = None
    description: str | None = None
    occurred_at: datetime

    @field_validator("occurred_at", mode="before")
    @classmethod
    def ensure_utc(cls, v: Any) -> Any:
        """Treat naive timestamps as UTC."""
        return _as_utc(v)


class ConnectionStatus(BaseSchema):
    """Result of a connection check; absence of credentials is not an error."""

    connected: bool
    method: ConnectionMethod | None = None
    account_ref: str | None = None
    livemode: bool | None = None
    connected_at: datetime | None = None
    last_synced_at: datetime | None = None

    @field_validator("connected_at", "last_synced_at", mode="before")
    @classmethod
    def ensure_utc(cls, v: Any) -> Any:
        """Treat naive timestamps as UTC."""
        return _as_utc(v)


class SyncWatermark(BaseSchema):
    """Boundary between already-synced records and potentially new ones."""

    account_id: str
    transactions_since: datetime | None = None
    payouts_since: datetime | None = None
    last_synced_at: datetime | None = None


class SyncResult(BaseSchema):
    """Counts and totals for the records fetched by one sync run."""

    transactions_count: int = 0
    payouts_count: int = 0
    total_sales: Decimal = Decimal("0")
    total_payouts: Decimal = Decimal("0")
    total_fees: Decimal = Decimal("0")


class LedgerSummary(BaseSchema):
    """Dashboard totals computed from the local store."""

    total_sales: Decimal = Decimal("0")
    total_payouts: Decimal = Decimal("0")
    total_fees: Decimal = Decimal("0")
    total_net: Decimal = Decimal("0")
    pending_payouts: Decimal = Decimal("0")
    recent_transactions: list[Transaction] = Field(default_factory=list)
    recent_payouts: list[Payout] = Field(default_factory=list)
