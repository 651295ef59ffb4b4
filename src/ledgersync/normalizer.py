"""Conversion of raw Stripe records into canonical ledger records.

This is the only module that knows the provider's payload shape. Optional and
nested fields are resolved through ordered fallback chains, each a tuple of
key paths tried in turn; the first non-empty value wins. Unknown enum values
never raise: transaction kinds fall back to ``fee`` and payout statuses to
``unrecognized``.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from .errors import ProviderRequestFailed
from .schemas import (
    Payout,
    PayoutStatus,
    Transaction,
    TransactionKind,
    local_record_id,
)

KeyPath = tuple[str, ...]

DESCRIPTION_CHAIN: tuple[KeyPath, ...] = (
    ("source", "description"),
    ("description",),
)

EMAIL_CHAIN: tuple[KeyPath, ...] = (
    ("source", "receipt_email"),
    ("source", "billing_details", "email"),
    ("source", "metadata", "customer_email"),
    ("source", "metadata", "email"),
    ("source", "payment_method", "billing_details", "email"),
)

_KIND_BY_PROVIDER_TYPE = {
    "charge": TransactionKind.CHARGE,
    "payment": TransactionKind.PAYMENT,
    "refund": TransactionKind.REFUND,
    "payment_refund": TransactionKind.REFUND,
    "payout": TransactionKind.PAYOUT_FEE,
}

_PAYOUT_STATUS_BY_PROVIDER_STATUS = {
    "pending": PayoutStatus.PENDING,
    "in_transit": PayoutStatus.IN_TRANSIT,
    "paid": PayoutStatus.PAID,
    "failed": PayoutStatus.FAILED,
    "canceled": PayoutStatus.CANCELED,
}


def dig(record: dict[str, Any], path: KeyPath) -> Any:
    """Follow a key path through nested dicts, returning None on any gap.

    A non-dict along the way (for example an unexpanded ``source`` id string)
    counts as a gap.
    """
    current: Any = record
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_present(record: dict[str, Any], chain: tuple[KeyPath, ...]) -> Any:
    """Return the first non-empty value found along a fallback chain."""
    for path in chain:
        value = dig(record, path)
        if value is not None and value != "":
            return value
    return None


def map_transaction_kind(provider_type: str | None) -> TransactionKind:
    """Map a provider transaction type onto the local kind."""
    if not provider_type:
        return TransactionKind.FEE
    kind = _KIND_BY_PROVIDER_TYPE.get(provider_type)
    if kind is not None:
        return kind
    if provider_type.startswith("payout_"):
        return TransactionKind.PAYOUT_FEE
    return TransactionKind.FEE


def map_payout_status(provider_status: str | None) -> PayoutStatus:
    """Map a provider payout status onto the local status."""
    return _PAYOUT_STATUS_BY_PROVIDER_STATUS.get(
        provider_status or "", PayoutStatus.UNRECOGNIZED
    )


def from_epoch(seconds: Any) -> datetime | None:
    """Convert provider epoch seconds to an aware UTC datetime."""
    if seconds is None or isinstance(seconds, bool):
        return None
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class RecordNormalizer:
    """Pure raw-record to canonical-record conversion."""

    def __init__(
        self,
        unit_scale: int = 100,
        placeholder_description: str = "Stripe Transaction",
    ):
        """Initialize the normalizer.

        Args:
            unit_scale: Minor units per major unit (100 for cents)
            placeholder_description: Used when no description is found
        """
        self.unit_scale = Decimal(unit_scale)
        self.placeholder_description = placeholder_description

    def to_major_units(self, value: Any) -> Decimal:
        """Convert a provider minor-unit integer to major units; None is zero."""
        if value is None:
            return Decimal("0")
        return Decimal(str(value)) / self.unit_scale

    def _occurred_at(self, raw: dict[str, Any]) -> datetime:
        # Falling back to the epoch keeps a malformed record from pushing the
        # incremental watermark forward
        return (
            from_epoch(raw.get("created"))
            or from_epoch(raw.get("available_on"))
            or datetime.fromtimestamp(0, tz=timezone.utc)
        )

    @staticmethod
    def _external_id(raw: dict[str, Any]) -> str:
        external_id = raw.get("id")
        if not external_id:
            raise ProviderRequestFailed(None, "Provider record has no id")
        return str(external_id)

    def normalize_transaction(
        self, account_id: str, raw: dict[str, Any]
    ) -> Transaction:
        """Normalize a raw balance transaction.

        Args:
            account_id: Local account that owns the record
            raw: Raw provider record

        Returns:
            Transaction: Canonical record; ``raw_details`` holds ``raw`` verbatim

        Raises:
            ProviderRequestFailed: If the record has no id
        """
        external_id = self._external_id(raw)
        amount = self.to_major_units(raw.get("amount"))
        fee = self.to_major_units(raw.get("fee"))
        email = first_present(raw, EMAIL_CHAIN)

        return Transaction(
            id=local_record_id(account_id, external_id),
            account_id=account_id,
            external_id=external_id,
            kind=map_transaction_kind(raw.get("type")),
            amount=amount,
            currency=str(raw.get("currency") or ""),
            fee=fee,
            net=amount - fee,
            description=str(
                first_present(raw, DESCRIPTION_CHAIN) or self.placeholder_description
            ),
            counterparty_email=str(email) if email is not None else None,
            status=raw.get("status"),
            occurred_at=self._occurred_at(raw),
            raw_details=raw,
        )

    def normalize_payout(self, account_id: str, raw: dict[str, Any]) -> Payout:
        """Normalize a raw payout.

        Args:
            account_id: Local account that owns the record
            raw: Raw provider record

        Returns:
            Payout: Canonical record

        Raises:
            ProviderRequestFailed: If the record has no id
        """
        external_id = self._external_id(raw)
        arrival = from_epoch(raw.get("arrival_date"))
        arrival_date: date | None = arrival.date() if arrival else None

        return Payout(
            id=local_record_id(account_id, external_id),
            account_id=account_id,
            external_id=external_id,
            amount=self.to_major_units(raw.get("amount")),
            currency=str(raw.get("currency") or ""),
            arrival_date=arrival_date,
            status=map_payout_status(raw.get("status")),
            method=raw.get("method"),
            description=raw.get("description"),
            occurred_at=self._occurred_at(raw),
        )
