"""Financial summaries derived from the local store.

Summaries are a pure read over already-persisted records, so a failed sync
never changes what a summary reports.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal

from .schemas import (
    OUTSTANDING_PAYOUT_STATUSES,
    REVENUE_KINDS,
    LedgerSummary,
    Payout,
    PayoutStatus,
    Transaction,
    TransactionKind,
)
from .storage import LedgerStore

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS_LIMIT = 20
RECENT_PAYOUTS_LIMIT = 10


def total_sales(transactions: Iterable[Transaction]) -> Decimal:
    """Gross sales: amounts of charge and payment transactions."""
    return sum(
        (t.amount for t in transactions if t.kind in REVENUE_KINDS), Decimal("0")
    )


def total_fees(transactions: Iterable[Transaction]) -> Decimal:
    """Fees across every transaction kind."""
    return sum((t.fee for t in transactions), Decimal("0"))


def total_paid_payouts(payouts: Iterable[Payout]) -> Decimal:
    """Payouts that have reached the bank."""
    return sum(
        (p.amount for p in payouts if p.status is PayoutStatus.PAID), Decimal("0")
    )


def total_net(transactions: Iterable[Transaction]) -> Decimal:
    """Revenue after fees, minus refunded amounts."""
    net = Decimal("0")
    for t in transactions:
        if t.kind in REVENUE_KINDS:
            net += t.amount - t.fee
        elif t.kind is TransactionKind.REFUND:
            net -= t.amount
    return net


class SummaryAggregator:
    """Compute dashboard totals and recency lists for an account."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def summarize(self, account_id: str) -> LedgerSummary:
        """Summarize every stored record for an account.

        Recency lists are a full in-memory sort of the account's records, which
        is fine for per-account volumes in the low thousands.

        Args:
            account_id: Local account identifier

        Returns:
            LedgerSummary: Totals plus the 20 newest transactions and 10 newest payouts
        """
        transactions = self.store.list_transactions(account_id)
        payouts = self.store.list_payouts(account_id)
        logger.debug(
            f"Summarizing {len(transactions)} transaction(s) and "
            f"{len(payouts)} payout(s) for account {account_id}"
        )

        recent_transactions = sorted(
            transactions, key=lambda t: t.occurred_at, reverse=True
        )[:RECENT_TRANSACTIONS_LIMIT]
        recent_payouts = sorted(payouts, key=lambda p: p.occurred_at, reverse=True)[
            :RECENT_PAYOUTS_LIMIT
        ]

        return LedgerSummary(
            total_sales=total_sales(transactions),
            total_payouts=total_paid_payouts(payouts),
            total_fees=total_fees(transactions),
            total_net=total_net(transactions),
            pending_payouts=sum(
                (p.amount for p in payouts if p.status in OUTSTANDING_PAYOUT_STATUSES),
                Decimal("0"),
            ),
            recent_transactions=recent_transactions,
            recent_payouts=recent_payouts,
        )
