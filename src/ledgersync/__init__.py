"""LedgerSync: local-first payment ledger synchronization.

This package pulls balance transactions and payouts from Stripe into a local
DuckDB store and derives financial summaries from the local copy:
- Cursor-paginated, incremental or full resynchronization
- Idempotent upsert keyed on the provider's record id
- Concurrent retrieval of the transaction and payout streams
- Read-only dashboard summaries that never touch the network
"""

__version__ = "0.1.0"
