"""Connectors to the external payment provider and its credentials.

This package contains the Stripe REST client, the cursor-paginated fetcher and
the per-account credential store used to authenticate against it.
"""

from .credentials import ConnectionResolver, CredentialStore, StoredConnection
from .stripe_client import PaginatedFetcher, Resource, StripeClient

__all__ = [
    "ConnectionResolver",
    "CredentialStore",
    "PaginatedFetcher",
    "Resource",
    "StoredConnection",
    "StripeClient",
]
