"""Stripe REST client and cursor-paginated list fetching.

All requests are plain ``GET``s with bearer authentication. Every call builds
its own ``httpx.AsyncClient`` so the client object holds no connection state
and can be shared across concurrent streams and accounts.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from ..config import ProviderConfig
from ..errors import InvalidCredential, ProviderRequestFailed
from ..schemas import ProviderCredential

logger = logging.getLogger(__name__)


class Resource(Enum):
    """Paginated list endpoints synced from Stripe."""

    TRANSACTIONS = "transactions"
    PAYOUTS = "payouts"

    @property
    def path(self) -> str:
        """API path of the list endpoint."""
        if self is Resource.TRANSACTIONS:
            return "/v1/balance_transactions"
        return "/v1/payouts"

    @property
    def extra_params(self) -> list[tuple[str, str]]:
        """Static query parameters sent with every page."""
        if self is Resource.TRANSACTIONS:
            # The charge object feeds the description and email fallbacks
            return [
                ("expand[]", "data.source"),
                ("expand[]", "data.source.payment_method"),
            ]
        return []


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.reason_phrase or "Stripe API error"


class StripeClient:
    """Thin async wrapper over the Stripe REST API."""

    def __init__(
        self,
        config: ProviderConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            config: Provider settings; defaults are used when omitted
            transport: Optional httpx transport, used to simulate the API in tests
        """
        self.config = config or ProviderConfig()
        self._transport = transport

    async def get(
        self,
        path: str,
        credential: ProviderCredential,
        params: list[tuple[str, str]] | None = None,
    ) -> dict[str, Any]:
        """Issue an authenticated GET and return the decoded JSON body.

        Raises:
            ProviderRequestFailed: On any non-2xx status or transport error
        """
        url = f"{self.config.api_base}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.get(
                    url, params=params, headers=credential.auth_headers()
                )
        except httpx.HTTPError as e:
            raise ProviderRequestFailed(None, str(e)) from e

        if not response.is_success:
            raise ProviderRequestFailed(response.status_code, _error_message(response))

        try:
            return response.json()
        except ValueError as e:
            raise ProviderRequestFailed(
                response.status_code, "Response body is not valid JSON"
            ) from e

    async def retrieve_account(self, credential: ProviderCredential) -> dict[str, Any]:
        """Fetch the account the credential belongs to.

        Used to validate a manually entered API key before it is stored.

        Raises:
            InvalidCredential: If Stripe rejects the credential
        """
        try:
            return await self.get("/v1/account", credential)
        except ProviderRequestFailed as e:
            raise InvalidCredential(f"Invalid API key: {e.message}") from e


class PaginatedFetcher:
    """Retrieve one resource stream using cursor-based pagination."""

    def __init__(self, client: StripeClient):
        self.client = client

    async def iter_records(
        self,
        resource: Resource,
        credential: ProviderCredential,
        *,
        max_records: int,
        since: datetime | None = None,
        page_size: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield raw records page by page, in provider order.

        Each call starts again from the first page. Pages are requested strictly
        one after another because each cursor is the id of the previous page's
        last record.

        Args:
            resource: Which list endpoint to read
            credential: Bearer credential for the account
            max_records: Hard upper bound on records yielded
            since: When given, only records created strictly after it
            page_size: Records per request; defaults to the configured size

        Yields:
            dict: Raw provider records
        """
        page_size = page_size or self.client.config.page_size
        fetched = 0
        starting_after: str | None = None

        while fetched < max_records:
            limit = min(page_size, max_records - fetched)
            params: list[tuple[str, str]] = [("limit", str(limit))]
            params.extend(resource.extra_params)
            if since is not None:
                params.append(("created[gt]", str(int(since.timestamp()))))
            if starting_after:
                params.append(("starting_after", starting_after))

            page = await self.client.get(resource.path, credential, params)
            data: list[dict[str, Any]] = page.get("data") or []

            for record in data[: max_records - fetched]:
                fetched += 1
                yield record

            if not data or not page.get("has_more"):
                break
            starting_after = data[-1].get("id")
            if not starting_after:
                break

        logger.debug(f"Fetched {fetched} {resource.value} record(s)")

    async def fetch(
        self,
        resource: Resource,
        credential: ProviderCredential,
        *,
        max_records: int,
        since: datetime | None = None,
        page_size: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch a whole resource stream.

        Either every page is retrieved or ``ProviderRequestFailed`` propagates;
        records from pages before the failure are dropped with the local list.

        Returns:
            list[dict]: Raw provider records, at most ``max_records``
        """
        mode = "incremental" if since is not None else "full"
        logger.info(
            f"Fetching {resource.value} ({mode}, cap {max_records}"
            + (f", since {since.isoformat()})" if since is not None else ")")
        )
        return [
            record
            async for record in self.iter_records(
                resource,
                credential,
                max_records=max_records,
                since=since,
                page_size=page_size,
            )
        ]
