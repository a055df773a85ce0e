"""
Catalog API Client
Async client for the remote catalog listing endpoints (materials, works).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..errors import CatalogAPIError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
BULK_PAGE_SIZE = 50000


@dataclass
class CatalogPage:
    """One listing response: raw items plus the server's total (if reported)."""

    data: List[Dict[str, Any]] = field(default_factory=list)
    total: Optional[int] = None


def build_http_client(
    base_url: str,
    timeout: float,
    token: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """AsyncClient shared setup for remote catalog services."""
    headers = {"Accept": "application/json", "User-Agent": "refcatalog/0.1"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout),
        limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        headers=headers,
        transport=transport,
    )


def parse_listing(payload: Any) -> CatalogPage:
    """Accept `{data: [...], total}` or a bare list."""
    if isinstance(payload, list):
        return CatalogPage(data=payload, total=len(payload))

    if isinstance(payload, dict):
        data = payload.get("data") or []
        total = payload.get("total")
        if not isinstance(data, list):
            raise CatalogAPIError("Listing `data` is not a list", details={"type": type(data).__name__})
        try:
            total = int(total) if total is not None else None
        except (TypeError, ValueError) as e:
            raise CatalogAPIError(f"Invalid listing total: {total!r}", details={"total": str(total)}) from e
        return CatalogPage(data=data, total=total)

    raise CatalogAPIError(
        "Unexpected listing payload",
        details={"type": type(payload).__name__},
    )


class CatalogAPIClient:
    """
    Listing client for one catalog collection.

    Example:
        client = CatalogAPIClient("https://api.example.com", "/materials")
        page = await client.list_records(page=1, page_size=50, search="цемент")
    """

    def __init__(
        self,
        base_url: str,
        listing_path: str = "/materials",
        timeout: float = 30.0,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize catalog client.

        Args:
            base_url: API base URL
            listing_path: Path of the listing endpoint
            timeout: Request timeout in seconds
            token: Optional bearer token
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url
        self.listing_path = listing_path
        self.client = build_http_client(base_url, timeout, token=token, transport=transport)

    async def list_records(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        search: Optional[str] = None,
        skip_count: bool = False,
    ) -> CatalogPage:
        """
        Fetch one page of the listing.

        Args:
            page: 1-based page number
            page_size: Items per page
            search: Server-side keyword filter
            skip_count: Ask the server not to compute the total

        Returns:
            CatalogPage

        Raises:
            CatalogAPIError: On transport errors, non-2xx responses or bad payloads
        """
        params: Dict[str, Any] = {"page": page, "pageSize": page_size}
        if search:
            params["search"] = search
        if skip_count:
            params["skipCount"] = "true"

        try:
            response = await self.client.get(self.listing_path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise CatalogAPIError(
                f"Catalog API returned {e.response.status_code}",
                status_code=e.response.status_code,
                details={"path": self.listing_path},
            ) from e
        except httpx.HTTPError as e:
            raise CatalogAPIError(
                f"Catalog API request failed: {e}",
                details={"path": self.listing_path},
            ) from e
        except ValueError as e:
            raise CatalogAPIError(
                "Catalog API returned invalid JSON",
                details={"path": self.listing_path},
            ) from e

        return parse_listing(payload)

    async def fetch_all(self, max_records: int = BULK_PAGE_SIZE) -> CatalogPage:
        """
        Bulk fetch of the whole collection in one request, capped at max_records.

        The total is skipped server-side; when the server still reports one it
        is kept so callers can detect truncation.
        """
        logger.info(f"Fetching up to {max_records} records from {self.listing_path}")
        page = await self.list_records(page=1, page_size=max_records, skip_count=True)
        logger.info(f"Fetched {len(page.data)} records from {self.listing_path}")
        return page

    async def aclose(self) -> None:
        await self.client.aclose()
