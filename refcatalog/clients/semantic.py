"""
Semantic Search Client
Async client for the remote vector search service.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..errors import SemanticSearchError
from .catalog_api import build_http_client

logger = logging.getLogger(__name__)


@dataclass
class SemanticSearchResponse:
    """Decoded response of the semantic search endpoint."""

    success: bool
    results: List[Dict[str, Any]] = field(default_factory=list)
    expanded_keywords: List[str] = field(default_factory=list)
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SemanticSearchResponse":
        if not isinstance(payload, dict):
            raise SemanticSearchError(
                "Unexpected semantic search payload",
                details={"type": type(payload).__name__},
            )

        return cls(
            success=bool(payload.get("success")),
            results=list(payload.get("results") or []),
            expanded_keywords=list(payload.get("expandedKeywords") or payload.get("expanded_keywords") or []),
            message=payload.get("message"),
        )


class SemanticSearchClient:
    """Client for `POST {base}/search`."""

    def __init__(
        self,
        base_url: str,
        search_path: str = "/search",
        timeout: float = 10.0,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize semantic search client.

        Args:
            base_url: Service base URL
            search_path: Path of the search endpoint
            timeout: Request timeout in seconds
            token: Optional bearer token
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.search_path = search_path
        self.client = build_http_client(base_url, timeout, token=token, transport=transport)

    async def search(
        self,
        query: str,
        limit: int = 50,
        entity: str = "materials",
        threshold: float = 0.3,
    ) -> SemanticSearchResponse:
        """
        Run a semantic search.

        Args:
            query: Search text
            limit: Maximum results
            entity: Collection to search (materials, works)
            threshold: Minimum similarity

        Returns:
            SemanticSearchResponse (success may be False with a message)

        Raises:
            SemanticSearchError: On transport errors, non-2xx responses or bad payloads
        """
        body = {"entity": entity, "query": query, "threshold": threshold, "limit": limit}

        try:
            response = await self.client.post(self.search_path, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise SemanticSearchError(
                f"Semantic search returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SemanticSearchError(f"Semantic search request failed: {e}") from e
        except ValueError as e:
            raise SemanticSearchError("Semantic search returned invalid JSON") from e

        result = SemanticSearchResponse.from_payload(payload)
        logger.debug(f"Semantic search '{query}': success={result.success}, {len(result.results)} results")
        return result

    async def aclose(self) -> None:
        await self.client.aclose()
