"""
Remote Clients
httpx clients for the catalog listing API and the semantic search service.
"""

from .catalog_api import CatalogAPIClient, CatalogPage
from .semantic import SemanticSearchClient, SemanticSearchResponse

__all__ = [
    "CatalogAPIClient",
    "CatalogPage",
    "SemanticSearchClient",
    "SemanticSearchResponse",
]
