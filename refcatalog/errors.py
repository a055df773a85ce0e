"""
Catalog Errors
Exception taxonomy for the replica, cache and search layer.
"""

from typing import Optional


class CatalogError(Exception):
    """Base exception for reference catalog errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class StoreInitError(CatalogError):
    """Exception raised when the local replica store cannot be opened."""

    pass


class SyncError(CatalogError):
    """Exception raised when a full-replace sync fails."""

    pass


class SearchError(CatalogError):
    """Exception raised for search errors (store not ready, backend timeout)."""

    pass


class PersistenceError(CatalogError):
    """Exception raised when a persisted cache slot cannot be read or written."""

    pass


class QuotaExceeded(PersistenceError):
    """Exception raised when persistent storage refuses a write for lack of space."""

    def __init__(self, key: str, details: Optional[dict] = None):
        super().__init__(
            message=f"Storage quota exceeded for key '{key}'",
            details={"key": key, **(details or {})},
        )
        self.key = key


class RemoteServiceError(CatalogError):
    """Exception raised when a remote collaborator fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message=message, details=details)
        self.status_code = status_code


class CatalogAPIError(RemoteServiceError):
    """Exception raised for catalog listing endpoint failures."""

    pass


class SemanticSearchError(RemoteServiceError):
    """Exception raised for semantic search endpoint failures."""

    pass
