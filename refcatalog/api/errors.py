"""
Error Handlers
Map catalog exceptions to JSON error responses.
"""

import logging
from typing import Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import CatalogError, PersistenceError, RemoteServiceError, StoreInitError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for errors raised by route handlers."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ResourceNotFoundError(APIError):
    """Exception raised when a record does not exist."""

    def __init__(self, resource: str, resource_id: Union[int, str]):
        super().__init__(
            message=f"{resource} not found: {resource_id}",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id},
        )


class ServiceUnavailableError(APIError):
    """Exception raised when the replica is required but unavailable."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message=message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


def status_code_for(exc: CatalogError) -> int:
    """HTTP status for a catalog exception."""
    if isinstance(exc, (StoreInitError, RemoteServiceError, PersistenceError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(status_code: int, message: str, error_type: str, details=None) -> JSONResponse:
    content = {"error": {"message": message, "type": error_type}}
    if details is not None:
        content["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def setup_error_handlers(app: FastAPI) -> None:
    """
    Set up custom error handlers for the FastAPI app.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        logger.error(
            f"API error: {exc.message}",
            extra={"status_code": exc.status_code, "details": exc.details, "path": request.url.path},
        )
        return _error_response(exc.status_code, exc.message, exc.__class__.__name__, exc.details)

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        status_code = status_code_for(exc)
        logger.error(
            f"Catalog error: {exc.message}",
            extra={"status_code": status_code, "details": exc.details, "path": request.url.path},
        )
        return _error_response(status_code, exc.message, exc.__class__.__name__, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error: {exc}", extra={"path": request.url.path})

        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY, "Request validation failed", "ValidationError", errors
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        logger.warning(f"Value error: {exc}", extra={"path": request.url.path})
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), "ValueError")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error: {exc}", exc_info=True, extra={"path": request.url.path})
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred", "InternalServerError"
        )
