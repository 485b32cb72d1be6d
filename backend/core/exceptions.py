"""
API errors and the handlers that render them.

Every error leaving the API has the shape
``{"detail": ..., "error_code": ..., "path": ...}``, plus ``details`` when
the raising code attached structured context (for example the lock key
that could not be acquired).
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying after a 503
STORAGE_RETRY_AFTER_SECONDS = 5


def _error_body(
    request: Request,
    detail: Any,
    error_code: Optional[str],
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    body = {"detail": detail, "error_code": error_code, "path": str(request.url.path)}
    if details:
        body["details"] = details
    return body


class APIError(HTTPException):
    """Base API error carrying a machine-readable code"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(APIError):
    """Resource missing, or outside the caller's business"""

    def __init__(
        self,
        detail: str = "Resource not found",
        error_code: str = "NOT_FOUND",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status.HTTP_404_NOT_FOUND, detail, error_code, details)


class ValidationError(APIError):
    """Request is well-formed JSON but cannot be processed"""

    def __init__(
        self,
        detail: str = "Validation failed",
        error_code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail, error_code, details)


class ServiceUnavailableError(APIError):
    """Backing store timed out, is unreachable, or the order lock is busy"""

    def __init__(
        self,
        detail: str = "Storage temporarily unavailable",
        error_code: str = "STORAGE_UNAVAILABLE",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            detail,
            error_code,
            details,
            headers={"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)},
        )


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.detail, exc.error_code, exc.details),
        headers=exc.headers,
    )


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Service-level argument errors are the caller's fault"""
    logger.warning(f"ValueError at {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(request, str(exc), "VALIDATION_ERROR"),
    )


async def handle_database_error(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Database failures that no route translated itself"""
    logger.error(f"Database error at {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(request, "Storage temporarily unavailable", "STORAGE_ERROR"),
        headers={"Retry-After": str(STORAGE_RETRY_AFTER_SECONDS)},
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
