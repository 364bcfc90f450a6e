"""Translation of exceptions into JSON error bodies."""

from typing import Any

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException

logger = structlog.get_logger(__name__)

_HTTP_KINDS = {
    status.HTTP_401_UNAUTHORIZED: "unauthenticated",
    status.HTTP_403_FORBIDDEN: "authorization_error",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}


def _error_body(
    request: Request,
    error: str,
    kind: str,
    message: Any,
    details: Any = None,
) -> dict[str, Any]:
    body = {
        "error": error,
        "kind": kind,
        "message": message,
        "path": str(request.url),
    }
    if details is not None:
        body["details"] = details
    return body


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application exceptions.

    Args:
        request: Request object
        exc: Application exception

    Returns:
        JSON error response carrying the exception's kind and details
    """
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=exc.__class__.__name__,
        kind=exc.kind,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            request,
            exc.__class__.__name__,
            exc.kind,
            exc.message,
            exc.details,
        ),
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions raised by FastAPI and dependencies."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            request,
            "HTTPException",
            _HTTP_KINDS.get(exc.status_code, "http_error"),
            exc.detail,
        ),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle request validation errors.

    Args:
        request: Request object
        exc: Validation exception

    Returns:
        JSON error response with validation details
    """
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            request,
            "ValidationError",
            "validation_error",
            "Request validation failed",
            jsonable_encoder(exc.errors()),
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions, including storage failures."""
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request,
            "InternalServerError",
            "internal_error",
            "An unexpected error occurred",
        ),
    )
