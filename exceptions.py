"""Fetch error taxonomy and exception handlers for standardized error responses."""
import logging
from typing import Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from models import ErrorResponse
from config import DEBUG

logger = logging.getLogger(__name__)

# Error code mappings
ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_SERVER_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class FetchError(Exception):
    """Base class for every upstream fetch failure.

    Carries the human-readable feed label so warnings can be throttled per feed.
    """

    kind = "fetch_error"

    def __init__(self, label: str, message: str):
        super().__init__(f"{label}: {message}")
        self.label = label
        self.message = message


class OfflineError(FetchError):
    """Connectivity check failed before any network attempt."""

    kind = "offline"

    def __init__(self, label: str, message: str = "offline"):
        super().__init__(label, message)


class FetchTimeoutError(FetchError):
    """Network call exceeded its timeout bound."""

    kind = "timeout"

    def __init__(self, label: str, timeout: float):
        super().__init__(label, f"timed out after {timeout:g}s")
        self.timeout = timeout


class HTTPStatusError(FetchError):
    """Upstream answered with a non-2xx status."""

    kind = "http_status"

    def __init__(self, label: str, status: int):
        super().__init__(label, f"HTTP {status}")
        self.status = status


class RateLimitedError(HTTPStatusError):
    """Upstream still answered 429 after the single Retry-After retry."""

    kind = "rate_limited"

    def __init__(self, label: str, status: int = 429):
        super().__init__(label, status)


class EmptyPayloadError(FetchError):
    """2xx response whose payload lacks the fields the UI needs."""

    kind = "empty_payload"

    def __init__(self, label: str, message: str = "payload empty"):
        super().__init__(label, message)


class MalformedPayloadError(FetchError):
    """Response body is not JSON or does not match the feed schema."""

    kind = "malformed_payload"

    def __init__(self, label: str, message: str = "malformed payload"):
        super().__init__(label, message)


def describe_fetch_error(exc: Optional[BaseException]) -> Optional[str]:
    """Short string for FeedResult.error and log lines."""
    if exc is None:
        return None
    if isinstance(exc, FetchError):
        return f"{exc.kind}: {exc.message}"
    return f"{type(exc).__name__}: {exc}"


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle query/path validation errors with the standardized error format."""
        request_id = getattr(request.state, 'request_id', None)

        error_details = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            error_details.append({
                "field": field,
                "message": error['msg'],
                "type": error['type'],
            })

        logger.warning(f"⚠️  VALIDATION ERROR: {error_details} | Path={request.url.path} | Request-ID={request_id}")

        error_response = ErrorResponse(
            error="VALIDATION_ERROR",
            message="Request data validation failed",
            code="VALIDATION_ERROR",
            details=error_details,
            path=request.url.path,
            method=request.method,
            request_id=request_id
        )
        return JSONResponse(status_code=422, content=error_response.model_dump())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTPException with standardized error format."""
        request_id = getattr(request.state, 'request_id', None)
        error_code = ERROR_CODES.get(exc.status_code, "UNKNOWN_ERROR")
        message = exc.detail if isinstance(exc.detail, str) else "An error occurred"

        error_response = ErrorResponse(
            error=error_code,
            message=message,
            code=error_code,
            path=request.url.path,
            method=request.method,
            request_id=request_id
        )
        return JSONResponse(status_code=exc.status_code, content=error_response.model_dump())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions with standardized error format."""
        request_id = getattr(request.state, 'request_id', None)

        # Log full error details server-side
        logger.error(f"❌ UNHANDLED EXCEPTION: {type(exc).__name__}: {str(exc)} | Path={request.url.path} | Request-ID={request_id}", exc_info=True)

        error_response = ErrorResponse(
            error="INTERNAL_SERVER_ERROR",
            message="An internal server error occurred" if not DEBUG else str(exc),
            code="INTERNAL_SERVER_ERROR",
            details={"type": type(exc).__name__} if DEBUG else None,
            path=request.url.path,
            method=request.method,
            request_id=request_id
        )
        return JSONResponse(status_code=500, content=error_response.model_dump())
