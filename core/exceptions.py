"""
Global exception handlers for the FastAPI application.

Every error leaves the API in the same envelope:
``{"ok": false, "error": <message>, "type": <name>, "status_code": <int>}``.
"""
import traceback
from typing import Any, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
import structlog

logger = structlog.get_logger("exceptions")


class APIException(Exception):
    """Base API exception class."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "Internal server error",
        headers: Optional[dict] = None
    ):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.headers = headers or {}


class BadRequestException(APIException):
    """Client sent something the route cannot act on."""

    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class DatabaseException(APIException):
    """Database-related exception."""

    def __init__(self, detail: str = "Database operation failed"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class AuthenticationException(APIException):
    """Authentication-related exception."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )


class AuthorizationException(APIException):
    """Authorization-related exception."""

    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class PremiumRequiredException(AuthorizationException):
    """Raised when a Free user calls a Paid/Tester feature."""

    def __init__(self, detail: str = "This feature requires Premium access."):
        super().__init__(detail=detail)


class ValidationException(APIException):
    """Validation-related exception."""

    def __init__(self, detail: str = "Validation failed", errors: list = None):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
        self.errors = errors or []


class ResourceNotFoundException(APIException):
    """Resource not found exception."""

    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class RateLimitException(APIException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Rate limit exceeded", retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": str(retry_after)}
        )


class AIServiceException(APIException):
    """Upstream LLM provider failed or returned something unusable."""

    def __init__(
        self,
        detail: str = "AI service error",
        provider: str = "OpenAI",
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.provider = provider


def error_body(status_code: int, message: Any, error_type: str, **extra) -> dict:
    body = {"ok": False, "error": message, "type": error_type, "status_code": status_code}
    body.update(extra)
    return body


def _request_fields(request: Request) -> dict:
    return {
        "path": str(request.url.path),
        "method": request.method,
        "client_host": request.client.host if request.client else None,
    }


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle custom API exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "API exception occurred",
        exception_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.detail,
        **_request_fields(request)
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.detail, type(exc).__name__),
        headers=exc.headers
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        **_request_fields(request)
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.detail, "HTTPException"),
        headers=exc.headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    errors = exc.errors()
    logger.warning("Validation error occurred", errors=errors, **_request_fields(request))

    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else "Request validation failed"
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            message,
            "ValidationError",
            details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
        )
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy database exceptions."""
    logger.error(
        "Database error occurred",
        exception_type=type(exc).__name__,
        error_detail=str(exc),
        **_request_fields(request)
    )

    if isinstance(exc, IntegrityError):
        detail = "Database constraint violation"
        status_code = status.HTTP_400_BAD_REQUEST
    else:
        detail = "Database operation failed"
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(status_code=status_code, content=error_body(status_code, detail, "DatabaseError"))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other uncaught exceptions."""
    logger.error(
        "Unhandled exception occurred",
        exception_type=type(exc).__name__,
        error_detail=str(exc),
        traceback=traceback.format_exc(),
        **_request_fields(request)
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            str(exc) or "An unexpected error occurred",
            "InternalServerError",
        )
    )


def setup_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
