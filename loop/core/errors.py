"""
Error Handling
==============

Standardized error codes and exception handlers.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """Standardized error codes."""

    # Entry / rating sources (SOURCE_001 - SOURCE_010)
    SOURCE_UNAVAILABLE = "SOURCE_001"
    SOURCE_UNAUTHORIZED = "SOURCE_002"
    SOURCE_DECODE_FAILED = "SOURCE_003"

    # Time windows (WINDOW_001 - WINDOW_010)
    WINDOW_INVALID = "WINDOW_001"

    # Loops (LOOP_001 - LOOP_010)
    LOOP_NOT_FOUND = "LOOP_001"
    LOOP_ID_CONFLICT = "LOOP_002"

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"


# =============================================================================
# Custom Exceptions
# =============================================================================

class AppException(HTTPException):
    """Base application exception with structured error response."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        field: Optional[str] = None,
        **extra,
    ):
        self.code = code
        self.message = message
        self.field = field
        self.extra = extra

        detail = {
            "code": code,
            "message": message,
        }

        if field:
            detail["field"] = field

        detail.update(extra)

        super().__init__(status_code=status_code, detail=detail)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NotFoundError(AppException):
    """Resource not found errors."""

    def __init__(
        self,
        code: str = ErrorCodes.NOT_FOUND,
        message: str = "Resource not found",
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code=code,
            message=message,
            **extra,
        )


class ConflictError(AppException):
    """Resource conflict errors."""

    def __init__(
        self,
        code: str,
        message: str,
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code=code,
            message=message,
            **extra,
        )


class ValidationError(AppException):
    """Validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = ErrorCodes.VALIDATION_ERROR,
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=code,
            message=message,
            field=field,
            **extra,
        )


class InvalidWindowError(ValidationError):
    """A time window whose end lies before its start, or outside the datetime range."""

    def __init__(self, message: str = "Window end must not precede its start", field: str = "end", **extra):
        super().__init__(
            message=message,
            field=field,
            code=ErrorCodes.WINDOW_INVALID,
            **extra,
        )


class SourceUnavailableError(AppException):
    """
    Entry or rating source could not be read.

    Never converted into an empty result: "no data" and "could not
    fetch data" must stay distinguishable for the caller.
    """

    def __init__(
        self,
        source: str,
        message: str = "Data source temporarily unavailable",
        code: str = ErrorCodes.SOURCE_UNAVAILABLE,
        status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE,
        **extra,
    ):
        self.source = source
        super().__init__(
            status_code=status_code,
            code=code,
            message=message,
            source=source,
            **extra,
        )


class SourceUnauthorizedError(SourceUnavailableError):
    """The source rejected the request for permission reasons."""

    def __init__(
        self,
        source: str,
        message: str = "Not authorized to read from data source",
        **extra,
    ):
        super().__init__(
            source=source,
            message=message,
            code=ErrorCodes.SOURCE_UNAUTHORIZED,
            status_code=status.HTTP_403_FORBIDDEN,
            **extra,
        )


class DecodeError(AppException):
    """A stored record failed typed validation at the store boundary."""

    def __init__(
        self,
        source: str,
        message: str = "Stored record could not be decoded",
        **extra,
    ):
        self.source = source
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            code=ErrorCodes.SOURCE_DECODE_FAILED,
            message=message,
            source=source,
            **extra,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
        },
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Handler for standard HTTPException."""
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        error = exc.detail
    else:
        error = {
            "code": "HTTP_ERROR",
            "message": str(exc.detail),
        }

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": error,
        },
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for request validation errors."""
    errors = exc.errors() if hasattr(exc, "errors") else []
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")
    else:
        field = None
        message = str(exc) or "Validation error"

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": {
                "code": ErrorCodes.VALIDATION_ERROR,
                "message": message,
                "field": field,
            },
        },
    )


async def global_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled error: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": ErrorCodes.INTERNAL_ERROR,
                "message": "An unexpected error occurred",
            },
        },
    )


def setup_exception_handlers(app):
    """
    Register exception handlers with FastAPI app.

    Usage:
        from loop.core.errors import setup_exception_handlers
        setup_exception_handlers(app)
    """
    from pydantic import ValidationError as PydanticValidationError
    from fastapi.exceptions import RequestValidationError

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
