"""
Error Handling
==============

Standardized error codes and exception handlers.
"""

import logging
from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """Standardized error codes."""

    # Authentication (AUTH_001 - AUTH_010)
    AUTH_INVALID_CREDENTIALS = "AUTH_001"
    AUTH_TOKEN_EXPIRED = "AUTH_002"
    AUTH_EMAIL_EXISTS = "AUTH_004"
    AUTH_INVALID_TOKEN = "AUTH_005"
    AUTH_GOOGLE_TOKEN_INVALID = "AUTH_006"
    AUTH_GOOGLE_EMAIL_UNVERIFIED = "AUTH_007"

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Payments (PAYMENT_001 - PAYMENT_010)
    PAYMENT_NOT_FOUND = "PAYMENT_001"
    PAYMENT_GATEWAY_NOT_CONFIGURED = "PAYMENT_002"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_003"
    PAYMENT_NOT_CANCELLABLE = "PAYMENT_004"
    PAYMENT_NOT_RETRYABLE = "PAYMENT_005"
    PAYMENT_NO_GATEWAY_ID = "PAYMENT_006"

    # Group trips and bookings (TRIP_001 - TRIP_010)
    TRIP_NOT_FOUND = "TRIP_001"
    TRIP_NOT_OPEN = "TRIP_002"
    TRIP_FULL = "TRIP_003"
    TRIP_INVALID = "TRIP_004"

    # Participant approvals (APPROVAL_001 - APPROVAL_010)
    APPROVAL_NOT_FOUND = "APPROVAL_001"
    APPROVAL_EXISTS = "APPROVAL_002"
    APPROVAL_ALREADY_BOOKED = "APPROVAL_003"
    APPROVAL_ALREADY_PROCESSED = "APPROVAL_004"

    # Reviews (REVIEW_001 - REVIEW_010)
    REVIEW_EXISTS = "REVIEW_001"
    REVIEW_NOT_ALLOWED = "REVIEW_002"

    # Rewards and badges (REWARD_001 - REWARD_010)
    REWARD_NOT_FOUND = "REWARD_001"
    REWARD_EVENT_INVALID = "REWARD_002"
    BADGE_EXISTS = "REWARD_003"
    BADGE_ALREADY_EARNED = "REWARD_004"
    COMPETITION_NOT_FOUND = "REWARD_005"
    SEASON_NOT_FOUND = "REWARD_006"
    EVENT_CLOSED = "REWARD_007"
    ALREADY_ENROLLED = "REWARD_008"
    NOT_ENROLLED = "REWARD_009"
    INVALID_STATUS_TRANSITION = "REWARD_010"

    # Data export (EXPORT_001 - EXPORT_010)
    EXPORT_INVALID_RANGE = "EXPORT_001"
    EXPORT_FAILED = "EXPORT_002"
    REPORT_NOT_FOUND = "EXPORT_003"

    # Fishing diary (DIARY_001 - DIARY_010)
    DIARY_NOT_FOUND = "DIARY_001"
    DIARY_INVALID_MEDIA = "DIARY_002"
    DIARY_MEDIA_TOO_LARGE = "DIARY_003"
    DIARY_STORAGE_UNAVAILABLE = "DIARY_004"

    # Marine calendar / weather
    WEATHER_UNAVAILABLE = "WEATHER_001"

    # Rate Limit
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT"

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


class AuthenticationError(AppException):
    """Authentication-related errors."""

    def __init__(
        self,
        code: str = ErrorCodes.AUTH_INVALID_CREDENTIALS,
        message: str = "Authentication failed",
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=code,
            message=message,
            **extra,
        )


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


class ForbiddenError(AppException):
    """Permission errors."""

    def __init__(
        self,
        code: str = ErrorCodes.FORBIDDEN,
        message: str = "Access denied",
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
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


class ServiceUnavailableError(AppException):
    """External service unavailable errors."""

    def __init__(
        self,
        code: str,
        message: str = "Service temporarily unavailable",
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=code,
            message=message,
            **extra,
        )


class PaymentGatewayError(AppException):
    """Upstream payment gateway rejected the request."""

    def __init__(
        self,
        message: str = "Payment gateway error",
        gateway_error_type: Optional[str] = None,
        gateway_error_code: Optional[str] = None,
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCodes.PAYMENT_GATEWAY_ERROR,
            message=message,
            gateway_error_type=gateway_error_type,
            gateway_error_code=gateway_error_code,
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
        headers=getattr(exc, "headers", None),
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Handler for standard HTTPException."""
    # Check if detail is already structured
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
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for request and Pydantic validation errors."""
    errors_fn = getattr(exc, "errors", None)
    errors: list[dict[str, Any]] = errors_fn() if callable(errors_fn) else []

    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")
    else:
        field = None
        message = str(exc) or "Validation error"

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": {
                "code": ErrorCodes.VALIDATION_ERROR,
                "message": message,
                "field": field,
                "details": [
                    {
                        "loc": [str(loc) for loc in err.get("loc", [])],
                        "msg": err.get("msg"),
                        "type": err.get("type"),
                    }
                    for err in errors
                ],
            },
        },
    )


async def global_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled error on %s %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
    )

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
        from app.core.errors import setup_exception_handlers
        setup_exception_handlers(app)
    """
    from pydantic import ValidationError as PydanticValidationError
    from fastapi.exceptions import RequestValidationError

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
