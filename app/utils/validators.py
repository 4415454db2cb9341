"""
Validators
==========

Input validation helpers that raise the application's ``ValidationError``.
"""

from datetime import datetime, timedelta

from app.core.errors import ErrorCodes, ValidationError

MEDIA_TYPE_PREFIXES = ("image/", "video/", "audio/")


def validate_media_type(mime_type: str | None, field_name: str = "file") -> str:
    """
    Accept image, video or audio uploads.

    Returns:
        The top-level media kind ("image", "video" or "audio")
    """
    if not mime_type or not mime_type.startswith(MEDIA_TYPE_PREFIXES):
        raise ValidationError(
            message="Unsupported media type. Allowed: image/*, video/*, audio/*",
            field=field_name,
            code=ErrorCodes.DIARY_INVALID_MEDIA,
        )
    return mime_type.split("/", 1)[0]


def validate_file_size(
    size_bytes: int,
    max_size_mb: int,
    field_name: str = "file",
) -> None:
    """
    Validate file size.

    Raises:
        ValidationError: If file is too large
    """
    if size_bytes > max_size_mb * 1024 * 1024:
        raise ValidationError(
            message=f"File too large. Maximum size is {max_size_mb}MB",
            field=field_name,
            code=ErrorCodes.DIARY_MEDIA_TOO_LARGE,
        )


def validate_date_range(
    start: datetime,
    end: datetime,
    max_days: int,
    field_name: str = "date_range",
    code: str = ErrorCodes.VALIDATION_ERROR,
) -> None:
    """Require ``start < end`` and a span of at most ``max_days``."""
    if start >= end:
        raise ValidationError(
            message="Start date must be before end date",
            field=field_name,
            code=code,
        )
    if end - start > timedelta(days=max_days):
        raise ValidationError(
            message=f"Date range cannot exceed {max_days} days",
            field=field_name,
            code=code,
        )
