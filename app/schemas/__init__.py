"""
Pydantic Schemas
================

Request/response schemas for API validation.
"""

from app.schemas.common import (
    BaseResponse,
    ErrorResponse,
    offset_pagination,
    page_pagination,
)

__all__ = [
    "BaseResponse",
    "ErrorResponse",
    "offset_pagination",
    "page_pagination",
]
