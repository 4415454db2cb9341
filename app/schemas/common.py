"""
Common Schemas
==============

Response envelopes and pagination shared by every router.

Two pagination styles are in use: listings that scroll (trips, approvals,
export history) page by ``limit``/``offset``; the diary pages by number.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class BaseResponse(BaseModel, Generic[T]):
    """Standard API response wrapper."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorDetail(BaseModel):
    """Error body; handlers may add extra keys such as gateway codes."""

    model_config = ConfigDict(extra="allow")

    code: str
    message: str
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail


class OffsetPagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    limit: int
    offset: int
    has_more: bool = Field(alias="hasMore")


class PagePagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


def offset_pagination(total: int, limit: int, offset: int, returned: int) -> dict[str, Any]:
    """``returned`` is the size of the slice actually sent back."""
    return OffsetPagination(
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + returned < total,
    ).model_dump(by_alias=True)


def page_pagination(total: int, page: int, limit: int) -> dict[str, Any]:
    return PagePagination(
        page=page,
        limit=limit,
        total=total,
        pages=(total + limit - 1) // limit,
    ).model_dump()
