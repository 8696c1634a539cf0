# orbit_api/schemas/common.py
from __future__ import annotations

from typing import Any, Dict, Generic, List, Optional, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginationParams:
    """Query parameters shared by every list endpoint."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)"),
        page_size: int = Query(50, ge=1, le=500, description="Items per page"),
    ):
        self.page = page
        self.limit = page_size
        self.skip = (page - 1) * page_size


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool = False
    has_prev: bool = False

    @classmethod
    def build(cls, items: List[Any], total: int, pagination: PaginationParams) -> "PaginatedResponse":
        total_pages = (total + pagination.limit - 1) // pagination.limit
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.limit,
            total_pages=total_pages,
            has_next=pagination.page < total_pages,
            has_prev=pagination.page > 1,
        )


class ErrorResponse(BaseModel):
    success: bool = False
    code: str
    category: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Dict[str, Any]] = None
