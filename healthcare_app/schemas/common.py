from datetime import time
from enum import Enum
import math

from pydantic import BaseModel, Field


def truncate_to_minute(value):
    """Drop seconds and microseconds; slots are keyed by whole minutes."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    return value


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PageQuery(BaseModel):
    """Paging fields shared by every listing query."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort_order: SortOrder = SortOrder.DESC

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            items_per_page=limit,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )


class MessageResponse(BaseModel):
    message: str
