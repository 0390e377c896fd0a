"""Pagination result models."""

import math
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class PaginationMetadata(BaseModel):
    """Page position and totals. model_dump(by_alias=True) gives camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    current_page: int = Field(description="1-based page number")
    per_page: int = Field(description="Page size")
    total: int = Field(description="Rows matching the query across all pages")
    first_page: int = 1
    last_page: int = Field(description="ceil(total / per_page), 0 when nothing matched")
    has_more_pages: bool
    has_pages: bool = Field(description="More rows exist than fit on one page")
    is_empty: bool = Field(description="This page has no rows")


@dataclass
class PaginatedData(Generic[T]):
    """One page of entities with its metadata."""

    pagination_metadata: PaginationMetadata
    data: list[T]

    def to_dict(self) -> dict[str, Any]:
        return {
            "paginationMetadata": self.pagination_metadata.model_dump(by_alias=True),
            "data": [item.to_dict() if hasattr(item, "to_dict") else item for item in self.data],
        }


def get_pagination_metadata(page: int, limit: int, total: int, page_size: int) -> PaginationMetadata:
    """Build metadata for one page.

    Args:
        page: Current 1-based page
        limit: Page size
        total: Total matching rows
        page_size: Number of rows actually returned for this page
    """
    last_page = math.ceil(total / limit)
    return PaginationMetadata(
        current_page=page,
        per_page=limit,
        total=total,
        first_page=1,
        last_page=last_page,
        has_more_pages=page < last_page,
        has_pages=total > limit,
        is_empty=page_size == 0,
    )
