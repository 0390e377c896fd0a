"""Tests for pagination metadata and results."""

import pytest
from pydantic import ValidationError

from quarry.pagination import PaginatedData, PaginationMetadata, get_pagination_metadata

from sample_entities import User


class TestGetPaginationMetadata:
    """Tests for get_pagination_metadata()."""

    def test_middle_page(self):
        meta = get_pagination_metadata(page=2, limit=10, total=25, page_size=10)

        assert meta.current_page == 2
        assert meta.per_page == 10
        assert meta.total == 25
        assert meta.first_page == 1
        assert meta.last_page == 3
        assert meta.has_more_pages is True
        assert meta.has_pages is True
        assert meta.is_empty is False

    def test_last_page(self):
        meta = get_pagination_metadata(page=3, limit=10, total=25, page_size=5)
        assert meta.has_more_pages is False
        assert meta.is_empty is False

    def test_nothing_matched(self):
        """Test an empty result has last_page 0 and no further pages."""
        meta = get_pagination_metadata(page=1, limit=10, total=0, page_size=0)

        assert meta.last_page == 0
        assert meta.has_more_pages is False
        assert meta.has_pages is False
        assert meta.is_empty is True

    def test_exactly_one_page(self):
        meta = get_pagination_metadata(page=1, limit=10, total=10, page_size=10)
        assert meta.last_page == 1
        assert meta.has_pages is False

    def test_page_past_the_end(self):
        meta = get_pagination_metadata(page=9, limit=10, total=25, page_size=0)
        assert meta.is_empty is True
        assert meta.has_more_pages is False


class TestPaginationMetadata:
    """Tests for the PaginationMetadata model."""

    def test_camel_case_dump(self):
        meta = get_pagination_metadata(page=1, limit=5, total=6, page_size=5)
        assert meta.model_dump(by_alias=True) == {
            "currentPage": 1,
            "perPage": 5,
            "total": 6,
            "firstPage": 1,
            "lastPage": 2,
            "hasMorePages": True,
            "hasPages": True,
            "isEmpty": False,
        }

    def test_populate_by_alias(self):
        meta = PaginationMetadata(
            currentPage=1,
            perPage=5,
            total=0,
            lastPage=0,
            hasMorePages=False,
            hasPages=False,
            isEmpty=True,
        )
        assert meta.current_page == 1
        assert meta.per_page == 5

    def test_frozen(self):
        meta = get_pagination_metadata(page=1, limit=5, total=0, page_size=0)
        with pytest.raises(ValidationError):
            meta.total = 3


class TestPaginatedData:
    """Tests for PaginatedData.to_dict()."""

    def test_to_dict(self):
        meta = get_pagination_metadata(page=1, limit=2, total=1, page_size=1)
        page = PaginatedData(pagination_metadata=meta, data=[User(id=1, name="a")])

        result = page.to_dict()

        assert result["paginationMetadata"]["lastPage"] == 1
        assert result["data"][0]["id"] == 1
        assert result["data"][0]["name"] == "a"

    def test_plain_items_pass_through(self):
        meta = get_pagination_metadata(page=1, limit=2, total=1, page_size=1)
        page = PaginatedData(pagination_metadata=meta, data=[{"id": 1}])
        assert page.to_dict()["data"] == [{"id": 1}]
