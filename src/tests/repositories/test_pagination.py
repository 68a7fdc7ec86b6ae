"""Test PaginationParams validation and Page metadata."""

import pytest

from repokit.repositories.base import Page, PaginationParams
from tests.models import Organization


class TestPaginationParams:
    """Test PaginationParams validation."""

    def test_valid_params(self) -> None:
        """Test creation with valid parameters."""
        params = PaginationParams(page=3, per_page=25)
        assert params.page == 3
        assert params.per_page == 25

    def test_default_params(self) -> None:
        """Test default parameter values."""
        params = PaginationParams()
        assert params.page == 1
        assert params.per_page is None

    def test_zero_page(self) -> None:
        """Test validation of page numbers below 1."""
        with pytest.raises(ValueError, match="Page must be at least 1"):
            PaginationParams(page=0)

    def test_zero_per_page(self) -> None:
        """Test validation of zero page size."""
        with pytest.raises(ValueError, match="Per page must be between 1 and 1000"):
            PaginationParams(per_page=0)

    def test_excessive_per_page(self) -> None:
        """Test validation of excessive page size."""
        with pytest.raises(ValueError, match="Per page must be between 1 and 1000"):
            PaginationParams(per_page=1001)


class TestPage:
    """Test Page metadata."""

    def test_pagination_metadata(self) -> None:
        """Test metadata for a middle page."""
        items = [Organization(name=f"item_{i}") for i in range(5)]
        page = Page(items=items, total=15, per_page=5, page=2)

        assert page.items == items
        assert page.total == 15
        assert page.offset == 5
        assert page.last_page == 3
        assert page.has_next is True
        assert page.has_prev is True

    def test_first_page(self) -> None:
        """Test first page metadata."""
        page = Page(items=[], total=10, per_page=5, page=1)

        assert page.has_next is True
        assert page.has_prev is False

    def test_last_page(self) -> None:
        """Test last page metadata."""
        page = Page(items=[], total=8, per_page=5, page=2)

        assert page.has_next is False
        assert page.has_prev is True

    def test_empty_result(self) -> None:
        """Test an empty result still has one page."""
        page = Page(items=[], total=0, per_page=15, page=1)

        assert page.last_page == 1
        assert page.has_next is False
        assert len(page) == 0

    def test_iteration(self) -> None:
        items = [Organization(name="a"), Organization(name="b")]
        page = Page(items=items, total=2, per_page=15, page=1)

        assert list(page) == items
        assert repr(page) == "Page(page=1, per_page=15, total=2, items=2)"
