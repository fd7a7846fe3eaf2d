"""Tests for filter criteria models."""

import pytest

from ownitright.models.criteria import (
    PRICE_RANGES,
    FilterCriteria,
    NumericRange,
    active_filter_count,
    price_range,
    to_query_params,
)
from ownitright.utils.errors import ValidationError


@pytest.mark.unit
def test_coerce_mapping_splits_reserved_keys():
    """Test that a plain mapping becomes equality constraints plus reserved options."""
    criteria = FilterCriteria.coerce({
        "status": "new",
        "zone": "all",
        "search": "Rao",
        "sort_by": "created_at",
        "sort_order": "desc",
    })

    assert criteria.equals == {"status": "new", "zone": "all"}
    assert criteria.active_equals() == {"status": "new"}
    assert criteria.search_query == "rao"
    assert criteria.sort_by == "created_at"
    assert criteria.sort_order == "desc"


@pytest.mark.unit
def test_coerce_rejects_bad_sort_order():
    """Test that an invalid sort direction is a ValidationError."""
    with pytest.raises(ValidationError):
        FilterCriteria.coerce({"sort_order": "sideways"})


@pytest.mark.unit
def test_coerce_rejects_non_mapping():
    """Test that unsupported criteria types are rejected."""
    with pytest.raises(ValidationError):
        FilterCriteria.coerce(["status", "new"])


@pytest.mark.unit
def test_numeric_range_contains_inclusive():
    """Test inclusive bounds and open ends."""
    bounds = NumericRange(min=50, max=100)

    assert bounds.contains(50) and bounds.contains(100)
    assert not bounds.contains(49.9)
    assert NumericRange().is_open is True
    assert NumericRange(min=500).contains(10_000)


@pytest.mark.unit
def test_price_range_buckets():
    """Test the property filter bar buckets."""
    assert price_range("all") is None
    assert price_range("under-50") == NumericRange(max=50)
    assert set(PRICE_RANGES) == {"under-50", "50-100", "100-200", "200-500", "above-500"}
    with pytest.raises(ValidationError):
        price_range("luxury")


@pytest.mark.unit
def test_active_filter_count():
    """Test the active-filters badge count."""
    assert active_filter_count({}) == 0
    assert active_filter_count({"status": "all", "search": ""}) == 0
    assert active_filter_count({"status": "new", "search": "rao", "price_range": "50-100"}) == 3


@pytest.mark.unit
def test_to_query_params():
    """Test flattening criteria into REST query params."""
    params = to_query_params({
        "status": "new",
        "zone": "all",
        "search": "  Rao ",
        "ranges": {"budget": {"min": 50}},
        "sort_by": "leadScore",
    })

    assert params == {
        "status": "new",
        "search": "Rao",
        "budgetMin": 50,
        "sortBy": "leadScore",
        "sortOrder": "asc",
    }
