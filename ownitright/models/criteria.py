"""Filter criteria models."""

from typing import Any, Literal, Mapping, Optional, Union
from pydantic import BaseModel, Field, model_validator

from ownitright.utils.errors import ValidationError


# Values that mean "no constraint on this field"
UNCONSTRAINED = ("all", "", None)

# Mapping keys with a meaning other than field equality
RESERVED_KEYS = ("search", "search_fields", "sort_by", "sort_order", "ranges", "price_range")


def is_unconstrained(value: Any) -> bool:
    return any(value is marker or value == marker for marker in UNCONSTRAINED)


class NumericRange(BaseModel):
    """Inclusive numeric bounds; either side may be open."""
    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "NumericRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"Range min {self.min} is greater than max {self.max}")
        return self

    @property
    def is_open(self) -> bool:
        return self.min is None and self.max is None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


# Property filter bar buckets, prices in lakhs
PRICE_RANGES: dict[str, NumericRange] = {
    "under-50": NumericRange(max=50),
    "50-100": NumericRange(min=50, max=100),
    "100-200": NumericRange(min=100, max=200),
    "200-500": NumericRange(min=200, max=500),
    "above-500": NumericRange(min=500),
}


def price_range(bucket: str) -> Optional[NumericRange]:
    """Resolve a price bucket name; "all" resolves to no range."""
    if is_unconstrained(bucket):
        return None
    try:
        return PRICE_RANGES[bucket]
    except KeyError:
        raise ValidationError(f"Unknown price range {bucket!r}", field="price_range")


class FilterCriteria(BaseModel):
    """What a list view wants to see out of a collection."""
    equals: dict[str, Any] = Field(default_factory=dict, description="Field -> exact value")
    search: Optional[str] = Field(None, description="Free-text substring query")
    search_fields: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Whitelisted text fields; empty uses the record type's own list",
    )
    ranges: dict[str, NumericRange] = Field(default_factory=dict)
    sort_by: Optional[str] = None
    sort_order: Literal["asc", "desc"] = "asc"

    @classmethod
    def coerce(cls, criteria: Union["FilterCriteria", Mapping[str, Any], None]) -> "FilterCriteria":
        """Accept a FilterCriteria or a plain field -> value mapping."""
        if criteria is None:
            return cls()
        if isinstance(criteria, FilterCriteria):
            return criteria
        if not isinstance(criteria, Mapping):
            raise ValidationError(f"Unsupported filter criteria type {type(criteria).__name__}")

        ranges = dict(criteria.get("ranges") or {})
        bucket = price_range(criteria.get("price_range"))
        if bucket is not None:
            ranges["price"] = bucket

        try:
            return cls(
                equals={k: v for k, v in criteria.items() if k not in RESERVED_KEYS},
                search=criteria.get("search"),
                search_fields=tuple(criteria.get("search_fields") or ()),
                ranges=ranges,
                sort_by=criteria.get("sort_by"),
                sort_order=criteria.get("sort_order") or "asc",
            )
        except ValueError as e:
            raise ValidationError(f"Invalid filter criteria: {e}")

    def active_equals(self) -> dict[str, Any]:
        return {k: v for k, v in self.equals.items() if not is_unconstrained(v)}

    def active_ranges(self) -> dict[str, NumericRange]:
        return {k: r for k, r in self.ranges.items() if not r.is_open}

    @property
    def search_query(self) -> Optional[str]:
        if self.search is None or not self.search.strip():
            return None
        return self.search.strip().lower()


def active_filter_count(criteria: Union[FilterCriteria, Mapping[str, Any], None]) -> int:
    """Number of active constraints, for the "N filters" badge."""
    criteria = FilterCriteria.coerce(criteria)
    count = len(criteria.active_equals()) + len(criteria.active_ranges())
    if criteria.search_query:
        count += 1
    return count


def to_query_params(criteria: Union[FilterCriteria, Mapping[str, Any], None]) -> dict[str, Any]:
    """Flatten criteria into REST query params, dropping unconstrained values."""
    criteria = FilterCriteria.coerce(criteria)
    params: dict[str, Any] = dict(criteria.active_equals())
    if criteria.search_query:
        params["search"] = criteria.search.strip()
    for field, bounds in criteria.active_ranges().items():
        if bounds.min is not None:
            params[f"{field}Min"] = bounds.min
        if bounds.max is not None:
            params[f"{field}Max"] = bounds.max
    if criteria.sort_by:
        params["sortBy"] = criteria.sort_by
        params["sortOrder"] = criteria.sort_order
    return params
