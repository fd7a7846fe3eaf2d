"""Filter, search and sort over fetched collections.

Every list view (properties, leads, bookings, reports, team) runs its
collection through `apply_view`. Records may be pydantic models or plain
dicts straight from the REST client; fields are looked up by attribute name
or JSON (camelCase) key.
"""

from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Union
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from ownitright.models.criteria import FilterCriteria, NumericRange, is_unconstrained
from ownitright.utils.logging import get_structured_logger, sanitize_search_text

logger = get_structured_logger(__name__)

CriteriaLike = Union[FilterCriteria, Mapping[str, Any], None]

_MISSING = object()


def get_field(record: Any, field: str, default: Any = None) -> Any:
    """Read a field from a model or dict by snake_case name or camelCase key."""
    value = _lookup(record, field)
    return default if value is _MISSING else value


def has_field(record: Any, field: str) -> bool:
    return _lookup(record, field) is not _MISSING


def _lookup(record: Any, field: str) -> Any:
    if isinstance(record, Mapping):
        if field in record:
            return record[field]
        camel = to_camel(field)
        if camel in record:
            return record[camel]
        return _MISSING

    if isinstance(record, BaseModel):
        fields = type(record).model_fields
        if field in fields:
            return getattr(record, field)
        for name, info in fields.items():
            if info.alias == field:
                return getattr(record, name)
        extra = record.model_extra or {}
        if field in extra:
            return extra[field]
        if to_camel(field) in extra:
            return extra[to_camel(field)]

    # computed properties (Tracker.overall_progress, Notification.status)
    try:
        return getattr(record, field)
    except AttributeError:
        return _MISSING


def plain_value(value: Any) -> Any:
    """Unwrap enums to their raw value."""
    if isinstance(value, Enum):
        return value.value
    return value


def as_number(value: Any) -> Optional[float]:
    """Numeric value of value ("300" -> 300.0); None for booleans, blanks and text."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value))
    except ValueError:
        return None


def _equals(value: Any, expected: Any) -> bool:
    value, expected = plain_value(value), plain_value(expected)
    if value == expected:
        return True
    # Query-string style criteria arrive as strings ("true", "3")
    if isinstance(expected, str) and not isinstance(value, str) and value is not None:
        if isinstance(value, bool):
            return expected.lower() == str(value).lower()
        return str(value) == expected
    return False


def _search_fields_for(records: Sequence[Any], criteria: FilterCriteria) -> tuple[str, ...]:
    if criteria.search_fields:
        return criteria.search_fields
    for record in records:
        fields = getattr(type(record), "search_fields", None)
        if fields:
            return tuple(fields)
    return ()


def _text_fields(record: Any) -> list[str]:
    """Names of the plain string fields of a record, id excluded."""
    if isinstance(record, Mapping):
        items = list(record.items())
    elif isinstance(record, BaseModel):
        items = [(name, getattr(record, name)) for name in type(record).model_fields]
        items += list((record.model_extra or {}).items())
    else:
        return []
    return [
        str(name) for name, value in items
        if name != "id" and isinstance(value, str) and not isinstance(value, Enum)
    ]


def _matches_search(record: Any, query: str, fields: Optional[Iterable[str]]) -> bool:
    if fields is None:
        fields = _text_fields(record)
    for field in fields:
        value = get_field(record, field)
        if value is None:
            continue
        if query in str(plain_value(value)).lower():
            return True
    return False


def _in_range(record: Any, field: str, bounds: NumericRange) -> bool:
    number = as_number(get_field(record, field))
    if number is None:
        return False
    return bounds.contains(number)


def _known_fields(records: Sequence[Any], fields: Iterable[str]) -> set[str]:
    """Subset of fields present on at least one record."""
    return {field for field in fields if any(has_field(record, field) for record in records)}


def filter_records(records: Iterable[Any], criteria: CriteriaLike = None) -> list:
    """
    Keep the records that satisfy every active constraint, in input order.

    - equality: skipped when the value is "all", "" or None
    - search: case-insensitive substring over the search fields, any field may
      match; without a usable whitelist every plain text field is searched
    - ranges: inclusive; records without a numeric value are dropped
    Constraints on fields no record has are ignored.
    """
    records = list(records)
    criteria = FilterCriteria.coerce(criteria)
    if not records:
        return []

    equals = criteria.active_equals()
    ranges = criteria.active_ranges()
    query = criteria.search_query

    known = _known_fields(records, list(equals) + list(ranges))
    ignored = (set(equals) | set(ranges)) - known
    if ignored:
        logger.debug("Ignoring criteria on unknown fields", fields=sorted(ignored))
    equals = {k: v for k, v in equals.items() if k in known}
    ranges = {k: r for k, r in ranges.items() if k in known}

    search_fields: Optional[list[str]] = None
    if query:
        search_fields = [f for f in _search_fields_for(records, criteria)
                         if any(has_field(r, f) for r in records)]
        if not search_fields:
            logger.debug("No search whitelist on these records, searching text fields")
            search_fields = None

    result = []
    for record in records:
        if any(not _equals(get_field(record, k), v) for k, v in equals.items()):
            continue
        if query and not _matches_search(record, query, search_fields):
            continue
        if any(not _in_range(record, k, r) for k, r in ranges.items()):
            continue
        result.append(record)

    logger.debug(
        "Filtered collection",
        input_count=len(records),
        result_count=len(result),
        search=sanitize_search_text(criteria.search),
        equality_filters=len(equals),
        range_filters=len(ranges)
    )
    return result


def _sort_value(value: Any) -> Any:
    value = plain_value(value)
    if isinstance(value, str):
        return value.lower()
    return value


def sort_records(records: Iterable[Any], sort_by: Optional[str],
                 sort_order: str = "asc") -> list:
    """Stable sort on one field; records missing the field go last either way."""
    records = list(records)
    if not sort_by:
        return records

    present = []
    missing = []
    for record in records:
        value = get_field(record, sort_by)
        if value is None or value == "":
            missing.append(record)
        else:
            present.append((_sort_value(value), record))

    try:
        present.sort(key=lambda pair: pair[0], reverse=(sort_order == "desc"))
    except TypeError:
        # Mixed types in one column; compare as text
        present.sort(key=lambda pair: str(pair[0]), reverse=(sort_order == "desc"))

    return [record for _, record in present] + missing


def apply_view(records: Iterable[Any], criteria: CriteriaLike = None) -> list:
    """Filter, then sort when the criteria name a sort field."""
    criteria = FilterCriteria.coerce(criteria)
    filtered = filter_records(records, criteria)
    return sort_records(filtered, criteria.sort_by, criteria.sort_order)


def distinct_values(records: Iterable[Any], field: str) -> list:
    """Unique non-empty values of field in first-seen order, for filter dropdowns."""
    seen = set()
    values = []
    for record in records:
        value = plain_value(get_field(record, field))
        if is_unconstrained(value):
            continue
        items = value if isinstance(value, (list, tuple)) else [value]
        for item in items:
            item = plain_value(item)
            if is_unconstrained(item) or item in seen:
                continue
            seen.add(item)
            values.append(item)
    return values
