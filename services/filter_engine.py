"""
Filter predicate engine.

Composes the per-field filters of a list page into one boolean test over
a record. Pure functions: no I/O, no state.

Rules:
    - "", "all" and None (or an open date range) constrain nothing
    - text filters: case-insensitive substring over several fields (OR);
      a missing field is skipped
    - every other filter inspects one field; a missing field fails it
    - equality compares numbers as numbers ("5" matches 5)
    - the overall result is the AND of all filters
"""

from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from exceptions import ValidationError
from models.filters import (
    DateGranularity,
    DateRange,
    FilterDefinition,
    FilterKind,
    FilterSet,
    FilterValue,
    is_unconstrained,
)
from utils.date_utils import parse_date, parse_partial_date
from utils.formatting import to_decimal
from utils.text_utils import to_search_text


_GRANULARITY_PARTS = {
    DateGranularity.YEAR: 1,
    DateGranularity.MONTH: 2,
    DateGranularity.DAY: 3,
}

_TRUE_STRINGS = {"true", "1", "yes", "si", "sí"}
_FALSE_STRINGS = {"false", "0", "no"}


# ===================
# FIELD ACCESS
# ===================

def get_field(record: Mapping[str, Any], path: str) -> Any:
    """
    Read a field, following dotted paths into nested mappings.

    Returns None when any step is missing.
    """
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    if isinstance(current, Enum):
        return current.value
    return current


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def values_equal(record_value: Any, filter_value: Any) -> bool:
    """
    Equality with type normalization.

    Booleans compare as booleans, numbers (including numeric strings) as
    numbers, everything else as trimmed strings.
    """
    if isinstance(record_value, Enum):
        record_value = record_value.value

    if isinstance(record_value, bool) or isinstance(filter_value, bool):
        left = _to_bool(record_value)
        right = _to_bool(filter_value)
        return left is not None and left == right

    left_num = to_decimal(record_value)
    right_num = to_decimal(filter_value)
    if left_num is not None and right_num is not None:
        return left_num == right_num

    return str(record_value).strip() == str(filter_value).strip()


# ===================
# SINGLE FILTERS
# ===================

def _matches_text(record: Mapping[str, Any], fields: tuple[str, ...], value: FilterValue) -> bool:
    needle = str(value).strip().casefold()
    for field in fields:
        haystack = to_search_text(get_field(record, field))
        if haystack is None:
            continue
        if needle in haystack:
            return True
    return False


def _matches_date(
    record: Mapping[str, Any],
    field: str,
    value: FilterValue,
    granularity: DateGranularity,
) -> bool:
    record_date = parse_date(get_field(record, field))
    wanted = parse_partial_date(value)
    if record_date is None or wanted is None:
        return False
    # A month selector sends a bare month number: July of any year
    if granularity == DateGranularity.MONTH and len(wanted) == 1 and 1 <= wanted[0] <= 12:
        return record_date.month == wanted[0]
    parts = min(_GRANULARITY_PARTS[granularity], len(wanted))
    actual = (record_date.year, record_date.month, record_date.day)
    return actual[:parts] == wanted[:parts]


def _matches_range(record: Mapping[str, Any], field: str, value: DateRange) -> bool:
    record_date = parse_date(get_field(record, field))
    if record_date is None:
        return False
    if value.start is not None and record_date < value.start:
        return False
    if value.end is not None and record_date > value.end:
        return False
    return True


def matches_filter(record: Mapping[str, Any], definition: FilterDefinition, value: FilterValue) -> bool:
    """Test one filter against one record."""
    if is_unconstrained(value):
        return True

    if definition.kind == FilterKind.TEXT:
        return _matches_text(record, definition.fields, value)

    if definition.kind == FilterKind.DATE_RANGE:
        if not isinstance(value, DateRange):
            raise ValidationError(
                f"Filter '{definition.name}' expects a date range",
                code="INVALID_FILTER_VALUE",
                details={"filter": definition.name}
            )
        return _matches_range(record, definition.field, value)

    if definition.kind == FilterKind.DATE:
        return _matches_date(record, definition.field, value, definition.granularity)

    record_value = get_field(record, definition.field)
    if record_value is None:
        return False
    return values_equal(record_value, value)


def _implicit_definition(name: str, value: FilterValue) -> FilterDefinition:
    """Definition for a filter the page did not declare: same-named field."""
    kind = FilterKind.DATE_RANGE if isinstance(value, DateRange) else FilterKind.EQUALS
    return FilterDefinition(name=name, kind=kind, fields=(name,))


# ===================
# PUBLIC API
# ===================

def matches(
    record: Mapping[str, Any],
    filter_set: FilterSet,
    definitions: Optional[Iterable[FilterDefinition]] = None,
) -> bool:
    """
    True if the record passes every active filter.

    Args:
        record: Record mapping
        filter_set: filter name -> value
        definitions: Filters declared by the page; undeclared names are
            treated as equality on the same-named field

    Returns:
        Logical AND of all per-filter results
    """
    by_name = {d.name: d for d in (definitions or ())}
    for name, value in filter_set.items():
        definition = by_name.get(name) or _implicit_definition(name, value)
        if not matches_filter(record, definition, value):
            return False
    return True


def filter_records(
    records: Iterable[Mapping[str, Any]],
    filter_set: FilterSet,
    definitions: Optional[Iterable[FilterDefinition]] = None,
) -> list:
    """Records passing all filters, in their original order."""
    definitions = list(definitions or ())
    active = {name: value for name, value in filter_set.items() if not is_unconstrained(value)}
    if not active:
        return list(records)
    return [r for r in records if matches(r, active, definitions)]


def active_filters(filter_set: FilterSet) -> dict[str, Any]:
    """Filters that currently constrain something, in display form."""
    shown: dict[str, Any] = {}
    for name, value in filter_set.items():
        if is_unconstrained(value):
            continue
        if isinstance(value, DateRange):
            shown[name] = {
                "from": value.start.isoformat() if value.start else None,
                "to": value.end.isoformat() if value.end else None,
            }
        else:
            shown[name] = value
    return shown


def parse_filter_params(
    definitions: Iterable[FilterDefinition],
    params: Mapping[str, str],
) -> FilterSet:
    """
    Build a FilterSet from query parameters.

    Range filters read `<name>_from` / `<name>_to`. Filters absent from the
    parameters are left out (callers merge onto their current set).

    Raises:
        ValidationError: If a date parameter cannot be parsed
    """
    filter_set: FilterSet = {}
    for definition in definitions:
        if definition.kind == FilterKind.DATE_RANGE:
            raw_from = params.get(f"{definition.name}_from")
            raw_to = params.get(f"{definition.name}_to")
            if raw_from is None and raw_to is None:
                continue
            start = _parse_bound(definition.name, raw_from)
            end = _parse_bound(definition.name, raw_to)
            if start and end and start > end:
                raise ValidationError(
                    f"Filter '{definition.name}' starts after it ends",
                    code="INVALID_FILTER_VALUE",
                    details={"filter": definition.name, "from": raw_from, "to": raw_to}
                )
            filter_set[definition.name] = DateRange(start=start, end=end)
            continue

        if definition.name not in params:
            continue
        raw = params[definition.name]
        if definition.kind == FilterKind.DATE and not is_unconstrained(raw):
            if parse_partial_date(raw) is None:
                raise ValidationError(
                    f"Filter '{definition.name}' expects a date, year or year-month",
                    code="INVALID_FILTER_VALUE",
                    details={"filter": definition.name, "value": raw}
                )
        filter_set[definition.name] = raw

    return filter_set


def _parse_bound(name: str, raw: Optional[str]):
    if raw is None or raw.strip() == "":
        return None
    parsed = parse_date(raw)
    if parsed is None:
        raise ValidationError(
            f"Filter '{name}' has an invalid date",
            code="INVALID_FILTER_VALUE",
            details={"filter": name, "value": raw}
        )
    return parsed
