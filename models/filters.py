"""
Filter definitions for list pages.

A list page declares which filters it offers; the current values live in a
plain FilterSet mapping (filter name -> value).
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional, Union

# Sentinel meaning "no constraint" (select boxes default to it)
ALL = "all"


class FilterKind(str, Enum):
    """How a filter tests a record."""
    TEXT = "text"              # substring over several fields (OR)
    EQUALS = "equals"          # equality on one field
    DATE = "date"              # equality after truncating to a granularity
    DATE_RANGE = "date_range"  # inclusive from/to on one field


class DateGranularity(str, Enum):
    """Truncation applied before comparing dates."""
    YEAR = "year"
    MONTH = "month"
    DAY = "day"


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range. Either bound may be open."""
    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


FilterValue = Union[str, int, float, bool, DateRange, None]
FilterSet = dict[str, FilterValue]


@dataclass(frozen=True)
class FilterDefinition:
    """
    One filter offered by a list page.

    Attributes:
        name: Key in the FilterSet (and query parameter name)
        kind: FilterKind
        fields: Record fields inspected. TEXT uses all of them, other kinds
            use exactly one.
        label: Display label
        granularity: Truncation for DATE filters
        options: Known values for select-style filters (display only)
    """
    name: str
    kind: FilterKind
    fields: tuple[str, ...]
    label: str = ""
    granularity: DateGranularity = DateGranularity.DAY
    options: tuple[tuple[str, str], ...] = ()

    def __post_init__(self):
        if not self.fields:
            raise ValueError(f"Filter '{self.name}' needs at least one field")
        if self.kind != FilterKind.TEXT and len(self.fields) != 1:
            raise ValueError(f"Filter '{self.name}' ({self.kind.value}) inspects exactly one field")

    @property
    def field(self) -> str:
        return self.fields[0]

    def describe(self) -> dict[str, Any]:
        """Serializable description for the resource catalogue."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "label": self.label or self.name,
            "fields": list(self.fields),
            "granularity": self.granularity.value if self.kind == FilterKind.DATE else None,
            "options": [{"value": v, "label": l} for v, l in self.options],
        }


def is_unconstrained(value: FilterValue) -> bool:
    """True for the sentinels that make a filter a no-op."""
    if value is None:
        return True
    if isinstance(value, DateRange):
        return value.is_open
    if isinstance(value, str):
        stripped = value.strip()
        return stripped == "" or stripped.lower() == ALL
    return False


def initial_filter_set(definitions: list[FilterDefinition]) -> FilterSet:
    """FilterSet for a freshly mounted page: search empty, selectors on 'all'."""
    initial: FilterSet = {}
    for definition in definitions:
        if definition.kind == FilterKind.TEXT:
            initial[definition.name] = ""
        elif definition.kind == FilterKind.DATE_RANGE:
            initial[definition.name] = DateRange()
        else:
            initial[definition.name] = ALL
    return initial
