"""
Date parsing helpers for record values and filter inputs.
"""

from datetime import date, datetime
from typing import Any, Optional

# Formats seen in API payloads and CSV uploads
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a record or filter value into a date.

    Accepts date/datetime objects, ISO dates, ISO datetimes (with or without
    a trailing Z) and dd/mm/yyyy strings.

    Returns:
        date, or None if the value is empty or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    return None


def parse_partial_date(value: Any) -> Optional[tuple[int, ...]]:
    """
    Parse a year / year-month / full date filter value into a tuple.

    - "2025" → (2025,)
    - "2025-07" → (2025, 7)
    - "2025-07-14" → (2025, 7, 14)
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return (value,)

    if isinstance(value, str):
        parts = value.strip().split("-")
        if len(parts) <= 2 and all(p.isdigit() for p in parts):
            numbers = tuple(int(p) for p in parts)
            if len(numbers) == 1 and numbers[0] > 0:
                return numbers
            if len(numbers) == 2 and 1 <= numbers[1] <= 12:
                return numbers
            return None

    full = parse_date(value)
    if full is not None:
        return (full.year, full.month, full.day)
    return None
