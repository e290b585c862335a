"""
Pager for list pages.

Slices an already ordered sequence into fixed-size pages. Never reorders
and never mutates the caller's state: clamping the current page after the
collection shrinks is the caller's job (see clamp_page).
"""

from dataclasses import dataclass, field
from math import ceil
from typing import Any, Sequence

from exceptions import ValidationError


@dataclass
class Page:
    """One page of results plus page-count metadata."""
    page_items: list[Any] = field(default_factory=list)
    total_pages: int = 1
    total_count: int = 0
    current_page: int = 1
    page_size: int = 10

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def start_index(self) -> int:
        """1-based index of the first item shown (0 when empty)."""
        if not self.page_items:
            return 0
        return (self.current_page - 1) * self.page_size + 1

    @property
    def end_index(self) -> int:
        """1-based index of the last item shown (0 when empty)."""
        if not self.page_items:
            return 0
        return self.start_index + len(self.page_items) - 1


def total_pages_for(total_count: int, page_size: int) -> int:
    """ceil(total / size), never less than 1."""
    _check_page_size(page_size)
    return max(1, ceil(total_count / page_size))


def clamp_page(current_page: int, total_count: int, page_size: int) -> int:
    """Bring current_page into [1, total_pages]."""
    return min(max(1, current_page), total_pages_for(total_count, page_size))


def paginate(items: Sequence[Any], page_size: int, current_page: int) -> Page:
    """
    Compute the visible slice for current_page.

    Args:
        items: Sequence in display order
        page_size: Items per page (>= 1)
        current_page: 1-based page number (>= 1). A page past the end
            yields an empty slice; callers clamp first.

    Returns:
        Page with page_items, total_pages (>= 1) and total_count

    Raises:
        ValidationError: If page_size or current_page is below 1
    """
    _check_page_size(page_size)
    if current_page < 1:
        raise ValidationError(
            "Page number must be at least 1",
            code="INVALID_PAGE",
            details={"page": current_page}
        )

    total_count = len(items)
    start = (current_page - 1) * page_size
    end = current_page * page_size

    return Page(
        page_items=list(items[start:end]),
        total_pages=total_pages_for(total_count, page_size),
        total_count=total_count,
        current_page=current_page,
        page_size=page_size,
    )


def _check_page_size(page_size: int) -> None:
    if page_size < 1:
        raise ValidationError(
            "Page size must be at least 1",
            code="INVALID_PAGE_SIZE",
            details={"page_size": page_size}
        )
