"""
Base schemas shared by all models.
"""

from pydantic import BaseModel, ConfigDict
from typing import Any


class BaseSchema(BaseModel):
    """
    Base for all request/response schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class PaginatedResponse(BaseSchema):
    """Standard paginated response wrapper."""
    data: list[dict[str, Any]]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, data: list, total: int, page: int, page_size: int, **extra):
        """Create paginated response from data. Always reports at least one page."""
        total_pages = max(1, (total + page_size - 1) // page_size)  # Ceiling division
        return cls(
            data=data,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            **extra
        )
