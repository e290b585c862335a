"""
Record schemas for the parks API collections.

Each list page validates the rows it receives once, here, at the cache
boundary. Unknown fields are kept so pages can still display them.
Field names follow the API's wire names through aliases.
"""

import re
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from utils.date_utils import parse_date

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

RecordId = Union[int, str]


class RecordBase(BaseModel):
    """Base for API records. Extra fields pass through untouched."""
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class CamelRecord(RecordBase):
    """Record whose wire names are camelCase (fullName, hireDate, ...)."""
    model_config = ConfigDict(alias_generator=to_camel)


def _check_email(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if not EMAIL_PATTERN.match(value):
        raise ValueError("invalid email address")
    return value.lower()


def _coerce_date(value):
    # CSV uploads carry dd/mm/yyyy as exported
    if value == "":
        return None
    if isinstance(value, str):
        parsed = parse_date(value)
        if parsed is not None:
            return parsed
    return value


FlexibleDate = Annotated[date, BeforeValidator(_coerce_date)]


# ===================
# ENUMS
# ===================

class EmployeeStatus(str, Enum):
    """Employee status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    VACATION = "vacation"


class VolunteerStatus(str, Enum):
    """Volunteer status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    SUSPENDED = "suspended"


class JournalEntryStatus(str, Enum):
    """Journal entry approval status."""
    DRAFT = "borrador"
    APPROVED = "aprobado"
    CANCELLED = "cancelado"


class JournalEntryType(str, Enum):
    """Journal entry origin."""
    MANUAL = "manual"
    AUTOMATIC = "automatico"


class TreeHealth(str, Enum):
    """Tree health classification."""
    GOOD = "Bueno"
    FAIR = "Regular"
    POOR = "Malo"
    CRITICAL = "Crítico"


# ===================
# COLLECTION RECORDS
# ===================

class EmployeeRecord(CamelRecord):
    """HR employee."""
    id: RecordId
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    hire_date: Optional[date] = None
    salary: Optional[Decimal] = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE


class VolunteerRecord(CamelRecord):
    """Registered volunteer."""
    id: RecordId
    full_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    status: VolunteerStatus = VolunteerStatus.PENDING
    total_hours: Optional[Decimal] = None
    created_at: Optional[str] = None


class JournalEntryRecord(CamelRecord):
    """Accounting journal entry."""
    id: RecordId
    number: Optional[str] = None
    date: date
    description: str = ""
    reference: Optional[str] = None
    type: JournalEntryType = JournalEntryType.MANUAL
    total_debit: Decimal = Decimal("0")
    total_credit: Decimal = Decimal("0")
    status: JournalEntryStatus = JournalEntryStatus.DRAFT


class IncomeRecord(CamelRecord):
    """Actual income registered against a park."""
    id: RecordId
    park_id: int
    category_id: Optional[int] = None
    concept: str
    amount: Decimal
    date: date
    description: Optional[str] = None
    reference_number: Optional[str] = None


class ExpenseRecord(IncomeRecord):
    """Actual expense registered against a park."""
    supplier: Optional[str] = None
    invoice_number: Optional[str] = None
    is_paid: bool = False
    payment_date: Optional[date] = None


class TreeRecord(CamelRecord):
    """Tree inventory item."""
    id: RecordId
    code: str
    species_id: Optional[int] = None
    species_name: Optional[str] = None
    scientific_name: Optional[str] = None
    park_id: Optional[int] = None
    park_name: Optional[str] = None
    planting_date: Optional[date] = None
    height: Optional[Decimal] = None
    diameter: Optional[Decimal] = None
    health_status: Optional[TreeHealth] = None
    last_inspection_date: Optional[date] = None


# ===================
# CREATE / IMPORT PAYLOADS
# ===================

class EmployeeCreate(CamelRecord):
    """Employee payload for create, update and CSV import."""
    model_config = ConfigDict(extra="ignore")

    full_name: str = Field(..., min_length=1, max_length=200)
    email: str
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    hire_date: Optional[FlexibleDate] = None
    salary: Optional[Decimal] = Field(None, ge=0)
    status: EmployeeStatus = EmployeeStatus.ACTIVE

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        checked = _check_email(v)
        if checked is None:
            raise ValueError("email is required")
        return checked


class VolunteerCreate(CamelRecord):
    """Volunteer payload."""
    model_config = ConfigDict(extra="ignore")

    full_name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    status: VolunteerStatus = VolunteerStatus.PENDING

    @field_validator("email")
    @classmethod
    def email_format(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v)


class JournalEntryCreate(CamelRecord):
    """Journal entry header payload."""
    model_config = ConfigDict(extra="ignore")

    date: FlexibleDate
    description: str = Field(..., min_length=1)
    reference: Optional[str] = None
    type: JournalEntryType = JournalEntryType.MANUAL
    status: JournalEntryStatus = JournalEntryStatus.DRAFT


class IncomeCreate(CamelRecord):
    """Income payload."""
    model_config = ConfigDict(extra="ignore")

    park_id: int = Field(..., ge=1)
    category_id: Optional[int] = Field(None, ge=1)
    concept: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    date: FlexibleDate
    description: Optional[str] = None
    reference_number: Optional[str] = Field(None, max_length=50)


class ExpenseCreate(IncomeCreate):
    """Expense payload."""
    supplier: Optional[str] = Field(None, max_length=200)
    invoice_number: Optional[str] = Field(None, max_length=50)
    is_paid: bool = False


class TreeCreate(CamelRecord):
    """Tree inventory payload."""
    model_config = ConfigDict(extra="ignore")

    code: str = Field(..., min_length=1, max_length=50)
    species_id: int = Field(..., ge=1)
    park_id: int = Field(..., ge=1)
    planting_date: Optional[FlexibleDate] = None
    height: Optional[Decimal] = Field(None, ge=0)
    diameter: Optional[Decimal] = Field(None, ge=0)
    health_status: TreeHealth = TreeHealth.GOOD
