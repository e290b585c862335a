"""
Display formatting for exported values.

Mirrors what the admin screens show: es-MX currency, dd/mm/yyyy dates and
Spanish labels for enumerations.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from utils.date_utils import parse_date

STATUS_LABELS = {
    "active": "Activo",
    "inactive": "Inactivo",
    "vacation": "Vacaciones",
    "pending": "Pendiente",
    "suspended": "Suspendido",
    "borrador": "Borrador",
    "aprobado": "Aprobado",
    "cancelado": "Cancelado",
    "manual": "Manual",
    "automatico": "Automático",
}


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a numeric value to a finite Decimal, None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def format_amount(value: Any) -> str:
    """
    Plain two-decimal amount.

    - 1200.5 → "1200.50"
    - None → ""
    """
    amount = to_decimal(value)
    if amount is None:
        return ""
    return f"{amount:.2f}"


def format_currency(value: Any) -> str:
    """
    es-MX peso amount.

    - 85000 → "$85,000.00"
    - -874.9 → "-$874.90"
    """
    amount = to_decimal(value)
    if amount is None:
        return ""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_date(value: Any) -> str:
    """dd/mm/yyyy as shown on the admin screens, "" when missing."""
    parsed = parse_date(value)
    if parsed is None:
        return "" if value is None else str(value)
    return parsed.strftime("%d/%m/%Y")


def status_label(value: Any) -> str:
    """Spanish label for a status/type enumeration value."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return STATUS_LABELS.get(str(value), "Desconocido")


def yes_no(value: Any) -> str:
    """Sí / No for boolean flags."""
    return "Sí" if value else "No"


def join_list(value: Any) -> str:
    """Comma-joined list values ("Liderazgo, Planificación")."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)
