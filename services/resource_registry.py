"""
Registry of admin list pages.

Each page is configured declaratively: collection path, record schema,
filters, export columns, import synonyms and the cache keys its mutations
invalidate. Pages differ only in this configuration.
"""

from typing import Any, Callable, Optional

from exceptions import ResourceNotFoundError
from models.filters import DateGranularity, FilterDefinition, FilterKind
from models.records import (
    EmployeeCreate,
    EmployeeRecord,
    EmployeeStatus,
    ExpenseCreate,
    ExpenseRecord,
    IncomeCreate,
    IncomeRecord,
    JournalEntryCreate,
    JournalEntryRecord,
    JournalEntryStatus,
    TreeCreate,
    TreeHealth,
    TreeRecord,
    VolunteerCreate,
    VolunteerRecord,
    VolunteerStatus,
)
from models.table import ColumnSpec, ExportVariant, Record, ResourceConfig, SortSpec
from utils.formatting import (
    format_amount,
    format_currency,
    format_date,
    join_list,
    status_label,
    yes_no,
)


def column(
    header: str,
    field: str,
    formatter: Optional[Callable[[Any], str]] = None,
    example: str = "",
) -> ColumnSpec:
    """Column reading one record field, optionally formatted for display."""
    def extract(record: Record) -> Any:
        value = record.get(field)
        return formatter(value) if formatter else value

    return ColumnSpec(header=header, extract=extract, example=example)


def _status_options(enum_cls) -> tuple[tuple[str, str], ...]:
    return tuple((member.value, status_label(member.value)) for member in enum_cls)


def _default(placeholder: str) -> Callable[[Any], str]:
    def fmt(value: Any) -> str:
        return placeholder if value in (None, "") else str(value)
    return fmt


# ===================
# EMPLOYEES
# ===================

_EMPLOYEE_SIMPLE = (
    column("Nombre Completo", "fullName", example="Juan Pérez García"),
    column("Email", "email", example="juan.perez@empresa.com"),
    column("Teléfono", "phone", example="555-0123"),
    column("Puesto", "position", example="Coordinador de Área"),
    column("Departamento", "department", example="Coordinación de Administración"),
    column("Salario", "salary", format_amount, example="35000"),
    column("Estado", "status", status_label),
)

EMPLOYEES = ResourceConfig(
    key="employees",
    label="empleados",
    path="/api/hr/employees",
    record_model=EmployeeRecord,
    create_model=EmployeeCreate,
    page_size=5,
    filters=(
        FilterDefinition("search", FilterKind.TEXT, ("fullName", "email", "position"), label="Buscar"),
        FilterDefinition("department", FilterKind.EQUALS, ("department",), label="Departamento"),
        FilterDefinition(
            "status", FilterKind.EQUALS, ("status",),
            label="Estado",
            options=_status_options(EmployeeStatus),
        ),
    ),
    export_variants=(
        ExportVariant("simple", "Exportación simple", _EMPLOYEE_SIMPLE),
        ExportVariant("completo", "Exportación completa", (
            column("ID", "id"),
            *_EMPLOYEE_SIMPLE,
            column("Dirección", "address"),
            column("Contacto de Emergencia", "emergencyContact"),
            column("Educación", "education"),
            column("Habilidades", "skills", join_list),
        )),
    ),
    import_synonyms={
        "fullName": ("nombre", "name"),
        "email": ("email", "correo"),
        "phone": ("telefono", "phone"),
        "position": ("puesto", "position"),
        "department": ("departamento", "department"),
        "salary": ("salario", "salary"),
    },
    required_fields=("fullName", "email"),
    dependent_keys=("departments", "hr-dashboard"),
    import_path="/api/hr/employees/import",
)


# ===================
# VOLUNTEERS
# ===================

VOLUNTEERS = ResourceConfig(
    key="volunteers",
    label="voluntarios",
    path="/api/volunteers",
    record_model=VolunteerRecord,
    create_model=VolunteerCreate,
    page_size=10,
    filters=(
        FilterDefinition("search", FilterKind.TEXT, ("fullName", "email", "phoneNumber"), label="Buscar"),
        FilterDefinition(
            "status", FilterKind.EQUALS, ("status",),
            label="Estado",
            options=_status_options(VolunteerStatus),
        ),
    ),
    export_variants=(
        ExportVariant("default", "Voluntarios", (
            column("ID", "id"),
            column("Nombre", "fullName", example="María López"),
            column("Email", "email", _default("N/A"), example="maria@correo.com"),
            column("Teléfono", "phoneNumber", _default("N/A"), example="555-0199"),
            column("Estado", "status", status_label),
            column("Horas Acumuladas", "totalHours", _default("0")),
            column("Fecha Registro", "createdAt", format_date),
        )),
    ),
    import_synonyms={
        "fullName": ("nombre", "name"),
        "email": ("email", "correo"),
        "phoneNumber": ("telefono", "phone", "celular"),
    },
    required_fields=("fullName",),
    dependent_keys=("volunteer-dashboard",),
)


# ===================
# ACCOUNTING
# ===================

JOURNAL_ENTRIES = ResourceConfig(
    key="journal-entries",
    label="asientos-contables",
    path="/api/accounting/journal-entries",
    record_model=JournalEntryRecord,
    create_model=JournalEntryCreate,
    page_size=10,
    filters=(
        FilterDefinition("search", FilterKind.TEXT, ("number", "description", "reference"), label="Buscar"),
        FilterDefinition(
            "status", FilterKind.EQUALS, ("status",),
            label="Estado",
            options=_status_options(JournalEntryStatus),
        ),
        FilterDefinition("type", FilterKind.EQUALS, ("type",), label="Tipo"),
        FilterDefinition("date", FilterKind.DATE_RANGE, ("date",), label="Fecha"),
    ),
    export_variants=(
        ExportVariant("default", "Asientos contables", (
            column("Número", "number"),
            column("Fecha", "date", format_date, example="2025-07-14"),
            column("Descripción", "description", example="Pago de nómina"),
            column("Referencia", "reference", example="NOM-07"),
            column("Tipo", "type", status_label),
            column("Debe", "totalDebit", format_currency),
            column("Haber", "totalCredit", format_currency),
            column("Estado", "status", status_label),
        )),
    ),
    import_synonyms={
        "date": ("fecha", "date"),
        "description": ("descripcion", "concepto", "description"),
        "reference": ("referencia", "reference"),
    },
    required_fields=("date", "description"),
    dependent_keys=("trial-balance", "accounting-dashboard"),
    sort=SortSpec("date", descending=True),
)


# ===================
# FINANCE
# ===================

_FINANCE_FILTERS = (
    FilterDefinition("search", FilterKind.TEXT, ("concept", "description", "referenceNumber"), label="Buscar"),
    FilterDefinition("category", FilterKind.EQUALS, ("categoryId",), label="Categoría"),
    FilterDefinition("park", FilterKind.EQUALS, ("parkId",), label="Parque"),
    FilterDefinition("year", FilterKind.DATE, ("date",), label="Año", granularity=DateGranularity.YEAR),
    FilterDefinition("month", FilterKind.DATE, ("date",), label="Mes", granularity=DateGranularity.MONTH),
)

_FINANCE_SYNONYMS = {
    "concept": ("concepto", "concept"),
    "amount": ("monto", "importe", "amount"),
    "date": ("fecha", "date"),
    "parkId": ("parque", "park"),
    "categoryId": ("categoria", "category"),
    "description": ("descripcion", "description"),
    "referenceNumber": ("referencia", "reference"),
}

INCOMES = ResourceConfig(
    key="incomes",
    label="ingresos",
    path="/api/actual-incomes",
    record_model=IncomeRecord,
    create_model=IncomeCreate,
    page_size=10,
    filters=_FINANCE_FILTERS,
    export_variants=(
        ExportVariant("default", "Ingresos", (
            column("Concepto", "concept", example="Renta de kiosco"),
            column("Monto", "amount", format_amount, example="1200.50"),
            column("Fecha", "date", format_date, example="2025-07-14"),
            column("Parque", "parkId", example="1"),
            column("Categoría", "categoryId", example="2"),
            column("Referencia", "referenceNumber"),
        )),
    ),
    import_synonyms=_FINANCE_SYNONYMS,
    required_fields=("concept", "amount", "date", "parkId"),
    dependent_keys=("cash-flow-matrix", "finance-dashboard"),
    sort=SortSpec("date", descending=True),
)

EXPENSES = ResourceConfig(
    key="expenses",
    label="egresos",
    path="/api/actual-expenses",
    record_model=ExpenseRecord,
    create_model=ExpenseCreate,
    page_size=10,
    filters=_FINANCE_FILTERS + (
        FilterDefinition("paid", FilterKind.EQUALS, ("isPaid",), label="Pagado"),
    ),
    export_variants=(
        ExportVariant("default", "Egresos", (
            column("Concepto", "concept", example="Pago de luz"),
            column("Monto", "amount", format_amount, example="1200.50"),
            column("Fecha", "date", format_date, example="2025-07-14"),
            column("Parque", "parkId", example="1"),
            column("Categoría", "categoryId", example="3"),
            column("Proveedor", "supplier", example="CFE"),
            column("Factura", "invoiceNumber"),
            column("Pagado", "isPaid", yes_no),
        )),
    ),
    import_synonyms={
        **_FINANCE_SYNONYMS,
        "supplier": ("proveedor", "supplier"),
        "invoiceNumber": ("factura", "invoice"),
    },
    required_fields=("concept", "amount", "date", "parkId"),
    dependent_keys=("cash-flow-matrix", "finance-dashboard"),
    sort=SortSpec("date", descending=True),
)


# ===================
# TREES
# ===================

TREES = ResourceConfig(
    key="trees",
    label="arboles",
    path="/api/trees",
    record_model=TreeRecord,
    create_model=TreeCreate,
    page_size=15,
    filters=(
        FilterDefinition("search", FilterKind.TEXT, ("code", "speciesName", "scientificName"), label="Buscar"),
        FilterDefinition("park", FilterKind.EQUALS, ("parkId",), label="Parque"),
        FilterDefinition("species", FilterKind.EQUALS, ("speciesId",), label="Especie"),
        FilterDefinition(
            "health", FilterKind.EQUALS, ("healthStatus",),
            label="Salud",
            options=tuple((h.value, h.value) for h in TreeHealth),
        ),
    ),
    export_variants=(
        ExportVariant("default", "Inventario de árboles", (
            column("Código", "code", example="ARB-0001"),
            column("Especie", "speciesName"),
            column("Especie ID", "speciesId", example="4"),
            column("Parque", "parkName"),
            column("Parque ID", "parkId", example="1"),
            column("Fecha de Plantación", "plantingDate", format_date, example="2020-03-21"),
            column("Altura (m)", "height", example="4.5"),
            column("Diámetro (cm)", "diameter", example="30"),
            column("Salud", "healthStatus", example="Bueno"),
        )),
    ),
    import_synonyms={
        "code": ("codigo", "code"),
        "speciesId": ("especie id", "id especie", "species id"),
        "parkId": ("parque id", "id parque", "park id"),
        "plantingDate": ("plantacion", "planting"),
        "height": ("altura", "height"),
        "diameter": ("diametro", "diameter"),
        "healthStatus": ("salud", "health"),
    },
    required_fields=("code", "speciesId", "parkId"),
    dependent_keys=("tree-species", "tree-dashboard"),
    import_path="/api/trees/import",
)


RESOURCES: dict[str, ResourceConfig] = {
    config.key: config
    for config in (EMPLOYEES, VOLUNTEERS, JOURNAL_ENTRIES, INCOMES, EXPENSES, TREES)
}


def get_resource(key: str) -> ResourceConfig:
    """
    Look up a list page by key.

    Raises:
        ResourceNotFoundError: If no page is registered under key
    """
    config = RESOURCES.get(key)
    if config is None:
        raise ResourceNotFoundError(key)
    return config


def list_resources() -> list[ResourceConfig]:
    return list(RESOURCES.values())
