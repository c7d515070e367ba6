"""Bulk CSV import of employees (with optional plan targets) and performance targets.

Each data row is applied in its own savepoint. A failing row is recorded
as ``Row <n>: <message>`` (n is the 1-based data row) and the import
moves on; one bad row never aborts the file.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import Employee
from comp_admin.services.employee_service import EmployeeRecord, EmployeeService
from comp_admin.services.plan_service import PlanService
from comp_admin.services.target_service import QuarterlyTargets, TargetService

logger = logging.getLogger(__name__)

EMPLOYEE_COLUMNS = (
    "employee_id",
    "full_name",
    "email",
    "designation",
    "country",
    "city",
    "date_of_hire",
    "departure_date",
    "department",
    "region",
    "group_name",
    "business_unit",
    "function_area",
    "sales_function",
    "local_currency",
    "manager_employee_id",
    "is_active",
)

TARGET_COLUMNS = (
    "plan_name",
    "effective_start_date",
    "effective_end_date",
    "target_value_annual",
    "currency",
    "target_bonus_percent",
    "tfp_local_currency",
    "ote_local_currency",
    "tfp_usd",
    "target_bonus_usd",
    "ote_usd",
)

PERFORMANCE_TARGET_COLUMNS = (
    "employee_id",
    "metric_type",
    "q1_target_usd",
    "q2_target_usd",
    "q3_target_usd",
    "q4_target_usd",
)

_TARGET_AMOUNTS = (
    "target_bonus_percent",
    "tfp_local_currency",
    "ote_local_currency",
    "tfp_usd",
    "target_bonus_usd",
    "ote_usd",
)

# Employee fields the import file never carries
_EMPLOYEE_FIELDS_NOT_IMPORTED = ("target_bonus_percent", "target_bonus_usd")


# =============================================================================
# Parsing
# =============================================================================


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse delimited text into row dicts keyed by lower-cased header.

    Blank lines are skipped, cells are trimmed, and short rows are padded
    with empty strings.
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [r for r in reader if any(cell.strip() for cell in r)]
    if not rows:
        return []

    headers = [h.strip().lower() for h in rows[0]]
    parsed: list[dict[str, str]] = []
    for raw in rows[1:]:
        cells = [c.strip() for c in raw] + [""] * (len(headers) - len(raw))
        parsed.append(dict(zip(headers, cells)))
    return parsed


def _optional(row: dict[str, str], key: str) -> str | None:
    return row.get(key, "").strip() or None


def _parse_date(row: dict[str, str], key: str) -> date | None:
    value = _optional(row, key)
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Missing/invalid {key}") from None


def _parse_amount(row: dict[str, str], key: str) -> Decimal | None:
    value = _optional(row, key)
    if value is None:
        return None
    try:
        amount = Decimal(value.replace(",", ""))
    except InvalidOperation:
        raise ValidationError(f"Missing/invalid {key}") from None
    if not amount.is_finite():
        raise ValidationError(f"Missing/invalid {key}")
    return amount


def build_employee_record(row: dict[str, str]) -> EmployeeRecord:
    """Map an import row onto an employee record.

    Optional blanks become None, a blank currency means USD, and the
    employee is inactive only when is_active reads exactly "false".
    """
    for key in ("employee_id", "full_name", "email"):
        if not _optional(row, key):
            raise ValidationError(f"Missing/invalid {key}")

    return EmployeeRecord(
        employee_id=row["employee_id"].strip(),
        full_name=row["full_name"].strip(),
        email=row["email"].strip(),
        designation=_optional(row, "designation"),
        country=_optional(row, "country"),
        city=_optional(row, "city"),
        date_of_hire=_parse_date(row, "date_of_hire"),
        departure_date=_parse_date(row, "departure_date"),
        department=_optional(row, "department"),
        region=_optional(row, "region"),
        group_name=_optional(row, "group_name"),
        business_unit=_optional(row, "business_unit"),
        function_area=_optional(row, "function_area"),
        sales_function=_optional(row, "sales_function"),
        local_currency=(_optional(row, "local_currency") or "USD").upper(),
        manager_employee_id=_optional(row, "manager_employee_id"),
        is_active=row.get("is_active", "").strip().lower() != "false",
    )


def _template(columns: tuple[str, ...], sample: tuple[str, ...]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(columns)
    writer.writerow(sample)
    return output.getvalue()


def employee_template_csv() -> str:
    """Downloadable header plus one example row for the employee import."""
    return _template(
        EMPLOYEE_COLUMNS + TARGET_COLUMNS,
        (
            "EMP001", "Jane Doe", "jane.doe@example.com", "Account Executive",
            "United States", "New York", "2024-01-15", "", "Sales", "NA",
            "Enterprise", "Software", "Sales", "Hunter", "USD", "EMP000", "true",
            "Enterprise AE Plan", "2025-01-01", "2025-12-31", "1000000", "USD",
            "20", "150000", "180000", "150000", "30000", "180000",
        ),
    )


def performance_target_template_csv() -> str:
    """Downloadable header plus one example row for the target import."""
    return _template(
        PERFORMANCE_TARGET_COLUMNS,
        ("EMP001", "New Software Booking ARR", "250000", "250000", "250000", "250000"),
    )


# =============================================================================
# Employee import
# =============================================================================


@dataclass
class ImportResult:
    """Outcome of a bulk import."""

    created: int = 0
    updated: int = 0
    targets_upserted: int = 0
    targets_skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated + len(self.errors)


class EmployeeImporter:
    """Creates or updates employees from CSV, then their plan targets."""

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()
        self.employees = EmployeeService(session, self.events)
        self.plans = PlanService(session, self.events)
        self.targets = TargetService(session, self.events)

    async def run(self, text: str) -> ImportResult:
        rows = parse_csv(text)
        result = ImportResult()
        logger.info("Importing %d employee row(s)", len(rows))

        for index, row in enumerate(rows, start=1):
            try:
                async with self.session.begin_nested():
                    created, target_written = await self._apply_row(row)
            except Exception as exc:
                message = f"Row {index}: {exc}"
                logger.warning("Employee import failed: %s", message)
                result.errors.append(message)
                continue

            if created:
                result.created += 1
            else:
                result.updated += 1
            if target_written is True:
                result.targets_upserted += 1
            elif target_written is False:
                result.targets_skipped += 1

        if result.created or result.updated:
            self.events.emit(EntityChanged.of(EntityType.EMPLOYEE, ChangeKind.UPDATED))
        if result.targets_upserted:
            self.events.emit(EntityChanged.of(EntityType.USER_TARGET, ChangeKind.UPDATED))

        logger.info(
            "Employee import finished: %d created, %d updated, %d error(s)",
            result.created,
            result.updated,
            len(result.errors),
        )
        return result

    async def _apply_row(self, row: dict[str, str]) -> tuple[bool, bool | None]:
        """Apply one row. Returns (employee created, target written or None if absent)."""
        record = build_employee_record(row)
        _, created = await self.employees.upsert_employee(
            record, publish=False, preserve=_EMPLOYEE_FIELDS_NOT_IMPORTED
        )

        plan_name = _optional(row, "plan_name")
        start = _parse_date(row, "effective_start_date")
        if not plan_name or start is None:
            return created, None

        plan = await self.plans.find_plan_by_name(plan_name, start.year)
        profile = await self.employees.get_profile_by_email(record.email)
        if plan is None or profile is None:
            logger.warning(
                "Skipping target for %s: %s not found",
                record.employee_id,
                "plan" if plan is None else "login profile",
            )
            return created, False

        await self.targets.assign_plan(
            profile.id,
            plan.id,
            start,
            publish=False,
            effective_end_date=_parse_date(row, "effective_end_date"),
            target_value_annual=_parse_amount(row, "target_value_annual") or Decimal("0"),
            currency=(_optional(row, "currency") or "USD").upper(),
            **{key: _parse_amount(row, key) for key in _TARGET_AMOUNTS},
        )
        return created, True


# =============================================================================
# Performance target import
# =============================================================================


@dataclass
class ParsedTargetRow:
    """One validated performance target row."""

    row_number: int
    employee_id: str
    metric_type: str
    quarters: QuarterlyTargets
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


class PerformanceTargetImporter:
    """Validates and upserts quarterly performance targets from CSV."""

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()
        self.targets = TargetService(session, self.events)

    async def parse(self, text: str) -> list[ParsedTargetRow]:
        """Validate every row without writing anything."""
        known = set(
            (await self.session.execute(select(Employee.employee_id))).scalars().all()
        )
        parsed: list[ParsedTargetRow] = []

        for index, row in enumerate(parse_csv(text), start=1):
            employee_id = row.get("employee_id", "").strip()
            metric_type = row.get("metric_type", "").strip()
            quarters = QuarterlyTargets(
                *(self._quarter(row, f"q{q}_target_usd") for q in range(1, 5))
            )
            parsed.append(
                ParsedTargetRow(
                    row_number=index,
                    employee_id=employee_id,
                    metric_type=metric_type,
                    quarters=quarters,
                    error=self._row_error(employee_id, metric_type, quarters, known),
                )
            )
        return parsed

    @staticmethod
    def _quarter(row: dict[str, str], key: str) -> Decimal:
        try:
            return _parse_amount(row, key) or Decimal("0")
        except ValidationError:
            return Decimal("0")

    @staticmethod
    def _row_error(
        employee_id: str,
        metric_type: str,
        quarters: QuarterlyTargets,
        known: set[str],
    ) -> str | None:
        if not employee_id:
            return "Missing employee_id"
        if employee_id not in known:
            return f'Employee "{employee_id}" not found'
        if not metric_type:
            return "Missing metric_type"
        try:
            quarters.validate()
        except ValidationError as exc:
            return str(exc)
        return None

    async def run(self, text: str, effective_year: int) -> ImportResult:
        result = ImportResult()

        for row in await self.parse(text):
            if not row.is_valid:
                result.errors.append(f"Row {row.row_number}: {row.error}")
                continue
            try:
                async with self.session.begin_nested():
                    _, created = await self.targets.upsert_performance_target(
                        row.employee_id,
                        row.metric_type,
                        effective_year,
                        row.quarters,
                        publish=False,
                    )
            except Exception as exc:
                message = f"Row {row.row_number}: {exc}"
                logger.warning("Performance target import failed: %s", message)
                result.errors.append(message)
                continue

            if created:
                result.created += 1
            else:
                result.updated += 1

        if result.created or result.updated:
            self.events.emit(EntityChanged.of(EntityType.PERFORMANCE_TARGET, ChangeKind.UPDATED))
        return result
