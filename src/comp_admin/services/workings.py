"""Payout workings pivot.

Turns the flat per-employee, per-metric detail rows of a payout run into a
wide table: one row per employee, one column group per (component type,
metric), one sub-column per field. The API view and the spreadsheet export
both go through `build_pivot`, so metric discovery, ordering and grand
totals are computed in exactly one place.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import NotFoundError
from comp_admin.models import Employee, PayoutDealDetail, PayoutMetricDetail, PayoutRun

ZERO = Decimal("0")
HUNDRED = Decimal("100")

GROUP_ORDER: dict[str, int] = {
    "variable_pay": 0,
    "commission": 1,
    "nrr": 2,
    "spiff": 3,
    "deal_team_spiff": 4,
    "collection_release": 5,
    "year_end_release": 6,
    "clawback": 7,
}
UNKNOWN_GROUP = 99


# =============================================================================
# Inputs
# =============================================================================


@dataclass
class MetricDetail:
    """One computed workings row."""

    component_type: str
    metric_name: str
    plan_name: str | None = None
    target_bonus_usd: Decimal | None = None
    allocated_ote_usd: Decimal | None = None
    target_usd: Decimal | None = None
    actual_usd: Decimal | None = None
    achievement_pct: Decimal | None = None
    multiplier: Decimal | None = None
    commission_rate_pct: Decimal | None = None
    ytd_eligible_usd: Decimal | None = None
    prior_paid_usd: Decimal | None = None
    this_month_usd: Decimal | None = None
    booking_usd: Decimal | None = None
    collection_usd: Decimal | None = None
    year_end_usd: Decimal | None = None
    notes: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.component_type, self.metric_name

    @classmethod
    def from_row(cls, row: PayoutMetricDetail) -> MetricDetail:
        return cls(
            component_type=row.component_type,
            metric_name=row.metric_name,
            plan_name=row.plan_name,
            target_bonus_usd=row.target_bonus_usd,
            allocated_ote_usd=row.allocated_ote_usd,
            target_usd=row.target_usd,
            actual_usd=row.actual_usd,
            achievement_pct=row.achievement_pct,
            multiplier=row.multiplier,
            commission_rate_pct=row.commission_rate_pct,
            ytd_eligible_usd=row.ytd_eligible_usd,
            prior_paid_usd=row.prior_paid_usd,
            this_month_usd=row.this_month_usd,
            booking_usd=row.booking_usd,
            collection_usd=row.collection_usd,
            year_end_usd=row.year_end_usd,
            notes=row.notes,
        )


@dataclass
class EmployeeWorkings:
    """All detail rows for one employee in a run."""

    employee_id: UUID | str
    employee_code: str
    employee_name: str
    local_currency: str = "USD"
    plan_name: str | None = None
    target_bonus_usd: Decimal | None = None
    details: list[MetricDetail] = field(default_factory=list)


def group_details(
    rows: Iterable[tuple[PayoutMetricDetail, Employee]],
) -> list[EmployeeWorkings]:
    """Group (detail, employee) pairs per employee, sorted by employee name.

    The employee's target bonus is taken from the detail rows, falling back
    to the employee master.
    """
    by_employee: dict[UUID, EmployeeWorkings] = {}
    for detail, employee in rows:
        workings = by_employee.get(employee.id)
        if workings is None:
            workings = by_employee[employee.id] = EmployeeWorkings(
                employee_id=employee.id,
                employee_code=employee.employee_id,
                employee_name=employee.full_name,
                local_currency=employee.local_currency or "USD",
                target_bonus_usd=employee.target_bonus_usd,
            )
        item = MetricDetail.from_row(detail)
        workings.details.append(item)
        if workings.plan_name is None and item.plan_name:
            workings.plan_name = item.plan_name
        if item.target_bonus_usd:
            workings.target_bonus_usd = item.target_bonus_usd

    return sorted(by_employee.values(), key=lambda e: (e.employee_name.lower(), e.employee_code))


# =============================================================================
# Column templates
# =============================================================================


@dataclass(frozen=True)
class SubColumn:
    """One field shown under a metric heading."""

    key: str
    label: str
    kind: str  # currency, pct, ote_pct, multiplier, rate


TGT = SubColumn("tgt", "Target", "currency")
ACT = SubColumn("act", "Actuals", "currency")
ACT_TCV = SubColumn("act", "Actuals (TCV)", "currency")
ACH = SubColumn("ach", "Ach %", "pct")
OTE = SubColumn("ote", "OTE %", "ote_pct")
ALLOC = SubColumn("alloc", "Allocated OTE", "currency")
MULT = SubColumn("mult", "Multiplier", "multiplier")
RATE = SubColumn("rate", "Commission %", "rate")
YTD = SubColumn("ytd", "YTD Eligible", "currency")
PRIOR = SubColumn("prior", "Elig Last Mo", "currency")
INCR = SubColumn("incr", "Incr Eligible", "currency")
BKG = SubColumn("bkg", "Booking", "currency")
COLL = SubColumn("coll", "Collection", "currency")
YE = SubColumn("ye", "Year-End", "currency")

VP_SUB_COLUMNS = (TGT, ACT, ACH, OTE, ALLOC, MULT, YTD, PRIOR, INCR, BKG, COLL, YE)
COMMISSION_SUB_COLUMNS = (RATE, ACT_TCV, YTD, PRIOR, INCR, BKG, COLL, YE)
SPIFF_SUB_COLUMNS = (OTE, ALLOC, ACT, YTD, PRIOR, INCR, BKG, COLL, YE)

GRAND_TOTAL_LABELS = ("Incr Eligible", "Payable This Month", "Collection Held", "Year-End Held")


def sub_columns_for(component_type: str) -> tuple[SubColumn, ...]:
    if component_type == "commission":
        return COMMISSION_SUB_COLUMNS
    if component_type in ("spiff", "deal_team_spiff"):
        return SPIFF_SUB_COLUMNS
    return VP_SUB_COLUMNS


@dataclass(frozen=True)
class MetricColumn:
    """Column group for one (component type, metric name)."""

    component_type: str
    metric_name: str
    sub_columns: tuple[SubColumn, ...]

    @property
    def key(self) -> tuple[str, str]:
        return self.component_type, self.metric_name


def discover_metrics(employees: Sequence[EmployeeWorkings]) -> list[MetricColumn]:
    """Distinct metrics across all employees in display order.

    Ordered by component precedence (unknown types last), then metric name.
    """
    seen: dict[tuple[str, str], MetricColumn] = {}
    for employee in employees:
        for detail in employee.details:
            if detail.key not in seen:
                seen[detail.key] = MetricColumn(
                    detail.component_type,
                    detail.metric_name,
                    sub_columns_for(detail.component_type),
                )
    return sorted(
        seen.values(),
        key=lambda m: (GROUP_ORDER.get(m.component_type, UNKNOWN_GROUP), m.metric_name),
    )


# =============================================================================
# Values
# =============================================================================


def ote_pct(allocated_ote_usd: Decimal | None, target_bonus_usd: Decimal | None) -> Decimal | None:
    """Allocated OTE as a percentage of the employee's target bonus."""
    if not allocated_ote_usd or not target_bonus_usd:
        return None
    return (allocated_ote_usd / target_bonus_usd * HUNDRED).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def cell_value(
    detail: MetricDetail | None, column: SubColumn, target_bonus_usd: Decimal | None
) -> Decimal | None:
    if detail is None:
        return None
    if column.key == "ote":
        return ote_pct(detail.allocated_ote_usd, target_bonus_usd)
    return {
        "tgt": detail.target_usd,
        "act": detail.actual_usd,
        "ach": detail.achievement_pct,
        "alloc": detail.allocated_ote_usd,
        "mult": detail.multiplier,
        "rate": detail.commission_rate_pct,
        "ytd": detail.ytd_eligible_usd,
        "prior": detail.prior_paid_usd,
        "incr": detail.this_month_usd,
        "bkg": detail.booking_usd,
        "coll": detail.collection_usd,
        "ye": detail.year_end_usd,
    }[column.key]


def _sum(values: Iterable[Decimal | None]) -> Decimal:
    return sum((v or ZERO for v in values), ZERO)


@dataclass(frozen=True)
class GrandTotals:
    """Per-employee totals across every metric."""

    total_this_month: Decimal
    payable_this_month: Decimal
    collection_held: Decimal
    year_end_held: Decimal

    def as_tuple(self) -> tuple[Decimal, Decimal, Decimal, Decimal]:
        return (
            self.total_this_month,
            self.payable_this_month,
            self.collection_held,
            self.year_end_held,
        )


def grand_totals(details: Sequence[MetricDetail]) -> GrandTotals:
    """Totals for one employee.

    Payable this month is the booking portion plus this month's collection
    and year-end releases, less the magnitude of any clawback.
    """
    def this_month(component_type: str) -> list[Decimal | None]:
        return [d.this_month_usd for d in details if d.component_type == component_type]

    payable = (
        _sum(d.booking_usd for d in details)
        + _sum(this_month("collection_release"))
        + _sum(this_month("year_end_release"))
        - _sum(abs(v) if v is not None else None for v in this_month("clawback"))
    )
    return GrandTotals(
        total_this_month=_sum(d.this_month_usd for d in details),
        payable_this_month=payable,
        collection_held=_sum(d.collection_usd for d in details),
        year_end_held=_sum(d.year_end_usd for d in details),
    )


# =============================================================================
# Pivot
# =============================================================================


@dataclass
class PivotRow:
    """One employee's row: a value per sub-column of every metric."""

    employee: EmployeeWorkings
    cells: list[Decimal | None]
    totals: GrandTotals


@dataclass
class WorkingsPivot:
    metrics: list[MetricColumn]
    rows: list[PivotRow]

    @property
    def flat_columns(self) -> list[tuple[MetricColumn, SubColumn]]:
        return [(m, sc) for m in self.metrics for sc in m.sub_columns]

    def formatted_rows(self) -> list[list[str]]:
        """Display strings, with '-' for every missing value."""
        columns = self.flat_columns
        out = []
        for row in self.rows:
            out.append(
                [
                    row.employee.employee_code,
                    row.employee.employee_name,
                    row.employee.plan_name or "-",
                    row.employee.local_currency,
                    *(format_value(sc.kind, v) for (_, sc), v in zip(columns, row.cells)),
                    *(format_value("currency", v) for v in row.totals.as_tuple()),
                ]
            )
        return out


LEADING_LABELS = ("Emp Code", "Emp Name", "Plan", "Ccy")


def build_pivot(employees: Sequence[EmployeeWorkings]) -> WorkingsPivot:
    """Pivot employees' details into one row each.

    Every row carries cells for every discovered metric; an employee
    without a metric gets None for all of that metric's sub-columns.
    """
    metrics = discover_metrics(employees)
    rows: list[PivotRow] = []
    for employee in employees:
        by_key = {d.key: d for d in employee.details}
        cells: list[Decimal | None] = []
        for metric in metrics:
            detail = by_key.get(metric.key)
            cells.extend(
                cell_value(detail, sc, employee.target_bonus_usd) for sc in metric.sub_columns
            )
        rows.append(PivotRow(employee=employee, cells=cells, totals=grand_totals(employee.details)))
    return WorkingsPivot(metrics=metrics, rows=rows)


# =============================================================================
# Formatting
# =============================================================================


def format_currency(value: Decimal | None) -> str:
    if value is None:
        return "-"
    whole = abs(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    text = f"${whole:,.0f}"
    return f"-{text}" if value < 0 and whole != 0 else text


def format_value(kind: str, value: Decimal | None) -> str:
    if value is None:
        return "-"
    if kind == "currency":
        return format_currency(value)
    if kind == "pct":
        return f"{value:.4f}%"
    if kind in ("ote_pct", "rate"):
        return f"{value:.2f}%"
    if kind == "multiplier":
        return "-" if value == 0 else f"{value:.2f}x"
    return str(value)


# =============================================================================
# Employee summaries
# =============================================================================


@dataclass(frozen=True)
class EmployeeSummary:
    """Per-employee payout summary derived from the same detail rows."""

    employee_code: str
    employee_name: str
    plan_name: str | None
    local_currency: str
    variable_pay_usd: Decimal
    commissions_usd: Decimal
    spiff_usd: Decimal
    deal_team_spiff_usd: Decimal
    total_eligible_usd: Decimal
    booking_usd: Decimal
    collection_usd: Decimal
    year_end_usd: Decimal
    collection_releases_usd: Decimal
    year_end_releases_usd: Decimal
    clawbacks_usd: Decimal
    payable_this_month_usd: Decimal


ELIGIBLE_TYPES = ("variable_pay", "nrr", "commission", "spiff", "deal_team_spiff")


def summarize_employees(employees: Sequence[EmployeeWorkings]) -> list[EmployeeSummary]:
    summaries = []
    for employee in employees:
        by_type: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for d in employee.details:
            by_type[d.component_type] += d.this_month_usd or ZERO
        earning = [d for d in employee.details if d.component_type in ELIGIBLE_TYPES]
        totals = grand_totals(employee.details)
        summaries.append(
            EmployeeSummary(
                employee_code=employee.employee_code,
                employee_name=employee.employee_name,
                plan_name=employee.plan_name,
                local_currency=employee.local_currency,
                variable_pay_usd=by_type["variable_pay"] + by_type["nrr"],
                commissions_usd=by_type["commission"],
                spiff_usd=by_type["spiff"],
                deal_team_spiff_usd=by_type["deal_team_spiff"],
                total_eligible_usd=sum((by_type[t] for t in ELIGIBLE_TYPES), ZERO),
                booking_usd=_sum(d.booking_usd for d in earning),
                collection_usd=_sum(d.collection_usd for d in earning),
                year_end_usd=_sum(d.year_end_usd for d in earning),
                collection_releases_usd=by_type["collection_release"],
                year_end_releases_usd=by_type["year_end_release"],
                clawbacks_usd=abs(by_type["clawback"]),
                payable_this_month_usd=totals.payable_this_month,
            )
        )
    return summaries


# =============================================================================
# Loading
# =============================================================================


class WorkingsService:
    """Loads a payout run's workings from the database."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, run_id: UUID) -> list[EmployeeWorkings]:
        if await self.session.get(PayoutRun, run_id) is None:
            raise NotFoundError("Payout run", run_id)
        result = await self.session.execute(
            select(PayoutMetricDetail, Employee)
            .join(Employee, PayoutMetricDetail.employee_id == Employee.id)
            .where(PayoutMetricDetail.payout_run_id == run_id)
        )
        return group_details(result.tuples().all())

    async def pivot(self, run_id: UUID) -> WorkingsPivot:
        return build_pivot(await self.load(run_id))

    async def deal_details(self, run_id: UUID) -> list[tuple[PayoutDealDetail, Employee]]:
        result = await self.session.execute(
            select(PayoutDealDetail, Employee)
            .join(Employee, PayoutDealDetail.employee_id == Employee.id)
            .where(PayoutDealDetail.payout_run_id == run_id)
            .order_by(Employee.full_name, PayoutDealDetail.project_id)
        )
        return list(result.tuples().all())
