"""CSV and XLSX export of payout runs."""

from __future__ import annotations

import csv
import io
import logging
from decimal import Decimal
from io import BytesIO
from typing import Any, Iterable, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from comp_admin.models import Employee, PayoutDealDetail, PayoutRun
from comp_admin.services.workings import (
    GRAND_TOTAL_LABELS,
    LEADING_LABELS,
    EmployeeSummary,
    WorkingsPivot,
)

logger = logging.getLogger(__name__)

MAX_SHEET_NAME = 31
MAX_COLUMN_WIDTH = 50

CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SUMMARY_HEADER = (
    "Month",
    "Status",
    "Total Eligible (USD)",
    "Variable Pay (USD)",
    "Commissions (USD)",
    "Payable This Month (USD)",
    "Clawbacks (USD)",
    "Employee Count",
    "Calculated At",
)

EMPLOYEE_HEADER = (
    "Employee Code",
    "Employee Name",
    "Plan",
    "Currency",
    "VP (USD)",
    "Comm (USD)",
    "SPIFF (USD)",
    "DT SPIFF (USD)",
    "Total Eligible (USD)",
    "Upon Booking (USD)",
    "Upon Collection (USD)",
    "At Year End (USD)",
    "Collection Releases (USD)",
    "Year-End Releases (USD)",
    "Clawbacks (USD)",
    "Payable This Month (USD)",
)

DEAL_HEADER = (
    "Employee Code",
    "Employee Name",
    "Project ID",
    "Customer",
    "Component",
    "Commission Type",
    "Deal Value (USD)",
    "GP Margin %",
    "Commission %",
    "Eligible",
    "Exclusion Reason",
    "Gross Commission (USD)",
    "Booking (USD)",
    "Collection (USD)",
    "Year-End (USD)",
)


def export_filename(run: PayoutRun, extension: str) -> str:
    return f"payout-run-{run.month_year}.{extension}"


# =============================================================================
# CSV
# =============================================================================


def render_csv(header: Sequence[Any], rows: Iterable[Sequence[Any]]) -> str:
    """Comma-separated text with every field quoted."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return output.getvalue()


def employee_row(summary: EmployeeSummary) -> list[Any]:
    return [
        summary.employee_code,
        summary.employee_name,
        summary.plan_name or "",
        summary.local_currency,
        summary.variable_pay_usd,
        summary.commissions_usd,
        summary.spiff_usd,
        summary.deal_team_spiff_usd,
        summary.total_eligible_usd,
        summary.booking_usd,
        summary.collection_usd,
        summary.year_end_usd,
        summary.collection_releases_usd,
        summary.year_end_releases_usd,
        summary.clawbacks_usd,
        summary.payable_this_month_usd,
    ]


def payout_run_csv(summaries: Sequence[EmployeeSummary]) -> str:
    return render_csv(EMPLOYEE_HEADER, (employee_row(s) for s in summaries))


def summary_row(run: PayoutRun, summaries: Sequence[EmployeeSummary]) -> list[Any]:
    def total(attr: str) -> Decimal:
        return sum((getattr(s, attr) for s in summaries), Decimal("0"))

    return [
        run.month_year,
        run.run_status,
        total("total_eligible_usd"),
        total("variable_pay_usd"),
        total("commissions_usd"),
        total("payable_this_month_usd"),
        total("clawbacks_usd"),
        len(summaries),
        run.calculated_at.isoformat() if run.calculated_at else "",
    ]


# =============================================================================
# XLSX
# =============================================================================


def sheet_title(name: str) -> str:
    """Excel limits sheet names to 31 characters."""
    return name[:MAX_SHEET_NAME]


class PayoutRunWorkbook:
    """Builds the multi-sheet payout run workbook.

    Sheets: Summary (always), All Employees, one per local currency,
    Detailed Workings and Deal Workings. Data sheets with no rows are left
    out.
    """

    def __init__(self) -> None:
        self.wb = Workbook()
        self._init_styles()

    def _init_styles(self) -> None:
        self.header_fill = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")
        self.group_fill = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")
        self.header_font = Font(bold=True, color="FFFFFF", size=11)
        self.group_font = Font(bold=True, size=11)
        thin = Side(style="thin", color="000000")
        self.cell_border = Border(left=thin, right=thin, top=thin, bottom=thin)
        self.center_align = Alignment(horizontal="center", vertical="center")

    # =========================================================================
    # Sheets
    # =========================================================================

    def build(
        self,
        run: PayoutRun,
        summaries: Sequence[EmployeeSummary],
        pivot: WorkingsPivot,
        deal_details: Sequence[tuple[PayoutDealDetail, Employee]] = (),
    ) -> BytesIO:
        summary = self.wb.active
        summary.title = "Summary"
        self._write_table(summary, SUMMARY_HEADER, [summary_row(run, summaries)])

        if summaries:
            self._write_table(
                self.wb.create_sheet("All Employees"),
                EMPLOYEE_HEADER,
                [employee_row(s) for s in summaries],
            )
            for currency in sorted({s.local_currency for s in summaries}):
                rows = [employee_row(s) for s in summaries if s.local_currency == currency]
                self._write_table(
                    self.wb.create_sheet(sheet_title(f"{currency} Employees")),
                    EMPLOYEE_HEADER,
                    rows,
                )

        if pivot.rows:
            self._write_workings(self.wb.create_sheet("Detailed Workings"), pivot)

        if deal_details:
            self._write_table(
                self.wb.create_sheet("Deal Workings"),
                DEAL_HEADER,
                [self._deal_row(detail, employee) for detail, employee in deal_details],
            )

        output = BytesIO()
        self.wb.save(output)
        output.seek(0)
        logger.info(
            "Built payout run workbook for %s with %d sheet(s)",
            run.month_year,
            len(self.wb.sheetnames),
        )
        return output

    def _write_table(self, ws: Worksheet, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        ws.append(list(header))
        for cell in ws[1]:
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.border = self.cell_border
            cell.alignment = self.center_align
        for row in rows:
            ws.append([self._excel_value(v) for v in row])
        ws.freeze_panes = "A2"
        self._autosize(ws)

    def _write_workings(self, ws: Worksheet, pivot: WorkingsPivot) -> None:
        """Two header rows: metric headings merged over their sub-columns."""
        lead = len(LEADING_LABELS)
        col = lead + 1
        for idx, label in enumerate(LEADING_LABELS, start=1):
            ws.cell(row=1, column=idx, value=label)
            ws.merge_cells(start_row=1, start_column=idx, end_row=2, end_column=idx)

        for metric in pivot.metrics:
            width = len(metric.sub_columns)
            ws.cell(row=1, column=col, value=metric.metric_name)
            if width > 1:
                ws.merge_cells(start_row=1, start_column=col, end_row=1, end_column=col + width - 1)
            for offset, sub in enumerate(metric.sub_columns):
                ws.cell(row=2, column=col + offset, value=sub.label)
            col += width

        ws.cell(row=1, column=col, value="Grand Total")
        ws.merge_cells(
            start_row=1, start_column=col, end_row=1, end_column=col + len(GRAND_TOTAL_LABELS) - 1
        )
        for offset, label in enumerate(GRAND_TOTAL_LABELS):
            ws.cell(row=2, column=col + offset, value=label)

        for header_row in (1, 2):
            for cell in ws[header_row]:
                cell.font = self.header_font if header_row == 2 else self.group_font
                cell.fill = self.header_fill if header_row == 2 else self.group_fill
                cell.border = self.cell_border
                cell.alignment = self.center_align

        for values in pivot.formatted_rows():
            ws.append(values)
        ws.freeze_panes = ws.cell(row=3, column=lead + 1)
        self._autosize(ws, skip_rows=1)

    @staticmethod
    def _deal_row(detail: PayoutDealDetail, employee: Employee) -> list[Any]:
        return [
            employee.employee_id,
            employee.full_name,
            detail.project_id,
            detail.customer_name,
            detail.component_type,
            detail.commission_type,
            detail.deal_value_usd,
            detail.gp_margin_pct,
            detail.commission_rate_pct,
            "Yes" if detail.is_eligible else "No",
            detail.exclusion_reason,
            detail.gross_commission_usd,
            detail.booking_usd,
            detail.collection_usd,
            detail.year_end_usd,
        ]

    @staticmethod
    def _excel_value(value: Any) -> Any:
        if isinstance(value, Decimal):
            return float(value)
        return value

    @staticmethod
    def _autosize(ws: Worksheet, skip_rows: int = 0) -> None:
        widths: dict[int, int] = {}
        for row in ws.iter_rows(min_row=1 + skip_rows):
            for cell in row:
                if cell.value is None:
                    continue
                length = len(str(cell.value)) + 2
                widths[cell.column] = max(widths.get(cell.column, 0), length)
        for column, width in widths.items():
            ws.column_dimensions[get_column_letter(column)].width = min(width, MAX_COLUMN_WIDTH)


def payout_run_workbook(
    run: PayoutRun,
    summaries: Sequence[EmployeeSummary],
    pivot: WorkingsPivot,
    deal_details: Sequence[tuple[PayoutDealDetail, Employee]] = (),
) -> bytes:
    return PayoutRunWorkbook().build(run, summaries, pivot, deal_details).getvalue()
