"""Compensation admin services."""

from comp_admin.services.adjustment_service import AdjustmentService
from comp_admin.services.bulk_import import EmployeeImporter, ImportResult, PerformanceTargetImporter
from comp_admin.services.commission_service import CommissionService
from comp_admin.services.currency_service import CurrencyService
from comp_admin.services.deal_team_spiff import AllocationItem, DealTeamSpiffService
from comp_admin.services.employee_service import EmployeeRecord, EmployeeService
from comp_admin.services.multiplier_grid import GridDraft, GridTier, MultiplierGridService
from comp_admin.services.payout_run_service import PayoutRunService
from comp_admin.services.plan_service import PlanService
from comp_admin.services.role_service import RoleService
from comp_admin.services.state_machine import (
    AdjustmentStateMachine,
    AdjustmentStatus,
    PayoutRunStateMachine,
    PayoutRunStatus,
)
from comp_admin.services.target_service import QuarterlyTargets, TargetService
from comp_admin.services.workings import WorkingsService, build_pivot, summarize_employees

__all__ = [
    "AdjustmentService",
    "AdjustmentStateMachine",
    "AdjustmentStatus",
    "AllocationItem",
    "CommissionService",
    "CurrencyService",
    "DealTeamSpiffService",
    "EmployeeImporter",
    "EmployeeRecord",
    "EmployeeService",
    "GridDraft",
    "GridTier",
    "ImportResult",
    "MultiplierGridService",
    "PayoutRunService",
    "PayoutRunStateMachine",
    "PayoutRunStatus",
    "PerformanceTargetImporter",
    "PlanService",
    "QuarterlyTargets",
    "RoleService",
    "TargetService",
    "WorkingsService",
    "build_pivot",
    "summarize_employees",
]
