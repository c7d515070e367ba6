"""ORM models."""

from comp_admin.models.access import RoleDefinition, RolePermission, UserRole
from comp_admin.models.audit import AuditEvent
from comp_admin.models.base import Base
from comp_admin.models.deal import Deal, DealTeamSpiffAllocation, DealTeamSpiffConfig
from comp_admin.models.employee import Employee, Profile
from comp_admin.models.payout import (
    PayoutAdjustment,
    PayoutDealDetail,
    PayoutMetricDetail,
    PayoutRun,
)
from comp_admin.models.plan import (
    CompPlan,
    MultiplierTier,
    PerformanceTarget,
    PlanCommission,
    PlanMetric,
    PlanSpiff,
    UserTarget,
)
from comp_admin.models.reference import Currency, ExchangeRate

__all__ = [
    "AuditEvent",
    "Base",
    "CompPlan",
    "Currency",
    "Deal",
    "DealTeamSpiffAllocation",
    "DealTeamSpiffConfig",
    "Employee",
    "ExchangeRate",
    "MultiplierTier",
    "PayoutAdjustment",
    "PayoutDealDetail",
    "PayoutMetricDetail",
    "PayoutRun",
    "PerformanceTarget",
    "PlanCommission",
    "PlanMetric",
    "PlanSpiff",
    "Profile",
    "RoleDefinition",
    "RolePermission",
    "UserRole",
    "UserTarget",
]
