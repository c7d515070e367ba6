"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None


# ============================================================================
# Employees
# ============================================================================


class EmployeeUpsert(BaseModel):
    """Schema for creating or updating an employee."""

    employee_id: str
    full_name: str
    email: str
    designation: str | None = None
    country: str | None = None
    city: str | None = None
    date_of_hire: date | None = None
    departure_date: date | None = None
    department: str | None = None
    region: str | None = None
    group_name: str | None = None
    business_unit: str | None = None
    function_area: str | None = None
    sales_function: str | None = None
    local_currency: str = "USD"
    manager_employee_id: str | None = None
    target_bonus_percent: Decimal | None = None
    target_bonus_usd: Decimal | None = None
    is_active: bool = True


class EmployeeResponse(EmployeeUpsert):
    """Schema for employee response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    updated_at: datetime


class CsvImportRequest(BaseModel):
    """CSV file contents posted as text."""

    content: str


class ImportResultResponse(BaseModel):
    """Outcome of a bulk import."""

    model_config = ConfigDict(from_attributes=True)

    created: int
    updated: int
    targets_upserted: int = 0
    targets_skipped: int = 0
    processed: int
    errors: list[str]


class PerformanceTargetPreviewRow(BaseModel):
    """One parsed performance target row."""

    row_number: int
    employee_id: str
    metric_type: str
    q1_target_usd: Decimal
    q2_target_usd: Decimal
    q3_target_usd: Decimal
    q4_target_usd: Decimal
    annual_target_usd: Decimal
    error: str | None = None


# ============================================================================
# Plans
# ============================================================================


class CompPlanCreate(BaseModel):
    """Schema for creating a plan."""

    name: str = Field(min_length=1)
    effective_year: int
    description: str | None = None
    is_active: bool = True
    payout_frequency: str = "monthly"
    clawback_period_days: int = 180


class CompPlanUpdate(BaseModel):
    """Schema for partially updating a plan."""

    name: str | None = None
    effective_year: int | None = None
    description: str | None = None
    is_active: bool | None = None
    payout_frequency: str | None = None
    clawback_period_days: int | None = None


class CompPlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    effective_year: int
    is_active: bool
    payout_frequency: str
    clawback_period_days: int
    created_at: datetime
    updated_at: datetime


class CopyPlansRequest(BaseModel):
    """Plans to copy into a target year."""

    plan_ids: list[UUID]
    target_year: int


class TierSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    min_pct: Decimal
    max_pct: Decimal
    multiplier_value: Decimal


class GridResponse(BaseModel):
    """A metric's grid; `seeded` means defaults not yet stored."""

    metric_id: UUID
    logic_type: str
    seeded: bool
    tiers: list[TierSchema]


class GridSaveRequest(BaseModel):
    tiers: list[TierSchema]


class PlanMetricCreate(BaseModel):
    metric_name: str
    weightage_percent: Decimal
    logic_type: str = "Linear"
    gate_threshold_percent: Decimal | None = None
    payout_on_booking_pct: Decimal = Decimal("75")
    payout_on_collection_pct: Decimal = Decimal("25")
    payout_on_year_end_pct: Decimal = Decimal("0")


class PlanMetricResponse(PlanMetricCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_id: UUID
    tiers: list[TierSchema] = []


class CommissionCreate(BaseModel):
    commission_type: str
    commission_rate_pct: Decimal
    min_threshold_usd: Decimal | None = None
    payout_on_booking_pct: Decimal = Decimal("75")
    payout_on_collection_pct: Decimal = Decimal("25")
    payout_on_year_end_pct: Decimal = Decimal("0")
    is_active: bool = True


class CommissionUpdate(BaseModel):
    commission_type: str | None = None
    commission_rate_pct: Decimal | None = None
    min_threshold_usd: Decimal | None = None
    payout_on_booking_pct: Decimal | None = None
    payout_on_collection_pct: Decimal | None = None
    payout_on_year_end_pct: Decimal | None = None
    is_active: bool | None = None


class CommissionResponse(CommissionCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_id: UUID


class SpiffCreate(BaseModel):
    spiff_name: str
    linked_metric_name: str
    spiff_rate_pct: Decimal
    description: str | None = None
    min_deal_value_usd: Decimal | None = None
    payout_on_booking_pct: Decimal = Decimal("0")
    payout_on_collection_pct: Decimal = Decimal("100")
    payout_on_year_end_pct: Decimal = Decimal("0")
    is_active: bool = True


class SpiffUpdate(BaseModel):
    spiff_name: str | None = None
    linked_metric_name: str | None = None
    spiff_rate_pct: Decimal | None = None
    description: str | None = None
    min_deal_value_usd: Decimal | None = None
    payout_on_booking_pct: Decimal | None = None
    payout_on_collection_pct: Decimal | None = None
    payout_on_year_end_pct: Decimal | None = None
    is_active: bool | None = None


class SpiffResponse(SpiffCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_id: UUID


class PlanAssignmentCreate(BaseModel):
    """Assign a user to a plan from a start date."""

    user_id: UUID
    effective_start_date: date
    effective_end_date: date | None = None
    target_value_annual: Decimal = Decimal("0")
    currency: str = "USD"
    target_bonus_percent: Decimal | None = None
    tfp_local_currency: Decimal | None = None
    ote_local_currency: Decimal | None = None
    tfp_usd: Decimal | None = None
    target_bonus_usd: Decimal | None = None
    ote_usd: Decimal | None = None


class PlanAssignmentResponse(PlanAssignmentCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_id: UUID


# ============================================================================
# Currencies
# ============================================================================


class CurrencyCreate(BaseModel):
    code: str
    name: str
    symbol: str | None = None
    is_active: bool = True


class CurrencyUpdate(BaseModel):
    name: str | None = None
    symbol: str | None = None
    is_active: bool | None = None


class CurrencyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    symbol: str | None = None
    is_active: bool


class ExchangeRateSet(BaseModel):
    currency_code: str
    month_year: str
    rate_to_usd: Decimal


class ExchangeRateResponse(ExchangeRateSet):
    model_config = ConfigDict(from_attributes=True)

    id: UUID


# ============================================================================
# Roles
# ============================================================================


class RoleCreate(BaseModel):
    label: str
    name: str | None = None
    description: str | None = None
    color: str | None = None


class RoleUpdate(BaseModel):
    label: str | None = None
    description: str | None = None
    color: str | None = None


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    label: str
    description: str | None = None
    color: str
    is_system_role: bool


class UserRolesUpdate(BaseModel):
    roles: list[str]


class PermissionSet(BaseModel):
    permission_key: str
    is_allowed: bool


class PermissionResponse(PermissionSet):
    model_config = ConfigDict(from_attributes=True)

    role: str


# ============================================================================
# Performance targets
# ============================================================================


class PerformanceTargetUpsert(BaseModel):
    employee_id: str
    metric_type: str
    effective_year: int
    q1_target_usd: Decimal = Decimal("0")
    q2_target_usd: Decimal = Decimal("0")
    q3_target_usd: Decimal = Decimal("0")
    q4_target_usd: Decimal = Decimal("0")


class PerformanceTargetResponse(PerformanceTargetUpsert):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    annual_target_usd: Decimal


# ============================================================================
# Payout runs
# ============================================================================


class PayoutRunCreate(BaseModel):
    month_year: str
    notes: str | None = None


class TransitionRequest(BaseModel):
    """Request to move a payout run to another status."""

    to_status: str
    actor_user_id: UUID | None = None
    notes: str | None = None


class PayoutRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    month_year: str
    run_status: str
    is_locked: bool
    calculated_at: datetime | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None
    finalized_at: datetime | None = None
    paid_at: datetime | None = None
    total_payout_usd: Decimal | None = None
    total_variable_pay_usd: Decimal | None = None
    total_commissions_usd: Decimal | None = None
    total_clawbacks_usd: Decimal | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class AdjustmentCreate(BaseModel):
    employee_id: UUID
    adjustment_type: str
    adjustment_amount_usd: Decimal
    reason: str
    original_amount_usd: Decimal = Decimal("0")
    exchange_rate: Decimal | None = None
    requested_by: UUID | None = None


class AdjustmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payout_run_id: UUID
    employee_id: UUID
    adjustment_type: str
    original_amount_usd: Decimal
    adjustment_amount_usd: Decimal
    original_amount_local: Decimal
    adjustment_amount_local: Decimal
    local_currency: str
    exchange_rate_used: Decimal
    reason: str
    status: str
    requested_by: UUID | None = None
    approved_by: UUID | None = None
    created_at: datetime


class WorkingsMetric(BaseModel):
    component_type: str
    metric_name: str
    sub_columns: list[str]


class WorkingsResponse(BaseModel):
    """Pivoted workings, formatted for display."""

    leading_columns: list[str]
    metrics: list[WorkingsMetric]
    total_columns: list[str]
    rows: list[list[str]]


# ============================================================================
# Deal-team SPIFFs
# ============================================================================


class SpiffConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    spiff_pool_amount_usd: Decimal
    min_deal_arr_usd: Decimal
    is_active: bool


class SpiffConfigUpdate(BaseModel):
    spiff_pool_amount_usd: Decimal | None = None
    min_deal_arr_usd: Decimal | None = None


class DealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: str
    customer_name: str | None = None
    month_year: str
    new_software_booking_arr_usd: Decimal | None = None
    tcv_usd: Decimal | None = None
    status: str


class AllocationItemSchema(BaseModel):
    employee_id: UUID
    amount_usd: Decimal = Field(ge=0)
    team_role: str | None = None
    notes: str | None = None


class AllocationSaveRequest(BaseModel):
    items: list[AllocationItemSchema]
    payout_month: str | None = None


class AllocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    deal_id: UUID
    employee_id: UUID
    team_role: str | None = None
    allocated_amount_usd: Decimal
    allocated_amount_local: Decimal
    local_currency: str
    exchange_rate_used: Decimal
    status: str
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    notes: str | None = None
    payout_month: str | None = None


class DealAllocationsResponse(BaseModel):
    deal_id: UUID
    status: str
    read_only: bool
    allocations: list[AllocationResponse]


class ActorRequest(BaseModel):
    actor_user_id: UUID | None = None

