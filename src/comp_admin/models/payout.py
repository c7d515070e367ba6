"""Payout run models: runs, adjustments, and computed workings rows."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from comp_admin.models.base import Base, TimestampMixin, UpdatedAtMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from comp_admin.models.employee import Employee


class PayoutRun(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Monthly payout run."""

    __tablename__ = "payout_runs"

    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    run_status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    calculated_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    total_payout_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    total_variable_pay_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    total_commissions_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    total_clawbacks_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("month_year", name="payout_runs_month_year_unique"),
        CheckConstraint(
            "run_status IN ('draft', 'review', 'approved', 'finalized', 'paid')",
            name="payout_runs_status_check",
        ),
    )

    # Relationships
    adjustments: Mapped[list[PayoutAdjustment]] = relationship(
        back_populates="payout_run", cascade="all, delete-orphan"
    )


class PayoutAdjustment(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Manual adjustment against one employee's payout in a run."""

    __tablename__ = "payout_adjustments"

    payout_run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payout_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id"),
        nullable=False,
    )
    adjustment_type: Mapped[str] = mapped_column(String, nullable=False)
    original_amount_usd: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=Decimal("0")
    )
    adjustment_amount_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    original_amount_local: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=Decimal("0")
    )
    adjustment_amount_local: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    local_currency: Mapped[str] = mapped_column(String, nullable=False, default="USD")
    exchange_rate_used: Mapped[Decimal] = mapped_column(
        Numeric(18, 8), nullable=False, default=Decimal("1")
    )
    reason: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    requested_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    applied_to_month: Mapped[str | None] = mapped_column(String(7), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "adjustment_type IN ('correction', 'clawback_reversal', 'manual_override')",
            name="payout_adjustments_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'applied')",
            name="payout_adjustments_status_check",
        ),
    )

    # Relationships
    payout_run: Mapped[PayoutRun] = relationship(back_populates="adjustments")
    employee: Mapped[Employee] = relationship()


# =============================================================================
# Workings rows (computed upstream by the payout engine)
# =============================================================================


class PayoutMetricDetail(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Per-employee, per-metric workings row for a payout run."""

    __tablename__ = "payout_metric_details"

    payout_run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payout_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id"),
        nullable=False,
    )
    component_type: Mapped[str] = mapped_column(String, nullable=False)
    metric_name: Mapped[str] = mapped_column(String, nullable=False)
    plan_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    plan_name: Mapped[str | None] = mapped_column(String, nullable=True)
    target_bonus_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    allocated_ote_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    target_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    actual_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    achievement_pct: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    multiplier: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    commission_rate_pct: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    ytd_eligible_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    prior_paid_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    this_month_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    booking_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    collection_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    year_end_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)

    # Relationships
    employee: Mapped[Employee] = relationship()


class PayoutDealDetail(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Per-deal commission workings row for a payout run."""

    __tablename__ = "payout_deal_details"

    payout_run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payout_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id"),
        nullable=False,
    )
    deal_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    commission_type: Mapped[str | None] = mapped_column(String, nullable=True)
    component_type: Mapped[str] = mapped_column(String, nullable=False)
    deal_value_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    gp_margin_pct: Mapped[Decimal | None] = mapped_column(Numeric(7, 2), nullable=True)
    commission_rate_pct: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    is_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    exclusion_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    gross_commission_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    booking_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    collection_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    year_end_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)

    # Relationships
    employee: Mapped[Employee] = relationship()
