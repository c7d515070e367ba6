"""Compensation plan models: plans, metrics, grids, commissions, spiffs, targets."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from comp_admin.models.base import Base, TimestampMixin, UpdatedAtMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from comp_admin.models.employee import Profile


# =============================================================================
# Plans
# =============================================================================


class CompPlan(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Compensation plan for one effective year."""

    __tablename__ = "comp_plans"

    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    effective_year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    payout_frequency: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    clawback_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=180)

    # Relationships
    metrics: Mapped[list[PlanMetric]] = relationship(
        back_populates="plan", cascade="all, delete-orphan"
    )
    commissions: Mapped[list[PlanCommission]] = relationship(
        back_populates="plan", cascade="all, delete-orphan"
    )
    spiffs: Mapped[list[PlanSpiff]] = relationship(
        back_populates="plan", cascade="all, delete-orphan"
    )


class PlanMetric(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Weighted metric within a plan; owns a multiplier grid."""

    __tablename__ = "plan_metrics"

    plan_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("comp_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    metric_name: Mapped[str] = mapped_column(String, nullable=False)
    weightage_percent: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    logic_type: Mapped[str] = mapped_column(String, nullable=False, default="Linear")
    gate_threshold_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 2), nullable=True)
    payout_on_booking_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("75")
    )
    payout_on_collection_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("25")
    )
    payout_on_year_end_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0")
    )

    __table_args__ = (
        CheckConstraint(
            "logic_type IN ('Linear', 'Stepped_Accelerator', 'Gated_Threshold')",
            name="plan_metrics_logic_type_check",
        ),
    )

    # Relationships
    plan: Mapped[CompPlan] = relationship(back_populates="metrics")
    tiers: Mapped[list[MultiplierTier]] = relationship(
        back_populates="metric",
        cascade="all, delete-orphan",
        order_by="MultiplierTier.min_pct",
    )


class MultiplierTier(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One (min%, max%, multiplier) row of a metric's grid."""

    __tablename__ = "multiplier_grids"

    plan_metric_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("plan_metrics.id", ondelete="CASCADE"),
        nullable=False,
    )
    min_pct: Mapped[Decimal] = mapped_column(Numeric(9, 2), nullable=False)
    max_pct: Mapped[Decimal] = mapped_column(Numeric(9, 2), nullable=False)
    multiplier_value: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)

    # Relationships
    metric: Mapped[PlanMetric] = relationship(back_populates="tiers")


# =============================================================================
# Commissions and SPIFFs
# =============================================================================


class PlanCommission(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Commission rate for one commission type within a plan."""

    __tablename__ = "plan_commissions"

    plan_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("comp_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    commission_type: Mapped[str] = mapped_column(String, nullable=False)
    commission_rate_pct: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    min_threshold_usd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    payout_on_booking_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("75")
    )
    payout_on_collection_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("25")
    )
    payout_on_year_end_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("plan_id", "commission_type", name="plan_commissions_plan_type_unique"),
        CheckConstraint(
            "commission_rate_pct >= 0 AND commission_rate_pct <= 100",
            name="plan_commissions_rate_check",
        ),
    )

    # Relationships
    plan: Mapped[CompPlan] = relationship(back_populates="commissions")


class PlanSpiff(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """SPIFF tied to one of the plan's metrics by name."""

    __tablename__ = "plan_spiffs"

    plan_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("comp_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    spiff_name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    linked_metric_name: Mapped[str] = mapped_column(String, nullable=False)
    spiff_rate_pct: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    min_deal_value_usd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    payout_on_booking_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0")
    )
    payout_on_collection_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("100")
    )
    payout_on_year_end_pct: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    plan: Mapped[CompPlan] = relationship(back_populates="spiffs")


# =============================================================================
# Targets
# =============================================================================


class UserTarget(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Plan assignment for a login profile over an effective date range."""

    __tablename__ = "user_targets"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("comp_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    effective_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    effective_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    target_value_annual: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String, nullable=False, default="USD")
    target_bonus_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 2), nullable=True)
    tfp_local_currency: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    ote_local_currency: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    tfp_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    target_bonus_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    ote_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "plan_id",
            "effective_start_date",
            name="user_targets_user_plan_start_unique",
        ),
    )

    # Relationships
    profile: Mapped[Profile] = relationship(back_populates="targets")
    plan: Mapped[CompPlan] = relationship()


class PerformanceTarget(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Quarterly targets for one employee and metric in a year."""

    __tablename__ = "performance_targets"

    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    metric_type: Mapped[str] = mapped_column(String, nullable=False)
    effective_year: Mapped[int] = mapped_column(Integer, nullable=False)
    q1_target_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    q2_target_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    q3_target_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    q4_target_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "metric_type",
            "effective_year",
            name="performance_targets_employee_metric_year_unique",
        ),
    )

    @property
    def annual_target_usd(self) -> Decimal:
        """Annual target, always the sum of the four quarters."""
        return (
            (self.q1_target_usd or Decimal("0"))
            + (self.q2_target_usd or Decimal("0"))
            + (self.q3_target_usd or Decimal("0"))
            + (self.q4_target_usd or Decimal("0"))
        )
