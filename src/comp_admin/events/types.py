"""Entity change events published by mutating services.

Events are immutable and carry only what subscribers need to decide
which views are stale: the entity type, the affected identifiers and
the kind of change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EntityType(str, Enum):
    """Entity types that views can subscribe to."""

    EMPLOYEE = "employee"
    USER_TARGET = "user_target"
    PERFORMANCE_TARGET = "performance_target"
    COMP_PLAN = "comp_plan"
    PLAN_METRIC = "plan_metric"
    MULTIPLIER_GRID = "multiplier_grid"
    PLAN_COMMISSION = "plan_commission"
    PLAN_SPIFF = "plan_spiff"
    CURRENCY = "currency"
    EXCHANGE_RATE = "exchange_rate"
    ROLE = "role"
    USER_ROLE = "user_role"
    ROLE_PERMISSION = "role_permission"
    PAYOUT_RUN = "payout_run"
    PAYOUT_ADJUSTMENT = "payout_adjustment"
    DEAL_TEAM_SPIFF = "deal_team_spiff"


class ChangeKind(str, Enum):
    """What happened to the entity."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class EntityChanged:
    """One or more rows of an entity type changed."""

    entity_type: EntityType
    kind: ChangeKind
    entity_ids: tuple[UUID, ...] = ()
    scope_id: UUID | None = None  # Owning aggregate, e.g. the payout run of an adjustment
    details: dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def of(
        cls,
        entity_type: EntityType,
        kind: ChangeKind,
        *entity_ids: UUID,
        scope_id: UUID | None = None,
        **details: Any,
    ) -> EntityChanged:
        """Shorthand constructor used by services."""
        return cls(
            entity_type=entity_type,
            kind=kind,
            entity_ids=tuple(entity_ids),
            scope_id=scope_id,
            details=details,
        )
