"""Query cache invalidated by entity change events.

Views are cached under logical names (``"employees"``) or scoped names
(``"payout_run:<id>"``). The cache subscribes to the entity types each
view renders, so mutating code publishes events and never touches cache
keys itself.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from comp_admin.events.emitter import EventEmitter
from comp_admin.events.types import EntityChanged, EntityType

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Which cached views render which entity types
VIEW_DEPENDENCIES: dict[EntityType, tuple[str, ...]] = {
    EntityType.EMPLOYEE: ("employees", "payout_run", "deal_team_spiffs"),
    EntityType.USER_TARGET: ("user_targets",),
    EntityType.PERFORMANCE_TARGET: ("performance_targets",),
    EntityType.COMP_PLAN: ("comp_plans", "comp_plan_years"),
    EntityType.PLAN_METRIC: ("plan_metrics_with_grids", "plan_spiffs"),
    EntityType.MULTIPLIER_GRID: ("plan_metrics_with_grids",),
    EntityType.PLAN_COMMISSION: ("plan_commissions",),
    EntityType.PLAN_SPIFF: ("plan_spiffs",),
    EntityType.CURRENCY: ("currencies",),
    EntityType.EXCHANGE_RATE: ("exchange_rates", "currencies"),
    EntityType.ROLE: ("roles", "role_permissions", "users_with_roles"),
    EntityType.USER_ROLE: ("users_with_roles",),
    EntityType.ROLE_PERMISSION: ("role_permissions",),
    EntityType.PAYOUT_RUN: ("payout_runs", "payout_run"),
    EntityType.PAYOUT_ADJUSTMENT: ("payout_adjustments", "payout_run"),
    EntityType.DEAL_TEAM_SPIFF: ("deal_team_spiffs",),
}

# Views keyed per owning aggregate; an event's scope_id narrows invalidation
SCOPED_VIEWS = {"payout_run", "payout_adjustments", "plan_metrics_with_grids", "plan_commissions", "plan_spiffs"}


class QueryCache:
    """In-memory cache of view results keyed by logical query name."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        # Bumped on every invalidation; loads that straddle one are not stored
        self._generation = 0

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def get(self, key: str) -> Any:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for key, loading it on a miss."""
        if key in self._entries:
            return self._entries[key]
        generation = self._generation
        value = await loader()
        if generation == self._generation:
            self._entries[key] = value
        else:
            logger.debug("Not caching %s: invalidated while loading", key)
        return value

    def invalidate(self, name: str) -> int:
        """Drop `name` and every key scoped under it. Returns the count dropped."""
        self._generation += 1
        doomed = [k for k in self._entries if k == name or k.startswith(f"{name}:")]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._generation += 1
        self._entries.clear()

    def handle(self, event: EntityChanged) -> None:
        """Invalidate the views that render the changed entity type."""
        dropped = 0
        for view in VIEW_DEPENDENCIES.get(event.entity_type, ()):
            if event.scope_id is not None and view in SCOPED_VIEWS:
                dropped += self.invalidate(f"{view}:{event.scope_id}")
            else:
                dropped += self.invalidate(view)
        if dropped:
            logger.debug(
                "Invalidated %d cached view(s) after %s %s",
                dropped,
                event.entity_type.value,
                event.kind.value,
            )

    def bind(self, emitter: EventEmitter) -> None:
        """Subscribe to every entity type with dependent views."""
        emitter.on(VIEW_DEPENDENCIES.keys(), self.handle)
