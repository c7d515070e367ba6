"""Entity change events and the query cache that listens to them."""

from comp_admin.events.cache import VIEW_DEPENDENCIES, QueryCache
from comp_admin.events.emitter import EventBatch, EventEmitter, HandlerRegistration
from comp_admin.events.types import ChangeKind, EntityChanged, EntityType

__all__ = [
    "VIEW_DEPENDENCIES",
    "ChangeKind",
    "EntityChanged",
    "EntityType",
    "EventBatch",
    "EventEmitter",
    "HandlerRegistration",
    "QueryCache",
]
