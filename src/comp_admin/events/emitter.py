"""Event emitter for entity change events.

The emitter provides:
- Handler registration filtered by entity type
- Error isolation (handler failures don't break other handlers)
- Event batching for transactions
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from comp_admin.events.types import EntityChanged, EntityType

logger = logging.getLogger(__name__)

EventHandler = Callable[[EntityChanged], None]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: EventHandler
    entity_types: set[EntityType] | None  # None = all events


class EventEmitter:
    """Synchronous event emitter.

    Usage:
        emitter = EventEmitter()
        emitter.on(EntityType.EMPLOYEE, refresh_employee_list)

        # Batch events (for transactions)
        with emitter.batch():
            emitter.emit(event1)
            emitter.emit(event2)
        # All events emitted when the block exits without error
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._batch_depth = 0
        self._batch: list[EntityChanged] = []

    def on(
        self,
        entity_type: EntityType | Iterable[EntityType],
        handler: EventHandler,
    ) -> None:
        """Register handler for specific entity type(s)."""
        if isinstance(entity_type, EntityType):
            types = {entity_type}
        else:
            types = set(entity_type)

        self._handlers.append(HandlerRegistration(handler=handler, entity_types=types))

    def on_all(self, handler: EventHandler) -> None:
        """Register handler for all events."""
        self._handlers.append(HandlerRegistration(handler=handler, entity_types=None))

    def off(self, handler: EventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def forward_to(self, target: EventEmitter) -> None:
        """Re-emit every event from this emitter on target."""
        self.on_all(target.emit)

    def emit(self, event: EntityChanged) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers.
        """
        if self._batch_depth:
            self._batch.append(event)
            return []

        return self._dispatch(event)

    def _dispatch(self, event: EntityChanged) -> list[Exception]:
        """Dispatch event to matching handlers."""
        errors: list[Exception] = []

        for reg in list(self._handlers):
            if reg.entity_types is not None and event.entity_type not in reg.entity_types:
                continue

            try:
                reg.handler(event)
            except Exception as e:
                logger.exception(
                    "Handler %s failed for %s event",
                    reg.handler,
                    event.entity_type.value,
                )
                errors.append(e)

        return errors

    def batch(self) -> EventBatch:
        """Create a batch context for collecting events.

        Events are held until the outermost batch exits, then emitted together.
        If the block raises, the held events are discarded.
        """
        return EventBatch(self)

    def _start_batch(self) -> None:
        if self._batch_depth == 0:
            self._batch = []
        self._batch_depth += 1

    def _end_batch(self) -> list[Exception]:
        self._batch_depth -= 1
        if self._batch_depth:
            return []

        events = self._batch
        self._batch = []

        errors: list[Exception] = []
        for event in events:
            errors.extend(self._dispatch(event))
        return errors

    def _discard_batch(self) -> None:
        self._batch_depth = 0
        self._batch = []


class EventBatch:
    """Context manager for batching events."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._emitter._start_batch()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self._errors = self._emitter._end_batch()
        else:
            self._emitter._discard_batch()

    def add(self, event: EntityChanged) -> None:
        """Add event to batch."""
        self._emitter.emit(event)

    @property
    def errors(self) -> list[Exception]:
        """Errors from handler execution (available after context exits)."""
        return self._errors
