"""Tests for change events and cache invalidation."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from comp_admin.api.dependencies import get_events
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter, QueryCache


def changed(entity_type, scope_id=None):
    return EntityChanged.of(entity_type, ChangeKind.UPDATED, uuid4(), scope_id=scope_id)


class TestEventEmitter:
    def test_handlers_filtered_by_type(self):
        emitter = EventEmitter()
        seen = []
        emitter.on(EntityType.EMPLOYEE, seen.append)

        emitter.emit(changed(EntityType.CURRENCY))
        emitter.emit(changed(EntityType.EMPLOYEE))

        assert [e.entity_type for e in seen] == [EntityType.EMPLOYEE]

    def test_failing_handler_is_isolated(self):
        emitter = EventEmitter()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        emitter.on_all(broken)
        emitter.on_all(seen.append)

        errors = emitter.emit(changed(EntityType.ROLE))

        assert len(errors) == 1
        assert len(seen) == 1

    def test_off(self):
        emitter = EventEmitter()
        seen = []

        def handler(event):
            seen.append(event)

        emitter.on_all(handler)
        emitter.off(handler)
        emitter.emit(changed(EntityType.ROLE))
        assert seen == []

    def test_batch_holds_until_outermost_exit(self):
        emitter = EventEmitter()
        seen = []
        emitter.on_all(seen.append)

        with emitter.batch():
            emitter.emit(changed(EntityType.COMP_PLAN))
            with emitter.batch():
                emitter.emit(changed(EntityType.PLAN_METRIC))
            assert seen == []

        assert [e.entity_type for e in seen] == [EntityType.COMP_PLAN, EntityType.PLAN_METRIC]

    def test_batch_discarded_on_error(self):
        emitter = EventEmitter()
        seen = []
        emitter.on_all(seen.append)

        with pytest.raises(ValueError):
            with emitter.batch():
                emitter.emit(changed(EntityType.COMP_PLAN))
                raise ValueError("copy failed")

        assert seen == []
        # The emitter is usable again afterwards
        emitter.emit(changed(EntityType.COMP_PLAN))
        assert len(seen) == 1


class TestQueryCache:
    def bound(self):
        emitter = EventEmitter()
        cache = QueryCache()
        cache.bind(emitter)
        return emitter, cache

    def test_unscoped_event_drops_view_and_its_scoped_keys(self):
        emitter, cache = self.bound()
        cache.set("employees:active=True", ["a"])
        cache.set("payout_run:1:workings", ["w"])
        cache.set("payout_runs", ["r"])
        cache.set("currencies", ["USD"])

        emitter.emit(changed(EntityType.EMPLOYEE))

        assert cache.keys() == ["payout_runs", "currencies"]

    def test_scope_narrows_invalidation(self):
        emitter, cache = self.bound()
        run_a, run_b = uuid4(), uuid4()
        cache.set(f"payout_run:{run_a}:workings", 1)
        cache.set(f"payout_run:{run_b}:workings", 2)
        cache.set("payout_adjustments", 3)

        emitter.emit(changed(EntityType.PAYOUT_ADJUSTMENT, scope_id=run_a))

        assert f"payout_run:{run_a}:workings" not in cache
        assert f"payout_run:{run_b}:workings" in cache
        # Unscoped key under a scoped view survives a scoped event
        assert "payout_adjustments" in cache

    def test_prefix_does_not_match_sibling_views(self):
        emitter, cache = self.bound()
        cache.set("payout_runs", ["r"])
        assert cache.invalidate("payout_run") == 0
        assert "payout_runs" in cache

    @pytest.mark.asyncio
    async def test_get_or_load_loads_once(self):
        cache = QueryCache()
        calls = []

        async def load():
            calls.append(1)
            return ["USD", "INR"]

        assert await cache.get_or_load("currencies", load) == ["USD", "INR"]
        assert await cache.get_or_load("currencies", load) == ["USD", "INR"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_load_racing_an_invalidation_is_not_stored(self):
        emitter, cache = self.bound()

        async def load():
            # A write commits while the read is in flight
            emitter.emit(changed(EntityType.EMPLOYEE))
            return ["stale"]

        assert await cache.get_or_load("employees:active=False", load) == ["stale"]
        assert "employees:active=False" not in cache


class TestRequestEvents:
    def request_for(self, app_events):
        return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(events=app_events)))

    def test_forward_to(self):
        source, target = EventEmitter(), EventEmitter()
        seen = []
        target.on(EntityType.CURRENCY, seen.append)
        source.forward_to(target)

        source.emit(changed(EntityType.CURRENCY))

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_events_released_when_request_completes(self):
        app_events = EventEmitter()
        seen = []
        app_events.on_all(seen.append)
        dependency = get_events(self.request_for(app_events))

        events = await dependency.__anext__()
        events.emit(changed(EntityType.EMPLOYEE))
        assert seen == []

        with pytest.raises(StopAsyncIteration):
            await dependency.__anext__()
        assert [e.entity_type for e in seen] == [EntityType.EMPLOYEE]

    @pytest.mark.asyncio
    async def test_events_discarded_when_request_fails(self):
        app_events = EventEmitter()
        cache = QueryCache()
        cache.bind(app_events)
        cache.set("employees:active=True", ["a"])
        dependency = get_events(self.request_for(app_events))

        events = await dependency.__anext__()
        events.emit(changed(EntityType.EMPLOYEE))
        with pytest.raises(RuntimeError):
            await dependency.athrow(RuntimeError("commit failed"))

        assert "employees:active=True" in cache
