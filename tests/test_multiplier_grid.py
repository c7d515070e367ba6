"""Tests for multiplier grid validation, drafts and persistence."""

from decimal import Decimal
from uuid import uuid4

import pytest

from comp_admin.errors import NotFoundError, ValidationError
from comp_admin.events import EntityType
from comp_admin.services.multiplier_grid import (
    GridDraft,
    GridTier,
    MultiplierGridService,
    default_grid,
    validate_grid,
)


def tiers(*rows):
    return [GridTier.of(lo, hi, mult) for lo, hi, mult in rows]


class TestValidateGrid:
    def test_empty_grid_rejected(self):
        assert validate_grid([]) == "At least one multiplier tier is required"

    def test_min_must_be_below_max(self):
        grid = tiers((0, 100, 1), (120, 120, 1.2))
        assert validate_grid(grid) == "Row 2: Min must be less than Max"

    def test_overlap_detected(self):
        grid = tiers((0, 100, 1), (90, 120, 1.2))
        assert validate_grid(grid) == "Overlap detected between tiers"

    def test_first_violation_in_row_order_wins(self):
        """An overlap at row 2 is reported before an inverted row 3."""
        grid = tiers((0, 50, 1), (40, 60, 1.2), (70, 65, 1.4))
        assert validate_grid(grid) == "Overlap detected between tiers"

        grid = tiers((0, 50, 1), (50, 45, 1.2), (48, 60, 1.4))
        assert validate_grid(grid) == "Row 2: Min must be less than Max"

    def test_rows_checked_in_min_order(self):
        """Input order does not matter; touching boundaries are fine."""
        grid = tiers((100, 120, 1.4), (0, 100, 1.0), (120, 999, 1.6))
        assert validate_grid(grid) is None

    def test_gaps_are_allowed(self):
        assert validate_grid(tiers((0, 50, 0), (60, 100, 1))) is None


class TestGridDraft:
    def test_unsaved_metric_is_seeded_with_defaults(self):
        draft = GridDraft([], "Stepped_Accelerator")

        assert draft.seeded is True
        assert draft.rows == default_grid("Stepped_Accelerator")
        assert [t.multiplier_value for t in draft.rows] == [
            Decimal("1.0"),
            Decimal("1.4"),
            Decimal("1.6"),
        ]
        # Defaults were never stored, so saving them is a change
        assert draft.has_changes is True

    def test_unknown_logic_type_falls_back_to_linear(self):
        assert default_grid("Bespoke") == default_grid("Linear")

    def test_add_row_continues_from_last_max(self):
        draft = GridDraft(tiers((0, 100, 1)))
        added = draft.add_row()

        assert added == GridTier.of(100, 120, "1.0")
        assert draft.can_save is True

    def test_no_changes_against_baseline(self):
        draft = GridDraft(tiers((0, 100, 1)))
        assert draft.has_changes is False
        assert draft.can_save is False

    def test_invalid_edit_blocks_save(self):
        draft = GridDraft(tiers((0, 100, 1), (100, 200, 1.5)))
        draft.update_row(1, min_pct=80)

        assert draft.has_changes is True
        assert draft.validation_error() == "Overlap detected between tiers"
        assert draft.can_save is False

    def test_remove_row(self):
        draft = GridDraft(tiers((0, 100, 1), (100, 200, 1.5)))
        draft.remove_row(0)
        assert draft.rows == tiers((100, 200, 1.5))


@pytest.mark.asyncio
class TestMultiplierGridService:
    async def test_replace_tiers_discards_old_grid(self, session, plan, metric, events):
        service = MultiplierGridService(session, events)

        saved = await service.replace_tiers(metric.id, tiers((0, 90, 0.5), (90, 999, 1.2)))

        assert [(t.min_pct, t.max_pct) for t in saved] == [
            (Decimal("0"), Decimal("90")),
            (Decimal("90"), Decimal("999")),
        ]
        stored = await service.get_tiers(metric.id)
        assert len(stored) == 2

        event = events.dispatched[-1]
        assert event.entity_type == EntityType.MULTIPLIER_GRID
        assert event.scope_id == plan.id

    async def test_invalid_grid_leaves_stored_tiers(self, session, metric, events):
        metric_id = metric.id
        service = MultiplierGridService(session, events)

        with pytest.raises(ValidationError, match="Overlap detected between tiers"):
            await service.replace_tiers(metric_id, tiers((0, 100, 1), (50, 150, 2)))

        assert len(await service.get_tiers(metric_id)) == 2
        assert events.dispatched == []

    async def test_save_requires_changes(self, session, metric, events):
        metric_id = metric.id
        service = MultiplierGridService(session, events)
        draft = await service.load_draft(metric_id)

        assert draft.seeded is False
        with pytest.raises(ValidationError, match="No changes to save"):
            await service.save(metric_id, draft)

        draft.add_row()
        draft.update_row(1, max_pct=900)
        saved = await service.save(metric_id, draft)
        assert len(saved) == 3

    async def test_unknown_metric(self, session, events):
        with pytest.raises(NotFoundError):
            await MultiplierGridService(session, events).replace_tiers(uuid4(), tiers((0, 100, 1)))
