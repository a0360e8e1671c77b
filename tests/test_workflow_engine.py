"""
State-machine tests for the workflow execution engine.

Block states:
    waiting → not-started → in-progress → completed
    - completing block N flips block N+1 from waiting to not-started
    - a waiting block may not be started/completed without force=True
    - re-opening a completed block clears completedDate and actualDays

Derived fields after every transition:
    blocksCompleted, overallProgress (round half-up), currentBlock
"""

from datetime import datetime, timezone

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.workflow import TemplateBlockRef, WorkflowInstance
from app.services.workflow_engine import advance, recompute, toggle_checklist_item
from app.services.workflow_instantiation import build_workflow

MONDAY = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
THURSDAY = datetime(2024, 1, 4, 17, 0, tzinfo=timezone.utc)
NEXT_TUESDAY = datetime(2024, 1, 9, 10, 0, tzinfo=timezone.utc)


# ── Helpers ─────────────────────────────────────────────────────────────────


def _workflow(n=3, checklist=2) -> WorkflowInstance:
    refs = [TemplateBlockRef(f"BB-{i}", i, custom_duration=i) for i in range(1, n + 1)]
    wf = build_workflow(refs, {}, template_id="WT-1")
    for block in wf.blocks:
        block.checklist_progress.total = checklist
    return wf


def _statuses(wf):
    return [b.status for b in wf.blocks]


# ═════════════════════════════════════════════════════════════════════════════
# Sequencing
# ═════════════════════════════════════════════════════════════════════════════


def test_example_scenario():
    wf = _workflow()

    wf = advance(wf, 1, "completed", now=MONDAY)
    assert _statuses(wf) == ["completed", "not-started", "waiting"]
    assert wf.overall_progress == 33
    assert wf.current_block == 2

    wf = advance(wf, 2, "completed", now=MONDAY)
    assert wf.overall_progress == 67
    wf = advance(wf, 3, "completed", now=MONDAY)
    assert wf.blocks_completed == wf.blocks_total == 3
    assert wf.overall_progress == 100
    assert wf.current_block is None
    assert wf.is_complete


def test_completing_block_k_only_unblocks_k_plus_one():
    wf = _workflow(n=5)
    wf = advance(wf, 1, "completed", now=MONDAY)
    wf = advance(wf, 2, "in-progress", now=MONDAY)
    wf = advance(wf, 2, "completed", now=THURSDAY)
    assert _statuses(wf) == ["completed", "completed", "not-started", "waiting", "waiting"]


def test_current_block_prefers_in_progress():
    wf = _workflow()
    wf = advance(wf, 1, "in-progress", now=MONDAY)
    assert wf.current_block == 1
    assert wf.overall_progress == 0


def test_advance_does_not_mutate_input():
    original = _workflow()
    updated = advance(original, 1, "completed", now=MONDAY)
    assert _statuses(original) == ["not-started", "waiting", "waiting"]
    assert updated is not original


# ═════════════════════════════════════════════════════════════════════════════
# Timestamps
# ═════════════════════════════════════════════════════════════════════════════


def test_in_progress_is_idempotent_on_start_date():
    wf = advance(_workflow(), 1, "in-progress", now=MONDAY)
    wf = advance(wf, 1, "in-progress", now=THURSDAY)
    assert wf.blocks[0].start_date == MONDAY


def test_completion_sets_actual_business_days():
    wf = advance(_workflow(), 1, "in-progress", now=MONDAY)
    wf = advance(wf, 1, "completed", now=NEXT_TUESDAY)
    block = wf.blocks[0]
    assert block.completed_date == NEXT_TUESDAY
    assert block.actual_days == 6


def test_completion_without_start_leaves_actual_days_null():
    wf = advance(_workflow(), 1, "completed", now=THURSDAY)
    assert wf.blocks[0].completed_date == THURSDAY
    assert wf.blocks[0].start_date is None
    assert wf.blocks[0].actual_days is None


def test_reopening_clears_completion():
    wf = advance(_workflow(), 1, "in-progress", now=MONDAY)
    wf = advance(wf, 1, "completed", now=THURSDAY)
    wf = advance(wf, 1, "in-progress", now=NEXT_TUESDAY)
    block = wf.blocks[0]
    assert block.completed_date is None
    assert block.actual_days is None
    assert block.start_date == MONDAY
    assert wf.blocks_completed == 0
    # Block 2 was already unblocked and stays so
    assert wf.blocks[1].status == "not-started"


# ═════════════════════════════════════════════════════════════════════════════
# Guards & failures
# ═════════════════════════════════════════════════════════════════════════════


def test_unknown_sequence():
    with pytest.raises(NotFoundError):
        advance(_workflow(), 9, "completed")


def test_unknown_status():
    with pytest.raises(ValidationError):
        advance(_workflow(), 1, "done")


@pytest.mark.parametrize("target", ["in-progress", "completed"])
def test_waiting_block_rejected_without_force(target):
    wf = _workflow()
    with pytest.raises(ValidationError, match="waiting"):
        advance(wf, 2, target)
    assert _statuses(wf) == ["not-started", "waiting", "waiting"]


def test_waiting_block_allowed_with_force():
    wf = advance(_workflow(), 2, "completed", force=True, now=MONDAY)
    assert _statuses(wf) == ["not-started", "completed", "not-started"]
    assert wf.blocks_completed == 1
    assert wf.current_block == 1


def test_waiting_block_can_be_unblocked_manually():
    wf = advance(_workflow(), 2, "not-started")
    assert _statuses(wf) == ["not-started", "not-started", "waiting"]


def test_patch_fields_are_merged():
    wf = advance(_workflow(), 1, "in-progress", {
        "assignedTo": " alex ", "notes": "kick-off booked",
    }, now=MONDAY)
    wf = advance(wf, 1, "completed", {"completionNotes": "signed off"}, now=THURSDAY)
    block = wf.blocks[0]
    assert block.assigned_to == "alex"
    assert block.notes == "kick-off booked"
    assert block.completion_notes == "signed off"


def test_unknown_patch_key_rejected_without_change():
    wf = _workflow()
    with pytest.raises(ValidationError):
        advance(wf, 1, "in-progress", {"estimatedDays": 1})
    assert wf.blocks[0].status == "not-started"


# ═════════════════════════════════════════════════════════════════════════════
# recompute / checklist
# ═════════════════════════════════════════════════════════════════════════════


def test_recompute_empty_workflow():
    wf = recompute(WorkflowInstance(template_id=None))
    assert wf.overall_progress == 0
    assert wf.blocks_total == 0
    assert wf.current_block is None
    assert not wf.is_complete


def test_toggle_checklist_item():
    wf = toggle_checklist_item(_workflow(), 1, 1)
    assert wf.blocks[0].checklist_progress.completed == {1}
    wf = toggle_checklist_item(wf, 1, 1)
    assert wf.blocks[0].checklist_progress.completed == set()
    wf = toggle_checklist_item(wf, 1, 0, done=True)
    wf = toggle_checklist_item(wf, 1, 0, done=True)
    assert wf.blocks[0].checklist_progress.completed == {0}


@pytest.mark.parametrize("index", [-1, 2, 10])
def test_toggle_checklist_out_of_range(index):
    with pytest.raises(ValidationError):
        toggle_checklist_item(_workflow(checklist=2), 1, index)


def test_toggle_checklist_unknown_block():
    with pytest.raises(NotFoundError):
        toggle_checklist_item(_workflow(), 7, 0)
