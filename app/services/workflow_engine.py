"""
Workflow Execution Engine — block state machine for one WorkflowInstance.

Business logic for:
    - Block transitions:   waiting → not-started → in-progress → completed
    - Sequencing:          completing block N unblocks block N+1 (waiting → not-started)
    - Derived state:       blocksCompleted, overallProgress, currentBlock
    - Checklists:          tick / untick items on a block instance

Every operation works on a deep copy and returns it. The instance passed
in is never mutated, so a rejected call leaves nothing half-applied.

Guard:
    A block still ``waiting`` may not be started or completed unless the
    caller passes ``force=True`` (manual correction, logged at WARNING).
"""

import copy
import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models.workflow import (
    BLOCK_STATUS_COMPLETED,
    BLOCK_STATUS_IN_PROGRESS,
    BLOCK_STATUS_NOT_STARTED,
    BLOCK_STATUS_WAITING,
    BLOCK_STATUSES,
    WorkflowInstance,
)
from app.utils.helpers import business_days_between, percent, utcnow

logger = logging.getLogger(__name__)

# Patch keys accepted by ``advance`` → BlockInstance attribute
PATCH_FIELDS = {
    "assignedTo": "assigned_to",
    "notes": "notes",
    "completionNotes": "completion_notes",
}

GUARDED_FROM_WAITING = (BLOCK_STATUS_IN_PROGRESS, BLOCK_STATUS_COMPLETED)


# ── Derived state ────────────────────────────────────────────────────────────


def recompute(workflow: WorkflowInstance) -> WorkflowInstance:
    """Refresh blocksCompleted, overallProgress and currentBlock in place."""
    ordered = sorted(workflow.blocks, key=lambda b: b.sequence)
    workflow.blocks = ordered
    workflow.blocks_total = len(ordered)
    workflow.blocks_completed = sum(1 for b in ordered if b.status == BLOCK_STATUS_COMPLETED)
    workflow.overall_progress = percent(workflow.blocks_completed, workflow.blocks_total)

    current = None
    for block in ordered:
        if block.status == BLOCK_STATUS_IN_PROGRESS:
            current = block.sequence
            break
    if current is None:
        for position, block in enumerate(ordered, start=1):
            if block.status == BLOCK_STATUS_NOT_STARTED:
                current = block.sequence or position
                break
    workflow.current_block = current
    return workflow


def _apply_patch(block, patch: dict) -> None:
    unknown = sorted(set(patch) - set(PATCH_FIELDS))
    if unknown:
        raise ValidationError(
            f"Unsupported block field(s): {', '.join(unknown)}",
            details={key: "not allowed" for key in unknown},
        )
    for key, attr in PATCH_FIELDS.items():
        if key not in patch:
            continue
        value = patch[key]
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string", details={key: "invalid"})
        if attr == "assigned_to":
            setattr(block, attr, (value or "").strip() or None)
        else:
            setattr(block, attr, (value or "").strip())


# ── Transitions ──────────────────────────────────────────────────────────────


def advance(workflow: WorkflowInstance, sequence: int, new_status: str,
            patch: dict | None = None, *, force: bool = False, now=None) -> WorkflowInstance:
    """Move block ``sequence`` to ``new_status`` and return the updated copy.

    Args:
        workflow:   The current instance (left untouched).
        sequence:   1-based sequence of the block to move.
        new_status: One of BLOCK_STATUSES.
        patch:      Optional assignedTo / notes / completionNotes.
        force:      Allow starting or completing a block that is still waiting.
        now:        Clock override.

    Raises:
        NotFoundError:   If no block has ``sequence``.
        ValidationError: On an unknown status, an unsupported patch key, or
            an out-of-order move without ``force``.
    """
    if new_status not in BLOCK_STATUSES:
        raise ValidationError(
            f"Invalid block status: {new_status}",
            details={"status": f"must be one of {', '.join(BLOCK_STATUSES)}"},
        )

    updated = copy.deepcopy(workflow)
    block = updated.find_block(sequence)
    if block is None:
        raise NotFoundError(resource="BlockInstance", resource_id=sequence)

    old_status = block.status
    if old_status == BLOCK_STATUS_WAITING and new_status in GUARDED_FROM_WAITING:
        if not force:
            raise ValidationError(
                f"Block {sequence} is waiting on the previous step and cannot be "
                f"moved to {new_status}",
                details={"status": "out of order"},
            )
        logger.warning("Forced out-of-order transition block=%s %s → %s",
                       sequence, old_status, new_status)

    _apply_patch(block, patch or {})
    now = now or utcnow()
    block.status = new_status

    if new_status == BLOCK_STATUS_IN_PROGRESS and block.start_date is None:
        block.start_date = now

    if new_status == BLOCK_STATUS_COMPLETED:
        block.completed_date = now
        block.actual_days = (
            business_days_between(block.start_date, now) if block.start_date else None
        )
        following = updated.find_block(sequence + 1)
        if following is not None and following.status == BLOCK_STATUS_WAITING:
            following.status = BLOCK_STATUS_NOT_STARTED
    elif old_status == BLOCK_STATUS_COMPLETED:
        # Re-opened
        block.completed_date = None
        block.actual_days = None

    recompute(updated)
    logger.info("Block %s: %s → %s (progress=%d%%, current=%s)",
                sequence, old_status, new_status,
                updated.overall_progress, updated.current_block)
    return updated


def toggle_checklist_item(workflow: WorkflowInstance, sequence: int, index: int,
                          done: bool | None = None) -> WorkflowInstance:
    """Tick (or untick) checklist item ``index`` of block ``sequence``.

    ``done=None`` flips the current state.

    Raises:
        NotFoundError:   If no block has ``sequence``.
        ValidationError: If ``index`` is outside the snapshotted checklist.
    """
    updated = copy.deepcopy(workflow)
    block = updated.find_block(sequence)
    if block is None:
        raise NotFoundError(resource="BlockInstance", resource_id=sequence)

    progress = block.checklist_progress
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < progress.total:
        raise ValidationError(
            f"Checklist item {index} does not exist on block {sequence}",
            details={"index": f"must be between 0 and {max(progress.total - 1, 0)}"},
        )

    if done is None:
        done = index not in progress.completed
    if done:
        progress.completed.add(index)
    else:
        progress.completed.discard(index)
    logger.debug("Checklist block=%s item=%s done=%s (%d/%d)",
                 sequence, index, done, len(progress.completed), progress.total)
    return updated
