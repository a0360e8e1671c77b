"""
OTI Status/Progress Aggregator.

Read-side derivations over one OTI, recomputed on every call:
    progress_of   — workflow completion %, else the manual percentage clamped to 0..100
    is_overdue    — past targetCompletionDate and not done
    days_active   — business days since submission (to completion once done)

Write-side:
    apply_workflow_state — mirror a workflow's progress into the OTI and
                           close the OTI once every block is completed
"""

import logging

from app.models.oti import OTI_STATUS_DONE
from app.utils.helpers import business_days_between, isoformat, percent, utcnow

logger = logging.getLogger(__name__)

WORKFLOW_COMPLETED_NOTE = "All workflow blocks completed"


def progress_of(oti) -> int:
    if oti.workflow is not None:
        return percent(oti.workflow.blocks_completed, oti.workflow.blocks_total)
    if oti.progress_percentage is None:
        return 0
    try:
        manual = int(oti.progress_percentage)
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, manual))


def is_overdue(oti, now=None) -> bool:
    if oti.target_completion_date is None or oti.status == OTI_STATUS_DONE:
        return False
    return (now or utcnow()) > oti.target_completion_date


def days_active(oti, now=None) -> int:
    if oti.date_submitted is None:
        return 0
    end = oti.actual_completion_date if oti.status == OTI_STATUS_DONE else None
    return business_days_between(oti.date_submitted, end or now or utcnow())


def apply_workflow_state(oti, now=None, updated_by: str = "System"):
    """Push derived workflow state onto ``oti`` (in place) and return it.

    progressPercentage mirrors overallProgress. When blocksCompleted equals
    blocksTotal the OTI moves to done with actualCompletionDate set and a
    status history entry. A re-opened block never demotes a done OTI.
    """
    workflow = oti.workflow
    if workflow is None:
        return oti

    oti.progress_percentage = workflow.overall_progress
    if workflow.is_complete and oti.status != OTI_STATUS_DONE:
        now = now or utcnow()
        oti.status = OTI_STATUS_DONE
        if oti.actual_completion_date is None:
            oti.actual_completion_date = now
        oti.status_history.append({
            "status": OTI_STATUS_DONE,
            "date": isoformat(now),
            "notes": WORKFLOW_COMPLETED_NOTE,
            "updatedBy": updated_by,
        })
        logger.info("OTI %s closed: workflow complete (%d/%d blocks)",
                    oti.id, workflow.blocks_completed, workflow.blocks_total)
    return oti
