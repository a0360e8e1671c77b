"""
Workflow instantiation — turn a template (or an ad hoc block list) into
the concrete workflow owned by one OTI.

Snapshot rules, per template reference in ascending sequence order:
    - blockId and sequence copied verbatim
    - status: not-started for sequence 1, waiting for every later block
    - estimatedDays frozen as customDuration ?? block.estimatedDays
    - checklistProgress.total frozen as the block's checklist length

A block that no longer resolves in the catalog degrades to 0 days and an
empty checklist; one missing reference never blocks workflow creation.
"""

import logging

from app.core.exceptions import NotFoundError
from app.models.workflow import (
    BLOCK_STATUS_NOT_STARTED,
    BLOCK_STATUS_WAITING,
    BlockInstance,
    ChecklistProgress,
    WorkflowInstance,
)

logger = logging.getLogger(__name__)


def build_workflow(refs, catalog_index: dict, template_id: str | None = None) -> WorkflowInstance:
    """Build a fresh WorkflowInstance from ordered TemplateBlockRef records."""
    blocks = []
    for ref in sorted(refs, key=lambda r: r.sequence):
        block = catalog_index.get(ref.block_id)
        if block is None:
            logger.warning(
                "Instantiating workflow: building block %s not found; "
                "snapshot defaults to 0 days / empty checklist", ref.block_id,
            )
        if ref.custom_duration is not None:
            estimated = ref.custom_duration
        else:
            estimated = block.estimated_days if block else 0

        blocks.append(BlockInstance(
            block_id=ref.block_id,
            sequence=ref.sequence,
            status=BLOCK_STATUS_NOT_STARTED if ref.sequence == 1 else BLOCK_STATUS_WAITING,
            notes=ref.notes or "",
            estimated_days=estimated,
            checklist_progress=ChecklistProgress(
                completed=set(),
                total=len(block.checklist_items) if block else 0,
            ),
        ))

    return WorkflowInstance(
        template_id=template_id,
        blocks=blocks,
        overall_progress=0,
        current_block=1 if blocks else None,
        blocks_completed=0,
        blocks_total=len(blocks),
    )


def instantiate(templates, catalog, template_id: str) -> WorkflowInstance:
    """Instantiate an active template.

    Raises:
        NotFoundError: If the template is unknown or archived.
    """
    template = templates.get(template_id)
    if not template.is_active:
        raise NotFoundError(resource="WorkflowTemplate", resource_id=template_id)

    workflow = build_workflow(template.ordered_blocks(), catalog.index(), template.id)
    logger.info("Workflow instantiated from template=%s blocks=%d",
                template.id, workflow.blocks_total)
    return workflow


def instantiate_custom(templates, catalog, raw_blocks) -> WorkflowInstance:
    """Instantiate an ad hoc workflow from block references.

    The list is validated like a template composition (active blocks,
    sequences renumbered 1..N) but no template is stored.

    Raises:
        ValidationError: If the list is empty or references bad blocks.
    """
    refs = templates.normalize_refs(raw_blocks)
    workflow = build_workflow(refs, catalog.index(), template_id=None)
    logger.info("Custom workflow instantiated blocks=%d", workflow.blocks_total)
    return workflow
