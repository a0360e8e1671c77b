"""Tests for workflow instantiation (template → per-OTI WorkflowInstance).

Coverage:
  1. N template refs → N block instances, first not-started, rest waiting
  2. estimatedDays / checklist total snapshotted at instantiation
  3. snapshots immune to later catalog edits and archives
  4. archived or unknown templates cannot be instantiated
  5. missing catalog block degrades to 0 days / empty checklist
  6. custom workflows from ad hoc block lists
"""

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.workflow import BuildingBlock, TemplateBlockRef
from app.services.workflow_instantiation import build_workflow, instantiate, instantiate_custom


def test_instantiate_shape(services, abc_template):
    template, (a, b, c) = abc_template
    wf = instantiate(services.templates, services.catalog, template.id)

    assert wf.template_id == template.id
    assert wf.blocks_total == 3
    assert wf.blocks_completed == 0
    assert wf.overall_progress == 0
    assert wf.current_block == 1
    assert [blk.block_id for blk in wf.blocks] == [a.id, b.id, c.id]
    assert [blk.sequence for blk in wf.blocks] == [1, 2, 3]
    assert [blk.status for blk in wf.blocks] == ["not-started", "waiting", "waiting"]


def test_instantiate_snapshots_estimates_and_checklists(services, abc_template):
    template, _ = abc_template
    wf = instantiate(services.templates, services.catalog, template.id)
    assert [blk.estimated_days for blk in wf.blocks] == [5, 2, 4]
    assert [blk.checklist_progress.total for blk in wf.blocks] == [2, 0, 1]
    assert all(blk.checklist_progress.completed == set() for blk in wf.blocks)
    assert all(blk.start_date is None and blk.assigned_to is None for blk in wf.blocks)


def test_snapshot_immune_to_catalog_changes(services, abc_template):
    template, (a, _, c) = abc_template
    wf = instantiate(services.templates, services.catalog, template.id)

    services.catalog.update(a.id, {"estimatedDays": 30, "checklistItems": ["x", "y", "z", "w"]})
    services.catalog.archive(c.id)

    assert wf.blocks[0].estimated_days == 5
    assert wf.blocks[0].checklist_progress.total == 2
    assert wf.blocks[2].estimated_days == 4


def test_archived_template_cannot_be_instantiated(services, abc_template):
    template, _ = abc_template
    services.templates.archive(template.id)
    with pytest.raises(NotFoundError):
        instantiate(services.templates, services.catalog, template.id)


def test_unknown_template(services):
    with pytest.raises(NotFoundError):
        instantiate(services.templates, services.catalog, "WT-NOPE")


def test_missing_block_degrades_to_defaults():
    known = BuildingBlock(
        id="BB-1", name="Known", category="Security", team="security",
        estimated_days=3, checklist_items=["one", "two"],
    )
    refs = [
        TemplateBlockRef("BB-1", 1),
        TemplateBlockRef("BB-GONE", 2),
        TemplateBlockRef("BB-GONE-TOO", 3, custom_duration=6),
    ]
    wf = build_workflow(refs, {"BB-1": known}, template_id="WT-1")

    assert wf.blocks_total == 3
    assert [b.estimated_days for b in wf.blocks] == [3, 0, 6]
    assert [b.checklist_progress.total for b in wf.blocks] == [2, 0, 0]


def test_build_workflow_orders_by_sequence():
    refs = [TemplateBlockRef("BB-B", 2), TemplateBlockRef("BB-A", 1)]
    wf = build_workflow(refs, {})
    assert [b.block_id for b in wf.blocks] == ["BB-A", "BB-B"]
    assert wf.blocks[0].status == "not-started"


def test_instantiate_custom(services, make_block):
    first = make_block(name="First", estimatedDays=2)
    second = make_block(name="Second", estimatedDays=6, checklistItems=["a", "b", "c"])

    wf = instantiate_custom(services.templates, services.catalog, [
        {"blockId": second.id, "customDuration": 1},
        {"blockId": first.id},
    ])
    assert wf.template_id is None
    assert [b.block_id for b in wf.blocks] == [second.id, first.id]
    assert [b.estimated_days for b in wf.blocks] == [1, 2]
    assert wf.blocks[0].checklist_progress.total == 3
    assert [b.status for b in wf.blocks] == ["not-started", "waiting"]


def test_instantiate_custom_requires_blocks(services):
    with pytest.raises(ValidationError, match="At least one building block is required"):
        instantiate_custom(services.templates, services.catalog, [])
