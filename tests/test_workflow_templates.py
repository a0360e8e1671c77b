"""Tests for WorkflowTemplateStore.

Coverage:
  1. estimatedTotalDays = Σ(customDuration ?? block.estimatedDays) after create/update
  2. sequences renumbered to a contiguous 1..N run in the order given
  3. create validation: empty blocks, unknown / archived block ids, bad customDuration
  4. estimate is live (follows catalog edits) and warns on missing blocks
  5. update replaces blocks wholesale; archived blocks already present may stay
  6. archive / restore / duplicate / record_usage
"""

import pytest

from app.core.exceptions import NotFoundError, ValidationError


# ── create & estimate ────────────────────────────────────────────────────


def test_estimated_total_days_example(abc_template):
    template, _ = abc_template
    assert template.id.startswith("WT-")
    assert template.estimated_total_days == 11
    assert [r.sequence for r in template.blocks] == [1, 2, 3]
    assert template.blocks[1].custom_duration == 2


def test_sequences_normalised_in_given_order(services, make_block):
    a = make_block(name="A")
    b = make_block(name="B")
    template = services.templates.create({
        "name": "Gappy",
        "category": "Development",
        "blocks": [
            {"blockId": b.id, "sequence": 7},
            {"blockId": a.id, "sequence": 3},
        ],
    })
    assert [(r.block_id, r.sequence) for r in template.ordered_blocks()] == [(b.id, 1), (a.id, 2)]


def test_create_requires_blocks(services):
    with pytest.raises(ValidationError, match="At least one building block is required"):
        services.templates.create({"name": "Empty", "category": "Procurement", "blocks": []})


def test_create_rejects_unknown_block(services):
    with pytest.raises(ValidationError, match="does not exist"):
        services.templates.create({
            "name": "Ghost", "category": "Procurement", "blocks": [{"blockId": "BB-GHOST"}],
        })


def test_create_rejects_archived_block(services, make_block):
    block = make_block()
    services.catalog.archive(block.id)
    with pytest.raises(ValidationError, match="archived"):
        services.templates.create({
            "name": "Stale", "category": "Procurement", "blocks": [{"blockId": block.id}],
        })


@pytest.mark.parametrize("custom", [0, -1, 91, "x"])
def test_create_rejects_bad_custom_duration(services, make_block, custom):
    block = make_block()
    with pytest.raises(ValidationError):
        services.templates.create({
            "name": "Bad", "category": "Procurement",
            "blocks": [{"blockId": block.id, "customDuration": custom}],
        })


def test_create_requires_name_and_valid_category(services, make_block):
    block = make_block()
    with pytest.raises(ValidationError):
        services.templates.create({"category": "Procurement", "blocks": [{"blockId": block.id}]})
    with pytest.raises(ValidationError):
        services.templates.create({"name": "X", "category": "Nope", "blocks": [{"blockId": block.id}]})


def test_estimate_tracks_live_catalog(services, abc_template):
    template, (a, _, _) = abc_template
    services.catalog.update(a.id, {"estimatedDays": 10})
    assert services.templates.get(template.id).estimated_total_days == 16


def test_estimate_warns_on_missing_block_and_counts_zero(services, make_block):
    block = make_block(estimatedDays=4)
    result = services.templates.estimate([
        {"blockId": block.id},
        {"blockId": "BB-MISSING"},
        {"blockId": "BB-MISSING-2", "customDuration": 3},
    ])
    assert result.total_days == 7
    assert [w.resource_id for w in result.warnings] == ["BB-MISSING", "BB-MISSING-2"]
    assert result.to_dict()["estimatedTotalDays"] == 7


@pytest.mark.parametrize("blocks", ["BB-1", {"blockId": "BB-1"}, [None], ["BB-1"]])
def test_estimate_rejects_malformed_input(services, blocks):
    with pytest.raises(ValidationError, match="malformed|must be a list"):
        services.templates.estimate(blocks)


def test_get_unknown_template(services):
    with pytest.raises(NotFoundError):
        services.templates.get("WT-NOPE")


# ── update ───────────────────────────────────────────────────────────────


def test_update_metadata_only_keeps_blocks(services, abc_template):
    template, _ = abc_template
    updated = services.templates.update(template.id, {"name": "Renamed", "id": "WT-X"})
    assert updated.id == template.id
    assert updated.name == "Renamed"
    assert len(updated.blocks) == 3
    assert updated.estimated_total_days == 11


def test_update_replaces_blocks_and_recomputes(services, abc_template):
    template, (a, _, c) = abc_template
    updated = services.templates.update(template.id, {
        "blocks": [{"blockId": c.id}, {"blockId": a.id, "customDuration": 1}],
    })
    assert [(r.block_id, r.sequence) for r in updated.blocks] == [(c.id, 1), (a.id, 2)]
    assert updated.estimated_total_days == 5
    assert services.templates.get(template.id).estimated_total_days == 5


def test_update_keeps_already_referenced_archived_block(services, abc_template, make_block):
    template, (a, b, c) = abc_template
    services.catalog.archive(a.id)
    updated = services.templates.update(template.id, {
        "blocks": [{"blockId": a.id}, {"blockId": c.id}],
    })
    assert [r.block_id for r in updated.blocks] == [a.id, c.id]

    newcomer = make_block(name="New")
    services.catalog.archive(newcomer.id)
    with pytest.raises(ValidationError):
        services.templates.update(template.id, {"blocks": [{"blockId": newcomer.id}]})


def test_update_with_empty_blocks_rejected(services, abc_template):
    template, _ = abc_template
    with pytest.raises(ValidationError):
        services.templates.update(template.id, {"blocks": []})
    assert len(services.templates.get(template.id).blocks) == 3


# ── archive / restore / duplicate ────────────────────────────────────────


def test_archive_and_restore(services, abc_template):
    template, _ = abc_template
    services.templates.archive(template.id)
    assert services.templates.list_active() == []
    assert len(services.templates.list_all(include_archived=True)) == 1
    assert services.templates.restore(template.id).is_active is True
    assert [t.id for t in services.templates.list_active()] == [template.id]


def test_archived_block_still_counts_in_estimate(services, abc_template):
    template, (a, _, _) = abc_template
    services.catalog.archive(a.id)
    assert services.templates.get(template.id).estimated_total_days == 11


def test_duplicate(services, abc_template):
    template, _ = abc_template
    services.templates.record_usage(template.id)

    copy = services.templates.duplicate(template.id)
    assert copy.id != template.id
    assert copy.name == "Standard Software Request (Copy)"
    assert copy.usage_count == 0
    assert [r.to_dict() for r in copy.blocks] == [r.to_dict() for r in template.blocks]
    assert len(services.templates.list_active()) == 2


def test_list_active_by_category(services, make_block, make_template):
    block = make_block()
    make_template(block, name="P", category="Procurement")
    dev = make_template(block, name="D", category="Development")
    assert [t.id for t in services.templates.list_active("Development")] == [dev.id]


def test_record_usage(services, abc_template):
    template, _ = abc_template
    services.templates.record_usage(template.id)
    services.templates.record_usage(template.id)
    assert services.templates.get(template.id).usage_count == 2
