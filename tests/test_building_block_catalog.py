"""Tests for BuildingBlockCatalog.

Coverage:
  1. create assigns id, usageCount=0, isActive=True and defaults
  2. create validation (name, category, team, estimatedDays bounds)
  3. update merges fields and never overwrites id
  4. archive is soft, idempotent, keeps usageCount; list_active hides it
  5. restore, categories, record_usage
  6. usage_warning text
"""

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.services.building_block_service import usage_warning


# ── create ───────────────────────────────────────────────────────────────


def test_create_assigns_id_and_defaults(services, make_block):
    block = make_block()
    assert block.id.startswith("BB-")
    assert block.usage_count == 0
    assert block.is_active is True
    assert block.icon == "🔧"
    assert block.sla_warning_days == 2
    assert block.created_at is not None

    stored = services.catalog.get(block.id)
    assert stored.name == "Security Assessment"
    assert stored.checklist_items == ["Risk rating agreed"]


@pytest.mark.parametrize("missing", ["name", "category", "team", "estimatedDays"])
def test_create_requires_core_fields(make_block, missing):
    with pytest.raises(ValidationError) as exc:
        make_block(**{missing: None})
    assert missing in exc.value.details


@pytest.mark.parametrize("days", [0, -3, 91, 2.5, "abc"])
def test_create_rejects_bad_estimated_days(make_block, days):
    with pytest.raises(ValidationError):
        make_block(estimatedDays=days)


def test_create_rejects_unknown_category(make_block):
    with pytest.raises(ValidationError):
        make_block(category="Catering")


def test_create_respects_configured_upper_bound(services, make_block):
    assert services.catalog.max_estimated_days == 90
    assert make_block(estimatedDays=90).estimated_days == 90


# ── update ───────────────────────────────────────────────────────────────


def test_update_merges_and_keeps_id(services, make_block):
    block = make_block()
    updated = services.catalog.update(block.id, {
        "id": "BB-HIJACK",
        "estimatedDays": 8,
        "description": "Now with pen test",
    })
    assert updated.id == block.id
    assert updated.estimated_days == 8
    assert updated.description == "Now with pen test"
    assert updated.name == block.name
    with pytest.raises(NotFoundError):
        services.catalog.get("BB-HIJACK")


def test_update_validates_merged_record(services, make_block):
    block = make_block()
    with pytest.raises(ValidationError):
        services.catalog.update(block.id, {"estimatedDays": 0})
    assert services.catalog.get(block.id).estimated_days == 5


def test_update_unknown_id(services):
    with pytest.raises(NotFoundError):
        services.catalog.update("BB-NOPE", {"name": "x"})


# ── archive / restore ────────────────────────────────────────────────────


def test_archive_is_soft_and_hidden_from_active_listing(services, make_block):
    keep = make_block(name="Keep")
    gone = make_block(name="Gone")
    services.catalog.record_usage([gone.id])

    archived = services.catalog.archive(gone.id)
    assert archived.is_active is False
    assert archived.archived_at is not None
    assert archived.usage_count == 1

    assert [b.id for b in services.catalog.list_active()] == [keep.id]
    assert {b.id for b in services.catalog.list_all(include_archived=True)} == {keep.id, gone.id}
    assert services.catalog.get(gone.id).is_active is False


def test_archive_twice_is_idempotent(services, make_block):
    block = make_block()
    services.catalog.archive(block.id)
    assert services.catalog.archive(block.id).is_active is False


def test_archive_unknown_id(services):
    with pytest.raises(NotFoundError):
        services.catalog.archive("BB-NOPE")


def test_restore(services, make_block):
    block = make_block()
    services.catalog.archive(block.id)
    restored = services.catalog.restore(block.id)
    assert restored.is_active is True
    assert restored.archived_at is None
    assert [b.id for b in services.catalog.list_active()] == [block.id]


# ── listing helpers ──────────────────────────────────────────────────────


def test_list_active_filters_by_category(services, make_block):
    make_block(name="Sec")
    dev = make_block(name="Dev", category="Development")
    assert [b.id for b in services.catalog.list_active("Development")] == [dev.id]
    assert services.catalog.categories() == ["Development", "Security"]


def test_record_usage_counts_distinct_blocks(services, make_block):
    a = make_block(name="A")
    b = make_block(name="B")
    services.catalog.record_usage([a.id, a.id, b.id, "BB-MISSING"])
    services.catalog.record_usage([a.id])
    assert services.catalog.get(a.id).usage_count == 2
    assert services.catalog.get(b.id).usage_count == 1


def test_usage_warning(make_block, services):
    block = make_block()
    assert usage_warning(block) is None
    services.catalog.record_usage([block.id])
    text = usage_warning(services.catalog.get(block.id))
    assert "used in 1 workflow(s)" in text
