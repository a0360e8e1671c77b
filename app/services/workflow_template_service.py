"""
Workflow Template Store — Service Layer.

Business logic for:
    - Template id generation:  WT-<timestamp>-<suffix>
    - Composition:             ordered block references, sequences normalised
                               to a contiguous 1..N run in the order given
    - Estimation:              estimatedTotalDays = Σ (customDuration ?? block.estimatedDays),
                               recomputed from the live catalog on every read and save
    - Archive / restore:       soft delete; instantiated workflows are unaffected
    - Duplication:             "<name> (Copy)" with usage reset
    - Usage tracking:          usageCount = number of instantiations

Unresolvable block ids during estimation contribute 0 days and come back
as ReferentialWarning entries; they are never dropped from stored data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.core.exceptions import NotFoundError, ReferentialWarning, ValidationError
from app.models.archivable import active_only
from app.models.workflow import TEMPLATE_CATEGORIES, TemplateBlockRef, WorkflowTemplate
from app.services.helpers.collections import find_index, load_records, persist
from app.services.helpers.validation import one_of, optional_text, positive_int, require_text
from app.utils.helpers import new_id, utcnow

logger = logging.getLogger(__name__)

COLLECTION_KEY = "workflowTemplates"

METADATA_FIELDS = ("name", "description", "category", "createdBy")


@dataclass
class TemplateEstimate:
    """Result of ``WorkflowTemplateStore.estimate``."""

    total_days: int = 0
    warnings: list[ReferentialWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "estimatedTotalDays": self.total_days,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _as_ref(item, position: int) -> TemplateBlockRef:
    if isinstance(item, TemplateBlockRef):
        return item
    if not isinstance(item, dict):
        raise ValidationError(f"Block #{position} is malformed", details={"blocks": "invalid"})
    ref = TemplateBlockRef.from_dict(item)
    if not ref.sequence:
        ref.sequence = position
    if ref.custom_duration in ("", None):
        ref.custom_duration = None
    else:
        ref.custom_duration = positive_int(ref.custom_duration, "customDuration")
    return ref


class WorkflowTemplateStore:
    """Reusable, ordered compositions of catalog blocks.

    Args:
        repository:          Persistence collaborator.
        catalog:             BuildingBlockCatalog used to resolve block ids.
        max_custom_duration: Upper bound for a reference's customDuration.
        save_retries:        Save attempts before PersistenceError.
    """

    def __init__(self, repository, catalog, max_custom_duration: int = 90,
                 save_retries: int = 3) -> None:
        self.repository = repository
        self.catalog = catalog
        self.max_custom_duration = max_custom_duration
        self.save_retries = save_retries

    # ── Collection I/O ───────────────────────────────────────────────────────

    def _load(self) -> list[WorkflowTemplate]:
        return load_records(self.repository, COLLECTION_KEY, WorkflowTemplate.from_dict)

    def _persist(self, templates: list[WorkflowTemplate]) -> None:
        catalog = self.catalog.index()
        for template in templates:
            self._refresh(template, catalog)
        persist(
            self.repository, COLLECTION_KEY,
            [t.to_dict() for t in templates], retries=self.save_retries,
        )

    def _refresh(self, template: WorkflowTemplate, catalog=None) -> WorkflowTemplate:
        template.estimated_total_days = self.estimate(template.blocks, catalog).total_days
        return template

    # ── Estimation ───────────────────────────────────────────────────────────

    def estimate(self, blocks, catalog: dict | None = None) -> TemplateEstimate:
        """Sum of customDuration, else the catalog block's estimatedDays.

        Accepts TemplateBlockRef records or their dict form. Pure: nothing
        is stored. ``catalog`` is an optional pre-loaded id → block index.
        """
        if blocks is None:
            blocks = []
        if not isinstance(blocks, (list, tuple)):
            raise ValidationError("blocks must be a list", details={"blocks": "invalid"})
        if catalog is None:
            catalog = self.catalog.index()
        result = TemplateEstimate()
        for position, item in enumerate(blocks, start=1):
            ref = _as_ref(item, position)
            block = catalog.get(ref.block_id)
            if block is None:
                warning = ReferentialWarning(
                    "BuildingBlock", ref.block_id,
                    f"Building block {ref.block_id or '(none)'} not found; "
                    f"counted as {ref.custom_duration or 0} days",
                )
                logger.warning("Template estimate: %s", warning.message)
                result.warnings.append(warning)
            if ref.custom_duration is not None:
                result.total_days += ref.custom_duration
            elif block is not None:
                result.total_days += block.estimated_days
        return result

    # ── Validation ───────────────────────────────────────────────────────────

    def normalize_refs(self, raw_blocks, keep_archived=frozenset()) -> list[TemplateBlockRef]:
        """Validate block references and renumber them 1..N in list order.

        ``keep_archived`` holds ids that may stay even though their block is
        archived (they were already part of the stored template).
        """
        if not isinstance(raw_blocks, (list, tuple)) or not raw_blocks:
            raise ValidationError(
                "At least one building block is required", details={"blocks": "required"},
            )
        catalog = self.catalog.index()
        refs = []
        for position, raw in enumerate(raw_blocks, start=1):
            if isinstance(raw, TemplateBlockRef):
                raw = raw.to_dict()
            if not isinstance(raw, dict):
                raise ValidationError(
                    f"Block #{position} is malformed", details={"blocks": "invalid"},
                )
            block_id = raw.get("blockId")
            if not block_id:
                raise ValidationError(
                    f"Block #{position} has no building block selected",
                    details={"blocks": f"#{position} blockId required"},
                )
            block = catalog.get(block_id)
            if block is None:
                raise ValidationError(
                    f"Building block {block_id} does not exist",
                    details={"blocks": f"#{position} unknown blockId"},
                )
            if not block.is_active and block_id not in keep_archived:
                raise ValidationError(
                    f"Building block '{block.name}' is archived and cannot be added to a template",
                    details={"blocks": f"#{position} archived"},
                )
            custom = raw.get("customDuration")
            if custom in (None, ""):
                custom = None
            else:
                custom = positive_int(custom, "customDuration", maximum=self.max_custom_duration)
            notes = raw.get("notes") or ""
            if not isinstance(notes, str):
                raise ValidationError("notes must be a string", details={"blocks": "invalid"})
            refs.append(TemplateBlockRef(
                block_id=block_id, sequence=position,
                custom_duration=custom, notes=notes.strip(),
            ))
        return refs

    # ── Reads ────────────────────────────────────────────────────────────────

    def get(self, template_id: str) -> WorkflowTemplate:
        """Return a template (archived or not) with a freshly computed estimate.

        Raises:
            NotFoundError: If the id is unknown.
        """
        for template in self._load():
            if template.id == template_id:
                return self._refresh(template)
        raise NotFoundError(resource="WorkflowTemplate", resource_id=template_id)

    def list_active(self, category: str | None = None) -> list[WorkflowTemplate]:
        templates = active_only(self._load())
        if category:
            templates = [t for t in templates if t.category == category]
        catalog = self.catalog.index()
        return [self._refresh(t, catalog) for t in templates]

    def list_all(self, include_archived: bool = False) -> list[WorkflowTemplate]:
        templates = self._load()
        if not include_archived:
            templates = active_only(templates)
        catalog = self.catalog.index()
        return [self._refresh(t, catalog) for t in templates]

    # ── Mutations ────────────────────────────────────────────────────────────

    def create(self, data: dict) -> WorkflowTemplate:
        """Create a template from an ordered list of block references.

        Raises:
            ValidationError: If name/category is missing, ``blocks`` is empty,
                or any blockId does not resolve to an active catalog block.
        """
        name = require_text(data, "name")
        category = data.get("category")
        if not category:
            raise ValidationError("category is required", details={"category": "required"})
        one_of(category, "category", TEMPLATE_CATEGORIES)
        refs = self.normalize_refs(data.get("blocks"))

        now = utcnow()
        template = WorkflowTemplate(
            id=new_id("WT"),
            name=name,
            category=category,
            blocks=refs,
            description=optional_text(data, "description"),
            usage_count=0,
            is_active=True,
            created_by=optional_text(data, "createdBy"),
            created_at=now,
            updated_at=now,
        )
        templates = self._load()
        templates.append(template)
        self._persist(templates)
        logger.info("Workflow template created id=%s blocks=%d est_days=%d",
                    template.id, len(refs), template.estimated_total_days)
        return template

    def update(self, template_id: str, patch: dict) -> WorkflowTemplate:
        """Merge metadata; replace ``blocks`` wholesale when present.

        Raises:
            NotFoundError: If the id is unknown.
            ValidationError: If the new metadata or blocks are invalid.
        """
        patch = patch or {}
        templates = self._load()
        idx = find_index(templates, template_id)
        if idx < 0:
            raise NotFoundError(resource="WorkflowTemplate", resource_id=template_id)
        template = templates[idx]

        merged = {
            "name": template.name,
            "description": template.description,
            "category": template.category,
            "createdBy": template.created_by,
        }
        merged.update({k: v for k, v in patch.items() if k in METADATA_FIELDS})
        name = require_text(merged, "name")
        category = one_of(merged.get("category"), "category", TEMPLATE_CATEGORIES)

        refs = template.blocks
        if "blocks" in patch:
            refs = self.normalize_refs(
                patch["blocks"],
                keep_archived=frozenset(ref.block_id for ref in template.blocks),
            )

        template.name = name
        template.category = category
        template.description = optional_text(merged, "description")
        template.created_by = optional_text(merged, "createdBy")
        template.blocks = refs
        template.updated_at = utcnow()
        self._persist(templates)
        logger.info("Workflow template updated id=%s blocks_replaced=%s",
                    template_id, "blocks" in patch)
        return template

    def archive(self, template_id: str) -> WorkflowTemplate:
        """Soft-delete. Workflows already instantiated keep running."""
        templates = self._load()
        idx = find_index(templates, template_id)
        if idx < 0:
            raise NotFoundError(resource="WorkflowTemplate", resource_id=template_id)
        template = templates[idx]
        if template.usage_count > 0:
            logger.warning("Archiving workflow template id=%s used %d time(s)",
                           template_id, template.usage_count)
        if template.is_active:
            template.archive()
            self._persist(templates)
        logger.info("Workflow template archived id=%s", template_id)
        return template

    def restore(self, template_id: str) -> WorkflowTemplate:
        templates = self._load()
        idx = find_index(templates, template_id)
        if idx < 0:
            raise NotFoundError(resource="WorkflowTemplate", resource_id=template_id)
        template = templates[idx]
        if not template.is_active:
            template.restore()
            self._persist(templates)
            logger.info("Workflow template restored id=%s", template_id)
        return template

    def duplicate(self, template_id: str, created_by: str = "") -> WorkflowTemplate:
        """Copy a template under a new id as "<name> (Copy)"."""
        source = self.get(template_id)
        now = utcnow()
        copy = WorkflowTemplate(
            id=new_id("WT"),
            name=f"{source.name} (Copy)",
            category=source.category,
            blocks=[
                TemplateBlockRef(r.block_id, r.sequence, r.custom_duration, r.notes)
                for r in source.ordered_blocks()
            ],
            description=source.description,
            usage_count=0,
            is_active=True,
            created_by=created_by or source.created_by,
            created_at=now,
            updated_at=now,
        )
        templates = self._load()
        templates.append(copy)
        self._persist(templates)
        logger.info("Workflow template duplicated source=%s copy=%s", template_id, copy.id)
        return copy

    def record_usage(self, template_id: str) -> None:
        templates = self._load()
        idx = find_index(templates, template_id)
        if idx < 0:
            return
        templates[idx].usage_count += 1
        self._persist(templates)
