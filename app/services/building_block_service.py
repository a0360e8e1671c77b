"""
Building Block Catalog — Service Layer.

Business logic for:
    - Block id generation:   BB-<timestamp>-<suffix>
    - CRUD:                  create / update / get / list (soft archive only)
    - Archive / restore:     isActive flag; references from templates and
                             workflow instances keep resolving
    - Usage tracking:        usageCount = workflow instances containing the block

The catalog is one collection document ("buildingBlocks") read and
replaced whole through the injected repository.
"""

from __future__ import annotations

import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models.archivable import active_only
from app.models.workflow import (
    BLOCK_CATEGORIES,
    DEFAULT_BLOCK_COLOR,
    DEFAULT_BLOCK_ICON,
    DEFAULT_SLA_WARNING_DAYS,
    BuildingBlock,
)
from app.services.helpers.collections import find_index, load_records, persist
from app.services.helpers.validation import (
    one_of,
    optional_text,
    positive_int,
    require_text,
    string_list,
)
from app.utils.helpers import new_id, utcnow

logger = logging.getLogger(__name__)

COLLECTION_KEY = "buildingBlocks"

# Fields a caller may set; id, usageCount and isActive are managed here.
EDITABLE_FIELDS = (
    "name", "category", "description", "team", "estimatedDays", "icon", "color",
    "slaWarningDays", "required", "canRunInParallel", "checklistItems", "outputs",
    "createdBy",
)


def usage_warning(block: BuildingBlock) -> str | None:
    """Text the caller should show before archiving a block that is in use."""
    if block.usage_count <= 0:
        return None
    return (
        f"This block is used in {block.usage_count} workflow(s). Archiving it will "
        "not affect existing OTIs, but it won't be available for new workflows."
    )


class BuildingBlockCatalog:
    """Reusable step definitions.

    Args:
        repository:        Persistence collaborator (load/save by key).
        max_estimated_days: Upper bound for estimatedDays.
        save_retries:      Save attempts before PersistenceError.
    """

    def __init__(self, repository, max_estimated_days: int = 90, save_retries: int = 3) -> None:
        self.repository = repository
        self.max_estimated_days = max_estimated_days
        self.save_retries = save_retries

    # ── Collection I/O ───────────────────────────────────────────────────────

    def _load(self) -> list[BuildingBlock]:
        return load_records(self.repository, COLLECTION_KEY, BuildingBlock.from_dict)

    def _persist(self, blocks: list[BuildingBlock]) -> None:
        persist(
            self.repository, COLLECTION_KEY,
            [b.to_dict() for b in blocks], retries=self.save_retries,
        )

    # ── Validation ───────────────────────────────────────────────────────────

    def _validate(self, data: dict) -> dict:
        """Return normalised constructor kwargs or raise ValidationError."""
        if "estimatedDays" not in data or data.get("estimatedDays") in (None, ""):
            raise ValidationError(
                "estimatedDays is required", details={"estimatedDays": "required"},
            )
        category = data.get("category")
        if not category:
            raise ValidationError("category is required", details={"category": "required"})

        sla = data.get("slaWarningDays")
        return {
            "name": require_text(data, "name"),
            "category": one_of(category, "category", BLOCK_CATEGORIES),
            "team": require_text(data, "team"),
            "estimated_days": positive_int(
                data["estimatedDays"], "estimatedDays", maximum=self.max_estimated_days,
            ),
            "description": optional_text(data, "description"),
            "icon": optional_text(data, "icon") or DEFAULT_BLOCK_ICON,
            "color": optional_text(data, "color") or DEFAULT_BLOCK_COLOR,
            "sla_warning_days": (
                DEFAULT_SLA_WARNING_DAYS if sla in (None, "")
                else positive_int(sla, "slaWarningDays")
            ),
            "required": bool(data.get("required", False)),
            "can_run_in_parallel": bool(data.get("canRunInParallel", False)),
            "checklist_items": string_list(data.get("checklistItems"), "checklistItems"),
            "outputs": string_list(data.get("outputs"), "outputs"),
            "created_by": optional_text(data, "createdBy"),
        }

    # ── Reads ────────────────────────────────────────────────────────────────

    def get(self, block_id: str) -> BuildingBlock:
        """Return a block (archived or not).

        Raises:
            NotFoundError: If the id is unknown.
        """
        block = self.find(block_id)
        if block is None:
            raise NotFoundError(resource="BuildingBlock", resource_id=block_id)
        return block

    def find(self, block_id: str) -> BuildingBlock | None:
        for block in self._load():
            if block.id == block_id:
                return block
        return None

    def index(self) -> dict[str, BuildingBlock]:
        """Every block by id, archived included — for reference resolution."""
        return {block.id: block for block in self._load()}

    def list_active(self, category: str | None = None) -> list[BuildingBlock]:
        """Blocks available for new template composition."""
        blocks = active_only(self._load())
        if category:
            blocks = [b for b in blocks if b.category == category]
        return blocks

    def list_all(self, include_archived: bool = False) -> list[BuildingBlock]:
        blocks = self._load()
        return blocks if include_archived else active_only(blocks)

    def categories(self) -> list[str]:
        return sorted({b.category for b in active_only(self._load())})

    # ── Mutations ────────────────────────────────────────────────────────────

    def create(self, data: dict) -> BuildingBlock:
        """Create a block with a fresh id, usageCount=0 and isActive=True.

        Raises:
            ValidationError: If name, category, team or estimatedDays is
                missing or invalid.
        """
        values = self._validate(data)
        now = utcnow()
        block = BuildingBlock(
            id=new_id("BB"),
            usage_count=0,
            is_active=True,
            created_at=now,
            updated_at=now,
            **values,
        )
        blocks = self._load()
        blocks.append(block)
        self._persist(blocks)
        logger.info("Building block created id=%s name=%r", block.id, block.name)
        return block

    def update(self, block_id: str, patch: dict) -> BuildingBlock:
        """Merge ``patch`` into the stored block. ``id`` is never overwritten.

        Raises:
            NotFoundError: If the id is unknown.
            ValidationError: If the merged block is invalid.
        """
        blocks = self._load()
        idx = find_index(blocks, block_id)
        if idx < 0:
            raise NotFoundError(resource="BuildingBlock", resource_id=block_id)

        current = blocks[idx]
        merged = current.to_dict()
        merged.update({k: v for k, v in (patch or {}).items() if k in EDITABLE_FIELDS})
        values = self._validate(merged)

        updated = BuildingBlock(
            id=current.id,
            usage_count=current.usage_count,
            is_active=current.is_active,
            created_at=current.created_at,
            updated_at=utcnow(),
            archived_at=current.archived_at,
            **values,
        )
        blocks[idx] = updated
        self._persist(blocks)
        logger.info("Building block updated id=%s", block_id)
        return updated

    def archive(self, block_id: str) -> BuildingBlock:
        """Soft-delete a block. Always allowed; usageCount is untouched.

        Raises:
            NotFoundError: If the id is unknown.
        """
        blocks = self._load()
        idx = find_index(blocks, block_id)
        if idx < 0:
            raise NotFoundError(resource="BuildingBlock", resource_id=block_id)

        block = blocks[idx]
        warning = usage_warning(block)
        if warning:
            logger.warning("Archiving in-use building block id=%s usage=%d",
                           block_id, block.usage_count)
        if block.is_active:
            block.archive()
            self._persist(blocks)
        logger.info("Building block archived id=%s", block_id)
        return block

    def restore(self, block_id: str) -> BuildingBlock:
        blocks = self._load()
        idx = find_index(blocks, block_id)
        if idx < 0:
            raise NotFoundError(resource="BuildingBlock", resource_id=block_id)
        block = blocks[idx]
        if not block.is_active:
            block.restore()
            self._persist(blocks)
            logger.info("Building block restored id=%s", block_id)
        return block

    def record_usage(self, block_ids) -> None:
        """Count one more workflow instance for each distinct block id.

        Unknown ids are skipped; the instance already degraded them.
        """
        wanted = set(block_ids)
        if not wanted:
            return
        blocks = self._load()
        touched = False
        for block in blocks:
            if block.id in wanted:
                block.usage_count += 1
                touched = True
        if touched:
            self._persist(blocks)
