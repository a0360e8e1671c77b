"""
OTI Tracker
Workflow records — building blocks, templates and per-OTI instances.

Records:
    - BuildingBlock:      reusable step definition in the catalog
    - TemplateBlockRef:   one ordered reference from a template to a block
    - WorkflowTemplate:   ordered, reusable composition of block references
    - ChecklistProgress:  ticked checklist indices of one block instance
    - BlockInstance:      state-tracked execution of a block inside an OTI workflow
    - WorkflowInstance:   the live workflow owned by exactly one OTI

Architecture:
    BuildingBlock ◀──id── TemplateBlockRef ◀──1:N── WorkflowTemplate
    BuildingBlock ◀──id── BlockInstance    ◀──1:N── WorkflowInstance ◀──1:1── OTI

References are by id only. Instances snapshot ``estimatedDays`` and the
checklist size at instantiation time, so later catalog or template edits
never rewrite a running workflow.

Lifecycle states (BlockInstance):
    waiting → not-started → in-progress → completed
    Only block 1 starts as not-started; completing block N unblocks N+1.

Records are plain dataclasses. ``to_dict`` / ``from_dict`` use the JSON
field names of the stored collections (camelCase).
"""

from dataclasses import dataclass, field
from datetime import datetime

from app.models.archivable import Archivable
from app.utils.helpers import isoformat, parse_datetime


# ── Constants ────────────────────────────────────────────────────────────────

BLOCK_CATEGORIES = (
    "Security", "Development", "Infrastructure", "Procurement",
    "Testing", "Deployment", "Documentation", "Training",
)

TEMPLATE_CATEGORIES = ("Procurement", "Development", "Infrastructure", "Enhancement")

BLOCK_STATUS_WAITING = "waiting"
BLOCK_STATUS_NOT_STARTED = "not-started"
BLOCK_STATUS_IN_PROGRESS = "in-progress"
BLOCK_STATUS_COMPLETED = "completed"

BLOCK_STATUSES = (
    BLOCK_STATUS_WAITING,
    BLOCK_STATUS_NOT_STARTED,
    BLOCK_STATUS_IN_PROGRESS,
    BLOCK_STATUS_COMPLETED,
)

DEFAULT_BLOCK_ICON = "🔧"
DEFAULT_BLOCK_COLOR = "#009BDB"
DEFAULT_SLA_WARNING_DAYS = 2


# ═════════════════════════════════════════════════════════════════════════════
# 1. BuildingBlock
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class BuildingBlock(Archivable):
    """Reusable step definition. ``id`` never changes once assigned."""

    id: str
    name: str
    category: str
    team: str
    estimated_days: int
    description: str = ""
    icon: str = DEFAULT_BLOCK_ICON
    color: str = DEFAULT_BLOCK_COLOR
    sla_warning_days: int = DEFAULT_SLA_WARNING_DAYS
    required: bool = False
    can_run_in_parallel: bool = False
    checklist_items: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    usage_count: int = 0
    is_active: bool = True
    created_by: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    archived_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "team": self.team,
            "estimatedDays": self.estimated_days,
            "icon": self.icon,
            "color": self.color,
            "slaWarningDays": self.sla_warning_days,
            "required": self.required,
            "canRunInParallel": self.can_run_in_parallel,
            "checklistItems": list(self.checklist_items),
            "outputs": list(self.outputs),
            "usageCount": self.usage_count,
            "isActive": self.is_active,
            "createdBy": self.created_by,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
            "archivedAt": isoformat(self.archived_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BuildingBlock":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            category=data.get("category", ""),
            team=data.get("team", ""),
            estimated_days=data.get("estimatedDays", 0),
            description=data.get("description", ""),
            icon=data.get("icon") or DEFAULT_BLOCK_ICON,
            color=data.get("color") or DEFAULT_BLOCK_COLOR,
            sla_warning_days=data.get("slaWarningDays", DEFAULT_SLA_WARNING_DAYS),
            required=bool(data.get("required", False)),
            can_run_in_parallel=bool(data.get("canRunInParallel", False)),
            checklist_items=list(data.get("checklistItems") or []),
            outputs=list(data.get("outputs") or []),
            usage_count=data.get("usageCount", 0),
            is_active=data.get("isActive", True) is not False,
            created_by=data.get("createdBy", ""),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
            archived_at=parse_datetime(data.get("archivedAt")),
        )

    def __repr__(self):
        return f"<BuildingBlock {self.id} {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. WorkflowTemplate
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class TemplateBlockRef:
    """Reference from a template to a catalog block (not ownership)."""

    block_id: str
    sequence: int
    custom_duration: int | None = None
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "blockId": self.block_id,
            "sequence": self.sequence,
            "customDuration": self.custom_duration,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TemplateBlockRef":
        return cls(
            block_id=data.get("blockId", ""),
            sequence=data.get("sequence", 0),
            custom_duration=data.get("customDuration"),
            notes=data.get("notes") or "",
        )


@dataclass
class WorkflowTemplate(Archivable):
    """Ordered composition of block references.

    Sequences form a contiguous 1..N run. ``estimated_total_days`` is
    derived and recomputed by the store whenever it is read or saved.
    """

    id: str
    name: str
    category: str
    blocks: list[TemplateBlockRef] = field(default_factory=list)
    description: str = ""
    estimated_total_days: int = 0
    usage_count: int = 0
    is_active: bool = True
    created_by: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    archived_at: datetime | None = None

    def ordered_blocks(self) -> list[TemplateBlockRef]:
        return sorted(self.blocks, key=lambda ref: ref.sequence)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "blocks": [ref.to_dict() for ref in self.ordered_blocks()],
            "estimatedTotalDays": self.estimated_total_days,
            "usageCount": self.usage_count,
            "isActive": self.is_active,
            "createdBy": self.created_by,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
            "archivedAt": isoformat(self.archived_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowTemplate":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            category=data.get("category", ""),
            blocks=[TemplateBlockRef.from_dict(b) for b in data.get("blocks") or []],
            description=data.get("description", ""),
            estimated_total_days=data.get("estimatedTotalDays", 0),
            usage_count=data.get("usageCount", 0),
            is_active=data.get("isActive", True) is not False,
            created_by=data.get("createdBy", ""),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
            archived_at=parse_datetime(data.get("archivedAt")),
        )

    def __repr__(self):
        return f"<WorkflowTemplate {self.id} {self.name!r} blocks={len(self.blocks)}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. WorkflowInstance
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class ChecklistProgress:
    """Ticked checklist item indices; ``total`` is frozen at instantiation."""

    completed: set[int] = field(default_factory=set)
    total: int = 0

    def to_dict(self) -> dict:
        return {"completed": sorted(self.completed), "total": self.total}

    @classmethod
    def from_dict(cls, data: dict | None) -> "ChecklistProgress":
        data = data or {}
        return cls(
            completed={int(i) for i in data.get("completed") or []},
            total=data.get("total", 0),
        )


@dataclass
class BlockInstance:
    """One block's execution state inside an OTI workflow.

    ``sequence`` and ``estimated_days`` are fixed at instantiation.
    """

    block_id: str
    sequence: int
    status: str = BLOCK_STATUS_WAITING
    assigned_to: str | None = None
    start_date: datetime | None = None
    completed_date: datetime | None = None
    actual_days: int | None = None
    notes: str = ""
    completion_notes: str = ""
    estimated_days: int = 0
    checklist_progress: ChecklistProgress = field(default_factory=ChecklistProgress)

    def to_dict(self) -> dict:
        return {
            "blockId": self.block_id,
            "sequence": self.sequence,
            "assignedTo": self.assigned_to,
            "status": self.status,
            "startDate": isoformat(self.start_date),
            "completedDate": isoformat(self.completed_date),
            "actualDays": self.actual_days,
            "notes": self.notes,
            "completionNotes": self.completion_notes,
            "estimatedDays": self.estimated_days,
            "checklistProgress": self.checklist_progress.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BlockInstance":
        return cls(
            block_id=data.get("blockId", ""),
            sequence=data.get("sequence", 0),
            status=data.get("status", BLOCK_STATUS_WAITING),
            assigned_to=data.get("assignedTo"),
            start_date=parse_datetime(data.get("startDate")),
            completed_date=parse_datetime(data.get("completedDate")),
            actual_days=data.get("actualDays"),
            notes=data.get("notes") or "",
            completion_notes=data.get("completionNotes") or "",
            estimated_days=data.get("estimatedDays", 0),
            checklist_progress=ChecklistProgress.from_dict(data.get("checklistProgress")),
        )


@dataclass
class WorkflowInstance:
    """Live per-OTI workflow. Derived fields are maintained by the engine."""

    template_id: str | None
    blocks: list[BlockInstance] = field(default_factory=list)
    overall_progress: int = 0
    current_block: int | None = 1
    blocks_completed: int = 0
    blocks_total: int = 0

    def find_block(self, sequence: int) -> BlockInstance | None:
        for block in self.blocks:
            if block.sequence == sequence:
                return block
        return None

    @property
    def is_complete(self) -> bool:
        return self.blocks_total > 0 and self.blocks_completed == self.blocks_total

    def to_dict(self) -> dict:
        return {
            "templateId": self.template_id,
            "blocks": [b.to_dict() for b in self.blocks],
            "overallProgress": self.overall_progress,
            "currentBlock": self.current_block,
            "blocksCompleted": self.blocks_completed,
            "blocksTotal": self.blocks_total,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowInstance":
        blocks = [BlockInstance.from_dict(b) for b in data.get("blocks") or []]
        return cls(
            template_id=data.get("templateId"),
            blocks=blocks,
            overall_progress=data.get("overallProgress", 0),
            current_block=data.get("currentBlock"),
            blocks_completed=data.get("blocksCompleted", 0),
            blocks_total=data.get("blocksTotal", len(blocks)),
        )

    def __repr__(self):
        return (
            f"<WorkflowInstance template={self.template_id} "
            f"{self.blocks_completed}/{self.blocks_total}>"
        )
