"""
OTI Service — Service Layer.

Business logic for:
    - OTI lifecycle:        create / read / update / delete, status changes, notes
    - Target dates:         dateSubmitted + otiType.targetDays[priority] business days
    - Workflow ownership:   attach a template or custom workflow once per OTI
    - Block actions:        advance / checklist → engine → aggregator → one save
    - Filtering & search:   status, priority, type, team, overdue, stalled, free text
    - Dashboard metrics:    active, urgent, stalled, overdue, on-time rate, avg duration
    - Block usage lookup:   templates and OTIs that reference a building block

Every user action loads the "otis" collection fresh, mutates one OTI in
memory and persists the whole collection once.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta

from app.core.exceptions import NotFoundError, PersistenceError, ValidationError
from app.models.oti import (
    OTI,
    OTI_PRIORITIES,
    OTI_STATUS_DONE,
    OTI_STATUS_RECEIVED,
    OTI_STATUS_STALLED,
    OTI_STATUSES,
    WORKFLOW_TYPES,
)
from app.services import workflow_engine
from app.services.helpers.collections import find_index, load_records, persist
from app.services.helpers.validation import one_of, optional_text, require_text, string_list
from app.services.progress import apply_workflow_state, days_active, is_overdue, progress_of
from app.services.workflow_instantiation import instantiate, instantiate_custom
from app.utils.helpers import (
    add_business_days,
    business_days_between,
    isoformat,
    new_id,
    parse_datetime,
    percent,
    utcnow,
)

logger = logging.getLogger(__name__)

COLLECTION_KEY = "otis"

SUBMITTED_NOTE = "OTI submitted and under initial assessment"

# Caller-editable fields → OTI attribute. id, status, statusHistory,
# dateSubmitted and workflow change only through dedicated operations.
UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "otiType": "oti_type",
    "priority": "priority",
    "requestor": "requestor",
    "leadTeam": "lead_team",
    "leadCoordinator": "lead_coordinator",
    "supportingTeams": "supporting_teams",
    "businessJustification": "business_justification",
    "expectedBenefits": "expected_benefits",
    "dependencies": "dependencies",
    "targetCompletionDate": "target_completion_date",
    "progressPercentage": "progress_percentage",
}

COMPLETION_WINDOW_DAYS = 30


def project(oti: OTI, now=None) -> dict:
    """Stored fields plus the derived read-side values."""
    now = now or utcnow()
    data = oti.to_dict()
    data["progress"] = progress_of(oti)
    data["isOverdue"] = is_overdue(oti, now)
    data["daysActive"] = days_active(oti, now)
    return data


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class OTIService:
    """Owner of OTI records and their workflow instances.

    Args:
        repository:   Persistence collaborator.
        catalog:      BuildingBlockCatalog.
        templates:    WorkflowTemplateStore.
        reference:    ReferenceData (OTI types for target dates).
        save_retries: Save attempts before PersistenceError.
    """

    def __init__(self, repository, catalog, templates, reference, save_retries: int = 3) -> None:
        self.repository = repository
        self.catalog = catalog
        self.templates = templates
        self.reference = reference
        self.save_retries = save_retries

    # ── Collection I/O ───────────────────────────────────────────────────────

    def _load(self) -> list[OTI]:
        return load_records(self.repository, COLLECTION_KEY, OTI.from_dict)

    def _persist(self, otis: list[OTI]) -> None:
        persist(
            self.repository, COLLECTION_KEY,
            [o.to_dict() for o in otis], retries=self.save_retries,
        )

    def _locate(self, otis: list[OTI], oti_id: str) -> OTI:
        idx = find_index(otis, oti_id)
        if idx < 0:
            raise NotFoundError(resource="OTI", resource_id=oti_id)
        return otis[idx]

    # ── Validation ───────────────────────────────────────────────────────────

    def _validate_type(self, oti_type) -> str:
        if not isinstance(oti_type, str) or not oti_type.strip():
            raise ValidationError("otiType is required", details={"otiType": "required"})
        configured = [t.get("id") for t in self.reference.oti_types()]
        if configured and oti_type not in configured:
            raise ValidationError(
                f"Unknown OTI type: {oti_type}", details={"otiType": "invalid"},
            )
        return oti_type.strip()

    @staticmethod
    def _validate_requestor(requestor) -> dict:
        if not isinstance(requestor, dict):
            raise ValidationError(
                "requestor.name is required", details={"requestor.name": "required"},
            )
        return {
            "name": require_text(requestor, "name", "requestor.name"),
            "email": optional_text(requestor, "email"),
            "department": optional_text(requestor, "department"),
        }

    @staticmethod
    def _validate_progress(value) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
            raise ValidationError(
                "progressPercentage must be a whole number between 0 and 100",
                details={"progressPercentage": "invalid"},
            )
        return value

    @staticmethod
    def _parse_target(raw):
        """ISO date → aware datetime; empty is None, anything else unparseable raises."""
        parsed = parse_datetime(raw)
        if raw and parsed is None:
            raise ValidationError(
                "targetCompletionDate must be an ISO date",
                details={"targetCompletionDate": "invalid"},
            )
        return parsed

    def _target_date(self, oti_type: str, priority: str, start):
        definition = self.reference.oti_type(oti_type) or {}
        target_days = (definition.get("targetDays") or {}).get(priority)
        if not target_days:
            return None
        return add_business_days(start, int(target_days))

    # ── Workflow construction ────────────────────────────────────────────────

    def _build_workflow(self, workflow_type: str, template_id=None, custom_blocks=None):
        one_of(workflow_type, "workflowType", WORKFLOW_TYPES)
        if workflow_type == "template":
            if not template_id:
                raise ValidationError(
                    "Please select a workflow template", details={"templateId": "required"},
                )
            return instantiate(self.templates, self.catalog, template_id)
        if workflow_type == "custom":
            return instantiate_custom(self.templates, self.catalog, custom_blocks)
        return None

    def _record_usage(self, workflow) -> None:
        """Bump template and block usage counters after the OTI is stored.

        Counters are bookkeeping only; a failed save here is logged and the
        already-persisted OTI is still returned to the caller.
        """
        if workflow.template_id:
            try:
                self.templates.record_usage(workflow.template_id)
            except PersistenceError as exc:
                logger.error("Template usage not recorded template=%s: %s",
                             workflow.template_id, exc)
        try:
            self.catalog.record_usage({b.block_id for b in workflow.blocks})
        except PersistenceError as exc:
            logger.error("Block usage not recorded: %s", exc)

    # ── Reads ────────────────────────────────────────────────────────────────

    def get_oti(self, oti_id: str) -> OTI:
        """Raises NotFoundError if the id is unknown."""
        return self._locate(self._load(), oti_id)

    def list_otis(self, status=None, priority=None, oti_type=None, team=None,
                  overdue_only=False, stalled_only=False, query=None, now=None) -> list[OTI]:
        """Filter OTIs; ``status`` / ``priority`` accept a value or a list.

        ``query`` matches id, title, requestor name and description
        (case-insensitive). Results are newest first.
        """
        now = now or utcnow()
        statuses = [status] if isinstance(status, str) else list(status or [])
        priorities = [priority] if isinstance(priority, str) else list(priority or [])
        needle = (query or "").strip().lower()

        results = []
        for oti in self._load():
            if statuses and oti.status not in statuses:
                continue
            if priorities and oti.priority not in priorities:
                continue
            if oti_type and oti.oti_type != oti_type:
                continue
            if team and oti.lead_team != team:
                continue
            if overdue_only and not is_overdue(oti, now):
                continue
            if stalled_only and oti.status != OTI_STATUS_STALLED:
                continue
            if needle:
                haystack = (
                    oti.id, oti.title, (oti.requestor or {}).get("name") or "", oti.description,
                )
                if not any(needle in (text or "").lower() for text in haystack):
                    continue
            results.append(oti)

        results.sort(key=lambda o: isoformat(o.date_submitted) or "", reverse=True)
        return results

    def block_usage(self, block_id: str) -> dict:
        """Ids of templates (archived included) and OTIs that reference a block."""
        self.catalog.get(block_id)
        template_ids = [
            t.id for t in self.templates.list_all(include_archived=True)
            if any(ref.block_id == block_id for ref in t.blocks)
        ]
        oti_ids = [
            o.id for o in self._load()
            if o.workflow and any(b.block_id == block_id for b in o.workflow.blocks)
        ]
        return {"blockId": block_id, "templates": template_ids, "otis": oti_ids}

    def dashboard_metrics(self, now=None) -> dict:
        now = now or utcnow()
        otis = self._load()
        active = [o for o in otis if o.status != OTI_STATUS_DONE]
        completed = [o for o in otis if o.status == OTI_STATUS_DONE]

        window_start = now - timedelta(days=COMPLETION_WINDOW_DAYS)
        recent = [
            o for o in completed
            if o.actual_completion_date and o.actual_completion_date >= window_start
        ]
        on_time = [
            o for o in recent
            if o.target_completion_date and o.actual_completion_date <= o.target_completion_date
        ]
        avg_days = 0
        if recent:
            total = sum(
                business_days_between(o.date_submitted, o.actual_completion_date) for o in recent
            )
            avg_days = _round_half_up(total / len(recent))

        return {
            "totalActive": len(active),
            "urgentItems": sum(1 for o in active if o.priority == "urgent"),
            "stalledItems": sum(1 for o in otis if o.status == OTI_STATUS_STALLED),
            "overdueItems": sum(1 for o in otis if is_overdue(o, now)),
            "completionRate": percent(len(on_time), len(recent)),
            "avgCompletionTime": avg_days,
            "totalOTIs": len(otis),
            "completedOTIs": len(completed),
        }

    # ── Mutations ────────────────────────────────────────────────────────────

    def create_oti(self, data: dict, now=None) -> OTI:
        """Create an OTI in status "received", optionally with a workflow.

        ``workflowType`` is none | template (+ ``templateId``) | custom
        (+ ``customBlocks``).

        Raises:
            ValidationError: On missing/invalid fields or workflow input.
            NotFoundError:   If ``templateId`` is unknown or archived.
        """
        data = data or {}
        now = now or utcnow()
        title = require_text(data, "title")
        oti_type = self._validate_type(data.get("otiType"))
        priority = data.get("priority")
        if not priority:
            raise ValidationError("priority is required", details={"priority": "required"})
        one_of(priority, "priority", OTI_PRIORITIES)
        requestor = self._validate_requestor(data.get("requestor"))

        workflow_type = data.get("workflowType") or "none"
        workflow = self._build_workflow(
            workflow_type, data.get("templateId"), data.get("customBlocks"),
        )

        target = self._parse_target(data.get("targetCompletionDate")) or self._target_date(
            oti_type, priority, now,
        )
        oti = OTI(
            id=new_id("OTI"),
            title=title,
            oti_type=oti_type,
            priority=priority,
            status=OTI_STATUS_RECEIVED,
            description=optional_text(data, "description"),
            requestor=requestor,
            lead_team=optional_text(data, "leadTeam"),
            lead_coordinator=optional_text(data, "leadCoordinator"),
            supporting_teams=string_list(data.get("supportingTeams"), "supportingTeams"),
            business_justification=optional_text(data, "businessJustification"),
            expected_benefits=optional_text(data, "expectedBenefits"),
            dependencies=optional_text(data, "dependencies"),
            date_submitted=now,
            target_completion_date=target,
            progress_percentage=0,
            status_history=[{
                "status": OTI_STATUS_RECEIVED,
                "date": isoformat(now),
                "notes": SUBMITTED_NOTE,
                "updatedBy": optional_text(data, "submittedBy") or "System",
            }],
            workflow_type=workflow_type if workflow else "none",
            workflow=workflow,
        )

        otis = self._load()
        otis.append(oti)
        self._persist(otis)
        if workflow:
            self._record_usage(workflow)
        logger.info("OTI created id=%s type=%s priority=%s workflow=%s",
                    oti.id, oti_type, priority, oti.workflow_type)
        return oti

    def update_oti(self, oti_id: str, patch: dict) -> OTI:
        """Merge editable fields. Unknown or managed keys are ignored.

        Raises:
            NotFoundError:   If the id is unknown.
            ValidationError: If a merged value is invalid, or a manual
                progress is set on an OTI that has a workflow.
        """
        patch = {k: v for k, v in (patch or {}).items() if k in UPDATABLE_FIELDS}
        otis = self._load()
        oti = self._locate(otis, oti_id)

        if "title" in patch:
            patch["title"] = require_text(patch, "title")
        if "otiType" in patch:
            patch["otiType"] = self._validate_type(patch["otiType"])
        if "priority" in patch:
            one_of(patch["priority"], "priority", OTI_PRIORITIES)
        if "requestor" in patch:
            patch["requestor"] = self._validate_requestor(patch["requestor"])
        if "supportingTeams" in patch:
            patch["supportingTeams"] = string_list(patch["supportingTeams"], "supportingTeams")
        if "targetCompletionDate" in patch:
            patch["targetCompletionDate"] = self._parse_target(patch["targetCompletionDate"])
        if "progressPercentage" in patch:
            if oti.workflow is not None:
                raise ValidationError(
                    "Progress is derived from the workflow and cannot be set manually",
                    details={"progressPercentage": "derived"},
                )
            patch["progressPercentage"] = self._validate_progress(patch["progressPercentage"])
        for key in ("description", "leadTeam", "leadCoordinator", "businessJustification",
                    "expectedBenefits", "dependencies"):
            if key in patch:
                patch[key] = optional_text(patch, key)

        for key, value in patch.items():
            setattr(oti, UPDATABLE_FIELDS[key], value)
        self._persist(otis)
        logger.info("OTI updated id=%s fields=%s", oti_id, sorted(patch))
        return oti

    def delete_oti(self, oti_id: str) -> None:
        """Hard delete; the OTI owns its workflow, nothing else references it."""
        otis = self._load()
        oti = self._locate(otis, oti_id)
        otis.remove(oti)
        self._persist(otis)
        logger.info("OTI deleted id=%s", oti_id)

    def change_status(self, oti_id: str, status: str, notes: str = "",
                      updated_by: str = "System", now=None) -> OTI:
        one_of(status, "status", OTI_STATUSES)
        now = now or utcnow()
        otis = self._load()
        oti = self._locate(otis, oti_id)

        old = oti.status
        oti.status = status
        oti.status_history.append({
            "status": status,
            "date": isoformat(now),
            "notes": notes or "",
            "updatedBy": updated_by or "System",
        })
        if status == OTI_STATUS_DONE and oti.actual_completion_date is None:
            oti.actual_completion_date = now
        self._persist(otis)
        logger.info("OTI %s status %s → %s", oti_id, old, status)
        return oti

    def add_note(self, oti_id: str, text: str, author: str = "", now=None) -> OTI:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Note text is required", details={"text": "required"})
        otis = self._load()
        oti = self._locate(otis, oti_id)
        oti.notes.append({
            "date": isoformat(now or utcnow()),
            "author": author or "System",
            "text": text.strip(),
        })
        self._persist(otis)
        logger.info("Note added to OTI %s", oti_id)
        return oti

    def attach_workflow(self, oti_id: str, template_id: str | None = None,
                        custom_blocks=None) -> OTI:
        """Give an OTI its workflow. An OTI owns at most one, created once.

        Raises:
            NotFoundError:   If the OTI or template is unknown.
            ValidationError: If the OTI already has a workflow or the input is empty.
        """
        otis = self._load()
        oti = self._locate(otis, oti_id)
        if oti.workflow is not None:
            raise ValidationError(
                f"OTI {oti_id} already has a workflow", details={"workflow": "exists"},
            )
        if template_id:
            workflow_type = "template"
        elif custom_blocks:
            workflow_type = "custom"
        else:
            raise ValidationError(
                "templateId or customBlocks is required", details={"workflow": "required"},
            )

        oti.workflow = self._build_workflow(workflow_type, template_id, custom_blocks)
        oti.workflow_type = workflow_type
        apply_workflow_state(oti)
        self._persist(otis)
        self._record_usage(oti.workflow)
        logger.info("Workflow attached to OTI %s type=%s blocks=%d",
                    oti_id, workflow_type, oti.workflow.blocks_total)
        return oti

    def _workflow_of(self, oti: OTI):
        if oti.workflow is None:
            raise NotFoundError(resource="WorkflowInstance", resource_id=oti.id)
        return oti.workflow

    def advance_block(self, oti_id: str, sequence: int, status: str, patch: dict | None = None,
                      force: bool = False, updated_by: str = "System", now=None) -> OTI:
        """Run one block transition and persist the OTI with its derived state.

        Raises:
            NotFoundError:   Unknown OTI, missing workflow or unknown sequence.
            ValidationError: Rejected by the engine.
        """
        now = now or utcnow()
        otis = self._load()
        oti = self._locate(otis, oti_id)
        oti.workflow = workflow_engine.advance(
            self._workflow_of(oti), sequence, status, patch, force=force, now=now,
        )
        apply_workflow_state(oti, now, updated_by=updated_by)
        self._persist(otis)
        return oti

    def toggle_checklist_item(self, oti_id: str, sequence: int, index: int,
                              done: bool | None = None) -> OTI:
        otis = self._load()
        oti = self._locate(otis, oti_id)
        oti.workflow = workflow_engine.toggle_checklist_item(
            self._workflow_of(oti), sequence, index, done,
        )
        self._persist(otis)
        return oti
