"""
OTI Tracker
Operational Technology Initiative (OTI) record.

An OTI is the top-level tracked work item. It exclusively owns at most
one WorkflowInstance; ``status``, ``progress_percentage`` and
``actual_completion_date`` are rewritten by the workflow aggregator as
blocks complete.

Lifecycle states:
    received → in-progress → done   |   any → stalled → in-progress
"""

from dataclasses import dataclass, field
from datetime import datetime

from app.models.workflow import WorkflowInstance
from app.utils.helpers import isoformat, parse_datetime


# ── Constants ────────────────────────────────────────────────────────────────

OTI_STATUS_RECEIVED = "received"
OTI_STATUS_IN_PROGRESS = "in-progress"
OTI_STATUS_STALLED = "stalled"
OTI_STATUS_DONE = "done"

OTI_STATUSES = (
    OTI_STATUS_RECEIVED,
    OTI_STATUS_IN_PROGRESS,
    OTI_STATUS_STALLED,
    OTI_STATUS_DONE,
)

OTI_PRIORITIES = ("urgent", "high", "medium", "low")

WORKFLOW_TYPES = ("none", "template", "custom")


@dataclass
class OTI:
    id: str
    title: str
    oti_type: str
    priority: str
    status: str = OTI_STATUS_RECEIVED
    description: str = ""
    requestor: dict = field(default_factory=dict)
    lead_team: str = ""
    lead_coordinator: str = ""
    supporting_teams: list[str] = field(default_factory=list)
    business_justification: str = ""
    expected_benefits: str = ""
    dependencies: str = ""
    date_submitted: datetime | None = None
    target_completion_date: datetime | None = None
    actual_completion_date: datetime | None = None
    progress_percentage: int | None = 0
    status_history: list[dict] = field(default_factory=list)
    notes: list[dict] = field(default_factory=list)
    escalation_notes: list[dict] = field(default_factory=list)
    workflow_type: str = "none"
    workflow: WorkflowInstance | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "otiType": self.oti_type,
            "priority": self.priority,
            "status": self.status,
            "requestor": dict(self.requestor),
            "leadTeam": self.lead_team,
            "leadCoordinator": self.lead_coordinator,
            "supportingTeams": list(self.supporting_teams),
            "businessJustification": self.business_justification,
            "expectedBenefits": self.expected_benefits,
            "dependencies": self.dependencies,
            "dateSubmitted": isoformat(self.date_submitted),
            "targetCompletionDate": isoformat(self.target_completion_date),
            "actualCompletionDate": isoformat(self.actual_completion_date),
            "progressPercentage": self.progress_percentage,
            "statusHistory": [dict(h) for h in self.status_history],
            "notes": [dict(n) for n in self.notes],
            "escalationNotes": [dict(n) for n in self.escalation_notes],
            "workflowType": self.workflow_type,
            "workflow": self.workflow.to_dict() if self.workflow else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OTI":
        workflow = data.get("workflow")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            oti_type=data.get("otiType", ""),
            priority=data.get("priority", ""),
            status=data.get("status", OTI_STATUS_RECEIVED),
            description=data.get("description", ""),
            requestor=dict(data.get("requestor") or {}),
            lead_team=data.get("leadTeam") or "",
            lead_coordinator=data.get("leadCoordinator") or "",
            supporting_teams=list(data.get("supportingTeams") or []),
            business_justification=data.get("businessJustification") or "",
            expected_benefits=data.get("expectedBenefits") or "",
            dependencies=data.get("dependencies") or "",
            date_submitted=parse_datetime(data.get("dateSubmitted")),
            target_completion_date=parse_datetime(data.get("targetCompletionDate")),
            actual_completion_date=parse_datetime(data.get("actualCompletionDate")),
            progress_percentage=data.get("progressPercentage"),
            status_history=list(data.get("statusHistory") or []),
            notes=list(data.get("notes") or []),
            escalation_notes=list(data.get("escalationNotes") or []),
            workflow_type=data.get("workflowType") or ("custom" if workflow else "none"),
            workflow=WorkflowInstance.from_dict(workflow) if workflow else None,
        )

    def __repr__(self):
        return f"<OTI {self.id} {self.status}>"
