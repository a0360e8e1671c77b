"""
Reference data — teams, OTI types and priorities, plus the starter catalog.

Collections:
    config/teams        [{id, name, description}]
    config/otiTypes     [{id, name, description, targetDays: {priority: business days}}]
    config/priorities   {priority: {label, color, order}}

``seed`` only fills what is missing, so it is safe to run on every deploy.
"""

import logging

from app.services.helpers.collections import persist

logger = logging.getLogger(__name__)

TEAMS_KEY = "config/teams"
OTI_TYPES_KEY = "config/otiTypes"
PRIORITIES_KEY = "config/priorities"

DEFAULT_TEAMS = [
    {"id": "service-desk", "name": "Service Desk", "description": "First-line intake and triage"},
    {"id": "infrastructure", "name": "Infrastructure", "description": "Servers, network and hosting"},
    {"id": "security", "name": "Cyber Security", "description": "Risk assessment and assurance"},
    {"id": "applications", "name": "Applications", "description": "Business application support and development"},
    {"id": "procurement", "name": "IT Procurement", "description": "Quotes, orders and licensing"},
    {"id": "architecture", "name": "Architecture", "description": "Solution and technical design"},
]

DEFAULT_OTI_TYPES = [
    {
        "id": "new-software",
        "name": "New Software",
        "description": "Acquisition and deployment of a new application",
        "targetDays": {"urgent": 10, "high": 20, "medium": 40, "low": 60},
    },
    {
        "id": "hardware",
        "name": "Hardware Request",
        "description": "New or replacement equipment",
        "targetDays": {"urgent": 5, "high": 10, "medium": 20, "low": 30},
    },
    {
        "id": "enhancement",
        "name": "System Enhancement",
        "description": "Change to an existing system",
        "targetDays": {"urgent": 5, "high": 15, "medium": 30, "low": 45},
    },
    {
        "id": "infrastructure",
        "name": "Infrastructure Change",
        "description": "Network, hosting or platform change",
        "targetDays": {"urgent": 5, "high": 15, "medium": 25, "low": 40},
    },
]

DEFAULT_PRIORITIES = {
    "urgent": {"label": "Urgent", "color": "#dc2626", "order": 1},
    "high": {"label": "High", "color": "#f59e0b", "order": 2},
    "medium": {"label": "Medium", "color": "#3b82f6", "order": 3},
    "low": {"label": "Low", "color": "#6b7280", "order": 4},
}

STARTER_BLOCKS = [
    {
        "name": "Security Assessment",
        "category": "Security",
        "team": "security",
        "estimatedDays": 5,
        "description": "Assess data protection and cyber risk of the proposed change",
        "icon": "🔒",
        "required": True,
        "checklistItems": [
            "Data protection impact screening",
            "Supplier security questionnaire",
            "Risk rating agreed",
        ],
        "outputs": ["Security assessment report"],
    },
    {
        "name": "Procurement",
        "category": "Procurement",
        "team": "procurement",
        "estimatedDays": 10,
        "description": "Obtain quotes and raise the purchase order",
        "icon": "🛒",
        "checklistItems": ["Quotes obtained", "Budget approved", "Purchase order raised"],
        "outputs": ["Purchase order"],
    },
    {
        "name": "Infrastructure Build",
        "category": "Infrastructure",
        "team": "infrastructure",
        "estimatedDays": 5,
        "description": "Provision servers, storage and network access",
        "icon": "🖥️",
        "checklistItems": ["Environment provisioned", "Firewall rules applied"],
        "outputs": ["Environment details"],
    },
    {
        "name": "User Acceptance Testing",
        "category": "Testing",
        "team": "applications",
        "estimatedDays": 3,
        "description": "Business users validate the solution",
        "icon": "✅",
        "checklistItems": ["Test plan signed off", "Defects triaged", "UAT sign-off"],
        "outputs": ["UAT sign-off"],
    },
    {
        "name": "Go-Live",
        "category": "Deployment",
        "team": "applications",
        "estimatedDays": 1,
        "description": "Release to production and hand over to support",
        "icon": "🚀",
        "required": True,
        "checklistItems": ["Change approved", "Deployment completed", "Support handover"],
        "outputs": ["Release notes"],
    },
]


class ReferenceData:
    """Read/seed access to the configuration collections.

    Args:
        repository:   Persistence collaborator.
        catalog:      BuildingBlockCatalog, used when seeding starter blocks.
        save_retries: Save attempts before PersistenceError.
    """

    def __init__(self, repository, catalog, save_retries: int = 3) -> None:
        self.repository = repository
        self.catalog = catalog
        self.save_retries = save_retries

    def teams(self) -> list[dict]:
        return self.repository.load(TEAMS_KEY) or []

    def oti_types(self) -> list[dict]:
        return self.repository.load(OTI_TYPES_KEY) or []

    def priorities(self) -> dict:
        return self.repository.load(PRIORITIES_KEY) or {}

    def oti_type(self, type_id: str) -> dict | None:
        for oti_type in self.oti_types():
            if oti_type.get("id") == type_id:
                return oti_type
        return None

    def all(self) -> dict:
        return {
            "teams": self.teams(),
            "otiTypes": self.oti_types(),
            "priorities": self.priorities(),
        }

    def seed(self) -> dict:
        """Write default reference data and starter blocks where missing.

        Returns:
            Counts of what was written, e.g. ``{"teams": 6, "buildingBlocks": 0}``.
        """
        written = {"teams": 0, "otiTypes": 0, "priorities": 0, "buildingBlocks": 0}

        if self.repository.load(TEAMS_KEY) is None:
            persist(self.repository, TEAMS_KEY, DEFAULT_TEAMS, retries=self.save_retries)
            written["teams"] = len(DEFAULT_TEAMS)
        if self.repository.load(OTI_TYPES_KEY) is None:
            persist(self.repository, OTI_TYPES_KEY, DEFAULT_OTI_TYPES, retries=self.save_retries)
            written["otiTypes"] = len(DEFAULT_OTI_TYPES)
        if self.repository.load(PRIORITIES_KEY) is None:
            persist(self.repository, PRIORITIES_KEY, DEFAULT_PRIORITIES, retries=self.save_retries)
            written["priorities"] = len(DEFAULT_PRIORITIES)

        if not self.catalog.list_all(include_archived=True):
            for data in STARTER_BLOCKS:
                self.catalog.create(dict(data, createdBy="seed"))
            written["buildingBlocks"] = len(STARTER_BLOCKS)

        logger.info("Reference data seeded: %s", written)
        return written
