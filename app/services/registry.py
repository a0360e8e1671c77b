"""
Service wiring — one WorkflowServices bundle per Flask app.

The bundle is built from app.config by ``init_services(app)`` and kept in
``app.extensions``; blueprints and CLI commands fetch it with
``get_services()``. Services hold collaborators only, never data, so one
bundle is shared safely across requests.
"""

from dataclasses import dataclass

from flask import current_app

from app.models import db
from app.services.building_block_service import BuildingBlockCatalog
from app.services.document_repository import DocumentRepository
from app.services.oti_service import OTIService
from app.services.reference_data import ReferenceData
from app.services.workflow_template_service import WorkflowTemplateStore

EXTENSION_KEY = "oti_tracker"


@dataclass
class WorkflowServices:
    repository: DocumentRepository
    catalog: BuildingBlockCatalog
    templates: WorkflowTemplateStore
    reference: ReferenceData
    otis: OTIService


def build_services(config) -> WorkflowServices:
    max_days = int(config.get("MAX_BLOCK_ESTIMATED_DAYS", 90))
    retries = int(config.get("PERSISTENCE_SAVE_RETRIES", 3))

    repository = DocumentRepository(db, backup_retention=config.get("BACKUP_RETENTION", 10))
    catalog = BuildingBlockCatalog(repository, max_estimated_days=max_days, save_retries=retries)
    templates = WorkflowTemplateStore(
        repository, catalog, max_custom_duration=max_days, save_retries=retries,
    )
    reference = ReferenceData(repository, catalog, save_retries=retries)
    otis = OTIService(repository, catalog, templates, reference, save_retries=retries)
    return WorkflowServices(repository, catalog, templates, reference, otis)


def init_services(app) -> WorkflowServices:
    services = build_services(app.config)
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> WorkflowServices:
    return current_app.extensions[EXTENSION_KEY]
