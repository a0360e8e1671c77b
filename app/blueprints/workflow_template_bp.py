"""
OTI Tracker
Workflow template blueprint.

Endpoints summary:
    TEMPLATES  /api/v1/workflow-templates                    GET, POST
               /api/v1/workflow-templates/estimate           POST  (preview, nothing stored)
               /api/v1/workflow-templates/<id>               GET, PUT, DELETE (archive)
               /api/v1/workflow-templates/<id>/duplicate     POST
               /api/v1/workflow-templates/<id>/restore       POST
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import flag, json_body
from app.services.registry import get_services
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

workflow_template_bp = Blueprint("workflow_templates", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_template_bp)


@workflow_template_bp.route("/workflow-templates", methods=["GET"])
def list_templates():
    templates = get_services().templates
    category = request.args.get("category")
    if flag("include_archived"):
        items = templates.list_all(include_archived=True)
        if category:
            items = [t for t in items if t.category == category]
    else:
        items = templates.list_active(category)
    return jsonify({"items": [t.to_dict() for t in items], "total": len(items)})


@workflow_template_bp.route("/workflow-templates", methods=["POST"])
def create_template():
    template = get_services().templates.create(json_body())
    return jsonify(template.to_dict()), 201


@workflow_template_bp.route("/workflow-templates/estimate", methods=["POST"])
def estimate_template():
    """Preview estimatedTotalDays for an unsaved block list."""
    data = json_body()
    return jsonify(get_services().templates.estimate(data.get("blocks")).to_dict())


@workflow_template_bp.route("/workflow-templates/<template_id>", methods=["GET"])
def get_template(template_id):
    return jsonify(get_services().templates.get(template_id).to_dict())


@workflow_template_bp.route("/workflow-templates/<template_id>", methods=["PUT"])
def update_template(template_id):
    template = get_services().templates.update(template_id, json_body())
    return jsonify(template.to_dict())


@workflow_template_bp.route("/workflow-templates/<template_id>", methods=["DELETE"])
def archive_template(template_id):
    template = get_services().templates.archive(template_id)
    return jsonify({"message": "Workflow template archived", "item": template.to_dict()})


@workflow_template_bp.route("/workflow-templates/<template_id>/duplicate", methods=["POST"])
def duplicate_template(template_id):
    data = json_body()
    copy = get_services().templates.duplicate(template_id, created_by=data.get("createdBy") or "")
    return jsonify(copy.to_dict()), 201


@workflow_template_bp.route("/workflow-templates/<template_id>/restore", methods=["POST"])
def restore_template(template_id):
    return jsonify(get_services().templates.restore(template_id).to_dict())
