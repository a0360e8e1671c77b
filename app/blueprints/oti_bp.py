"""
OTI Tracker
OTI blueprint — OTI lifecycle, workflow execution, dashboard.

Endpoints summary:
    OTI        /api/v1/otis                                          GET, POST
               /api/v1/otis/<id>                                     GET, PUT, DELETE
               /api/v1/otis/<id>/status                              POST
               /api/v1/otis/<id>/notes                               POST

    WORKFLOW   /api/v1/otis/<id>/workflow                            GET, POST (attach)
               /api/v1/otis/<id>/workflow/blocks/<seq>               PUT   (advance block)
               /api/v1/otis/<id>/workflow/blocks/<seq>/checklist/<i> POST  (tick / untick)

    DASHBOARD  /api/v1/dashboard/metrics                             GET
               /api/v1/reference-data                                GET

Every OTI response is the stored record plus derived ``progress``,
``isOverdue`` and ``daysActive``.
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import flag, json_body, paginate_items
from app.core.exceptions import NotFoundError, ValidationError
from app.services.oti_service import project
from app.services.progress import progress_of
from app.services.registry import get_services
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

oti_bp = Blueprint("otis", __name__, url_prefix="/api/v1")
register_error_handlers(oti_bp)

# Body keys of the block endpoint that are not block fields
_BLOCK_CONTROL_KEYS = ("status", "force", "updatedBy")


def _multi(name):
    """?status=a&status=b or ?status=a,b → ["a", "b"]."""
    values = []
    for raw in request.args.getlist(name):
        values.extend(v.strip() for v in raw.split(",") if v.strip())
    return values


# ═════════════════════════════════════════════════════════════════════════
# OTI  (/api/v1/otis)
# ═════════════════════════════════════════════════════════════════════════


@oti_bp.route("/otis", methods=["GET"])
def list_otis():
    otis = get_services().otis.list_otis(
        status=_multi("status"),
        priority=_multi("priority"),
        oti_type=request.args.get("type"),
        team=request.args.get("team"),
        overdue_only=flag("overdue"),
        stalled_only=flag("stalled"),
        query=request.args.get("q"),
    )
    page, total = paginate_items(otis)
    return jsonify({"items": [project(o) for o in page], "total": total})


@oti_bp.route("/otis", methods=["POST"])
def create_oti():
    oti = get_services().otis.create_oti(json_body())
    return jsonify(project(oti)), 201


@oti_bp.route("/otis/<oti_id>", methods=["GET"])
def get_oti(oti_id):
    return jsonify(project(get_services().otis.get_oti(oti_id)))


@oti_bp.route("/otis/<oti_id>", methods=["PUT"])
def update_oti(oti_id):
    oti = get_services().otis.update_oti(oti_id, json_body())
    return jsonify(project(oti))


@oti_bp.route("/otis/<oti_id>", methods=["DELETE"])
def delete_oti(oti_id):
    get_services().otis.delete_oti(oti_id)
    return jsonify({"message": "OTI deleted"}), 200


@oti_bp.route("/otis/<oti_id>/status", methods=["POST"])
def change_status(oti_id):
    data = json_body()
    oti = get_services().otis.change_status(
        oti_id,
        data.get("status"),
        notes=data.get("notes") or "",
        updated_by=data.get("updatedBy") or "System",
    )
    return jsonify(project(oti))


@oti_bp.route("/otis/<oti_id>/notes", methods=["POST"])
def add_note(oti_id):
    data = json_body()
    oti = get_services().otis.add_note(oti_id, data.get("text"), author=data.get("author") or "")
    return jsonify(project(oti)), 201


# ═════════════════════════════════════════════════════════════════════════
# Workflow  (/api/v1/otis/<id>/workflow)
# ═════════════════════════════════════════════════════════════════════════


@oti_bp.route("/otis/<oti_id>/workflow", methods=["GET"])
def get_workflow(oti_id):
    oti = get_services().otis.get_oti(oti_id)
    if oti.workflow is None:
        raise NotFoundError(resource="WorkflowInstance", resource_id=oti_id)
    return jsonify({
        "otiId": oti.id,
        "workflowType": oti.workflow_type,
        "progress": progress_of(oti),
        "workflow": oti.workflow.to_dict(),
    })


@oti_bp.route("/otis/<oti_id>/workflow", methods=["POST"])
def attach_workflow(oti_id):
    data = json_body()
    oti = get_services().otis.attach_workflow(
        oti_id,
        template_id=data.get("templateId"),
        custom_blocks=data.get("customBlocks"),
    )
    return jsonify(project(oti)), 201


@oti_bp.route("/otis/<oti_id>/workflow/blocks/<int:sequence>", methods=["PUT"])
def advance_block(oti_id, sequence):
    """Move one block to a new status.

    Body: {"status": "...", "assignedTo"?, "notes"?, "completionNotes"?,
           "force"?: bool, "updatedBy"?}
    """
    data = json_body()
    status = data.get("status")
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    patch = {k: v for k, v in data.items() if k not in _BLOCK_CONTROL_KEYS}
    oti = get_services().otis.advance_block(
        oti_id, sequence, status, patch,
        force=data.get("force") is True,
        updated_by=data.get("updatedBy") or "System",
    )
    return jsonify(project(oti))


@oti_bp.route("/otis/<oti_id>/workflow/blocks/<int:sequence>/checklist/<int:index>",
              methods=["POST"])
def toggle_checklist(oti_id, sequence, index):
    """Body: {"done": true|false}; omit to flip."""
    done = json_body().get("done")
    if done is not None and not isinstance(done, bool):
        raise ValidationError("done must be true or false", details={"done": "invalid"})
    oti = get_services().otis.toggle_checklist_item(oti_id, sequence, index, done)
    return jsonify(project(oti))


# ═════════════════════════════════════════════════════════════════════════
# Dashboard & reference data
# ═════════════════════════════════════════════════════════════════════════


@oti_bp.route("/dashboard/metrics", methods=["GET"])
def dashboard_metrics():
    return jsonify(get_services().otis.dashboard_metrics())


@oti_bp.route("/reference-data", methods=["GET"])
def reference_data():
    return jsonify(get_services().reference.all())
