"""
OTI Tracker
Building block catalog blueprint.

Endpoints summary:
    BLOCKS   /api/v1/building-blocks                 GET, POST
             /api/v1/building-blocks/categories      GET
             /api/v1/building-blocks/<id>            GET, PUT, DELETE (archive)
             /api/v1/building-blocks/<id>/restore    POST
             /api/v1/building-blocks/<id>/usage      GET
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import flag, json_body
from app.services.building_block_service import usage_warning
from app.services.registry import get_services
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

building_block_bp = Blueprint("building_blocks", __name__, url_prefix="/api/v1")
register_error_handlers(building_block_bp)


@building_block_bp.route("/building-blocks", methods=["GET"])
def list_blocks():
    catalog = get_services().catalog
    category = request.args.get("category")
    if flag("include_archived"):
        blocks = catalog.list_all(include_archived=True)
        if category:
            blocks = [b for b in blocks if b.category == category]
    else:
        blocks = catalog.list_active(category)
    return jsonify({"items": [b.to_dict() for b in blocks], "total": len(blocks)})


@building_block_bp.route("/building-blocks/categories", methods=["GET"])
def list_categories():
    return jsonify({"items": get_services().catalog.categories()})


@building_block_bp.route("/building-blocks", methods=["POST"])
def create_block():
    block = get_services().catalog.create(json_body())
    return jsonify(block.to_dict()), 201


@building_block_bp.route("/building-blocks/<block_id>", methods=["GET"])
def get_block(block_id):
    return jsonify(get_services().catalog.get(block_id).to_dict())


@building_block_bp.route("/building-blocks/<block_id>", methods=["PUT"])
def update_block(block_id):
    block = get_services().catalog.update(block_id, json_body())
    return jsonify(block.to_dict())


@building_block_bp.route("/building-blocks/<block_id>", methods=["DELETE"])
def archive_block(block_id):
    """Soft delete. The response carries the in-use warning, if any."""
    block = get_services().catalog.archive(block_id)
    return jsonify({
        "message": "Building block archived",
        "warning": usage_warning(block),
        "item": block.to_dict(),
    })


@building_block_bp.route("/building-blocks/<block_id>/restore", methods=["POST"])
def restore_block(block_id):
    return jsonify(get_services().catalog.restore(block_id).to_dict())


@building_block_bp.route("/building-blocks/<block_id>/usage", methods=["GET"])
def block_usage(block_id):
    return jsonify(get_services().otis.block_usage(block_id))
