"""
Admin routes for moderating and running the dance queue.
Every route here requires admin credentials or an admin session.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from backend.auth.admin_auth import admin_required
from backend.services.errors import ValidationError
from backend.services.intake import parse_positive_id


logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


def _json_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON payload")
    return body


@admin_bp.route("/admin/queue", methods=["GET"])
@admin_required
def list_queue():
    """All entries, filterable by status, confidence, danceMoment and q"""
    return jsonify({"items": current_app.queue_service.list_entries(request.args)})


@admin_bp.route("/admin/queue/<item_id>", methods=["PATCH"])
@admin_bp.route("/queue/<item_id>", methods=["PATCH"])
@admin_required
def update_queue_item(item_id):
    entry_id = parse_positive_id(item_id, "queue item id")
    updated = current_app.queue_service.admin_update(entry_id, _json_body())
    return jsonify(updated)


@admin_bp.route("/admin/bulk", methods=["POST"])
@admin_required
def bulk_action():
    body = _json_body()
    return jsonify(current_app.queue_service.bulk_action(body.get("action"), body.get("limit")))


@admin_bp.route("/admin/reorder", methods=["POST"])
@admin_required
def reorder():
    """Move itemId in front of beforeId, or to the end when beforeId is null"""
    body = _json_body()
    item_id = parse_positive_id(body.get("itemId"), "item id")
    before_id = body.get("beforeId")
    if before_id is not None:
        before_id = parse_positive_id(before_id, "before id")

    current_app.queue_service.reorder(item_id, before_id)
    return jsonify({"ok": True})


@admin_bp.route("/admin/control", methods=["POST"])
@admin_required
def control_action():
    body = _json_body()
    return jsonify(current_app.queue_service.control_action(body.get("action")))


@admin_bp.route("/admin/analytics", methods=["GET"])
@admin_bp.route("/analytics", methods=["GET"])
@admin_required
def analytics():
    return jsonify(current_app.queue_service.analytics())
