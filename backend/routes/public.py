"""
Public routes for the dance request queue.
Handles song submissions, the approved queue and the live feed.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from backend.auth.admin_auth import get_admin_credentials, is_admin_authorized
from backend.services.intake import sanitize_text


logger = logging.getLogger(__name__)

public_bp = Blueprint("public", __name__)

RATE_LIMIT_MESSAGE = "You can request one song every 10 minutes from this device/network."


def get_client_identity():
    """Best guess at the submitting client: Cloudflare header, proxy chain, then socket address"""
    cf_ip = sanitize_text(request.headers.get("CF-Connecting-IP"), 80)
    if cf_ip:
        return cf_ip

    forwarded_for = sanitize_text(request.headers.get("X-Forwarded-For"), 200)
    if forwarded_for:
        first = sanitize_text(forwarded_for.split(",")[0], 80)
        if first:
            return first

    return sanitize_text(request.remote_addr, 80) or "unknown"


@public_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"ok": True, "service": "dance-queue-api"})


@public_bp.route("/public/request", methods=["POST"])
@public_bp.route("/queue", methods=["POST"])
def create_request():
    """Submit a song request; duplicates join the existing entry"""
    body = request.get_json(silent=True)
    identity = get_client_identity()

    result = current_app.queue_service.submit(body, identity)
    rate_limit = result.rate_limit.to_dict()

    if not result.admitted:
        response = jsonify({"error": RATE_LIMIT_MESSAGE, **rate_limit})
        response.status_code = 429
        response.headers["Retry-After"] = str(rate_limit["retryAfterSec"])
        return response

    payload = {**result.entry, **rate_limit}
    if result.duplicate_joined:
        payload["duplicateJoined"] = True
        return jsonify(payload), 200
    return jsonify(payload), 201


@public_bp.route("/public/queue", methods=["GET"])
def public_queue():
    items = current_app.queue_service.public_queue(
        limit=request.args.get("limit"),
        status=request.args.get("status"),
    )
    return jsonify({"items": items})


@public_bp.route("/public/feed", methods=["GET"])
def public_feed():
    return jsonify(current_app.queue_service.public_feed())


@public_bp.route("/queue", methods=["GET"])
def get_queue():
    """Full admin listing for authorized callers, the approved queue for everyone else"""
    service = current_app.queue_service
    if get_admin_credentials() is not None and is_admin_authorized():
        return jsonify({"items": service.list_entries(request.args)})
    items = service.public_queue(limit=request.args.get("limit"), status=request.args.get("status"))
    return jsonify({"items": items})
