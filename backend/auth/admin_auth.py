"""
Admin authentication for the moderation dashboard.
Accepts Basic or Bearer credentials on each request, or an admin session
created through /api/admin/login.
"""

import base64
import binascii
import hmac
import logging
from functools import wraps

from flask import Blueprint, current_app, jsonify, request, session

from backend.services.intake import sanitize_text


logger = logging.getLogger(__name__)

admin_auth_bp = Blueprint("admin_auth", __name__)

ADMIN_REALM = 'Basic realm="Dance Admin"'


def get_admin_credentials():
    username = sanitize_text(current_app.config.get("ADMIN_USERNAME"), 80)
    password = sanitize_text(current_app.config.get("ADMIN_PASSWORD"), 120)
    if not username or not password:
        return None
    return username, password


def build_token(username, password):
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


def _decode_token(value):
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return ""


def parse_authorization_header(raw_header):
    parts = (raw_header or "").strip().split(None, 1)
    if len(parts) != 2:
        return "", ""
    return parts[0].lower(), parts[1].strip()


def _matches(supplied, expected):
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def is_admin_authorized():
    credentials = get_admin_credentials()
    if credentials is None:
        return False

    if session.get("role") == "admin" and session.get("username") == credentials[0]:
        return True

    scheme, value = parse_authorization_header(request.headers.get("Authorization"))
    expected = f"{credentials[0]}:{credentials[1]}"
    if scheme in ("basic", "bearer"):
        return _matches(_decode_token(value), expected)
    return False


def credentials_missing_response():
    logger.error("Admin credentials are not configured")
    return jsonify({"error": "Admin credentials are not configured on this server."}), 500


def unauthorized_response():
    response = jsonify({
        "error": "Admin authorization required",
        "hint": "Use admin login first and send Authorization header.",
    })
    response.status_code = 401
    response.headers["WWW-Authenticate"] = ADMIN_REALM
    return response


def admin_required(view):
    """Reject the request unless it carries admin credentials or an admin session"""

    @wraps(view)
    def wrapped(*args, **kwargs):
        if get_admin_credentials() is None:
            return credentials_missing_response()
        if not is_admin_authorized():
            return unauthorized_response()
        return view(*args, **kwargs)

    return wrapped


@admin_auth_bp.route("/login", methods=["POST"])
def login():
    """Check admin credentials and open an admin session"""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    credentials = get_admin_credentials()
    if credentials is None:
        return credentials_missing_response()

    username = sanitize_text(body.get("username"), 80)
    password = sanitize_text(body.get("password"), 120)
    if not (_matches(username, credentials[0]) and _matches(password, credentials[1])):
        logger.warning(f"Failed admin login for '{username}' from {request.remote_addr}")
        return jsonify({"error": "Invalid admin credentials"}), 401

    session["role"] = "admin"
    session["username"] = credentials[0]
    logger.info(f"Admin '{username}' logged in")
    return jsonify({
        "ok": True,
        "username": credentials[0],
        "tokenType": "Basic",
        "token": build_token(*credentials),
    })


@admin_auth_bp.route("/logout", methods=["POST"])
def logout():
    session.pop("role", None)
    session.pop("username", None)
    return jsonify({"ok": True})


@admin_auth_bp.route("/session", methods=["GET"])
@admin_required
def admin_session():
    return jsonify({"ok": True, "username": get_admin_credentials()[0]})
