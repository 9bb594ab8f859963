"""
Dance request queue API.
Builds the Flask app, wires the queue services and registers the blueprints.
"""

import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from backend.api.content_moderation import ContentClassifier
from backend.api.lyrics import LyricsClient
from backend.api.spotify import SpotifyCatalog
from backend.auth.admin_auth import admin_auth_bp
from backend.models import build_session_factory, create_db_engine, init_db
from backend.routes.admin import admin_bp
from backend.routes.public import public_bp
from backend.routes.search import search_bp
from backend.services.errors import QueueError
from backend.services.moderation import ModerationPipeline
from backend.services.queue_service import QueueService
from backend.utils.config import init_app


logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = "GET, POST, PATCH, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization"


def parse_allowed_origins(raw):
    origins = [origin.strip() for origin in (raw or "").split(",") if origin.strip()]
    return origins or ["*"]


def cors_origin(allowed_origins, request_origin):
    if "*" in allowed_origins:
        return "*"
    return request_origin if request_origin in allowed_origins else allowed_origins[0]


def build_queue_service(app, cache):
    """Create the database, moderation collaborators and the queue service"""
    engine = create_db_engine(app.config.get("DATABASE_URL"))
    init_db(engine)
    session_factory = build_session_factory(engine)

    lyrics_enabled = not app.config["DISABLE_LYRICS_MODERATION"]
    pipeline = ModerationPipeline(
        lyrics_client=LyricsClient(cache=cache) if lyrics_enabled else None,
        classifier=ContentClassifier(app.config.get("OPENAI_API_KEY")),
        lyrics_enabled=lyrics_enabled,
    )
    if not lyrics_enabled:
        logger.info("Lyrics moderation disabled; decisions use track metadata only")

    app.db_engine = engine
    return QueueService(session_factory, pipeline)


def register_error_handlers(app):
    @app.errorhandler(QueueError)
    def handle_queue_error(error):
        if error.status_code >= 500:
            logger.warning(f"{request.method} {request.path} failed: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({"error": "Internal server error"}), 500


def register_cors(app):
    allowed_origins = parse_allowed_origins(app.config.get("ALLOWED_ORIGIN"))

    @app.before_request
    def answer_preflight():
        if request.method == "OPTIONS":
            return app.response_class(status=204)

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = cors_origin(allowed_origins, request.headers.get("Origin", ""))
        response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
        response.headers["Vary"] = "Origin"
        return response


def create_app(test_config=None):
    """Application factory; test_config overrides environment settings"""
    app = Flask(__name__)
    cache = init_app(app, test_config)
    app.cache = cache

    app.queue_service = build_queue_service(app, cache)
    app.spotify_catalog = SpotifyCatalog(
        app.config.get("SPOTIFY_CLIENT_ID"),
        app.config.get("SPOTIFY_CLIENT_SECRET"),
        cache=cache,
    )

    app.register_blueprint(public_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api")
    app.register_blueprint(admin_auth_bp, url_prefix="/api/admin")
    app.register_blueprint(search_bp, url_prefix="/api")

    register_error_handlers(app)
    register_cors(app)

    logger.info("Dance request queue API ready")
    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=8000)
