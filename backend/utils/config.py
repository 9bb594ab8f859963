"""
Configuration module for the dance request queue.
Handles app configuration, logging, session storage, and cache initialization.
"""

import logging
import os
import tempfile

import redis
from cachelib.file import FileSystemCache
from dotenv import load_dotenv
from flask_caching import Cache
from flask_session import Session

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TIMEOUT = 300


def env_flag(name, default=False):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def get_redis_url():
    """Get Redis URL with the SSL setting Heroku's rediss:// URLs need"""
    redis_url = os.getenv("REDIS_URL")
    if redis_url and redis_url.startswith("rediss://") and "ssl_cert_reqs" not in redis_url:
        return redis_url + "?ssl_cert_reqs=none"
    return redis_url


def load_settings():
    """Read every setting the app understands from the environment"""
    return {
        "SECRET_KEY": os.getenv("FLASK_SECRET", "dance-queue-dev-secret"),
        "DATABASE_URL": os.getenv("DATABASE_URL"),
        "REDIS_URL": get_redis_url(),
        "ADMIN_USERNAME": os.getenv("ADMIN_USERNAME", ""),
        "ADMIN_PASSWORD": os.getenv("ADMIN_PASSWORD", ""),
        "OPENAI_API_KEY": os.getenv("OPENAI_API_KEY", ""),
        "DISABLE_LYRICS_MODERATION": env_flag("DISABLE_LYRICS_MODERATION"),
        "SPOTIFY_CLIENT_ID": os.getenv("SPOTIFY_CLIENT_ID", ""),
        "SPOTIFY_CLIENT_SECRET": os.getenv("SPOTIFY_CLIENT_SECRET", ""),
        "ALLOWED_ORIGIN": os.getenv("ALLOWED_ORIGIN", "*"),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),
        "PRODUCTION": os.getenv("FLASK_ENV") == "production",
    }


def configure_logging(app):
    level = getattr(logging, app.config["LOG_LEVEL"], logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)


def configure_session_storage(app):
    """Server-side sessions in Redis when available, on the filesystem otherwise"""
    app.config.setdefault("SESSION_PERMANENT", True)
    app.config.setdefault("SESSION_KEY_PREFIX", "dancequeue:")
    app.config.setdefault("SESSION_COOKIE_HTTPONLY", True)
    app.config.setdefault("SESSION_COOKIE_SAMESITE", "Lax")
    app.config.setdefault("SESSION_COOKIE_SECURE", app.config["PRODUCTION"])

    if "SESSION_TYPE" not in app.config:
        app.config["SESSION_TYPE"] = "redis" if app.config["REDIS_URL"] else "filesystem"

    if app.config["SESSION_TYPE"] == "redis" and app.config["REDIS_URL"] and "SESSION_REDIS" not in app.config:
        app.config["SESSION_REDIS"] = redis.from_url(
            app.config["REDIS_URL"],
            socket_connect_timeout=3,
            socket_timeout=3,
        )
        logger.info("Using Redis for session storage")
    elif app.config["SESSION_TYPE"] == "filesystem" and "SESSION_CACHELIB" not in app.config:
        session_dir = os.path.join(tempfile.gettempdir(), "dancequeue_sessions")
        app.config["SESSION_CACHELIB"] = FileSystemCache(session_dir, threshold=500)
        logger.info("Using filesystem for session storage")
    return app.config["SESSION_TYPE"]


def configure_cache(app):
    if "CACHE_TYPE" not in app.config:
        if app.config["REDIS_URL"]:
            app.config["CACHE_TYPE"] = "RedisCache"
            app.config["CACHE_REDIS_URL"] = app.config["REDIS_URL"]
            app.config["CACHE_KEY_PREFIX"] = "dancequeue:"
        else:
            app.config["CACHE_TYPE"] = "SimpleCache"
    app.config.setdefault("CACHE_DEFAULT_TIMEOUT", DEFAULT_CACHE_TIMEOUT)
    logger.info(f"Using {app.config['CACHE_TYPE']} for caching")
    return Cache(app)


def init_app(app, test_config=None):
    """Initialize Flask app with configuration and return the cache instance"""
    app.config.update(load_settings())
    if test_config:
        app.config.update(test_config)

    configure_logging(app)
    configure_session_storage(app)
    Session(app)
    cache = configure_cache(app)

    logger.info("Configuration and caching initialized")
    return cache
