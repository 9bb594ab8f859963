"""
Database models for the dance request queue
"""

from .models import *  # noqa: F401,F403

from .database_config import build_session_factory, create_db_engine, init_db, session_scope
from .queue_models import QueueEntry, RateLimitRecord
