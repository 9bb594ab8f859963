"""
Consolidated models import for the dance request queue.
"""

# Import database configuration
from .database_config import (
    Base,
    build_session_factory,
    create_db_engine,
    init_db,
    resolve_database_url,
    session_scope,
)

# Import all models
from .queue_models import QueueEntry, RateLimitRecord, as_utc, isoformat_utc

__all__ = [
    'Base', 'build_session_factory', 'create_db_engine', 'init_db', 'resolve_database_url', 'session_scope',
    'QueueEntry', 'RateLimitRecord', 'as_utc', 'isoformat_utc',
]
