"""
One-request-per-window gate for public song submissions.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from backend.models.database_config import session_scope
from backend.models.queue_models import RateLimitRecord, as_utc, isoformat_utc
from backend.services.intake import sanitize_text
from backend.utils.locks import KeyedLocks


logger = logging.getLogger(__name__)

REQUEST_LIMIT_WINDOW = timedelta(minutes=10)


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int
    next_allowed_at: datetime

    def to_dict(self):
        return {
            "retryAfterSec": self.retry_after_seconds,
            "nextAllowedAt": isoformat_utc(self.next_allowed_at),
        }


class RateLimiter:
    """Admits one submission per identity every ten minutes.

    Refusals never touch the stored timestamp, so the reported wait keeps
    counting down from the last admitted request.
    """

    def __init__(self, session_factory, window=REQUEST_LIMIT_WINDOW, locks=None):
        self.session_factory = session_factory
        self.window = window
        self.locks = locks or KeyedLocks()

    @staticmethod
    def normalize_identity(identity):
        return sanitize_text(identity or "unknown", 80) or "unknown"

    def check_and_consume(self, identity, now=None):
        key = self.normalize_identity(identity)
        now = as_utc(now) if now else datetime.now(timezone.utc)

        with self.locks.hold(key), session_scope(self.session_factory) as db:
            record = db.get(RateLimitRecord, key)
            last = as_utc(record.last_request_at) if record else None

            if last is not None and now - last < self.window:
                wait = (last + self.window) - now
                retry_after = max(1, math.ceil(wait.total_seconds()))
                logger.info(f"Rate limited {key}: retry in {retry_after}s")
                return RateLimitDecision(False, retry_after, last + self.window)

            if record is None:
                db.add(RateLimitRecord(identity=key, last_request_at=now))
            else:
                record.last_request_at = now

        return RateLimitDecision(True, math.ceil(self.window.total_seconds()), now + self.window)
