from datetime import timedelta

from backend.models import session_scope
from backend.models.queue_models import RateLimitRecord, as_utc
from backend.services.rate_limiter import RateLimiter
from conftest import T0


class TestRateLimiter:
    """Test the one-request-per-ten-minutes gate"""

    def test_timeline(self, session_factory):
        """Admitted at T0, refused five minutes later, admitted again after eleven"""
        limiter = RateLimiter(session_factory)

        first = limiter.check_and_consume("1.2.3.4", T0)
        assert first.allowed
        assert first.retry_after_seconds == 600
        assert first.next_allowed_at == T0 + timedelta(minutes=10)

        refused = limiter.check_and_consume("1.2.3.4", T0 + timedelta(minutes=5))
        assert not refused.allowed
        assert refused.retry_after_seconds == 300
        assert refused.next_allowed_at == T0 + timedelta(minutes=10)

        again = limiter.check_and_consume("1.2.3.4", T0 + timedelta(minutes=11))
        assert again.allowed

    def test_refusal_does_not_extend_the_window(self, session_factory):
        limiter = RateLimiter(session_factory)
        limiter.check_and_consume("1.2.3.4", T0)
        limiter.check_and_consume("1.2.3.4", T0 + timedelta(minutes=9))

        with session_scope(session_factory) as db:
            record = db.get(RateLimitRecord, "1.2.3.4")
            assert as_utc(record.last_request_at) == T0

        assert limiter.check_and_consume("1.2.3.4", T0 + timedelta(minutes=10)).allowed

    def test_retry_after_is_at_least_one_second(self, session_factory):
        limiter = RateLimiter(session_factory)
        limiter.check_and_consume("1.2.3.4", T0)
        refused = limiter.check_and_consume("1.2.3.4", T0 + timedelta(minutes=10) - timedelta(milliseconds=200))
        assert refused.retry_after_seconds == 1

    def test_identities_are_independent(self, session_factory):
        limiter = RateLimiter(session_factory)
        assert limiter.check_and_consume("1.2.3.4", T0).allowed
        assert limiter.check_and_consume("5.6.7.8", T0).allowed

    def test_blank_identity_is_unknown(self, session_factory):
        limiter = RateLimiter(session_factory)
        assert limiter.check_and_consume("", T0).allowed
        assert not limiter.check_and_consume(None, T0 + timedelta(minutes=1)).allowed

    def test_to_dict(self, session_factory):
        decision = RateLimiter(session_factory).check_and_consume("1.2.3.4", T0)
        assert decision.to_dict() == {"retryAfterSec": 600, "nextAllowedAt": "2025-05-01T18:10:00Z"}
