"""
Priority scoring for queue entries.

The weights below are the ranking contract with the DJ dashboard: changing any
of them reorders every existing queue.
"""

import math
from datetime import datetime, timezone

from backend.services.intake import (
    clamp,
    derive_content_confidence,
    normalize_dance_moment,
    normalize_energy_level,
    normalize_iso_date,
    normalize_role,
    round_half_up,
)
from backend.services.vocabulary import MOMENT_WEIGHTS, ROLE_WEIGHTS


SECONDS_PER_DAY = 24 * 60 * 60

# (max days until the event, points)
EVENT_PROXIMITY_STEPS = ((1, 22), (3, 17), (7, 12), (14, 8), (30, 4))

HIGH_TIER_THRESHOLD = 72
MEDIUM_TIER_THRESHOLD = 42


def days_until_event(event_date, now):
    event_at = datetime.fromisoformat(f"{event_date}T00:00:00+00:00")
    return math.ceil((event_at - now).total_seconds() / SECONDS_PER_DAY)


def event_proximity_score(event_date, now):
    normalized = normalize_iso_date(event_date)
    if not normalized:
        return 0

    days_until = days_until_event(normalized, now)
    if days_until < 0:
        return 0
    for max_days, points in EVENT_PROXIMITY_STEPS:
        if days_until <= max_days:
            return points
    return 0


def compute_priority_score(vote_count, requester_roles, event_date, content_confidence,
                           dance_moment, energy_level, now=None):
    """Score a request on a 0-100 scale from votes, roles, timing, content and vibe"""
    now = now or datetime.now(timezone.utc)

    safe_votes = max(1, int(vote_count or 1))
    vote_score = clamp(safe_votes * 6, 0, 40)

    role_score = ROLE_WEIGHTS["guest"]
    for role in requester_roles or []:
        role_score = max(role_score, ROLE_WEIGHTS[normalize_role(role)])

    confidence = derive_content_confidence(content_confidence)
    confidence_score = {"clean": 6, "explicit": -10}.get(confidence, 0)

    moment_score = MOMENT_WEIGHTS[normalize_dance_moment(dance_moment)]
    energy_score = (normalize_energy_level(energy_level) - 3) * 4

    total = (
        vote_score
        + role_score
        + event_proximity_score(event_date, now)
        + confidence_score
        + moment_score
        + energy_score
    )
    return clamp(round_half_up(total), 0, 100)


def priority_tier(priority_score):
    if priority_score >= HIGH_TIER_THRESHOLD:
        return "high"
    if priority_score >= MEDIUM_TIER_THRESHOLD:
        return "medium"
    return "low"
