"""
Request intake: sanitizing and normalizing raw submissions and admin edits.

Public submissions are forgiving (unknown enum values fall back to defaults),
admin edits are strict (unknown values raise ValidationError).
"""

import math
import re
from datetime import date

from backend.services.errors import ValidationError
from backend.services.vocabulary import (
    ALLOWED_DANCE_MOMENTS,
    ALLOWED_ROLES,
    ALLOWED_STATUSES,
    ALLOWED_VIBE_TAGS,
    MAX_ARTISTS,
    MAX_SET_ORDER,
    MAX_VIBE_TAGS,
    MODERATION_PRESETS,
    MOMENT_WEIGHTS,
    ROLE_WEIGHTS,
)


ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def clamp(value, low, high):
    return min(high, max(low, value))


def round_half_up(value):
    return int(math.floor(value + 0.5))


def sanitize_text(value, max_length=500):
    """Trim a string and cap its length; anything that is not a string becomes ''"""
    if not isinstance(value, str):
        return ""
    return value.strip()[:max_length]


def normalize_role(role):
    normalized = sanitize_text(role, 20).lower()
    return normalized if normalized in ALLOWED_ROLES else "guest"


def normalize_status(status):
    normalized = sanitize_text(status, 20).lower()
    return normalized if normalized in ALLOWED_STATUSES else None


def normalize_moderation_reason(reason):
    """Return '' for blank input, the preset when known, None when unknown"""
    normalized = sanitize_text(reason, 64).lower()
    if not normalized:
        return ""
    return normalized if normalized in MODERATION_PRESETS else None


def normalize_iso_date(value):
    raw = sanitize_text(value, 20)
    if not raw or not ISO_DATE_PATTERN.match(raw):
        return None
    try:
        date.fromisoformat(raw)
    except ValueError:
        return None
    return raw


def derive_content_confidence(flag):
    """Map an explicit flag (bool, 0/1 or a confidence label) to clean/explicit/unknown"""
    if isinstance(flag, str):
        return flag if flag in ("clean", "explicit", "unknown") else "unknown"
    if flag is True or (isinstance(flag, int) and not isinstance(flag, bool) and flag == 1):
        return "explicit"
    if flag is False or (isinstance(flag, int) and not isinstance(flag, bool) and flag == 0):
        return "clean"
    return "unknown"


def normalize_dance_moment(value):
    normalized = sanitize_text(value, 32).lower()
    return normalized if normalized in ALLOWED_DANCE_MOMENTS else "anytime"


def normalize_energy_level(value):
    if isinstance(value, bool) or value is None:
        return 3
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 3
    if not math.isfinite(numeric):
        return 3
    return clamp(round_half_up(numeric), 1, 5)


def normalize_vibe_tags(tags):
    if not isinstance(tags, (list, tuple)):
        return []

    normalized = []
    for tag in tags:
        entry = sanitize_text(tag, 32).lower()
        if entry in ALLOWED_VIBE_TAGS and entry not in normalized:
            normalized.append(entry)
    return normalized[:MAX_VIBE_TAGS]


def normalize_artists(artists):
    if not isinstance(artists, (list, tuple)):
        return []
    cleaned = [sanitize_text(artist, 120) for artist in artists]
    return [artist for artist in cleaned if artist][:MAX_ARTISTS]


def build_create_payload(body):
    """Normalize a public submission body and check the required fields"""
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON payload")

    explicit_flag = body.get("explicit") if isinstance(body.get("explicit"), bool) else None

    payload = {
        "track_id": sanitize_text(body.get("trackId"), 64),
        "track_name": sanitize_text(body.get("trackName"), 200),
        "artists": normalize_artists(body.get("artists")),
        "album_name": sanitize_text(body.get("albumName"), 200),
        "album_image": sanitize_text(body.get("albumImage"), 400),
        "spotify_url": sanitize_text(body.get("spotifyUrl"), 400),
        "requester_name": sanitize_text(body.get("requesterName"), 80),
        "requester_role": normalize_role(body.get("requesterRole")),
        "custom_message": sanitize_text(body.get("customMessage"), 500),
        "dedication_message": sanitize_text(body.get("dedicationMessage"), 140),
        "event_date": normalize_iso_date(body.get("eventDate")),
        "explicit_flag": explicit_flag,
        "content_confidence": derive_content_confidence(explicit_flag),
        "dance_moment": normalize_dance_moment(body.get("danceMoment")),
        "energy_level": normalize_energy_level(body.get("energyLevel")),
        "vibe_tags": normalize_vibe_tags(body.get("vibeTags")),
    }

    if not (payload["track_id"] and payload["track_name"] and payload["artists"] and payload["requester_name"]):
        raise ValidationError("Missing required fields")

    return payload


def build_requester_entry(payload, submitted_at):
    return {
        "name": payload["requester_name"],
        "role": payload["requester_role"],
        "customMessage": payload["custom_message"] or "",
        "dedicationMessage": payload["dedication_message"] or "",
        "submittedAt": submitted_at,
    }


# Merge helpers for duplicate submissions

def get_highest_priority_role(roles):
    best = "guest"
    for role in roles or []:
        normalized = normalize_role(role)
        if ROLE_WEIGHTS[normalized] > ROLE_WEIGHTS[best]:
            best = normalized
    return best


def choose_sooner_event_date(existing_date, incoming_date):
    current = normalize_iso_date(existing_date)
    incoming = normalize_iso_date(incoming_date)
    if not current:
        return incoming
    if not incoming:
        return current
    return min(current, incoming)


def choose_higher_priority_dance_moment(existing_moment, incoming_moment):
    current = normalize_dance_moment(existing_moment)
    incoming = normalize_dance_moment(incoming_moment)
    return incoming if MOMENT_WEIGHTS[incoming] > MOMENT_WEIGHTS[current] else current


def merge_vibe_tags(existing_tags, incoming_tags):
    return normalize_vibe_tags(list(existing_tags or []) + list(incoming_tags or []))


# Strict parsers for the admin path

def parse_status(value):
    status = normalize_status(value)
    if not status:
        raise ValidationError("Invalid status value")
    return status


def parse_moderation_reason(value):
    reason = normalize_moderation_reason(value)
    if reason is None:
        raise ValidationError("Invalid moderation reason preset")
    return reason


def parse_dance_moment(value):
    normalized = sanitize_text(value, 32).lower()
    if normalized not in ALLOWED_DANCE_MOMENTS:
        raise ValidationError("Invalid dance moment value")
    return normalized


def parse_integer(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"\s*\d+\s*", value):
        return int(value)
    return None


def parse_energy_level(value):
    numeric = parse_integer(value)
    if numeric is None or not 1 <= numeric <= 5:
        raise ValidationError("Invalid energy level value")
    return numeric


def parse_set_order(value):
    """None or '' clears the order; otherwise an integer in 1..9999"""
    if value is None or value == "":
        return None
    numeric = parse_integer(value)
    if numeric is None or not 1 <= numeric <= MAX_SET_ORDER:
        raise ValidationError("Invalid set order value")
    return numeric


def parse_positive_id(value, label="item id"):
    numeric = parse_integer(value)
    if numeric is None or numeric <= 0:
        raise ValidationError(f"Invalid {label}")
    return numeric
