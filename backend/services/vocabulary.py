"""
Closed vocabularies and weight tables shared by the queue services.
"""

ALLOWED_STATUSES = ("pending", "approved", "rejected")
ALLOWED_ROLES = ("guest", "student", "staff", "organizer", "admin")
ALLOWED_CONFIDENCE = ("clean", "explicit", "unknown")
ALLOWED_DANCE_MOMENTS = ("anytime", "grand_entrance", "warmup", "peak_hour", "slow_dance", "last_dance")
ALLOWED_VIBE_TAGS = (
    "throwback", "hiphop", "pop", "latin", "afrobeats",
    "country", "rnb", "edm", "line_dance", "singalong",
)
MODERATION_PRESETS = (
    "clean_version_verified",
    "duplicate_request_merged",
    "explicit_lyrics",
    "violence",
    "hate_speech",
    "sexual_content",
    "policy_violation",
    "other",
)

ROLE_WEIGHTS = {"guest": 4, "student": 8, "staff": 14, "organizer": 22, "admin": 30}
MOMENT_WEIGHTS = {
    "anytime": 3,
    "grand_entrance": 14,
    "warmup": 6,
    "peak_hour": 18,
    "slow_dance": 8,
    "last_dance": 20,
}

MAX_VIBE_TAGS = 5
MAX_ARTISTS = 8
MAX_SET_ORDER = 9999
