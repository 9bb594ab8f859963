"""
Song request queue and rate-limit models.
"""

from datetime import datetime, timezone
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from .database_config import Base


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat_utc(value):
    value = as_utc(value)
    return value.isoformat().replace("+00:00", "Z") if value else None


class QueueEntry(Base):
    __tablename__ = "queue_entries"

    id = Column(Integer, primary_key=True, index=True)
    track_id = Column(String(64), nullable=False, index=True)
    track_name = Column(String(200), nullable=False)
    artists = Column(JSON, nullable=False, default=list)
    album_name = Column(String(200), default="")
    album_image = Column(String(400), default="")
    spotify_url = Column(String(400), default="")

    # First requester, kept for search and display
    requester_name = Column(String(80), default="")
    requester_role = Column(String(20), default="guest")
    custom_message = Column(Text, default="")
    dedication_message = Column(String(140), default="")
    requesters = Column(JSON, nullable=False, default=list)
    vote_count = Column(Integer, nullable=False, default=1)

    event_date = Column(String(10), nullable=True)  # YYYY-MM-DD
    explicit_flag = Column(Boolean, nullable=True)
    content_confidence = Column(String(16), nullable=False, default="unknown")
    dance_moment = Column(String(32), nullable=False, default="anytime")
    energy_level = Column(Integer, nullable=False, default=3)
    vibe_tags = Column(JSON, nullable=False, default=list)

    priority_score = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="pending", index=True)  # pending/approved/rejected
    moderation_reason = Column(String(64), default="")
    review_note = Column(Text, default="")
    dj_notes = Column(Text, default="")
    set_order = Column(Integer, nullable=True)

    submitted_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_active(self):
        return self.status != "rejected"

    @property
    def requester_roles(self):
        return [requester.get("role", "guest") for requester in self.requesters or []]

    def to_dict(self):
        from backend.services.priority import priority_tier

        return {
            "id": self.id,
            "trackId": self.track_id,
            "trackName": self.track_name,
            "artists": list(self.artists or []),
            "albumName": self.album_name or "",
            "albumImage": self.album_image or "",
            "spotifyUrl": self.spotify_url or "",
            "requesterName": self.requester_name or "",
            "requesterRole": self.requester_role or "guest",
            "requesters": list(self.requesters or []),
            "customMessage": self.custom_message or "",
            "dedicationMessage": self.dedication_message or "",
            "eventDate": self.event_date,
            "explicit": self.explicit_flag,
            "contentConfidence": self.content_confidence,
            "danceMoment": self.dance_moment,
            "energyLevel": self.energy_level,
            "vibeTags": list(self.vibe_tags or []),
            "moderationReason": self.moderation_reason or "",
            "voteCount": self.vote_count,
            "priorityScore": self.priority_score,
            "priorityTier": priority_tier(self.priority_score),
            "status": self.status,
            "reviewNote": self.review_note or "",
            "djNotes": self.dj_notes or "",
            "setOrder": self.set_order,
            "submittedAt": isoformat_utc(self.submitted_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }

    def __repr__(self):
        return f"<QueueEntry {self.id} {self.track_name} ({self.status}, #{self.set_order})>"


class RateLimitRecord(Base):
    __tablename__ = "request_rate_limits"

    identity = Column(String(80), primary_key=True)
    last_request_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<RateLimitRecord {self.identity} @ {self.last_request_at}>"
