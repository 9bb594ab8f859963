"""
Queue service: public submissions, duplicate merging, admin moderation and
queue control, all behind one object created by the app factory.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case

from backend.models.database_config import session_scope
from backend.models.queue_models import QueueEntry, isoformat_utc
from backend.services.analytics import build_analytics, build_feed_summary, project_public_entry
from backend.services.errors import ConflictingState, NotFound, ValidationError
from backend.services.intake import (
    build_create_payload, build_requester_entry, choose_higher_priority_dance_moment,
    choose_sooner_event_date, clamp, get_highest_priority_role, merge_vibe_tags,
    parse_dance_moment, parse_energy_level, parse_moderation_reason, parse_set_order,
    parse_integer, parse_status, sanitize_text,
)
from backend.services.ordering import OrderMaintainer, active_order_clauses
from backend.services.priority import compute_priority_score
from backend.services.rate_limiter import RateLimitDecision, RateLimiter
from backend.services.vocabulary import ALLOWED_CONFIDENCE, ALLOWED_DANCE_MOMENTS, ALLOWED_STATUSES
from backend.utils.locks import KeyedLocks


logger = logging.getLogger(__name__)

ADMIN_UPDATE_FIELDS = ("status", "reviewNote", "moderationReason", "danceMoment", "energyLevel", "djNotes", "setOrder")

BULK_APPROVE_MIN_SCORE = 55
BULK_DEFAULT_LIMIT = 8
BULK_MAX_LIMIT = 40

PUBLIC_QUEUE_DEFAULT_LIMIT = 24
PUBLIC_QUEUE_MAX_LIMIT = 60
FEED_UP_NEXT_LIMIT = 20

CLEAR_ACTIONS = {
    "clear_all": None,
    "clear_approved": "approved",
    "clear_pending": "pending",
    "clear_denied": "rejected",
}

MERGE_ATTEMPTS = 3


@dataclass
class SubmissionResult:
    rate_limit: RateLimitDecision
    entry: dict = None
    duplicate_joined: bool = False

    @property
    def admitted(self):
        return self.rate_limit.allowed


def _parse_limit(value, default, maximum):
    numeric = parse_integer(value) if value not in (None, "") else None
    if not numeric:
        numeric = default
    return clamp(numeric, 1, maximum)


class QueueService:
    """Owns every read-modify-write on the request queue.

    Lock order is always track lock, then the queue order lock. Moderation
    (network bound) runs while only the track lock is held.
    """

    def __init__(self, session_factory, moderation, rate_limiter=None, order=None, clock=None):
        self.session_factory = session_factory
        self.moderation = moderation
        self.rate_limiter = rate_limiter or RateLimiter(session_factory)
        self.order = order or OrderMaintainer()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.track_locks = KeyedLocks()
        self.order_lock = threading.Lock()

    # Submissions

    def submit(self, body, identity):
        """Validate, rate-limit, then create or merge a public request"""
        payload = build_create_payload(body)

        decision = self.rate_limiter.check_and_consume(identity, self.clock())
        if not decision.allowed:
            return SubmissionResult(rate_limit=decision)

        entry, duplicate_joined = self.upsert(payload)
        return SubmissionResult(rate_limit=decision, entry=entry, duplicate_joined=duplicate_joined)

    def _find_active(self, db, track_id):
        return (
            db.query(QueueEntry)
            .filter(QueueEntry.track_id == track_id, QueueEntry.status != "rejected")
            .order_by(QueueEntry.id.asc())
            .first()
        )

    def _active_snapshot(self, track_id):
        with session_scope(self.session_factory) as db:
            existing = self._find_active(db, track_id)
            if existing is None:
                return None
            return {
                "id": existing.id,
                "approved": existing.status == "approved",
                "track_name": existing.track_name,
                "artists": list(existing.artists or []),
                "content_confidence": existing.content_confidence,
            }

    @staticmethod
    def _merged_confidence(existing_confidence, incoming_confidence):
        if existing_confidence in (None, "unknown"):
            return incoming_confidence
        return existing_confidence

    def _decide_for(self, payload, snapshot):
        if snapshot is None:
            return self.moderation.decide(payload["track_name"], payload["artists"], payload["content_confidence"])
        if snapshot["approved"]:
            return None
        confidence = self._merged_confidence(snapshot["content_confidence"], payload["content_confidence"])
        return self.moderation.decide(snapshot["track_name"], snapshot["artists"] or payload["artists"], confidence)

    def upsert(self, payload):
        """Create a new entry for the track or merge into its active entry.

        Returns (serialized entry, duplicate_joined).
        """
        track_id = payload["track_id"]

        with self.track_locks.hold(track_id):
            for _ in range(MERGE_ATTEMPTS):
                snapshot = self._active_snapshot(track_id)
                decision = self._decide_for(payload, snapshot)

                with self.order_lock, session_scope(self.session_factory) as db:
                    existing = self._find_active(db, track_id)
                    seen = (existing.id, existing.status == "approved") if existing else None
                    expected = (snapshot["id"], snapshot["approved"]) if snapshot else None
                    if seen != expected:
                        # A bulk or control action changed the entry while moderation ran
                        logger.info(f"Active entry for {track_id} changed during moderation, retrying")
                        continue

                    now = self.clock()
                    if existing is None:
                        entry = self._create_entry(db, payload, decision, now)
                        logger.info(f"Queued '{entry.track_name}' as #{entry.id} ({entry.status})")
                        return entry.to_dict(), False

                    self._merge_into(db, existing, payload, decision, now)
                    logger.info(f"Merged request into #{existing.id} '{existing.track_name}' ({existing.vote_count} votes)")
                    return existing.to_dict(), True

        raise ConflictingState("The queue changed while the request was processed, please retry")

    def _create_entry(self, db, payload, decision, now):
        entry = QueueEntry(
            track_id=payload["track_id"],
            track_name=payload["track_name"],
            artists=payload["artists"],
            album_name=payload["album_name"],
            album_image=payload["album_image"],
            spotify_url=payload["spotify_url"],
            requester_name=payload["requester_name"],
            requester_role=payload["requester_role"],
            custom_message=payload["custom_message"],
            dedication_message=payload["dedication_message"],
            requesters=[build_requester_entry(payload, isoformat_utc(now))],
            vote_count=1,
            event_date=payload["event_date"],
            explicit_flag=payload["explicit_flag"],
            content_confidence=payload["content_confidence"],
            dance_moment=payload["dance_moment"],
            energy_level=payload["energy_level"],
            vibe_tags=payload["vibe_tags"],
            status=decision.status,
            moderation_reason=decision.moderation_reason,
            review_note=decision.review_note,
            dj_notes="",
            submitted_at=now,
            updated_at=now,
        )
        entry.priority_score = compute_priority_score(
            entry.vote_count, [entry.requester_role], entry.event_date, entry.content_confidence,
            entry.dance_moment, entry.energy_level, now,
        )
        entry.set_order = None if entry.status == "rejected" else self.order.next_active_order(db)
        db.add(entry)
        db.flush()
        self.order.renumber_active(db)
        return entry

    def _merge_into(self, db, entry, payload, decision, now):
        requesters = list(entry.requesters or [])
        requesters.append(build_requester_entry(payload, isoformat_utc(now)))
        entry.requesters = requesters

        entry.vote_count = max(entry.vote_count or 1, len(requesters))
        entry.event_date = choose_sooner_event_date(entry.event_date, payload["event_date"])
        entry.dance_moment = choose_higher_priority_dance_moment(entry.dance_moment, payload["dance_moment"])
        entry.energy_level = max(entry.energy_level or 3, payload["energy_level"])
        entry.vibe_tags = merge_vibe_tags(entry.vibe_tags, payload["vibe_tags"])
        entry.dedication_message = entry.dedication_message or payload["dedication_message"]
        entry.requester_role = get_highest_priority_role(entry.requester_roles)
        entry.content_confidence = self._merged_confidence(entry.content_confidence, payload["content_confidence"])
        if payload["explicit_flag"] is not None:
            entry.explicit_flag = payload["explicit_flag"]

        # Approved entries keep their status no matter what the new inputs say
        if decision is not None and entry.status != "approved":
            entry.status = decision.status
            entry.moderation_reason = decision.moderation_reason
            entry.review_note = decision.review_note

        entry.priority_score = self._score(entry, now)
        if entry.status == "rejected":
            entry.set_order = None
        elif entry.set_order is None:
            entry.set_order = self.order.next_active_order(db)
        entry.updated_at = now
        self.order.renumber_active(db)

    @staticmethod
    def _score(entry, now):
        return compute_priority_score(
            entry.vote_count, entry.requester_roles, entry.event_date, entry.content_confidence,
            entry.dance_moment, entry.energy_level, now,
        )

    # Admin edits

    def _parse_admin_fields(self, fields):
        if not isinstance(fields, dict):
            raise ValidationError("Invalid JSON payload")
        if not any(name in fields for name in ADMIN_UPDATE_FIELDS):
            raise ValidationError("No admin updates were provided")

        updates = {}
        if "status" in fields:
            updates["status"] = parse_status(fields["status"])
        if "moderationReason" in fields:
            updates["moderation_reason"] = parse_moderation_reason(fields["moderationReason"])
        if "reviewNote" in fields:
            updates["review_note"] = sanitize_text(fields["reviewNote"], 500)
        if "djNotes" in fields:
            updates["dj_notes"] = sanitize_text(fields["djNotes"], 500)
        if "danceMoment" in fields:
            updates["dance_moment"] = parse_dance_moment(fields["danceMoment"])
        if "energyLevel" in fields:
            updates["energy_level"] = parse_energy_level(fields["energyLevel"])
        if "setOrder" in fields:
            updates["set_order"] = parse_set_order(fields["setOrder"])
        return updates

    def _track_id_of(self, entry_id):
        with session_scope(self.session_factory) as db:
            entry = db.get(QueueEntry, entry_id)
            if entry is None:
                raise NotFound("Queue item not found")
            return entry.track_id

    def admin_update(self, entry_id, fields):
        """Apply a moderator's edits to one entry and return it serialized"""
        updates = self._parse_admin_fields(fields)
        track_id = self._track_id_of(entry_id)

        with self.track_locks.hold(track_id), self.order_lock, session_scope(self.session_factory) as db:
            entry = db.get(QueueEntry, entry_id)
            if entry is None:
                raise NotFound("Queue item not found")

            now = self.clock()
            previous_status = entry.status
            status = updates.get("status", previous_status)

            if "moderation_reason" in updates:
                reason = updates["moderation_reason"]
            elif status == "rejected":
                reason = entry.moderation_reason or ""
            else:
                reason = ""
            if status == "rejected" and not reason:
                reason = entry.moderation_reason or ""
                if not reason:
                    raise ValidationError("Choose a moderation preset when rejecting a track")

            if previous_status == "rejected" and status != "rejected":
                other = (
                    db.query(QueueEntry)
                    .filter(
                        QueueEntry.track_id == entry.track_id,
                        QueueEntry.status != "rejected",
                        QueueEntry.id != entry.id,
                    )
                    .first()
                )
                if other is not None:
                    raise ConflictingState(f"Track is already active in the queue as #{other.id}")

            entry.status = status
            entry.moderation_reason = reason
            for name in ("review_note", "dj_notes", "dance_moment", "energy_level"):
                if name in updates:
                    setattr(entry, name, updates[name])

            requested_order = updates.get("set_order")
            if status == "rejected":
                entry.set_order = None
            elif requested_order is not None:
                self.order.move_to_position(db, entry, requested_order, now)
            elif previous_status == "rejected" or entry.set_order is None:
                entry.set_order = self.order.next_active_order(db)

            entry.priority_score = self._score(entry, now)
            entry.updated_at = now
            self.order.renumber_active(db)

            logger.info(f"Admin updated #{entry.id}: {previous_status} -> {entry.status}")
            return entry.to_dict()

    def reorder(self, item_id, before_id=None):
        with self.order_lock, session_scope(self.session_factory) as db:
            changed = self.order.reorder(db, item_id, before_id, self.clock())
        logger.info(f"Reordered #{item_id} before {before_id or 'end'} ({len(changed)} moved)")

    # Bulk and control actions

    def bulk_action(self, action, limit=None):
        name = sanitize_text(action, 64).lower()
        limit = _parse_limit(limit, BULK_DEFAULT_LIMIT, BULK_MAX_LIMIT)

        with self.order_lock, session_scope(self.session_factory) as db:
            now = self.clock()
            if name == "approve_clean_high_priority":
                entries = (
                    db.query(QueueEntry)
                    .filter(
                        QueueEntry.status == "pending",
                        QueueEntry.content_confidence == "clean",
                        QueueEntry.priority_score >= BULK_APPROVE_MIN_SCORE,
                    )
                    .order_by(QueueEntry.priority_score.desc(), QueueEntry.vote_count.desc(), QueueEntry.id.desc())
                    .limit(limit)
                    .all()
                )
                for entry in entries:
                    entry.status = "approved"
                    entry.moderation_reason = ""
                    entry.review_note = "Bulk-approved clean/high-priority request."
                    entry.updated_at = now
            elif name == "reject_explicit":
                entries = (
                    db.query(QueueEntry)
                    .filter(QueueEntry.status == "pending", QueueEntry.content_confidence == "explicit")
                    .order_by(QueueEntry.priority_score.desc(), QueueEntry.vote_count.desc(), QueueEntry.id.desc())
                    .limit(limit)
                    .all()
                )
                for entry in entries:
                    entry.status = "rejected"
                    entry.moderation_reason = "explicit_lyrics"
                    entry.review_note = "Bulk-rejected explicit request."
                    entry.set_order = None
                    entry.updated_at = now
            else:
                raise ValidationError("Unsupported bulk action")

            updated_ids = [entry.id for entry in entries]
            self.order.renumber_active(db)

        logger.info(f"Bulk action {name} updated {len(updated_ids)} entries")
        return {"updatedCount": len(updated_ids), "updatedIds": updated_ids}

    def control_action(self, action):
        name = sanitize_text(action, 64).lower()
        if not name:
            raise ValidationError("Control action is required")

        with self.order_lock, session_scope(self.session_factory) as db:
            if name == "play_next_approved":
                entry = (
                    db.query(QueueEntry)
                    .filter(QueueEntry.status == "approved")
                    .order_by(*active_order_clauses())
                    .first()
                )
                if entry is None:
                    return {"updatedCount": 0, "action": name}
                played = {"playedItemId": entry.id, "playedTrackName": entry.track_name}
                db.delete(entry)
                self.order.renumber_active(db)
                logger.info(f"Played next approved track #{played['playedItemId']}")
                return {"updatedCount": 1, "action": name, **played}

            if name in CLEAR_ACTIONS:
                query = db.query(QueueEntry)
                if CLEAR_ACTIONS[name]:
                    query = query.filter(QueueEntry.status == CLEAR_ACTIONS[name])
                removed = query.delete(synchronize_session=False)
                self.order.renumber_active(db)
                logger.info(f"Control action {name} removed {removed} entries")
                return {"updatedCount": removed, "action": name}

            if name == "renumber_active":
                changed = self.order.renumber_active(db)
                return {"updatedCount": len(changed), "action": name}

        raise ValidationError("Unsupported control action")

    # Reads

    def get_entry(self, entry_id):
        with session_scope(self.session_factory) as db:
            entry = db.get(QueueEntry, entry_id)
            if entry is None:
                raise NotFound("Queue item not found")
            return entry.to_dict()

    def list_entries(self, filters=None):
        """Admin listing: active entries in set order, rejected entries last"""
        filters = filters or {}
        status = sanitize_text(filters.get("status"), 16).lower()
        confidence = sanitize_text(filters.get("confidence"), 16).lower()
        moment = sanitize_text(filters.get("danceMoment"), 32).lower()
        search = sanitize_text(filters.get("q"), 120).lower()

        if status and status not in ALLOWED_STATUSES:
            raise ValidationError("Invalid status filter")
        if confidence and confidence not in ALLOWED_CONFIDENCE:
            raise ValidationError("Invalid confidence filter")
        if moment and moment not in ALLOWED_DANCE_MOMENTS:
            raise ValidationError("Invalid dance moment filter")

        with session_scope(self.session_factory) as db:
            query = db.query(QueueEntry)
            if status:
                query = query.filter(QueueEntry.status == status)
            if confidence:
                query = query.filter(QueueEntry.content_confidence == confidence)
            if moment:
                query = query.filter(QueueEntry.dance_moment == moment)
            entries = query.order_by(
                case((QueueEntry.status == "rejected", 1), else_=0),
                *active_order_clauses(),
            ).all()
            items = [entry.to_dict() for entry in entries]

        if search:
            items = [item for item in items if search in self._search_text(item)]
        return items

    @staticmethod
    def _search_text(item):
        return " ".join([item["trackName"], item["requesterName"], *item["artists"]]).lower()

    def list_active(self):
        with session_scope(self.session_factory) as db:
            return [entry.to_dict() for entry in self.order.active_entries(db)]

    def _approved_entries(self, db, limit):
        return (
            db.query(QueueEntry)
            .filter(QueueEntry.status == "approved")
            .order_by(
                case((QueueEntry.set_order.is_(None), 1), else_=0),
                QueueEntry.set_order.asc(),
                QueueEntry.priority_score.desc(),
                QueueEntry.vote_count.desc(),
                QueueEntry.id.desc(),
            )
            .limit(limit)
            .all()
        )

    def public_queue(self, limit=None, status=None):
        requested_status = sanitize_text(status, 16).lower()
        if requested_status and requested_status != "approved":
            raise ValidationError("Public queue only supports approved tracks.")
        limit = _parse_limit(limit, PUBLIC_QUEUE_DEFAULT_LIMIT, PUBLIC_QUEUE_MAX_LIMIT)

        with session_scope(self.session_factory) as db:
            return [project_public_entry(entry.to_dict()) for entry in self._approved_entries(db, limit)]

    def _all_items(self):
        with session_scope(self.session_factory) as db:
            return [entry.to_dict() for entry in db.query(QueueEntry).order_by(QueueEntry.id.asc()).all()]

    def analytics(self):
        return build_analytics(self._all_items())

    def public_feed(self):
        with session_scope(self.session_factory) as db:
            up_next = [project_public_entry(entry.to_dict()) for entry in self._approved_entries(db, FEED_UP_NEXT_LIMIT)]

        stats = self.analytics()
        return {
            "upNext": up_next,
            "summary": build_feed_summary(stats),
            "trendingArtists": stats["topRequestedArtists"][:6],
            "trendingMoments": stats["danceMoments"][:6],
            "trendingVibes": stats["vibeTags"][:8],
            "generatedAt": isoformat_utc(self.clock()),
        }
