"""
Set-order maintenance for the active queue.

Every method works inside the caller's database session, so a renumber or a
reorder is committed (or rolled back) together with the change that caused it.
"""

import logging

from sqlalchemy import case, func

from backend.models.queue_models import QueueEntry
from backend.services.errors import ConflictingState, NotFound


logger = logging.getLogger(__name__)


def active_order_clauses():
    return (
        case((QueueEntry.set_order.is_(None), 1), else_=0),
        QueueEntry.set_order.asc(),
        QueueEntry.id.asc(),
    )


class OrderMaintainer:
    """Keeps active set orders dense (1..N) and rejected set orders empty"""

    def active_entries(self, db):
        db.flush()
        return (
            db.query(QueueEntry)
            .filter(QueueEntry.status != "rejected")
            .order_by(*active_order_clauses())
            .all()
        )

    def next_active_order(self, db):
        db.flush()
        current_max = (
            db.query(func.coalesce(func.max(QueueEntry.set_order), 0))
            .filter(QueueEntry.status != "rejected")
            .scalar()
        )
        return int(current_max or 0) + 1

    def _apply_order(self, db, entries, now=None):
        changed = []
        for position, entry in enumerate(entries, start=1):
            if entry.set_order != position:
                entry.set_order = position
                if now is not None:
                    entry.updated_at = now
                changed.append(entry.id)
        db.flush()
        return changed

    def renumber_active(self, db):
        """Reassign 1..N over the active queue and clear orders on rejected entries"""
        db.flush()
        rejected_with_order = (
            db.query(QueueEntry)
            .filter(QueueEntry.status == "rejected", QueueEntry.set_order.isnot(None))
            .all()
        )
        for entry in rejected_with_order:
            entry.set_order = None

        changed = self._apply_order(db, self.active_entries(db))
        if changed or rejected_with_order:
            logger.info(f"Renumbered active queue: {len(changed)} moved, {len(rejected_with_order)} cleared")
        return changed

    def _require_active(self, db, entry_id, missing_message, inactive_message):
        entry = db.get(QueueEntry, entry_id)
        if entry is None:
            raise NotFound(missing_message)
        if not entry.is_active:
            raise ConflictingState(inactive_message)
        return entry

    def reorder(self, db, item_id, before_id=None, now=None):
        """Move item_id directly in front of before_id, or to the end when before_id is None"""
        item = self._require_active(db, item_id, "Queue item not found", "Item is not in the active queue")
        if before_id is not None:
            if before_id == item_id:
                raise ConflictingState("An item cannot be placed before itself")
            self._require_active(
                db, before_id,
                "Target position item not found",
                "Target position item is not in the active queue",
            )

        entries = [entry for entry in self.active_entries(db) if entry.id != item.id]
        if before_id is None:
            entries.append(item)
        else:
            insert_at = next(index for index, entry in enumerate(entries) if entry.id == before_id)
            entries.insert(insert_at, item)

        return self._apply_order(db, entries, now)

    def move_to_position(self, db, item, position, now=None):
        """Place an active item at a 1-based position, shifting the rest down"""
        entries = [entry for entry in self.active_entries(db) if entry.id != item.id]
        index = max(0, min(position - 1, len(entries)))
        entries.insert(index, item)
        return self._apply_order(db, entries, now)
