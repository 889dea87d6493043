"""
audit_service.py — Append-only trail of streak transitions.
"""

from datetime import datetime

from sqlalchemy.orm import Session

from habitstreaks.models.audit_entry import AuditEntry, AuditKind
from habitstreaks.models.habit_record import HabitRecord
from habitstreaks.schemas import StreakSnapshot


class AuditService:
    @staticmethod
    def append(
        db: Session,
        habit_id: int,
        kind: AuditKind,
        before: StreakSnapshot,
        after: StreakSnapshot,
        at: datetime,
        record: HabitRecord | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            habit_id=habit_id,
            created_at=at,
            kind=kind.value,
            previous_current=before.current_streak,
            previous_longest=before.longest_streak,
            new_current=after.current_streak,
            new_longest=after.longest_streak,
        )
        if record is not None:
            entry.record_id = record.id
            entry.record_date = record.date
            entry.record_completed = record.completed
            entry.record_value = record.value
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def history(db: Session, habit_id: int) -> list[AuditEntry]:
        """Entries for a habit, oldest first."""
        return db.query(AuditEntry).filter_by(habit_id=habit_id).order_by(AuditEntry.id.asc()).all()
