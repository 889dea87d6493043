"""
ledger_service.py — Record ledger
One record per (habit, date): point upsert, ascending range reads,
descending keyset pages, and the atomic numeric increment.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from habitstreaks.models.habit_record import HabitRecord

logger = logging.getLogger(__name__)


class LedgerService:
    @staticmethod
    def get(db: Session, habit_id: int, d: date) -> HabitRecord | None:
        return db.query(HabitRecord).filter_by(habit_id=habit_id, date=d).populate_existing().one_or_none()

    @staticmethod
    def range(db: Session, habit_id: int, start: date, end: date) -> list[HabitRecord]:
        """Records in [start, end], ascending by date."""
        if start > end:
            return []
        return (
            db.query(HabitRecord)
            .filter(HabitRecord.habit_id == habit_id, HabitRecord.date >= start, HabitRecord.date <= end)
            .order_by(HabitRecord.date.asc())
            .all()
        )

    @staticmethod
    def page_descending(db: Session, habit_id: int, before: date | None, limit: int) -> list[HabitRecord]:
        """Up to `limit` records strictly older than `before`, newest first."""
        query = db.query(HabitRecord).filter_by(habit_id=habit_id)
        if before is not None:
            query = query.filter(HabitRecord.date < before)
        return query.order_by(HabitRecord.date.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    @staticmethod
    def upsert(
        db: Session,
        habit_id: int,
        d: date,
        completed: bool,
        value: float | None = None,
        notes: str | None = None,
    ) -> HabitRecord:
        """Idempotent point write keyed by (habit_id, date)."""
        record = LedgerService.get(db, habit_id, d)
        if record is None:
            try:
                with db.begin_nested():
                    record = HabitRecord(
                        habit_id=habit_id, date=d, completed=completed, value=value, accumulated=value, notes=notes
                    )
                    db.add(record)
                return record
            except IntegrityError:
                # Lost the insert race; fall through to update the winner's row
                logger.debug(f"Concurrent insert for habit {habit_id} on {d}; updating instead")
                record = LedgerService.get(db, habit_id, d)

        record.completed = completed
        record.value = value
        record.accumulated = value
        record.notes = notes
        db.flush()
        return record

    @staticmethod
    def increment(db: Session, habit_id: int, d: date, delta: float, target: float) -> HabitRecord:
        """
        accumulated += delta; value = max(0, accumulated); completed = value >= target.
        Evaluated by the database in one UPDATE so concurrent deltas never
        overwrite each other, and clamping happens on the total so the
        result does not depend on arrival order.
        """
        total = func.coalesce(HabitRecord.accumulated, HabitRecord.value, 0.0) + delta
        clamped = case((total < 0, 0.0), else_=total)
        stmt = (
            update(HabitRecord)
            .where(HabitRecord.habit_id == habit_id, HabitRecord.date == d)
            .values(
                accumulated=total,
                value=clamped,
                completed=case((clamped >= target, True), else_=False),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )

        if db.execute(stmt).rowcount == 0:
            start = max(0.0, delta)
            try:
                with db.begin_nested():
                    db.add(HabitRecord(habit_id=habit_id, date=d, completed=start >= target, value=start, accumulated=delta))
            except IntegrityError:
                logger.debug(f"Concurrent first delta for habit {habit_id} on {d}; incrementing instead")
                db.execute(stmt)

        return LedgerService.get(db, habit_id, d)

    @staticmethod
    def rederive_completion(db: Session, habit_id: int, target: float) -> int:
        """Recompute `completed` of every numeric record against `target`. Returns rows changed."""
        fulfilled = func.coalesce(HabitRecord.value, 0.0) >= target
        result = db.execute(
            update(HabitRecord)
            .where(HabitRecord.habit_id == habit_id, HabitRecord.completed != fulfilled)
            .values(completed=case((fulfilled, True), else_=False))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
