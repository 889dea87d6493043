"""
progress_service.py — Progress accumulator for NUMERIC habits
Merges deltas from any number of devices into the day's record through the
ledger's atomic increment, then derives the completion flag.
"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from habitstreaks.errors import ValidationError
from habitstreaks.models.habit import Habit
from habitstreaks.models.habit_record import HabitRecord
from habitstreaks.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class ProgressService:
    @staticmethod
    def apply_delta(db: Session, habit: Habit, d: date, delta: float) -> HabitRecord:
        if not habit.is_numeric:
            raise ValidationError("Progress updates are only available for NUMERIC habits", habit_id=habit.id)
        if delta == 0:
            raise ValidationError("delta must not be zero", habit_id=habit.id)

        record = LedgerService.increment(db, habit.id, d, delta, habit.target_value)
        logger.debug(f"Habit {habit.id} on {d}: {delta:+g} -> value={record.value} completed={record.completed}")
        return record

    @staticmethod
    def progress_percentage(habit: Habit, record: HabitRecord | None) -> int | None:
        """Share of the target reached, capped at 100."""
        if not habit.is_numeric or not habit.target_value:
            return None
        value = record.value if record is not None and record.value is not None else 0
        return min(100, round(value / habit.target_value * 100))
