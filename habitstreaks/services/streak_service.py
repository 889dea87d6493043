"""
streak_service.py — Streak calculator
Forward scan over obligated days from creation (or a cached checkpoint) to an
as-of date. Pure: reads the habit rule and the given records, writes nothing.
"""

from datetime import date, timedelta
from typing import Iterable

from habitstreaks.models.habit import Habit
from habitstreaks.schemas import StreakSnapshot
from habitstreaks.services.schedule_service import ScheduleService


class StreakService:
    @staticmethod
    def is_fulfilled(habit: Habit, record) -> bool:
        """Completion criterion. A missing record is a miss."""
        if record is None:
            return False
        if habit.is_numeric:
            return record.value is not None and record.value >= habit.target_value
        return bool(record.completed)

    # ------------------------------------------------------------------
    @staticmethod
    def compute_streaks(
        habit: Habit,
        records: Iterable,
        as_of: date,
        start: date | None = None,
        initial: StreakSnapshot | None = None,
    ) -> StreakSnapshot:
        """
        Scan [start or creation_date, as_of] ascending.
        With `start`/`initial` this resumes from a cached state (incremental path);
        without them it is a full replay.
        """
        by_date = {r.date: r for r in records}
        running = initial.current_streak if initial else 0
        best = initial.longest_streak if initial else 0

        scan_from = start or habit.creation_date
        for d in ScheduleService.obligated_dates(habit, scan_from, as_of, today=as_of):
            if StreakService.is_fulfilled(habit, by_date.get(d)):
                running += 1
                best = max(best, running)
            else:
                running = 0

        return StreakSnapshot(current_streak=running, longest_streak=best)

    # ------------------------------------------------------------------
    @staticmethod
    def resolve_as_of(habit: Habit, today_record, today: date) -> date:
        """
        Cutoff for evaluation: today, unless today is obligated and still
        unfulfilled (pending days never break a streak). Capped at deactivation.
        """
        as_of = today
        if ScheduleService.is_obligated(habit, today, today) and not StreakService.is_fulfilled(habit, today_record):
            as_of = today - timedelta(days=1)
        if habit.deactivated_at is not None:
            as_of = min(as_of, habit.deactivated_at)
        return as_of

    @staticmethod
    def can_resume(habit: Habit, written: date | None, as_of: date) -> bool:
        """
        True when the cached snapshot can be extended instead of replayed:
        the write lands after everything evaluated so far and the cutoff
        did not move backwards.
        """
        checkpoint = habit.evaluated_through
        if checkpoint is None:
            return False
        if written is not None and written <= checkpoint:
            return False
        return as_of >= checkpoint
