"""
schedule_service.py — Scheduling predicate
Decides whether a calendar date is an obligated day for a habit under its
periodicity rule. CUSTOM rules are delegated to registered evaluators.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Callable, Iterator

from habitstreaks.errors import NotFoundError
from habitstreaks.models.habit import Habit, Periodicity

logger = logging.getLogger(__name__)

CustomRule = Callable[[Habit, date], bool]


class ScheduleService:
    _custom_rules: dict[str, CustomRule] = {}

    # ------------------------------------------------------------------
    @classmethod
    def register_custom_rule(cls, name: str, evaluator: CustomRule):
        """Make `evaluator` available to CUSTOM habits whose custom_rule == name."""
        cls._custom_rules[name] = evaluator
        logger.info(f"Registered custom schedule rule '{name}'")

    @classmethod
    def has_custom_rule(cls, name: str) -> bool:
        return name in cls._custom_rules

    @classmethod
    def unregister_custom_rule(cls, name: str):
        cls._custom_rules.pop(name, None)

    # ------------------------------------------------------------------
    @staticmethod
    def anchor_day_in_month(anchor: int, year: int, month: int) -> int:
        """Anchor day for a month; days past the month's end clamp to its last day."""
        return min(anchor, calendar.monthrange(year, month)[1])

    @staticmethod
    def active_until(habit: Habit, today: date | None = None) -> date | None:
        """Last date of the active range, or None when unbounded."""
        bounds = [d for d in (today, habit.deactivated_at) if d is not None]
        return min(bounds) if bounds else None

    # ------------------------------------------------------------------
    @classmethod
    def is_obligated(cls, habit: Habit, d: date, today: date | None = None) -> bool:
        if d < habit.creation_date:
            return False
        end = cls.active_until(habit, today)
        if end is not None and d > end:
            return False

        if habit.periodicity == Periodicity.DAILY:
            return True

        if habit.periodicity == Periodicity.WEEKLY:
            return d.weekday() in habit.week_days

        if habit.periodicity == Periodicity.MONTHLY:
            anchor = habit.anchor_day or habit.creation_date.day
            return d.day == cls.anchor_day_in_month(anchor, d.year, d.month)

        if habit.periodicity == Periodicity.CUSTOM:
            if habit.custom_rule:
                evaluator = cls._custom_rules.get(habit.custom_rule)
                if evaluator is None:
                    raise NotFoundError(f"No custom schedule rule registered as '{habit.custom_rule}'")
                return bool(evaluator(habit, d))
            # No evaluator: weekday filter when configured, else every day
            week_days = habit.week_days
            return d.weekday() in week_days if week_days else True

        return False

    @classmethod
    def obligated_dates(cls, habit: Habit, start: date, end: date, today: date | None = None) -> Iterator[date]:
        """Obligated dates in [start, end], ascending."""
        d = max(start, habit.creation_date)
        while d <= end:
            if cls.is_obligated(habit, d, today):
                yield d
            d += timedelta(days=1)

