"""Scheduling predicate: which dates a habit's periodicity makes obligatory."""

from datetime import date
from types import SimpleNamespace

import pytest

from habitstreaks.errors import NotFoundError
from habitstreaks.models.habit import Habit
from habitstreaks.services.schedule_service import ScheduleService


def habit(periodicity="DAILY", week_days=(), anchor_day=None, custom_rule=None,
          creation_date=date(2024, 1, 1), deactivated_at=None):
    h = Habit(
        name="h",
        owner_id=1,
        type="CHECK",
        periodicity=periodicity,
        anchor_day=anchor_day,
        custom_rule=custom_rule,
        creation_date=creation_date,
        deactivated_at=deactivated_at,
    )
    h.week_days = list(week_days)
    return h


@pytest.fixture
def custom_rule():
    ScheduleService.register_custom_rule("even-days", lambda h, d: d.day % 2 == 0)
    yield "even-days"
    ScheduleService.unregister_custom_rule("even-days")


def test_daily_every_day_in_active_range():
    h = habit()
    assert ScheduleService.is_obligated(h, date(2024, 1, 1))
    assert ScheduleService.is_obligated(h, date(2024, 3, 17))


def test_never_obligated_before_creation():
    assert not ScheduleService.is_obligated(habit(), date(2023, 12, 31))


def test_never_obligated_after_today_or_deactivation():
    h = habit(deactivated_at=date(2024, 1, 10))
    assert ScheduleService.is_obligated(h, date(2024, 1, 10))
    assert not ScheduleService.is_obligated(h, date(2024, 1, 11))
    assert not ScheduleService.is_obligated(habit(), date(2024, 1, 6), today=date(2024, 1, 5))


def test_weekly_only_on_configured_weekdays():
    h = habit("WEEKLY", week_days=[0, 2, 4])  # Mon, Wed, Fri
    # 2024-01-01 is a Monday
    assert ScheduleService.is_obligated(h, date(2024, 1, 1))
    assert not ScheduleService.is_obligated(h, date(2024, 1, 2))
    assert ScheduleService.is_obligated(h, date(2024, 1, 3))
    assert ScheduleService.is_obligated(h, date(2024, 1, 5))
    assert not ScheduleService.is_obligated(h, date(2024, 1, 6))


def test_monthly_defaults_to_creation_day():
    h = habit("MONTHLY", creation_date=date(2024, 1, 15))
    assert ScheduleService.is_obligated(h, date(2024, 2, 15))
    assert not ScheduleService.is_obligated(h, date(2024, 2, 14))


def test_monthly_anchor_clamps_to_month_end():
    h = habit("MONTHLY", anchor_day=31)
    assert ScheduleService.is_obligated(h, date(2024, 1, 31))
    assert ScheduleService.is_obligated(h, date(2024, 2, 29))  # leap year
    assert not ScheduleService.is_obligated(h, date(2024, 2, 28))
    assert ScheduleService.is_obligated(h, date(2024, 4, 30))


def test_custom_delegates_to_registered_rule(custom_rule):
    h = habit("CUSTOM", custom_rule=custom_rule)
    assert ScheduleService.is_obligated(h, date(2024, 1, 2))
    assert not ScheduleService.is_obligated(h, date(2024, 1, 3))


def test_custom_rule_receives_habit_and_date():
    seen = []
    ScheduleService.register_custom_rule("spy", lambda h, d: seen.append((h, d)) or True)
    try:
        h = habit("CUSTOM", custom_rule="spy")
        ScheduleService.is_obligated(h, date(2024, 1, 4))
        assert seen == [(h, date(2024, 1, 4))]
    finally:
        ScheduleService.unregister_custom_rule("spy")


def test_custom_without_rule_falls_back_to_weekdays():
    assert ScheduleService.is_obligated(habit("CUSTOM"), date(2024, 1, 6))
    h = habit("CUSTOM", week_days=[5, 6])
    assert ScheduleService.is_obligated(h, date(2024, 1, 6))
    assert not ScheduleService.is_obligated(h, date(2024, 1, 5))


def test_unknown_custom_rule_raises():
    with pytest.raises(NotFoundError):
        ScheduleService.is_obligated(habit("CUSTOM", custom_rule="missing"), date(2024, 1, 2))


def test_obligated_dates_ascending():
    h = habit("WEEKLY", week_days=[0, 2, 4])
    got = list(ScheduleService.obligated_dates(h, date(2023, 12, 25), date(2024, 1, 8)))
    assert got == [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5), date(2024, 1, 8)]


def test_predicate_accepts_any_habit_shaped_object():
    h = SimpleNamespace(periodicity="DAILY", creation_date=date(2024, 1, 1), deactivated_at=None)
    assert ScheduleService.is_obligated(h, date(2024, 1, 2))
