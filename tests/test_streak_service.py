"""Streak calculator: forward scan, completion criteria, checkpoints and as-of policy."""

from datetime import date
from types import SimpleNamespace

import pytest

from habitstreaks.models.habit import Habit
from habitstreaks.schemas import StreakSnapshot
from habitstreaks.services.streak_service import StreakService
from tests.conftest import days


def habit(periodicity="DAILY", type="CHECK", week_days=(), target_value=None,
          creation_date=date(2024, 1, 1), deactivated_at=None, evaluated_through=None):
    h = Habit(
        name="h",
        owner_id=1,
        type=type,
        periodicity=periodicity,
        target_value=target_value,
        creation_date=creation_date,
        deactivated_at=deactivated_at,
    )
    h.week_days = list(week_days)
    h.apply_snapshot(StreakSnapshot(), evaluated_through)
    return h


def done(*dates, completed=True):
    return [SimpleNamespace(date=d, completed=completed, value=None) for d in dates]


def valued(d, value):
    return SimpleNamespace(date=d, completed=False, value=value)


def scenario_a_records():
    return done(*days(date(2024, 1, 1), date(2024, 1, 5)), *days(date(2024, 1, 7), date(2024, 1, 10)))


def test_scenario_a_daily_gap():
    result = StreakService.compute_streaks(habit(), scenario_a_records(), date(2024, 1, 10))
    assert result == StreakSnapshot(current_streak=4, longest_streak=5)


def test_scenario_c_filled_gap_is_one_run():
    records = scenario_a_records() + done(date(2024, 1, 6))
    result = StreakService.compute_streaks(habit(), records, date(2024, 1, 10))
    assert result == StreakSnapshot(current_streak=10, longest_streak=10)


def test_missing_record_on_obligated_day_breaks():
    result = StreakService.compute_streaks(habit(), done(date(2024, 1, 1), date(2024, 1, 2)), date(2024, 1, 3))
    assert result == StreakSnapshot(current_streak=0, longest_streak=2)


def test_explicit_uncompleted_record_breaks():
    records = done(date(2024, 1, 1)) + done(date(2024, 1, 2), completed=False) + done(date(2024, 1, 3))
    result = StreakService.compute_streaks(habit(), records, date(2024, 1, 3))
    assert result == StreakSnapshot(current_streak=1, longest_streak=1)


def test_scenario_b_weekly_off_day_marks_are_inert():
    h = habit("WEEKLY", week_days=[0, 2, 4])
    baseline = done(date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5), date(2024, 1, 8))
    with_tuesday = baseline + done(date(2024, 1, 2))
    as_of = date(2024, 1, 9)
    assert StreakService.compute_streaks(h, with_tuesday, as_of) == StreakService.compute_streaks(h, baseline, as_of)
    assert StreakService.compute_streaks(h, baseline, as_of) == StreakSnapshot(current_streak=4, longest_streak=4)


def test_weekly_non_obligated_days_do_not_break_run():
    h = habit("WEEKLY", week_days=[0])
    records = done(date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15))
    assert StreakService.compute_streaks(h, records, date(2024, 1, 20)) == StreakSnapshot(current_streak=3, longest_streak=3)


def test_numeric_uses_value_against_target():
    h = habit(type="NUMERIC", target_value=10000)
    records = [valued(date(2024, 1, 1), 10000), valued(date(2024, 1, 2), 12000), valued(date(2024, 1, 3), 9999)]
    assert StreakService.compute_streaks(h, records, date(2024, 1, 3)) == StreakSnapshot(current_streak=0, longest_streak=2)


def test_numeric_ignores_completed_flag():
    h = habit(type="NUMERIC", target_value=5)
    records = [SimpleNamespace(date=date(2024, 1, 1), completed=True, value=1)]
    assert StreakService.compute_streaks(h, records, date(2024, 1, 1)).current_streak == 0


def test_as_of_before_creation_is_empty():
    result = StreakService.compute_streaks(habit(), [], date(2023, 12, 31))
    assert result == StreakSnapshot()


def test_deactivated_habit_stops_at_deactivation():
    h = habit(deactivated_at=date(2024, 1, 3))
    records = done(*days(date(2024, 1, 1), date(2024, 1, 3)))
    assert StreakService.compute_streaks(h, records, date(2024, 1, 10)) == StreakSnapshot(current_streak=3, longest_streak=3)


def test_resume_from_checkpoint_matches_full_replay():
    records = scenario_a_records()
    h = habit()
    head = StreakService.compute_streaks(h, [r for r in records if r.date <= date(2024, 1, 7)], date(2024, 1, 7))
    resumed = StreakService.compute_streaks(
        h,
        [r for r in records if r.date > date(2024, 1, 7)],
        date(2024, 1, 10),
        start=date(2024, 1, 8),
        initial=head,
    )
    assert resumed == StreakService.compute_streaks(h, records, date(2024, 1, 10))


@pytest.mark.parametrize("cut", list(days(date(2024, 1, 1), date(2024, 1, 9))))
def test_resume_at_any_checkpoint(cut):
    records = scenario_a_records()
    h = habit()
    head = StreakService.compute_streaks(h, [r for r in records if r.date <= cut], cut)
    start = date.fromordinal(cut.toordinal() + 1)
    tail = StreakService.compute_streaks(h, [r for r in records if r.date >= start], date(2024, 1, 10), start=start, initial=head)
    assert tail == StreakSnapshot(current_streak=4, longest_streak=5)


def test_longest_never_below_current():
    records = done(*days(date(2024, 1, 1), date(2024, 1, 31)))
    for as_of in days(date(2024, 1, 1), date(2024, 2, 5)):
        snap = StreakService.compute_streaks(habit(), records, as_of)
        assert snap.longest_streak >= snap.current_streak >= 0


# ------------------------------------------------------------------
# as-of policy & checkpoint eligibility
# ------------------------------------------------------------------

def test_pending_today_excluded_from_as_of():
    assert StreakService.resolve_as_of(habit(), None, date(2024, 1, 11)) == date(2024, 1, 10)


def test_fulfilled_today_included_in_as_of():
    today = date(2024, 1, 11)
    assert StreakService.resolve_as_of(habit(), done(today)[0], today) == today


def test_non_obligated_today_included_in_as_of():
    h = habit("WEEKLY", week_days=[0])
    assert StreakService.resolve_as_of(h, None, date(2024, 1, 11)) == date(2024, 1, 11)


def test_as_of_capped_at_deactivation():
    h = habit(deactivated_at=date(2024, 1, 5))
    assert StreakService.resolve_as_of(h, None, date(2024, 1, 11)) == date(2024, 1, 5)


def test_can_resume_rules():
    h = habit(evaluated_through=date(2024, 1, 10))
    assert StreakService.can_resume(h, date(2024, 1, 11), date(2024, 1, 11))
    assert StreakService.can_resume(h, None, date(2024, 1, 12))
    assert not StreakService.can_resume(h, date(2024, 1, 10), date(2024, 1, 11))
    assert not StreakService.can_resume(h, date(2024, 1, 6), date(2024, 1, 11))
    assert not StreakService.can_resume(h, date(2024, 1, 11), date(2024, 1, 9))
    assert not StreakService.can_resume(habit(), date(2024, 1, 11), date(2024, 1, 11))
