"""
habit_service.py — Habit marks, progress & streak recalculation
Every mutation runs inside the habit's exclusive section as one transaction:
ledger write, streak replay (incremental or full), snapshot write, audit entry.
"""

import logging
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Iterator

from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from habitstreaks.clock import SystemClock
from habitstreaks.config import HISTORY_MAX_PAGE_SIZE, HISTORY_PAGE_SIZE, RETROACTIVE_WINDOW_DAYS
from habitstreaks.errors import (
    ConflictError,
    HabitEngineError,
    NotFoundError,
    ObligationMismatch,
    RecalculationFailed,
    ValidationError,
)
from habitstreaks.models.audit_entry import AuditKind
from habitstreaks.models.habit import Habit, Periodicity
from habitstreaks.schemas import (
    AuditView,
    HabitCreate,
    HistoryPage,
    MarkRequest,
    MarkResult,
    ProgressUpdate,
    RecordView,
    ScheduleUpdate,
    StreakSnapshot,
)
from habitstreaks.services.audit_service import AuditService
from habitstreaks.services.habit_locks import HabitLocks
from habitstreaks.services.ledger_service import LedgerService
from habitstreaks.services.progress_service import ProgressService
from habitstreaks.services.schedule_service import ScheduleService
from habitstreaks.services.streak_service import StreakService

logger = logging.getLogger(__name__)


def _validated(schema, **data):
    """Build a schema object, translating pydantic failures into ValidationError."""
    try:
        return schema(**data)
    except SchemaError as e:
        message = "; ".join(err["msg"] for err in e.errors())
        raise ValidationError(message, errors=e.errors(include_url=False)) from e


class HabitService:
    def __init__(self, clock=None, locks: HabitLocks | None = None, retroactive_window_days: int = RETROACTIVE_WINDOW_DAYS):
        self.clock = clock or SystemClock()
        self.locks = locks or HabitLocks()
        self.retroactive_window_days = retroactive_window_days

    # ------------------------------------------------------------------
    # Lookup & transaction plumbing
    # ------------------------------------------------------------------
    @staticmethod
    def _load(db: Session, habit_id: int, owner_id: int | None = None, for_update: bool = False) -> Habit:
        query = db.query(Habit).filter_by(id=habit_id).populate_existing()
        if for_update:
            query = query.with_for_update()
        habit = query.one_or_none()
        if habit is None or (owner_id is not None and habit.owner_id != owner_id):
            raise NotFoundError("Habit not found", habit_id=habit_id)
        return habit

    @staticmethod
    def _snapshot(habit: Habit) -> StreakSnapshot:
        return StreakSnapshot(current_streak=habit.current_streak, longest_streak=habit.longest_streak)

    @contextmanager
    def _transaction(self, db: Session, habit_id: int, action: str):
        """Exclusive section + commit/rollback around one habit mutation."""
        with self.locks.exclusive(habit_id):
            try:
                yield
                db.commit()
            except HabitEngineError as e:
                db.rollback()
                logger.warning(f"{action} rejected for habit {habit_id}: {e.message}")
                raise
            except StaleDataError as e:
                db.rollback()
                logger.warning(f"{action} on habit {habit_id} lost a concurrent update: {e}")
                raise ConflictError(f"Habit {habit_id} was modified concurrently; retry", habit_id=habit_id) from e
            except Exception as e:
                db.rollback()
                logger.exception(f"{action} on habit {habit_id} failed; transaction rolled back")
                raise RecalculationFailed(f"Streak recalculation failed for habit {habit_id}: {e}", habit_id=habit_id) from e

    def _recalculate(self, db: Session, habit: Habit, written: date | None, full: bool) -> tuple[StreakSnapshot, StreakSnapshot]:
        """Replay streaks up to the as-of date and write them through the habit's gate."""
        today = self.clock.today()
        before = self._snapshot(habit)
        as_of = StreakService.resolve_as_of(habit, LedgerService.get(db, habit.id, today), today)

        if not full and StreakService.can_resume(habit, written, as_of):
            start = habit.evaluated_through + timedelta(days=1)
            records = LedgerService.range(db, habit.id, start, as_of)
            after = StreakService.compute_streaks(habit, records, as_of, start=start, initial=before)
            mode = "incremental"
        else:
            records = LedgerService.range(db, habit.id, habit.creation_date, as_of)
            after = StreakService.compute_streaks(habit, records, as_of)
            mode = "full"

        habit.apply_snapshot(after, as_of if as_of >= habit.creation_date else None)
        db.flush()
        logger.debug(
            f"Habit {habit.id} {mode} replay through {as_of}: "
            f"{before.current_streak}/{before.longest_streak} -> {after.current_streak}/{after.longest_streak}"
        )
        return before, after

    def _check_writable_date(self, habit: Habit, d: date, windowed: bool = True):
        today = self.clock.today()
        if d > today:
            raise ValidationError("Cannot register completions for future dates", date=d.isoformat())
        window = self.retroactive_window_days
        if windowed and window and d < today - timedelta(days=window):
            raise ValidationError(
                f"Cannot register completions more than {window} days in the past",
                date=d.isoformat(),
            )
        if not ScheduleService.is_obligated(habit, d, today):
            raise ObligationMismatch(
                f"Habit {habit.id} is not scheduled on {d.isoformat()}",
                habit_id=habit.id,
                date=d.isoformat(),
            )

    @staticmethod
    def _resolve_value(habit: Habit, request: MarkRequest) -> tuple[bool, float | None]:
        """(completed, value) to store for a mark, consistent with the completion criterion."""
        if not habit.is_numeric:
            if request.value is not None:
                raise ValidationError("CHECK habits should not have a value", habit_id=habit.id)
            return request.completed, None

        if request.value is None:
            if request.completed:
                raise ValidationError("Value is required for NUMERIC habits when marking as completed", habit_id=habit.id)
            return False, None

        reached = request.value >= habit.target_value
        if request.completed != reached:
            raise ValidationError(
                f"completed={request.completed} contradicts value {request.value:g} "
                f"for target {habit.target_value:g}",
                habit_id=habit.id,
            )
        return reached, request.value

    # ------------------------------------------------------------------
    # Habit lifecycle
    # ------------------------------------------------------------------
    def create_habit(self, db: Session, owner_id: int, data: dict) -> Habit:
        payload = _validated(HabitCreate, **data)
        if payload.custom_rule and not ScheduleService.has_custom_rule(payload.custom_rule):
            raise NotFoundError(f"No custom schedule rule registered as '{payload.custom_rule}'")

        habit = Habit(
            owner_id=owner_id,
            name=payload.name,
            type=payload.type.value,
            periodicity=payload.periodicity.value,
            anchor_day=payload.anchor_day,
            custom_rule=payload.custom_rule,
            target_value=payload.target_value,
            creation_date=payload.creation_date or self.clock.today(),
        )
        habit.week_days = payload.week_days
        habit.apply_snapshot(StreakSnapshot(), None)
        try:
            db.add(habit)
            db.commit()
            db.refresh(habit)
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to create habit for owner {owner_id}")
            raise
        logger.info(f"Created habit {habit.id} ({habit.type}/{habit.periodicity}) for owner {owner_id}")
        return habit

    def update_schedule(self, db: Session, habit_id: int, changes: dict, owner_id: int | None = None) -> StreakSnapshot:
        """Change periodicity / week days / anchor / custom rule / target, then replay fully."""
        update = _validated(ScheduleUpdate, **changes)
        with self._transaction(db, habit_id, "rule change"):
            habit = self._load(db, habit_id, owner_id, for_update=True)

            merged = {
                "name": habit.name,
                "type": habit.type,
                "periodicity": habit.periodicity,
                "week_days": sorted(habit.week_days),
                "anchor_day": habit.anchor_day,
                "custom_rule": habit.custom_rule,
                "target_value": habit.target_value,
                "creation_date": habit.creation_date,
            }
            merged.update(update.model_dump(exclude_unset=True))
            periodicity = Periodicity(merged["periodicity"])
            if periodicity != Periodicity.MONTHLY:
                merged["anchor_day"] = None
            if periodicity != Periodicity.CUSTOM:
                merged["custom_rule"] = None
            if periodicity == Periodicity.DAILY or periodicity == Periodicity.MONTHLY:
                merged["week_days"] = []
            rule = _validated(HabitCreate, **merged)

            target_changed = rule.target_value != habit.target_value
            habit.periodicity = rule.periodicity.value
            habit.week_days = rule.week_days
            habit.anchor_day = rule.anchor_day
            habit.custom_rule = rule.custom_rule
            habit.target_value = rule.target_value
            if habit.is_numeric and target_changed:
                changed = LedgerService.rederive_completion(db, habit.id, habit.target_value)
                logger.info(f"Habit {habit.id} target now {habit.target_value:g}; {changed} records re-derived")

            before, after = self._recalculate(db, habit, None, full=True)
            AuditService.append(db, habit.id, AuditKind.RULE_CHANGE, before, after, self.clock.now())
        logger.info(f"Habit {habit_id} rule changed; streak {after.current_streak}/{after.longest_streak}")
        return after

    def deactivate(self, db: Session, habit_id: int, on_date: date | None = None, owner_id: int | None = None) -> StreakSnapshot:
        """Freeze obligations after `on_date` (default today)."""
        with self._transaction(db, habit_id, "deactivation"):
            habit = self._load(db, habit_id, owner_id, for_update=True)
            on_date = on_date or self.clock.today()
            if on_date < habit.creation_date:
                raise ValidationError("Cannot deactivate a habit before its creation date", date=on_date.isoformat())
            habit.deactivated_at = on_date
            before, after = self._recalculate(db, habit, None, full=True)
            AuditService.append(db, habit.id, AuditKind.RULE_CHANGE, before, after, self.clock.now())
        logger.info(f"Habit {habit_id} deactivated as of {on_date}")
        return after

    def reactivate(self, db: Session, habit_id: int, owner_id: int | None = None) -> StreakSnapshot:
        with self._transaction(db, habit_id, "reactivation"):
            habit = self._load(db, habit_id, owner_id, for_update=True)
            habit.deactivated_at = None
            before, after = self._recalculate(db, habit, None, full=True)
            AuditService.append(db, habit.id, AuditKind.RULE_CHANGE, before, after, self.clock.now())
        logger.info(f"Habit {habit_id} reactivated")
        return after

    # ------------------------------------------------------------------
    # Marks & progress
    # ------------------------------------------------------------------
    def _mark(self, db, habit_id, d, completed, value, notes, owner_id, retroactive: bool) -> MarkResult:
        request = _validated(MarkRequest, date=d, completed=completed, value=value, notes=notes)
        action = "retroactive mark" if retroactive else "mark"
        with self._transaction(db, habit_id, action):
            habit = self._load(db, habit_id, owner_id, for_update=True)
            self._check_writable_date(habit, request.date)
            # Edits behind the last evaluated day are corrections whatever the entry point
            if habit.evaluated_through is not None and request.date < habit.evaluated_through:
                retroactive = True
                action = "retroactive mark"
            completed, value = self._resolve_value(habit, request)

            record = LedgerService.upsert(db, habit.id, request.date, completed, value, request.notes)
            before, after = self._recalculate(db, habit, request.date, full=retroactive)
            kind = AuditKind.RETROACTIVE_MARK if retroactive else AuditKind.MARK
            entry = AuditService.append(db, habit.id, kind, before, after, self.clock.now(), record)

            result = MarkResult(
                record=RecordView.model_validate(record),
                snapshot=after,
                audit_entry=AuditView.model_validate(entry),
                progress_percentage=ProgressService.progress_percentage(habit, record),
            )
        logger.info(
            f"Habit {habit_id} {action} {request.date} completed={completed}; "
            f"streak {after.current_streak}/{after.longest_streak}"
        )
        return result

    def mark_day(self, db: Session, habit_id: int, d: date, completed: bool, value: float | None = None,
                 notes: str | None = None, owner_id: int | None = None) -> MarkResult:
        """Mark or unmark a day; replays incrementally when the day is newer than anything evaluated."""
        return self._mark(db, habit_id, d, completed, value, notes, owner_id, retroactive=False)

    def mark_retroactively(self, db: Session, habit_id: int, d: date, completed: bool, value: float | None = None,
                           notes: str | None = None, owner_id: int | None = None) -> MarkResult:
        """Correct a past day; always a full replay."""
        return self._mark(db, habit_id, d, completed, value, notes, owner_id, retroactive=True)

    def update_progress(self, db: Session, habit_id: int, d: date, delta: float, owner_id: int | None = None) -> MarkResult:
        request = _validated(ProgressUpdate, date=d, delta=delta)
        with self._transaction(db, habit_id, "progress update"):
            habit = self._load(db, habit_id, owner_id, for_update=True)
            self._check_writable_date(habit, request.date, windowed=False)

            record = ProgressService.apply_delta(db, habit, request.date, request.delta)
            before, after = self._recalculate(db, habit, request.date, full=False)
            entry = AuditService.append(db, habit.id, AuditKind.PROGRESS_UPDATE, before, after, self.clock.now(), record)

            result = MarkResult(
                record=RecordView.model_validate(record),
                snapshot=after,
                audit_entry=AuditView.model_validate(entry),
                progress_percentage=ProgressService.progress_percentage(habit, record),
            )
        logger.info(f"Habit {habit_id} progress {request.delta:+g} on {request.date}; value={result.record.value:g}")
        return result

    def refresh(self, db: Session, habit_id: int, owner_id: int | None = None) -> StreakSnapshot:
        """Re-evaluate as of today, e.g. after days passed without any mark."""
        with self._transaction(db, habit_id, "refresh"):
            habit = self._load(db, habit_id, owner_id, for_update=True)
            full = False
            if habit.is_numeric and LedgerService.rederive_completion(db, habit.id, habit.target_value):
                full = True
            before, after = self._recalculate(db, habit, None, full=full)
            if after != before:
                AuditService.append(db, habit.id, AuditKind.REFRESH, before, after, self.clock.now())
        return after

    # ------------------------------------------------------------------
    # Reads (never recalculate)
    # ------------------------------------------------------------------
    def get_streak_snapshot(self, db: Session, habit_id: int, owner_id: int | None = None) -> StreakSnapshot:
        return self._snapshot(self._load(db, habit_id, owner_id))

    def get_audit_history(self, db: Session, habit_id: int, owner_id: int | None = None) -> list[AuditView]:
        self._load(db, habit_id, owner_id)
        return [AuditView.model_validate(e) for e in AuditService.history(db, habit_id)]

    def get_record(self, db: Session, habit_id: int, d: date, owner_id: int | None = None) -> RecordView | None:
        self._load(db, habit_id, owner_id)
        record = LedgerService.get(db, habit_id, d)
        return RecordView.model_validate(record) if record is not None else None

    def get_records(self, db: Session, habit_id: int, start: date, end: date, owner_id: int | None = None) -> list[RecordView]:
        if start > end:
            raise ValidationError("start must be on or before end")
        self._load(db, habit_id, owner_id)
        return [RecordView.model_validate(r) for r in LedgerService.range(db, habit_id, start, end)]

    def get_historical_records(self, db: Session, habit_id: int, cursor: str | None = None,
                               page_size: int | None = None, owner_id: int | None = None) -> HistoryPage:
        """One page of records, newest first. `cursor` is the previous page's next_cursor."""
        size = HISTORY_PAGE_SIZE if page_size is None else page_size
        if not 1 <= size <= HISTORY_MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {HISTORY_MAX_PAGE_SIZE}")
        before = None
        if cursor:
            try:
                before = date.fromisoformat(cursor)
            except ValueError as e:
                raise ValidationError(f"Invalid history cursor '{cursor}'") from e

        self._load(db, habit_id, owner_id)
        rows = LedgerService.page_descending(db, habit_id, before, size + 1)
        has_more = len(rows) > size
        rows = rows[:size]
        return HistoryPage(
            records=[RecordView.model_validate(r) for r in rows],
            next_cursor=rows[-1].date.isoformat() if has_more else None,
            has_more=has_more,
        )

    def iter_history(self, db: Session, habit_id: int, page_size: int | None = None,
                     cursor: str | None = None, owner_id: int | None = None) -> Iterator[RecordView]:
        """Lazy reverse-chronological walk; restart from any page's cursor."""
        while True:
            page = self.get_historical_records(db, habit_id, cursor, page_size, owner_id)
            yield from page.records
            if not page.has_more:
                return
            cursor = page.next_cursor
