import enum
import json
from datetime import date, datetime, timezone

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Float, CheckConstraint
from sqlalchemy.orm import relationship

from habitstreaks.database import Base


class HabitType(str, enum.Enum):
    CHECK = "CHECK"
    NUMERIC = "NUMERIC"


class Periodicity(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"


class Habit(Base):
    __tablename__ = "habits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    type = Column(String(10), nullable=False, default=HabitType.CHECK.value)  # CHECK/NUMERIC
    periodicity = Column(String(10), nullable=False, default=Periodicity.DAILY.value)  # DAILY/WEEKLY/MONTHLY/CUSTOM
    week_days_json = Column("week_days", Text, nullable=True)  # JSON array like [0, 2, 4] (0 = Monday)
    anchor_day = Column(Integer, nullable=True)  # MONTHLY: 1-31, clamped to month end
    custom_rule = Column(String(100), nullable=True)  # CUSTOM: registered evaluator name
    target_value = Column(Float, nullable=True)  # NUMERIC only
    creation_date = Column(Date, nullable=False)
    deactivated_at = Column(Date, nullable=True)

    # Derived state; written only through apply_snapshot()
    _current_streak = Column("current_streak", Integer, nullable=False, default=0)
    _longest_streak = Column("longest_streak", Integer, nullable=False, default=0)
    _evaluated_through = Column("evaluated_through", Date, nullable=True)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    records = relationship(
        "HabitRecord",
        back_populates="habit",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="HabitRecord.date",
    )
    # Append-only; removed by the database ON DELETE CASCADE, never by the ORM
    audit_entries = relationship("AuditEntry", viewonly=True, order_by="AuditEntry.id")

    __table_args__ = (
        CheckConstraint(
            "longest_streak >= current_streak AND current_streak >= 0",
            name="ck_habit_streak_order",
        ),
    )
    __mapper_args__ = {"version_id_col": version_id}

    # ------------------------------------------------------------------
    @property
    def week_days(self) -> set[int]:
        if not self.week_days_json:
            return set()
        return set(json.loads(self.week_days_json))

    @week_days.setter
    def week_days(self, days):
        self.week_days_json = json.dumps(sorted(set(days))) if days else None

    @property
    def is_numeric(self) -> bool:
        return self.type == HabitType.NUMERIC

    @property
    def current_streak(self) -> int:
        return self._current_streak or 0

    @property
    def longest_streak(self) -> int:
        return self._longest_streak or 0

    @property
    def evaluated_through(self) -> date | None:
        return self._evaluated_through

    # ------------------------------------------------------------------
    def apply_snapshot(self, snapshot, evaluated_through: date | None):
        """The single write gate for the derived streak fields."""
        current, longest = snapshot.current_streak, snapshot.longest_streak
        if not longest >= current >= 0:
            raise ValueError(
                f"Streak invariant violated for habit {self.id}: current={current}, longest={longest}"
            )
        self._current_streak = current
        self._longest_streak = longest
        self._evaluated_through = evaluated_through

    def __repr__(self):
        return f"<Habit {self.id} {self.name!r} {self.type}/{self.periodicity}>"
