"""
schemas.py — Request validation and value contracts.
Inputs are validated here before any ledger write; outputs are detached
snapshots of committed state.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from habitstreaks.config import NOTES_MAX_LENGTH
from habitstreaks.models.habit import HabitType, Periodicity


# --- Input ---

class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: HabitType = HabitType.CHECK
    periodicity: Periodicity = Periodicity.DAILY
    week_days: list[int] = Field(default_factory=list)
    anchor_day: Optional[int] = Field(default=None, ge=1, le=31)
    custom_rule: Optional[str] = None
    target_value: Optional[float] = Field(default=None, gt=0)
    creation_date: Optional[date] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("week_days")
    @classmethod
    def check_week_days(cls, v: list[int]) -> list[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("week_days must be weekday indices 0 (Monday) to 6 (Sunday)")
        return sorted(set(v))

    @model_validator(mode="after")
    def check_rule_fields(self):
        if self.type == HabitType.NUMERIC and self.target_value is None:
            raise ValueError("target_value is required for NUMERIC habits")
        if self.type == HabitType.CHECK and self.target_value is not None:
            raise ValueError("target_value is only allowed for NUMERIC habits")
        if self.periodicity == Periodicity.WEEKLY and not self.week_days:
            raise ValueError("week_days is required for WEEKLY periodicity")
        if self.anchor_day is not None and self.periodicity != Periodicity.MONTHLY:
            raise ValueError("anchor_day is only allowed for MONTHLY periodicity")
        if self.custom_rule is not None and self.periodicity != Periodicity.CUSTOM:
            raise ValueError("custom_rule is only allowed for CUSTOM periodicity")
        return self


class ScheduleUpdate(BaseModel):
    """Rule change. Omitted fields keep their current value."""
    periodicity: Optional[Periodicity] = None
    week_days: Optional[list[int]] = None
    anchor_day: Optional[int] = Field(default=None, ge=1, le=31)
    custom_rule: Optional[str] = None
    target_value: Optional[float] = Field(default=None, gt=0)

    @field_validator("week_days")
    @classmethod
    def check_week_days(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is None:
            return v
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("week_days must be weekday indices 0 (Monday) to 6 (Sunday)")
        return sorted(set(v))


class MarkRequest(BaseModel):
    date: date
    completed: bool
    value: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class ProgressUpdate(BaseModel):
    date: date
    delta: float

    @field_validator("delta")
    @classmethod
    def non_zero(cls, v: float) -> float:
        if v == 0:
            raise ValueError("delta must not be zero")
        return v


# --- Output ---

class StreakSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_streak: int = 0
    longest_streak: int = 0

    @model_validator(mode="after")
    def check_order(self):
        if not self.longest_streak >= self.current_streak >= 0:
            raise ValueError("longest_streak >= current_streak >= 0 must hold")
        return self


class RecordView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    habit_id: int
    date: date
    completed: bool
    value: Optional[float] = None
    notes: Optional[str] = None


class AuditView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    habit_id: int
    created_at: datetime
    kind: str
    previous_current: int
    previous_longest: int
    new_current: int
    new_longest: int
    record_id: Optional[int] = None
    record_date: Optional[date] = None
    record_completed: Optional[bool] = None
    record_value: Optional[float] = None

    @property
    def previous(self) -> StreakSnapshot:
        return StreakSnapshot(current_streak=self.previous_current, longest_streak=self.previous_longest)

    @property
    def new(self) -> StreakSnapshot:
        return StreakSnapshot(current_streak=self.new_current, longest_streak=self.new_longest)


class MarkResult(BaseModel):
    record: RecordView
    snapshot: StreakSnapshot
    audit_entry: Optional[AuditView] = None
    progress_percentage: Optional[int] = None


class HistoryPage(BaseModel):
    records: list[RecordView]
    next_cursor: Optional[str] = None
    has_more: bool = False
