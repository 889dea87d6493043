from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Float, Text, Date, DateTime, Boolean, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from habitstreaks.database import Base


class HabitRecord(Base):
    __tablename__ = "habit_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    value = Column(Float, nullable=True)  # NUMERIC habits only; max(0, accumulated)
    accumulated = Column(Float, nullable=True)  # raw sum of applied deltas, may dip below 0
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    habit = relationship("Habit", back_populates="records")

    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_habit_record_date"),
        Index("ix_habit_records_habit_date_desc", "habit_id", date.desc()),
    )

    def __repr__(self):
        return f"<HabitRecord habit={self.habit_id} {self.date} completed={self.completed} value={self.value}>"
