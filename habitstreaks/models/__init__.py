# Import all models so they register with SQLAlchemy Base.metadata
# This ensures Base.metadata.create_all() creates all tables

from habitstreaks.models.habit import Habit, HabitType, Periodicity
from habitstreaks.models.habit_record import HabitRecord
from habitstreaks.models.audit_entry import AuditEntry, AuditKind

__all__ = [
    "Habit",
    "HabitType",
    "Periodicity",
    "HabitRecord",
    "AuditEntry",
    "AuditKind",
]
