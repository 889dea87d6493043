import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Boolean, ForeignKey, event

from habitstreaks.database import Base


class AuditKind(str, enum.Enum):
    MARK = "mark"
    RETROACTIVE_MARK = "retroactive-mark"
    PROGRESS_UPDATE = "progress-update"
    RULE_CHANGE = "rule-change"
    REFRESH = "refresh"


class AuditEntry(Base):
    __tablename__ = "habit_audit_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    kind = Column(String(20), nullable=False)  # mark/retroactive-mark/progress-update/rule-change/refresh

    previous_current = Column(Integer, nullable=False)
    previous_longest = Column(Integer, nullable=False)
    new_current = Column(Integer, nullable=False)
    new_longest = Column(Integer, nullable=False)

    # Changed record reference (empty for rule-change / refresh)
    record_id = Column(Integer, nullable=True)
    record_date = Column(Date, nullable=True)
    record_completed = Column(Boolean, nullable=True)
    record_value = Column(Float, nullable=True)


@event.listens_for(AuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise PermissionError(f"Audit entry {target.id} is append-only")


@event.listens_for(AuditEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise PermissionError(f"Audit entry {target.id} is append-only")
