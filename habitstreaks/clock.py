"""
clock.py — Injectable source of "today" and "now".
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from habitstreaks.config import APP_TIMEZONE


def _at_noon(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day, 12, 0, tzinfo=ZoneInfo("UTC"))


class SystemClock:
    """Wall clock in the configured application timezone."""

    def __init__(self, tz: str = APP_TIMEZONE):
        self.tz = ZoneInfo(tz)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to a given moment; `advance()` moves it forward."""

    def __init__(self, current: date | datetime):
        self.current = _at_noon(current)

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, days: int = 1):
        self.current = self.current + timedelta(days=days)

    def set(self, current: date | datetime):
        self.current = _at_noon(current)
