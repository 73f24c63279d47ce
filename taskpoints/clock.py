from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Clock:
    """Wall clock in the user's timezone.

    "Today" for habits and ledger entries is the local calendar date;
    timestamps are stored as naive UTC.
    """

    def __init__(self, tz: str = "UTC", fixed: Optional[datetime] = None) -> None:
        self.tz = ZoneInfo(tz)
        self._fixed = fixed

    def now(self) -> datetime:
        if self._fixed is not None:
            if self._fixed.tzinfo is None:
                return self._fixed.replace(tzinfo=self.tz)
            return self._fixed.astimezone(self.tz)
        return datetime.now(self.tz)

    def utcnow(self) -> datetime:
        return to_utc_naive(self.now())

    def today(self) -> date:
        return self.now().date()

    def set(self, value: datetime) -> None:
        self._fixed = value
