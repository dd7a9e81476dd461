"""Business-hours calendar math shared by SLA tracking and response analytics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator
from zoneinfo import ZoneInfo

from app.core.config import Settings
from app.core.errors import ValidationError

# Guard for calendars whose business days never occur (e.g. every weekday a holiday).
_MAX_SCAN_DAYS = 366 * 10


@dataclass(frozen=True, slots=True)
class BusinessCalendar:
    """Working-day windows in a single business timezone."""

    timezone: str = "Asia/Jakarta"
    start_hour: int = 8
    end_hour: int = 17
    business_days: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    holidays: frozenset[date] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError("Business hours must satisfy 0 <= start < end <= 24")
        if not self.business_days:
            raise ValueError("At least one business day is required")
        ZoneInfo(self.timezone)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BusinessCalendar":
        return cls(
            timezone=settings.business_timezone,
            start_hour=settings.business_hours_start,
            end_hour=settings.business_hours_end,
            business_days=frozenset(settings.business_days),
            holidays=frozenset(settings.holidays),
        )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def hours_per_day(self) -> int:
        return self.end_hour - self.start_hour

    def is_business_day(self, day: date) -> bool:
        return day.weekday() in self.business_days and day not in self.holidays

    def local_date(self, instant: datetime) -> date:
        """Calendar date of ``instant`` in the business timezone."""

        return as_utc(instant).astimezone(self.tz).date()

    def window(self, day: date) -> tuple[datetime, datetime]:
        """UTC bounds of the business window on ``day``."""

        midnight = datetime.combine(day, time(0), tzinfo=self.tz)
        opens = midnight + timedelta(hours=self.start_hour)
        closes = midnight + timedelta(hours=self.end_hour)
        return opens.astimezone(timezone.utc), closes.astimezone(timezone.utc)

    def windows_from(self, day: date) -> Iterator[tuple[datetime, datetime]]:
        for offset in range(_MAX_SCAN_DAYS):
            current = day + timedelta(days=offset)
            if self.is_business_day(current):
                yield self.window(current)


DEFAULT_CALENDAR = BusinessCalendar()


def as_utc(value: datetime) -> datetime:
    """Aware UTC copy of ``value``; naive datetimes are taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Half-open ``[start, end)`` range of instants; ``None`` leaves a side unbounded."""

    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and as_utc(self.end) <= as_utc(self.start):
            raise ValidationError.for_field("window", "Window end must be after its start")

    def contains(self, instant: datetime) -> bool:
        moment = as_utc(instant)
        if self.start is not None and moment < as_utc(self.start):
            return False
        if self.end is not None and moment >= as_utc(self.end):
            return False
        return True


def business_seconds_elapsed(start: datetime, end: datetime, calendar: BusinessCalendar = DEFAULT_CALENDAR) -> float:
    start_utc, end_utc = as_utc(start), as_utc(end)
    if end_utc <= start_utc:
        return 0.0

    total = 0.0
    day = calendar.local_date(start_utc)
    last_day = calendar.local_date(end_utc)
    while day <= last_day:
        if calendar.is_business_day(day):
            opens, closes = calendar.window(day)
            lower = max(start_utc, opens)
            upper = min(end_utc, closes)
            if upper > lower:
                total += (upper - lower).total_seconds()
        day += timedelta(days=1)
    return total


def business_hours_elapsed(start: datetime, end: datetime, calendar: BusinessCalendar = DEFAULT_CALENDAR) -> float:
    """Hours of ``[start, end)`` that fall inside business windows."""

    return business_seconds_elapsed(start, end, calendar) / 3600.0


def add_business_hours(start: datetime, hours: float, calendar: BusinessCalendar = DEFAULT_CALENDAR) -> datetime:
    """Instant at which ``hours`` business hours have elapsed since ``start``."""

    cursor = as_utc(start)
    remaining = timedelta(hours=hours)
    if remaining <= timedelta(0):
        return cursor
    for opens, closes in calendar.windows_from(calendar.local_date(cursor)):
        if closes <= cursor:
            continue
        lower = max(cursor, opens)
        available = closes - lower
        if remaining <= available:
            return lower + remaining
        remaining -= available
    raise ValueError("Business calendar has no working windows in range")


__all__ = [
    "BusinessCalendar",
    "DEFAULT_CALENDAR",
    "TimeWindow",
    "add_business_hours",
    "as_utc",
    "business_hours_elapsed",
    "business_seconds_elapsed",
]
