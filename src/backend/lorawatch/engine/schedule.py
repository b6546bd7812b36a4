"""Alarm schedule matching.

Alarm windows are stored as fractional hours in a fixed local offset. The
reference instant and that offset are injected so tests can pin time.
"""

from datetime import datetime, timedelta, timezone

from lorawatch.engine.protocols import Alarm, AlarmWindow, Clock

EVERY_DAY = 0


class SystemClock:
    """Wall clock returning timezone-aware UTC instants."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def to_local(now: datetime, offset_hours: float) -> datetime:
    """Shift an instant into the configured local offset.

    Naive datetimes are taken to be UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone(timedelta(hours=offset_hours)))


def fractional_hour(local: datetime) -> float:
    """Hour of day in [0, 24) with minutes as a fraction."""
    return (local.hour + local.minute / 60.0) % 24.0


def window_contains(window: AlarmWindow, t: float) -> bool:
    """Check a fractional hour against a window, wrapping past midnight."""
    start, end = window.start_time, window.end_time
    if end > start:
        return start < t < end
    return (start < t < 24.0) or (0.0 < t < end)


def is_armed(alarm: Alarm, now: datetime, offset_hours: float = 0.0) -> bool:
    """Decide whether an alarm is armed at ``now``.

    An alarm without a time limit is always armed. Otherwise any window for
    the local weekday (1=Mon..7=Sun) or for every day must contain the local
    fractional hour.
    """
    if not alarm.time_limit_active or not alarm.windows:
        return True

    local = to_local(now, offset_hours)
    weekday = local.isoweekday()
    t = fractional_hour(local)

    return any(
        window_contains(window, t)
        for window in alarm.windows
        if window.day_of_week in (EVERY_DAY, weekday)
    )


class ScheduleMatcher:
    """Schedule matcher bound to a clock and local offset."""

    def __init__(self, clock: Clock | None = None, offset_hours: float = 0.0):
        self.clock = clock or SystemClock()
        self.offset_hours = offset_hours

    def is_armed(self, alarm: Alarm, now: datetime | None = None) -> bool:
        return is_armed(alarm, now or self.clock.now(), self.offset_hours)

    def local_now(self) -> datetime:
        return to_local(self.clock.now(), self.offset_hours)
