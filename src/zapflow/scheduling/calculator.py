"""Schedule calculator — next execution time for a time-based trigger.

``next_run(spec, now)`` is a pure function: it never mutates its inputs and
always returns an aware UTC datetime strictly after ``now``. Wall-clock
fields (``hour``, ``minute``, weekday, day of month) are interpreted in the
spec's IANA timezone.

Semantics::

    minutely  next whole minute boundary after now
    hourly    next :minute after now (roll to next hour if passed)
    daily     next hour:minute after now (roll to tomorrow if passed)
    weekly    next day_of_week at hour:minute (0 = Sunday); a full week
              ahead if today is the day but the time has passed
    monthly   day_of_month clamped to 1..28 at hour:minute; next month
              if this month's occurrence has passed

Examples:
    >>> spec = ScheduleSpec(ScheduleType.DAILY, hour=9, minute=0)
    >>> next_run(spec, datetime(2025, 3, 10, 8, 0, tzinfo=UTC))
    datetime.datetime(2025, 3, 10, 9, 0, tzinfo=datetime.timezone.utc)
    >>> next_run(spec, datetime(2025, 3, 10, 10, 0, tzinfo=UTC))
    datetime.datetime(2025, 3, 11, 9, 0, tzinfo=datetime.timezone.utc)
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from zapflow.core.errors import ScheduleError
from zapflow.core.models import ScheduleSpec, ScheduleType

MAX_DAY_OF_MONTH = 28


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ScheduleError(f"Unknown timezone: {name}", cause=exc) from exc


def validate_spec(spec: ScheduleSpec) -> None:
    """Raise :class:`ScheduleError` for out-of-range fields."""
    try:
        schedule_type = ScheduleType(spec.schedule_type)
    except ValueError as exc:
        raise ScheduleError(f"Unknown schedule type: {spec.schedule_type}") from exc
    if not 0 <= spec.minute <= 59:
        raise ScheduleError(f"minute out of range: {spec.minute}")
    if spec.hour is not None and not 0 <= spec.hour <= 23:
        raise ScheduleError(f"hour out of range: {spec.hour}")
    if schedule_type is ScheduleType.WEEKLY and spec.day_of_week is not None:
        if not 0 <= spec.day_of_week <= 6:
            raise ScheduleError(f"day_of_week out of range: {spec.day_of_week}")
    if schedule_type is ScheduleType.MONTHLY and spec.day_of_month is not None:
        if not 1 <= spec.day_of_month <= 31:
            raise ScheduleError(f"day_of_month out of range: {spec.day_of_month}")
    _zone(spec.timezone)


def _at(day: date, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz).astimezone(UTC)


def _add_month(day: date) -> date:
    if day.month == 12:
        return day.replace(year=day.year + 1, month=1)
    return day.replace(month=day.month + 1)


def next_run(spec: ScheduleSpec, now: datetime) -> datetime:
    """Compute the next run strictly after ``now`` (naive ``now`` is taken as UTC)."""
    validate_spec(spec)
    tz = _zone(spec.timezone)
    now_utc = (now if now.tzinfo else now.replace(tzinfo=UTC)).astimezone(UTC)
    local = now_utc.astimezone(tz)
    hour = spec.hour or 0
    minute = spec.minute
    schedule_type = ScheduleType(spec.schedule_type)

    if schedule_type is ScheduleType.MINUTELY:
        return now_utc.replace(second=0, microsecond=0) + timedelta(minutes=1)

    if schedule_type is ScheduleType.HOURLY:
        candidate = local.replace(minute=minute, second=0, microsecond=0).astimezone(UTC)
        while candidate <= now_utc:
            candidate += timedelta(hours=1)
        return candidate

    if schedule_type is ScheduleType.DAILY:
        candidate = _at(local.date(), hour, minute, tz)
        if candidate <= now_utc:
            candidate = _at(local.date() + timedelta(days=1), hour, minute, tz)
        return candidate

    if schedule_type is ScheduleType.WEEKLY:
        # Python weekday(): Monday = 0; schedule day_of_week: Sunday = 0
        target = ((spec.day_of_week or 0) - 1) % 7
        day = local.date() + timedelta(days=(target - local.weekday()) % 7)
        candidate = _at(day, hour, minute, tz)
        if candidate <= now_utc:
            candidate = _at(day + timedelta(days=7), hour, minute, tz)
        return candidate

    # MONTHLY
    target_day = min(max(spec.day_of_month or 1, 1), MAX_DAY_OF_MONTH)
    day = local.date().replace(day=target_day)
    candidate = _at(day, hour, minute, tz)
    if candidate <= now_utc:
        candidate = _at(_add_month(day), hour, minute, tz)
    return candidate


__all__ = ["MAX_DAY_OF_MONTH", "next_run", "validate_spec"]
