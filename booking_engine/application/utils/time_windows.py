from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from booking_engine.domain.entities.resource import WorkingDay, WorkingHours


def to_local(moment: datetime, timezone: ZoneInfo) -> datetime:
    """Express a timestamp in the business timezone. Naive values are taken as already local."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone)
    return moment.astimezone(timezone)


def parse_clock(value: str | time) -> time:
    """Parse "HH:MM" into a time."""
    if isinstance(value, time):
        return value
    hour, minute = value.strip().split(":")[:2]
    return time(int(hour), int(minute))


def working_day_for(day: date, working_hours: WorkingHours) -> WorkingDay | None:
    working_day = working_hours.get(day.weekday())
    if working_day is None or not working_day.is_open:
        return None
    if working_day.close_time <= working_day.open_time:
        return None
    return working_day


def open_interval(day: date, working_day: WorkingDay, timezone: ZoneInfo) -> tuple[datetime, datetime]:
    return (
        datetime.combine(day, working_day.open_time, tzinfo=timezone),
        datetime.combine(day, working_day.close_time, tzinfo=timezone),
    )


def break_intervals(day: date, working_day: WorkingDay, timezone: ZoneInfo) -> list[tuple[datetime, datetime]]:
    return [
        (
            datetime.combine(day, interval.start, tzinfo=timezone),
            datetime.combine(day, interval.end, tzinfo=timezone),
        )
        for interval in working_day.breaks
    ]


def overlaps_break(
    start: datetime,
    end: datetime,
    day: date,
    working_day: WorkingDay,
    timezone: ZoneInfo,
) -> bool:
    return any(start < break_end and end > break_start for break_start, break_end in break_intervals(day, working_day, timezone))


def within_working_hours(
    start: datetime,
    end: datetime,
    working_hours: WorkingHours,
    timezone: ZoneInfo,
    respect_breaks: bool = True,
) -> bool:
    """True if [start, end) lies inside one day's open period (and outside its breaks)."""
    local_start = to_local(start, timezone)
    local_end = to_local(end, timezone)
    day = local_start.date()
    working_day = working_day_for(day, working_hours)
    if working_day is None:
        return False
    opens_at, closes_at = open_interval(day, working_day, timezone)
    if local_start < opens_at or local_end > closes_at:
        return False
    if respect_breaks and overlaps_break(local_start, local_end, day, working_day, timezone):
        return False
    return True
