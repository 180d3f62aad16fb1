from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from booking_engine.domain.entities.booking import Booking


def find_conflicts(
    start: datetime,
    end: datetime,
    existing_bookings: Iterable[Booking],
    buffer_minutes: int = 0,
    exclude_booking_id: str | None = None,
) -> list[Booking]:
    """
    Return the existing bookings that clash with [start, end).

    Each existing interval is widened by `buffer_minutes` on both sides before
    the overlap test. A clash is any of: the new start falls inside, the new
    end falls inside, or the new interval swallows the widened one. Bookings
    that no longer hold their slot (cancelled, rescheduled, finished) are skipped.
    """
    buffer = timedelta(minutes=buffer_minutes)
    conflicts: list[Booking] = []
    for booking in existing_bookings:
        if not booking.occupies_resource:
            continue
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        blocked_start = booking.start - buffer
        blocked_end = booking.end + buffer
        if start < blocked_end and end > blocked_start:
            conflicts.append(booking)
    return conflicts


def has_conflict(
    start: datetime,
    end: datetime,
    existing_bookings: Iterable[Booking],
    buffer_minutes: int = 0,
    exclude_booking_id: str | None = None,
) -> bool:
    return bool(find_conflicts(start, end, existing_bookings, buffer_minutes, exclude_booking_id))


def bookings_on_resource(existing_bookings: Iterable[Booking], resource_id: str) -> list[Booking]:
    return [booking for booking in existing_bookings if booking.resource_id == resource_id]
