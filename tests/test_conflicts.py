"""
Tests for interval conflict detection with buffers.
"""

from __future__ import annotations

from booking_engine.application.utils.conflicts import bookings_on_resource, find_conflicts, has_conflict
from booking_engine.domain.entities.booking import BookingStatus
from factories import MONDAY, at, booking


def test_buffer_widens_existing_booking():
    """A 10:45-11:30 request clashes with 10:00-11:00 once the 15 minute buffer is applied."""
    existing = [booking("b1", at(MONDAY, 10), at(MONDAY, 11))]

    conflicts = find_conflicts(at(MONDAY, 10, 45), at(MONDAY, 11, 30), existing, buffer_minutes=15)

    assert [b.id for b in conflicts] == ["b1"]


def test_request_after_buffer_is_free():
    """The widened window ends at 11:15, so a booking starting then does not clash."""
    existing = [booking("b1", at(MONDAY, 10), at(MONDAY, 11))]

    assert not has_conflict(at(MONDAY, 11, 15), at(MONDAY, 12), existing, buffer_minutes=15)
    assert has_conflict(at(MONDAY, 11, 10), at(MONDAY, 12), existing, buffer_minutes=15)


def test_touching_intervals_without_buffer_do_not_clash():
    """Intervals are half-open: 11:00 start after an 11:00 end is fine."""
    existing = [booking("b1", at(MONDAY, 10), at(MONDAY, 11))]

    assert not has_conflict(at(MONDAY, 11), at(MONDAY, 12), existing)
    assert not has_conflict(at(MONDAY, 9), at(MONDAY, 10), existing)


def test_request_swallowing_existing_booking_clashes():
    """A request that fully contains an existing booking is a conflict."""
    existing = [booking("b1", at(MONDAY, 10), at(MONDAY, 11))]

    assert has_conflict(at(MONDAY, 9), at(MONDAY, 12), existing)


def test_released_bookings_are_ignored():
    """Cancelled, rescheduled and finished bookings no longer hold their window."""
    existing = [
        booking("cancelled", at(MONDAY, 10), at(MONDAY, 11), status=BookingStatus.cancelled),
        booking("moved", at(MONDAY, 10), at(MONDAY, 11), status=BookingStatus.rescheduled),
        booking("done", at(MONDAY, 10), at(MONDAY, 11), status=BookingStatus.completed),
    ]

    assert find_conflicts(at(MONDAY, 10), at(MONDAY, 11), existing) == []


def test_excluded_booking_does_not_conflict_with_itself():
    """Moving a booking must not be blocked by the booking being moved."""
    existing = [booking("b1", at(MONDAY, 10), at(MONDAY, 11))]

    assert find_conflicts(at(MONDAY, 10, 30), at(MONDAY, 11, 30), existing, exclude_booking_id="b1") == []


def test_bookings_on_resource_filters_by_resource():
    existing = [
        booking("b1", at(MONDAY, 10), at(MONDAY, 11), resource_id="staff-ana"),
        booking("b2", at(MONDAY, 10), at(MONDAY, 11), resource_id="staff-ben"),
    ]

    assert [b.id for b in bookings_on_resource(existing, "staff-ben")] == ["b2"]
