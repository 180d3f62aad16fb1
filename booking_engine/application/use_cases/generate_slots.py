from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from booking_engine.application.use_cases.check_availability import quote_price
from booking_engine.application.use_cases.match_resources import ResourceMatcher
from booking_engine.application.utils.conflicts import has_conflict
from booking_engine.application.utils.time_windows import open_interval, overlaps_break, working_day_for
from booking_engine.domain.entities.booking import Booking
from booking_engine.domain.entities.context import BusinessContext
from booking_engine.domain.entities.resource import WorkingHours
from booking_engine.domain.entities.service_catalog import ServiceDefinition
from booking_engine.domain.entities.slot import BookingSlot

DEFAULT_STEP_MINUTES = 15


def generate_slots(
    day: date,
    duration_minutes: int,
    working_hours: WorkingHours,
    existing_bookings: Iterable[Booking],
    buffer_minutes: int = 0,
    timezone: ZoneInfo = ZoneInfo("UTC"),
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> list[BookingSlot]:
    """Walk the day's open period in fixed steps and mark each candidate window."""
    working_day = working_day_for(day, working_hours)
    if working_day is None or duration_minutes <= 0:
        return []

    bookings = list(existing_bookings)
    opens_at, closes_at = open_interval(day, working_day, timezone)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    slots: list[BookingSlot] = []
    current = opens_at
    while current + duration <= closes_at:
        slot_end = current + duration
        if not overlaps_break(current, slot_end, day, working_day, timezone):
            slots.append(
                BookingSlot(
                    start=current,
                    end=slot_end,
                    available=not has_conflict(current, slot_end, bookings, buffer_minutes),
                )
            )
        current += step
    return slots


class SlotGenerator:
    """Slots for a concrete service: business hours, then a resource per slot when the service needs one."""

    def __init__(self, step_minutes: int = DEFAULT_STEP_MINUTES) -> None:
        self._step_minutes = step_minutes
        self._logger = logging.getLogger(__name__)

    def for_service(
        self,
        context: BusinessContext,
        service: ServiceDefinition,
        day: date,
        matcher: ResourceMatcher,
        preferences: dict[str, Any] | None = None,
        party_size: int = 1,
    ) -> list[BookingSlot]:
        rule_set = context.rule_set
        tz = context.profile.tz

        if service.resource_type is None and not rule_set.allow_double_booking:
            blocking = context.bookings
        else:
            # Resource-level clashes are decided per slot by the matcher.
            blocking = ()

        base_slots = generate_slots(
            day,
            service.duration_minutes,
            context.profile.working_hours,
            blocking,
            rule_set.buffer_minutes,
            tz,
            self._step_minutes,
        )

        earliest = context.now + timedelta(hours=rule_set.advance_booking_hours)
        latest = context.now + timedelta(days=rule_set.max_advance_booking_days)

        slots: list[BookingSlot] = []
        for slot in base_slots:
            if not slot.available or slot.start < earliest or slot.start > latest:
                slots.append(BookingSlot(start=slot.start, end=slot.end, available=False))
                continue

            if service.resource_type is None:
                price = quote_price(context, service, None, slot.start, party_size)
                slots.append(BookingSlot(start=slot.start, end=slot.end, available=True, price=price))
                continue

            match = matcher.find_available(
                service,
                slot.start,
                slot.end,
                context.resources,
                context.skills,
                context.bookings,
                preferences=preferences,
                buffer_minutes=rule_set.buffer_minutes,
                timezone=tz,
                business_hours=context.profile.working_hours,
                party_size=party_size,
            )
            best = match.best
            slots.append(
                BookingSlot(
                    start=slot.start,
                    end=slot.end,
                    available=best is not None,
                    resource_id=best.id if best else None,
                    price=quote_price(context, service, best, slot.start, party_size) if best else None,
                )
            )

        self._logger.info(
            "Generated slots",
            extra={
                "business_id": context.business_id,
                "service": service.service_id,
                "slots": len(slots),
            },
        )
        return slots

    def suggest(
        self,
        context: BusinessContext,
        service: ServiceDefinition,
        preferred_day: date,
        matcher: ResourceMatcher,
        count: int = 3,
        days_ahead: int = 7,
    ) -> list[BookingSlot]:
        """Earliest available slots starting on the preferred day and scanning forward."""
        suggestions: list[BookingSlot] = []
        for offset in range(days_ahead):
            if len(suggestions) >= count:
                break
            day = preferred_day + timedelta(days=offset)
            available = [slot for slot in self.for_service(context, service, day, matcher) if slot.available]
            suggestions.extend(available[: count - len(suggestions)])
        return suggestions
