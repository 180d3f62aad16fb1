from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from booking_engine.domain.entities.booking import Booking
from booking_engine.domain.entities.constraint import BusinessConstraintOverride, ConstraintDefinition
from booking_engine.domain.entities.policy import BookingPolicy
from booking_engine.domain.entities.resource import Resource, StaffSkill, WorkingHours
from booking_engine.domain.entities.rule_set import RuleSet


@dataclass(frozen=True)
class BusinessProfile:
    business_id: str
    industry: str
    timezone: str = "UTC"
    working_hours: WorkingHours = field(default_factory=dict)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class BookingSnapshot:
    """Existing bookings of one business, read together with the version they were read at."""

    business_id: str
    bookings: tuple[Booking, ...] = ()
    version: int = 0


@dataclass(frozen=True)
class BusinessContext:
    """Everything one engine call may read, captured once per request."""

    profile: BusinessProfile
    rule_set: RuleSet
    constraints: tuple[ConstraintDefinition, ...]
    overrides: tuple[BusinessConstraintOverride, ...]
    policies: tuple[BookingPolicy, ...]
    resources: tuple[Resource, ...]
    skills: tuple[StaffSkill, ...]
    snapshot: BookingSnapshot
    now: datetime

    @property
    def business_id(self) -> str:
        return self.profile.business_id

    @property
    def bookings(self) -> tuple[Booking, ...]:
        return self.snapshot.bookings

    def resource(self, resource_id: str | None) -> Resource | None:
        if resource_id is None:
            return None
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        return None
