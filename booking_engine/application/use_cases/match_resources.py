from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from booking_engine.application.utils.conflicts import bookings_on_resource, has_conflict
from booking_engine.application.utils.industry import TieBreak, industry_profile, no_tie_break
from booking_engine.application.utils.time_windows import to_local, within_working_hours
from booking_engine.domain.entities.booking import Booking
from booking_engine.domain.entities.constraint import ConstraintViolation
from booking_engine.domain.entities.resource import Resource, ResourceType, StaffSkill, WorkingHours
from booking_engine.domain.entities.service_catalog import ServiceDefinition

UTC = ZoneInfo("UTC")


@dataclass(frozen=True)
class ResourceMatch:
    """Ranked resources able to take a booking, best first."""

    resources: list[Resource] = field(default_factory=list)
    warnings: list[ConstraintViolation] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return bool(self.resources)

    @property
    def best(self) -> Resource | None:
        return self.resources[0] if self.resources else None


class ResourceMatcher:
    """Find qualified, free resources (staff, tables, rooms) for a service window."""

    def __init__(self, tie_break: TieBreak = no_tie_break) -> None:
        self._tie_break = tie_break
        self._logger = logging.getLogger(__name__)

    @classmethod
    def for_industry(cls, industry: str) -> "ResourceMatcher":
        return cls(tie_break=industry_profile(industry).tie_break)

    def find_available(
        self,
        service: ServiceDefinition,
        start: datetime,
        end: datetime,
        resources: Iterable[Resource],
        skills: Iterable[StaffSkill],
        existing_bookings: Iterable[Booking],
        preferences: dict[str, Any] | None = None,
        buffer_minutes: int = 0,
        timezone: ZoneInfo = UTC,
        business_hours: WorkingHours | None = None,
        party_size: int = 1,
        exclude_booking_id: str | None = None,
    ) -> ResourceMatch:
        """
        Narrow the roster stage by stage and rank what is left.

        Stages: qualified and active, preference filters (dropped with a
        warning when they would leave nobody), working hours, no clashing
        assignment. An empty result means the window has no capacity; it is
        not an error.
        """
        bookings = list(existing_bookings)
        skill_index = {
            skill.resource_id: skill
            for skill in skills
            if skill.service_id == service.service_id
        }

        candidates = [
            resource
            for resource in resources
            if self.is_qualified(resource, service, skill_index, party_size)
        ]
        if not candidates:
            return ResourceMatch()

        candidates, warnings = self._apply_preferences(candidates, preferences or {})

        candidates = [
            resource
            for resource in candidates
            if within_working_hours(
                start,
                end,
                resource.working_hours or business_hours or {},
                timezone,
            )
        ]

        candidates = [
            resource
            for resource in candidates
            if not has_conflict(
                start,
                end,
                bookings_on_resource(bookings, resource.id),
                buffer_minutes,
                exclude_booking_id,
            )
        ]

        day = to_local(start, timezone).date()

        def rank(resource: Resource) -> tuple[int, float, int, str]:
            skill = skill_index.get(resource.id)
            proficiency = skill.proficiency.rank if skill else 0
            load = sum(
                1
                for booking in bookings_on_resource(bookings, resource.id)
                if booking.occupies_resource and to_local(booking.start, timezone).date() == day
            )
            return (-proficiency, self._tie_break(resource, party_size), load, resource.id)

        ranked = sorted(candidates, key=rank)
        if not ranked:
            self._logger.info(
                "No resource available",
                extra={"service": service.service_id, "reason": "no_capacity"},
            )
        return ResourceMatch(resources=ranked, warnings=warnings)

    def is_qualified(
        self,
        resource: Resource,
        service: ServiceDefinition,
        skill_index: dict[str, StaffSkill],
        party_size: int = 1,
    ) -> bool:
        if not resource.active:
            return False
        if service.resource_type is not None and resource.type != service.resource_type:
            return False

        if resource.type == ResourceType.staff:
            skill = skill_index.get(resource.id)
            if skill is None:
                return False
            if service.min_proficiency is not None and skill.proficiency.rank < service.min_proficiency.rank:
                return False
            return True

        min_party = int(resource.attributes.get("min_party", 1))
        return min_party <= party_size <= resource.capacity

    def _apply_preferences(
        self,
        candidates: list[Resource],
        preferences: dict[str, Any],
    ) -> tuple[list[Resource], list[ConstraintViolation]]:
        warnings: list[ConstraintViolation] = []
        for key, wanted in preferences.items():
            if wanted in (None, "", "any", "no-preference"):
                continue
            filtered = [resource for resource in candidates if resource.attributes.get(key) == wanted]
            if filtered:
                candidates = filtered
                continue
            warnings.append(
                ConstraintViolation(
                    constraint_name="resource_preference",
                    violation_type="preference_not_available",
                    message=f"No resource matches {key}={wanted}, showing all available resources",
                    priority=5,
                    mandatory=False,
                )
            )
        return candidates, warnings
