from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Any


class ResourceType(str, Enum):
    staff = "staff"
    table = "table"
    room = "room"
    equipment = "equipment"
    vehicle = "vehicle"
    other = "other"


class Proficiency(str, Enum):
    trainee = "trainee"
    junior = "junior"
    senior = "senior"
    expert = "expert"

    @property
    def rank(self) -> int:
        return _PROFICIENCY_RANK[self]


_PROFICIENCY_RANK = {
    Proficiency.trainee: 1,
    Proficiency.junior: 2,
    Proficiency.senior: 3,
    Proficiency.expert: 4,
}


@dataclass(frozen=True)
class BreakInterval:
    start: time
    end: time


@dataclass(frozen=True)
class WorkingDay:
    is_open: bool
    open_time: time = time(0, 0)
    close_time: time = time(0, 0)
    breaks: tuple[BreakInterval, ...] = ()


# Keyed by ``date.weekday()``: 0 = Monday ... 6 = Sunday.
WorkingHours = dict[int, WorkingDay]


@dataclass(frozen=True)
class Resource:
    id: str
    business_id: str
    name: str
    type: ResourceType
    capacity: int = 1
    active: bool = True
    working_hours: WorkingHours = field(default_factory=dict)
    attributes: dict[str, Any] = field(default_factory=dict)  # gender, location, min_party ...


@dataclass(frozen=True)
class StaffSkill:
    resource_id: str
    service_id: str
    proficiency: Proficiency = Proficiency.junior
