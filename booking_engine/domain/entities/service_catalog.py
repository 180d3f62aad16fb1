from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from booking_engine.domain.entities.resource import Proficiency, ResourceType


@dataclass(frozen=True)
class ServiceDefinition:
    business_id: str
    service_id: str
    display_name: str
    duration_minutes: int
    price: Decimal = Decimal("0.00")
    resource_type: ResourceType | None = None  # None: booked against the business itself
    min_proficiency: Proficiency | None = None
    notes: str | None = None
