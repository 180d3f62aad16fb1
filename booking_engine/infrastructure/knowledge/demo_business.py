from __future__ import annotations

from datetime import time
from decimal import Decimal

from booking_engine.domain.entities.context import BusinessProfile
from booking_engine.domain.entities.policy import BookingPolicy, CancellationPolicy, FeeStructure
from booking_engine.domain.entities.resource import (
    BreakInterval,
    Proficiency,
    Resource,
    ResourceType,
    StaffSkill,
    WorkingDay,
)
from booking_engine.domain.entities.service_catalog import ServiceDefinition
from booking_engine.infrastructure.config.memory_config import InMemoryBusinessConfig
from booking_engine.infrastructure.knowledge.service_catalog_store import ServiceCatalogStore

DEMO_BUSINESS_ID = "demo-salon"

_WEEKDAY = WorkingDay(
    is_open=True,
    open_time=time(9, 0),
    close_time=time(18, 0),
    breaks=(BreakInterval(time(13, 0), time(14, 0)),),
)
_SATURDAY = WorkingDay(is_open=True, open_time=time(10, 0), close_time=time(16, 0))
_SUNDAY = WorkingDay(is_open=False)

DEMO_HOURS = {0: _WEEKDAY, 1: _WEEKDAY, 2: _WEEKDAY, 3: _WEEKDAY, 4: _WEEKDAY, 5: _SATURDAY, 6: _SUNDAY}

DEMO_SERVICES = [
    ServiceDefinition(
        business_id=DEMO_BUSINESS_ID,
        service_id="haircut",
        display_name="Haircut",
        duration_minutes=45,
        price=Decimal("40.00"),
        resource_type=ResourceType.staff,
    ),
    ServiceDefinition(
        business_id=DEMO_BUSINESS_ID,
        service_id="color_treatment",
        display_name="Color treatment",
        duration_minutes=120,
        price=Decimal("120.00"),
        resource_type=ResourceType.staff,
        min_proficiency=Proficiency.senior,
    ),
]


def seed_demo_business(config: InMemoryBusinessConfig, catalog: ServiceCatalogStore) -> None:
    """Register a small salon so a local server has something to book against."""
    config.register_business(
        BusinessProfile(
            business_id=DEMO_BUSINESS_ID,
            industry="salon",
            timezone="UTC",
            working_hours=DEMO_HOURS,
        )
    )
    config.add_policy(
        BookingPolicy(
            business_id=DEMO_BUSINESS_ID,
            cancellation=CancellationPolicy(
                free_cancellation_hours=24,
                fee_structure=FeeStructure.percentage,
                fee_percentage=Decimal("50"),
            ),
        )
    )
    for resource_id, name, gender, proficiency in (
        ("staff-ana", "Ana", "female", Proficiency.expert),
        ("staff-ben", "Ben", "male", Proficiency.junior),
    ):
        config.add_resource(
            Resource(
                id=resource_id,
                business_id=DEMO_BUSINESS_ID,
                name=name,
                type=ResourceType.staff,
                attributes={"gender": gender},
            )
        )
        for service in DEMO_SERVICES:
            config.add_skill(DEMO_BUSINESS_ID, StaffSkill(resource_id, service.service_id, proficiency))

    for service in DEMO_SERVICES:
        catalog.add_service(service)
