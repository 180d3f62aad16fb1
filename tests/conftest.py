from __future__ import annotations

import itertools
from decimal import Decimal

import pytest

from booking_engine.application.use_cases.engine import BookingEngine
from booking_engine.domain.entities.context import BusinessProfile
from booking_engine.domain.entities.policy import BookingPolicy, CancellationPolicy, NoShowPolicy
from booking_engine.domain.entities.resource import Proficiency, StaffSkill
from booking_engine.domain.entities.rule_set import RuleSet
from booking_engine.infrastructure.config.memory_config import InMemoryBusinessConfig
from booking_engine.infrastructure.knowledge.service_catalog_store import ServiceCatalogStore
from booking_engine.infrastructure.scheduler.memory_scheduler import MemoryFollowUpScheduler
from booking_engine.infrastructure.store.memory_store import MemoryBookingStore
from factories import (
    COLOR,
    CONSULTATION,
    DINNER,
    HAIRCUT,
    NOW,
    RESTAURANT,
    RESTAURANT_HOURS,
    SALON,
    SALON_HOURS,
    FixedClock,
    staff,
    table,
)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def config() -> InMemoryBusinessConfig:
    config = InMemoryBusinessConfig()

    config.register_business(
        BusinessProfile(business_id=SALON, industry="salon", working_hours=SALON_HOURS),
        RuleSet(advance_booking_hours=2, max_advance_booking_days=60, cancellation_hours=24, buffer_minutes=15),
    )
    config.add_policy(
        BookingPolicy(
            business_id=SALON,
            cancellation=CancellationPolicy(free_cancellation_hours=24, fee_amount=Decimal("20")),
            no_show=NoShowPolicy(grace_period_minutes=15, fee_amount=Decimal("15")),
        )
    )
    config.add_resource(staff("staff-ana", "female"))
    config.add_resource(staff("staff-ben", "male"))
    config.add_skill(SALON, StaffSkill("staff-ana", "haircut", Proficiency.expert))
    config.add_skill(SALON, StaffSkill("staff-ben", "haircut", Proficiency.junior))
    config.add_skill(SALON, StaffSkill("staff-ben", "color", Proficiency.junior))

    config.register_business(
        BusinessProfile(business_id=RESTAURANT, industry="restaurant", working_hours=RESTAURANT_HOURS),
    )
    config.add_resource(table("t2", 2))
    config.add_resource(table("t4", 4, min_party=3))
    config.add_resource(table("t8", 8, min_party=5))
    return config


@pytest.fixture
def catalog() -> ServiceCatalogStore:
    return ServiceCatalogStore([HAIRCUT, COLOR, CONSULTATION, DINNER])


@pytest.fixture
def store() -> MemoryBookingStore:
    return MemoryBookingStore()


@pytest.fixture
def scheduler() -> MemoryFollowUpScheduler:
    return MemoryFollowUpScheduler()


@pytest.fixture
def make_engine(config, catalog, scheduler, clock):
    def build(store: MemoryBookingStore) -> BookingEngine:
        counter = itertools.count(1)
        return BookingEngine(
            config=config,
            catalog=catalog,
            store=store,
            scheduler=scheduler,
            clock=clock,
            id_factory=lambda: f"id-{next(counter)}",
        )

    return build


@pytest.fixture
def engine(make_engine, store) -> BookingEngine:
    return make_engine(store)
