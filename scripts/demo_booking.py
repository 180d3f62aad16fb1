from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, ".")

from booking_engine.application.exceptions import PolicyViolationError
from booking_engine.application.use_cases.engine import BookingEngine
from booking_engine.domain.entities.booking import BookingRequest
from booking_engine.domain.entities.operation import Actor, ActorRole, CancelPayload, OperationType
from booking_engine.domain.entities.policy import PolicyAction
from booking_engine.infrastructure.config.memory_config import InMemoryBusinessConfig
from booking_engine.infrastructure.knowledge.demo_business import DEMO_BUSINESS_ID, seed_demo_business
from booking_engine.infrastructure.knowledge.service_catalog_store import ServiceCatalogStore
from booking_engine.infrastructure.scheduler.memory_scheduler import MemoryFollowUpScheduler
from booking_engine.infrastructure.store.memory_store import MemoryBookingStore

# Monday morning, so the whole week is bookable.
NOW = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)


def build_engine(scheduler: MemoryFollowUpScheduler) -> BookingEngine:
    config = InMemoryBusinessConfig()
    catalog = ServiceCatalogStore()
    seed_demo_business(config, catalog)
    return BookingEngine(
        config=config,
        catalog=catalog,
        store=MemoryBookingStore(),
        scheduler=scheduler,
        clock=lambda: NOW,
    )


def main() -> None:
    scheduler = MemoryFollowUpScheduler()
    engine = build_engine(scheduler)
    customer = Actor(ActorRole.customer, "demo-customer")
    staff = Actor(ActorRole.staff, "staff-ana")

    tuesday = (NOW + timedelta(days=1)).date()
    suggestions = engine.suggest_slots(DEMO_BUSINESS_ID, "haircut", tuesday)
    for slot in suggestions:
        print(f"  {slot.start:%a %H:%M} with {slot.resource_id} ({slot.price})")
    assert len(suggestions) == 3
    print("✅ Suggestions")

    first = suggestions[0]
    booking = engine.create_booking(
        BookingRequest(
            business_id=DEMO_BUSINESS_ID,
            service_id="haircut",
            start=first.start,
            end=first.end,
            preferences={"gender": "male"},
        ),
        customer,
    )
    assert booking.resource_id == "staff-ben"
    print(f"✅ Booked {booking.id} with {booking.resource_id}")

    booking = engine.transition(DEMO_BUSINESS_ID, booking.id, OperationType.confirm, staff)
    print(f"✅ Status {booking.status.value}, follow-ups: {[f.kind for f in scheduler.pending(booking.id)]}")

    late = engine.evaluate_policy(DEMO_BUSINESS_ID, booking.id, PolicyAction.cancel, now=first.start - timedelta(hours=3))
    print(f"✅ Late cancellation would cost {late.fee_amount}: {'; '.join(late.reasons)}")

    try:
        engine.transition(DEMO_BUSINESS_ID, booking.id, OperationType.no_show, staff)
    except PolicyViolationError as e:
        print(f"✅ No-show refused: {'; '.join(e.decision.reasons)}")

    engine.transition(DEMO_BUSINESS_ID, booking.id, OperationType.cancel, customer, CancelPayload(reason="plans changed"))
    for entry in engine.status_history_for(DEMO_BUSINESS_ID, booking.id):
        print(f"  {entry.from_status} -> {entry.to_status.value} by {entry.changed_by_role.value}")
    print("✅ Cancelled")


if __name__ == "__main__":
    main()
