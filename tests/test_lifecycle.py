"""
Tests for the booking lifecycle through the engine: create, transitions, audit trail and retries.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from booking_engine.application.exceptions import (
    BookingNotFoundError,
    BookingValidationError,
    BusinessNotFoundError,
    InvalidTransitionError,
    OperationNotPermittedError,
    PolicyViolationError,
    ServiceNotFoundError,
    SlotConflictError,
    StaleSnapshotError,
)
from booking_engine.application.utils.lifecycle_rules import replay_status
from booking_engine.domain.entities.booking import BookingRequest, BookingStatus
from booking_engine.domain.entities.operation import (
    Actor,
    ActorRole,
    CancelPayload,
    ConfirmPayload,
    ModifyPayload,
    OperationType,
    RefundPayload,
    ReschedulePayload,
)
from booking_engine.domain.entities.policy import PolicyAction
from booking_engine.infrastructure.store.memory_store import MemoryBookingStore
from factories import MONDAY, RESTAURANT, SALON, WEDNESDAY, at, booking

CUSTOMER = Actor(ActorRole.customer, "cust-1")
STRANGER = Actor(ActorRole.customer, "cust-2")
STAFF = Actor(ActorRole.staff, "staff-ana")
SYSTEM = Actor(ActorRole.system)

THURSDAY = WEDNESDAY + timedelta(days=1)


def request(service_id="haircut", day=WEDNESDAY, hour=10, minutes=45, **changes) -> BookingRequest:
    start = at(day, hour)
    values = dict(
        business_id=SALON,
        service_id=service_id,
        start=start,
        end=start + timedelta(minutes=minutes),
        customer_ref="cust-1",
    )
    values.update(changes)
    return BookingRequest(**values)


def confirmed_booking(engine, **changes):
    created = engine.create_booking(request(**changes), CUSTOMER)
    return engine.transition(SALON, created.id, OperationType.confirm, STAFF)


class StaleOnceStore(MemoryBookingStore):
    """Fails the first commit as if another writer got there first."""

    def __init__(self) -> None:
        super().__init__()
        self.stale_commits = 0

    def commit(self, business_id, expected_version, bookings, operations, history):
        if self.stale_commits == 0:
            self.stale_commits += 1
            raise StaleSnapshotError("bookings changed")
        return super().commit(business_id, expected_version, bookings, operations, history)


class AlwaysStaleStore(MemoryBookingStore):
    def commit(self, business_id, expected_version, bookings, operations, history):
        raise StaleSnapshotError("bookings changed")


class CompetingStore(MemoryBookingStore):
    """Lets a rival booking land between our snapshot and our commit."""

    def __init__(self, rival) -> None:
        super().__init__()
        self._rival = rival

    def commit(self, business_id, expected_version, bookings, operations, history):
        if self._rival is not None:
            rival, self._rival = self._rival, None
            super().commit(business_id, expected_version, [rival], [], [])
        return super().commit(business_id, expected_version, bookings, operations, history)


def test_create_books_best_staff_and_schedules_follow_ups(engine, scheduler):
    created = engine.create_booking(request(), CUSTOMER)

    assert created.status == BookingStatus.requested
    assert created.resource_id == "staff-ana"
    assert created.price == Decimal("60.00")
    assert created.customer_ref == "cust-1"
    assert [f.kind for f in scheduler.pending(created.id)] == ["reminder", "no_show_check", "auto_cancel"]

    operations = engine.operations_for(SALON, created.id)
    assert [op.operation_type for op in operations] == [OperationType.create]
    assert operations[0].constraints_passed
    assert operations[0].payload.resource_id == "staff-ana"

    history = engine.status_history_for(SALON, created.id)
    assert [(h.from_status, h.to_status) for h in history] == [(None, BookingStatus.requested)]


def test_second_request_for_same_time_goes_to_next_stylist(engine):
    first = engine.create_booking(request(), CUSTOMER)
    second = engine.create_booking(request(), CUSTOMER)

    assert first.resource_id == "staff-ana"
    assert second.resource_id == "staff-ben"
    with pytest.raises(SlotConflictError):
        engine.create_booking(request(), CUSTOMER)


def test_buffered_overlap_is_rejected_and_logged(engine):
    """10:45-11:30 falls inside 10:00-11:00 widened by the 15 minute buffer."""
    first = engine.create_booking(request("consultation", minutes=60), CUSTOMER)

    with pytest.raises(SlotConflictError) as exc_info:
        engine.create_booking(
            request("consultation", start=at(WEDNESDAY, 10, 45), end=at(WEDNESDAY, 11, 30)),
            CUSTOMER,
        )

    assert [b.id for b in exc_info.value.conflicts] == [first.id]
    failed = [op for op in engine.operations_for(SALON) if not op.constraints_passed]
    assert len(failed) == 1
    assert failed[0].booking_id is None
    assert failed[0].violations[0].violation_type == "booking_conflict"


def test_request_failing_constraints_is_logged(engine):
    with pytest.raises(BookingValidationError) as exc_info:
        engine.create_booking(request(day=MONDAY, hour=9), CUSTOMER)

    assert "insufficient_advance_notice" in {v.violation_type for v in exc_info.value.violations}
    failed = engine.operations_for(SALON)
    assert len(failed) == 1
    assert not failed[0].constraints_passed
    assert failed[0].operation_type == OperationType.create


def test_customer_cannot_book_for_someone_else(engine):
    with pytest.raises(OperationNotPermittedError):
        engine.create_booking(request(customer_ref="cust-9"), CUSTOMER)


def test_unknown_business_and_service(engine):
    with pytest.raises(BusinessNotFoundError):
        engine.create_booking(request(business_id="nowhere"), CUSTOMER)
    with pytest.raises(ServiceNotFoundError):
        engine.create_booking(request(service_id="massage"), CUSTOMER)


def test_restaurant_swaps_oversized_table(engine):
    """A couple asking for the eight-top is seated at the two-top, with both warnings kept."""
    created = engine.create_booking(
        BookingRequest(
            business_id=RESTAURANT,
            service_id="dinner",
            start=at(MONDAY, 19),
            end=at(MONDAY, 20, 30),
            customer_ref="cust-1",
            resource_id="t8",
            party_size=2,
        ),
        CUSTOMER,
    )

    assert created.resource_id == "t2"
    warnings = {v.violation_type for v in engine.operations_for(RESTAURANT, created.id)[0].violations}
    assert warnings == {"inefficient_table_usage", "requested_resource_unavailable"}


def test_confirm_then_cancel_releases_the_slot(engine):
    held = confirmed_booking(engine, service_id="consultation", minutes=60)

    cancelled = engine.transition(SALON, held.id, OperationType.cancel, CUSTOMER, CancelPayload(reason="sick"))

    assert cancelled.status == BookingStatus.cancelled
    history = engine.status_history_for(SALON, held.id)
    assert [h.to_status for h in history] == [
        BookingStatus.requested,
        BookingStatus.confirmed,
        BookingStatus.cancelled,
    ]
    assert history[-1].reason == "sick"
    assert history[-1].changed_by_role == ActorRole.customer

    again = engine.create_booking(request("consultation", minutes=60), CUSTOMER)
    assert again.status == BookingStatus.requested


def test_late_cancellation_charges_fee_and_refunds_rest(engine, clock, scheduler):
    held = confirmed_booking(engine, deposit_amount=Decimal("30"))
    clock.now = at(WEDNESDAY, 7)

    engine.transition(SALON, held.id, OperationType.cancel, CUSTOMER)

    cancel_op = engine.operations_for(SALON, held.id)[-1]
    assert cancel_op.financial_impact == {"charge": "20.00", "refund": "10.00"}
    refunds = [f for f in scheduler.pending(held.id) if f.kind == "refund"]
    assert refunds[0].payload["amount"] == "10.00"


def test_cancelling_after_start_needs_staff_override(engine, clock):
    held = confirmed_booking(engine)
    clock.now = at(WEDNESDAY, 10, 30)

    with pytest.raises(PolicyViolationError):
        engine.transition(SALON, held.id, OperationType.cancel, CUSTOMER)

    cancelled = engine.transition(SALON, held.id, OperationType.cancel, STAFF, CancelPayload(override_policy=True))

    assert cancelled.status == BookingStatus.cancelled
    cancel_op = engine.operations_for(SALON, held.id)[-1]
    assert cancel_op.constraints_passed
    assert "cancel_not_allowed" in {v.violation_type for v in cancel_op.violations}
    assert all(not v.mandatory for v in cancel_op.violations)


def test_reschedule_links_old_and_new_booking(engine, scheduler):
    held = confirmed_booking(engine)

    moved = engine.transition(
        SALON,
        held.id,
        OperationType.reschedule,
        CUSTOMER,
        ReschedulePayload(new_start=at(THURSDAY, 11), new_end=at(THURSDAY, 11, 45)),
    )

    old = engine.get_booking(SALON, held.id)
    assert old.status == BookingStatus.rescheduled
    assert old.related_booking_id == moved.id
    assert moved.status == BookingStatus.confirmed
    assert moved.related_booking_id == held.id
    assert moved.reschedule_count == 1
    assert moved.start == at(THURSDAY, 11)

    close_op = engine.operations_for(SALON, held.id)[-1]
    open_ops = engine.operations_for(SALON, moved.id)
    assert close_op.operation_type == OperationType.reschedule
    assert close_op.payload.rescheduled_to == moved.id
    assert [op.operation_type for op in open_ops] == [OperationType.create]
    assert open_ops[0].payload.rescheduled_from == held.id
    assert close_op.reference is not None
    assert close_op.reference == open_ops[0].reference

    assert replay_status(engine.operations_for(SALON, held.id)) == BookingStatus.rescheduled
    assert replay_status(open_ops) == BookingStatus.confirmed
    assert len(scheduler.pending(moved.id)) == 3


def test_rescheduled_booking_frees_its_old_time(engine):
    held = confirmed_booking(engine, service_id="consultation", minutes=60)
    engine.transition(
        SALON,
        held.id,
        OperationType.reschedule,
        CUSTOMER,
        ReschedulePayload(new_start=at(THURSDAY, 10), new_end=at(THURSDAY, 11)),
    )

    again = engine.create_booking(request("consultation", minutes=60), CUSTOMER)

    assert again.start == at(WEDNESDAY, 10)


def test_requested_booking_cannot_be_rescheduled(engine):
    created = engine.create_booking(request(), CUSTOMER)

    with pytest.raises(InvalidTransitionError):
        engine.transition(
            SALON,
            created.id,
            OperationType.reschedule,
            CUSTOMER,
            ReschedulePayload(new_start=at(THURSDAY, 11), new_end=at(THURSDAY, 11, 45)),
        )


def test_rejected_transitions_are_recorded(engine):
    created = engine.create_booking(request(), CUSTOMER)

    with pytest.raises(InvalidTransitionError):
        engine.transition(SALON, created.id, OperationType.complete, STAFF)
    with pytest.raises(OperationNotPermittedError):
        engine.transition(SALON, created.id, OperationType.confirm, CUSTOMER)
    with pytest.raises(OperationNotPermittedError):
        engine.transition(SALON, created.id, OperationType.cancel, STRANGER)

    operations = engine.operations_for(SALON, created.id)
    assert [op.constraints_passed for op in operations] == [True, False, False, False]
    assert engine.get_booking(SALON, created.id).status == BookingStatus.requested


def test_payload_must_match_operation(engine):
    created = engine.create_booking(request(), CUSTOMER)

    with pytest.raises(BookingValidationError) as missing:
        engine.transition(SALON, created.id, OperationType.reschedule, CUSTOMER)
    with pytest.raises(BookingValidationError) as mismatched:
        engine.transition(SALON, created.id, OperationType.cancel, CUSTOMER, ConfirmPayload())

    assert missing.value.violations[0].violation_type == "malformed_payload"
    assert mismatched.value.violations[0].violation_type == "malformed_payload"


def test_unknown_booking(engine):
    with pytest.raises(BookingNotFoundError):
        engine.transition(SALON, "missing", OperationType.cancel, CUSTOMER)
    with pytest.raises(BookingNotFoundError):
        engine.get_booking(SALON, "missing")


def test_booking_is_invisible_from_other_business(engine):
    created = engine.create_booking(request(), CUSTOMER)

    with pytest.raises(BookingNotFoundError):
        engine.transition(RESTAURANT, created.id, OperationType.cancel, STAFF)


def test_no_show_after_grace_period(engine, clock):
    held = confirmed_booking(engine)

    clock.now = at(WEDNESDAY, 10, 5)
    with pytest.raises(PolicyViolationError):
        engine.transition(SALON, held.id, OperationType.no_show, SYSTEM)

    clock.now = at(WEDNESDAY, 10, 20)
    marked = engine.transition(SALON, held.id, OperationType.no_show, SYSTEM)

    assert marked.status == BookingStatus.no_show
    assert engine.operations_for(SALON, held.id)[-1].financial_impact == {"charge": "15.00"}


def test_complete_is_terminal(engine):
    held = confirmed_booking(engine)

    done = engine.transition(SALON, held.id, OperationType.complete, STAFF)

    assert done.status == BookingStatus.completed
    with pytest.raises(InvalidTransitionError):
        engine.transition(SALON, held.id, OperationType.cancel, STAFF)


def test_refund_is_audited_without_new_version(engine, store):
    held = confirmed_booking(engine)
    version = store.snapshot(SALON).version

    same = engine.transition(SALON, held.id, OperationType.refund, STAFF, RefundPayload(amount=Decimal("10")))

    assert same.status == BookingStatus.confirmed
    assert store.snapshot(SALON).version == version
    assert engine.operations_for(SALON, held.id)[-1].financial_impact == {"refund": "10"}
    with pytest.raises(BookingValidationError):
        engine.transition(SALON, held.id, OperationType.refund, STAFF, RefundPayload(amount=Decimal("0")))
    with pytest.raises(OperationNotPermittedError):
        engine.transition(SALON, held.id, OperationType.refund, CUSTOMER, RefundPayload(amount=Decimal("10")))


def test_modify_notes_and_party(engine):
    held = confirmed_booking(engine)

    updated = engine.transition(SALON, held.id, OperationType.modify, CUSTOMER, ModifyPayload(notes="fringe only"))

    assert updated.notes == "fringe only"
    assert updated.status == BookingStatus.confirmed
    assert engine.status_history_for(SALON, held.id)[-1].to_status == BookingStatus.confirmed


def test_modify_to_busy_stylist_is_a_conflict(engine):
    first = engine.create_booking(request(), CUSTOMER)
    second = engine.create_booking(request(), CUSTOMER)
    assert second.resource_id == "staff-ben"

    with pytest.raises(SlotConflictError):
        engine.transition(SALON, first.id, OperationType.modify, STAFF, ModifyPayload(resource_id="staff-ben"))


def test_modify_to_free_stylist(engine):
    first = engine.create_booking(request(), CUSTOMER)

    moved = engine.transition(SALON, first.id, OperationType.modify, STAFF, ModifyPayload(resource_id="staff-ben"))

    assert moved.resource_id == "staff-ben"


def test_policy_questions_do_not_change_anything(engine):
    held = confirmed_booking(engine)

    decision = engine.evaluate_policy(SALON, held.id, PolicyAction.cancel, now=at(WEDNESDAY, 7))

    assert decision.fee_amount == Decimal("20.00")
    assert engine.get_booking(SALON, held.id).status == BookingStatus.confirmed


def test_stale_commit_is_retried(make_engine):
    store = StaleOnceStore()
    engine = make_engine(store)

    created = engine.create_booking(request(), CUSTOMER)

    assert store.stale_commits == 1
    assert [op.operation_type for op in engine.operations_for(SALON, created.id)] == [OperationType.create]


def test_retries_exhausted_is_a_conflict(make_engine):
    """Giving up still leaves a rejected create in the operation log."""
    store = AlwaysStaleStore()
    engine = make_engine(store)

    with pytest.raises(SlotConflictError, match="slot no longer available"):
        engine.create_booking(request(), CUSTOMER)

    [rejected] = store.list_operations(SALON)
    assert rejected.operation_type == OperationType.create
    assert rejected.booking_id is None
    assert rejected.constraints_passed is False
    assert [v.violation_type for v in rejected.violations] == ["slot_no_longer_available"]
    assert rejected.payload.service_id == "haircut"
    assert store.snapshot(SALON).bookings == ()


def test_competing_writer_wins_the_slot(make_engine):
    """The retry sees the rival booking and reports the clash instead of double booking."""
    rival = booking("rival", at(WEDNESDAY, 10), at(WEDNESDAY, 11), service_id="consultation")
    store = CompetingStore(rival)
    engine = make_engine(store)

    with pytest.raises(SlotConflictError) as exc_info:
        engine.create_booking(request("consultation", minutes=60), CUSTOMER)

    assert [b.id for b in exc_info.value.conflicts] == ["rival"]
    assert [b.id for b in store.snapshot(SALON).bookings] == ["rival"]


def dinner(hour=19, party_size=6, **changes) -> BookingRequest:
    values = dict(
        business_id=RESTAURANT,
        service_id="dinner",
        start=at(MONDAY, hour),
        end=at(MONDAY, hour, 30) + timedelta(hours=1),
        customer_ref="cust-1",
        party_size=party_size,
    )
    values.update(changes)
    return BookingRequest(**values)


def test_naive_times_are_read_in_business_timezone(engine):
    """Times without a zone are taken as the salon's local clock instead of failing comparison."""
    naive = request(start=datetime(2025, 6, 4, 10, 0), end=datetime(2025, 6, 4, 10, 45))

    assert engine.validate(naive).is_valid
    created = engine.create_booking(naive, CUSTOMER)

    assert created.start == at(WEDNESDAY, 10)
    assert created.start.tzinfo is not None
    assert created.end == at(WEDNESDAY, 10, 45)


def test_naive_reschedule_and_policy_clock(engine):
    held = confirmed_booking(engine)

    moved = engine.transition(
        SALON,
        held.id,
        OperationType.reschedule,
        CUSTOMER,
        ReschedulePayload(new_start=datetime(2025, 6, 5, 11, 0), new_end=datetime(2025, 6, 5, 11, 45)),
    )
    decision = engine.evaluate_policy(SALON, moved.id, PolicyAction.cancel, now=datetime(2025, 6, 5, 8, 0))

    assert moved.start == at(THURSDAY, 11)
    assert moved.start.tzinfo is not None
    assert decision.fee_amount == Decimal("20.00")


def test_stylist_level_sets_the_price(engine):
    """Ana is an expert (x1.5) and Ben a junior (x1.0) on the 40.00 haircut."""
    first = engine.create_booking(request(), CUSTOMER)
    second = engine.create_booking(request(), CUSTOMER)

    assert (first.resource_id, first.price) == ("staff-ana", Decimal("60.00"))
    assert (second.resource_id, second.price) == ("staff-ben", Decimal("40.00"))


def test_reschedule_requotes_for_the_new_stylist(engine):
    held = confirmed_booking(engine)
    engine.create_booking(request(day=THURSDAY, hour=11), CUSTOMER)

    moved = engine.transition(
        SALON,
        held.id,
        OperationType.reschedule,
        CUSTOMER,
        ReschedulePayload(new_start=at(THURSDAY, 11), new_end=at(THURSDAY, 11, 45)),
    )

    assert held.price == Decimal("60.00")
    assert moved.resource_id == "staff-ben"
    assert moved.price == Decimal("40.00")


def test_evening_seating_carries_per_guest_fee(engine):
    peak = engine.create_booking(dinner(hour=19, party_size=3), CUSTOMER)
    early = engine.create_booking(dinner(hour=17, party_size=2), CUSTOMER)

    assert peak.price == Decimal("30.00")
    assert early.price == Decimal("0")


def test_restaurant_without_policy_uses_its_cancellation_window(engine):
    """No policy is configured, so the two hour window of the restaurant rules applies."""
    seated = engine.create_booking(dinner(party_size=2), CUSTOMER)

    decision = engine.evaluate_policy(RESTAURANT, seated.id, PolicyAction.cancel, now=at(MONDAY, 16))

    assert decision.allowed
    assert decision.policy_version == 0
    assert decision.fee_amount == Decimal("0")
    assert decision.reasons[0] == "Cancelled more than 2 hours before start"


def test_full_window_goes_on_the_waitlist(engine):
    """Only the eight-top seats six, so a second party of six waits 15 + 5 * 6 minutes."""
    engine.create_booking(dinner(), CUSTOMER)

    first = engine.join_waitlist(dinner(), CUSTOMER)
    second = engine.join_waitlist(dinner(customer_ref="cust-2"), STRANGER)

    assert first.position == 1
    assert first.estimated_wait_minutes == 45
    assert first.customer_ref == "cust-1"
    assert first.requested_start == at(MONDAY, 19)
    assert second.position == 2
    assert [entry.id for entry in engine.waitlist_for(RESTAURANT)] == [first.id, second.id]


def test_free_window_is_not_waitlisted(engine):
    with pytest.raises(BookingValidationError) as exc_info:
        engine.join_waitlist(dinner(), CUSTOMER)

    assert [v.violation_type for v in exc_info.value.violations] == ["slot_available"]
    assert engine.waitlist_for(RESTAURANT) == []


def test_customer_cannot_waitlist_someone_else(engine):
    engine.create_booking(dinner(), CUSTOMER)

    with pytest.raises(OperationNotPermittedError):
        engine.join_waitlist(dinner(customer_ref="cust-1"), STRANGER)
