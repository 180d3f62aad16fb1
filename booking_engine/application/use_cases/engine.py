from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, TypeVar

from booking_engine.application.exceptions import (
    BookingNotFoundError,
    ServiceNotFoundError,
    SlotConflictError,
    StaleSnapshotError,
)
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.ports.business_config import BusinessConfigPort
from booking_engine.application.ports.follow_up_scheduler import FollowUpSchedulerPort
from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.application.use_cases.check_availability import assess_request, localize_request
from booking_engine.application.use_cases.evaluate_policy import PolicyEngine, select_current_policy
from booking_engine.application.use_cases.generate_slots import DEFAULT_STEP_MINUTES, SlotGenerator
from booking_engine.application.use_cases.lifecycle import LifecycleManager, creation_payload, prior_no_shows
from booking_engine.application.use_cases.load_context import ContextLoader
from booking_engine.application.use_cases.match_resources import ResourceMatcher
from booking_engine.application.use_cases.validate_booking import ConstraintValidator
from booking_engine.application.use_cases.waitlist import WaitlistManager
from booking_engine.domain.entities.booking import Booking, BookingRequest
from booking_engine.domain.entities.constraint import BookingValidation
from booking_engine.domain.entities.context import BusinessContext
from booking_engine.domain.entities.operation import (
    Actor,
    BookingOperation,
    OperationPayload,
    OperationType,
    StatusHistoryEntry,
)
from booking_engine.domain.entities.policy import PolicyAction, PolicyDecision
from booking_engine.domain.entities.service_catalog import ServiceDefinition
from booking_engine.domain.entities.slot import BookingSlot
from booking_engine.domain.entities.waitlist import WaitlistEntry

T = TypeVar("T")


class BookingEngine:
    """Entry point for callers: validation, slots, bookings, transitions, policy questions and the waitlist."""

    def __init__(
        self,
        config: BusinessConfigPort,
        catalog: ServiceCatalogPort,
        store: BookingStorePort,
        scheduler: FollowUpSchedulerPort,
        clock: Callable[[], datetime],
        step_minutes: int = DEFAULT_STEP_MINUTES,
        commit_retry_limit: int = 1,
        reminder_hours_before: int = 24,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._loader = ContextLoader(config=config, store=store, clock=clock)
        self._validator = ConstraintValidator()
        self._policies = PolicyEngine(reminder_hours_before=reminder_hours_before)
        self._slots = SlotGenerator(step_minutes=step_minutes)
        self._lifecycle = LifecycleManager(
            store=store,
            scheduler=scheduler,
            validator=self._validator,
            policy_engine=self._policies,
            id_factory=id_factory,
        )
        self._waitlist = WaitlistManager(store=store, validator=self._validator, id_factory=id_factory)
        self._retry_limit = commit_retry_limit
        self._logger = logging.getLogger(__name__)

    def validate(self, request: BookingRequest) -> BookingValidation:
        context = self._loader.load(request.business_id)
        service = self._service(request.business_id, request.service_id)
        return assess_request(context, service, request, self._validator).report()

    def generate_slots(self, business_id: str, service_id: str, day: date) -> list[BookingSlot]:
        context = self._loader.load(business_id)
        service = self._service(business_id, service_id)
        return self._slots.for_service(
            context,
            service,
            day,
            ResourceMatcher.for_industry(context.profile.industry),
        )

    def suggest_slots(
        self,
        business_id: str,
        service_id: str,
        preferred_day: date,
        count: int = 3,
    ) -> list[BookingSlot]:
        context = self._loader.load(business_id)
        service = self._service(business_id, service_id)
        return self._slots.suggest(
            context,
            service,
            preferred_day,
            ResourceMatcher.for_industry(context.profile.industry),
            count=count,
        )

    def create_booking(self, request: BookingRequest, actor: Actor) -> Booking:
        def attempt(context: BusinessContext) -> Booking:
            service = self._service(request.business_id, request.service_id)
            return self._lifecycle.create(context, service, request, actor)

        def give_up(context: BusinessContext) -> None:
            service = self._service(request.business_id, request.service_id)
            payload = creation_payload(service, localize_request(request, context))
            self._lifecycle.reject_lost_race(context, None, OperationType.create, actor, payload)

        return self._with_retry(request.business_id, attempt, give_up)

    def transition(
        self,
        business_id: str,
        booking_id: str,
        operation_type: OperationType,
        actor: Actor,
        payload: OperationPayload | None = None,
    ) -> Booking:
        def attempt(context: BusinessContext) -> Booking:
            booking = self._booking(context, booking_id)
            service = self._service(business_id, booking.service_id)
            return self._lifecycle.transition(context, booking, service, operation_type, actor, payload)

        def give_up(context: BusinessContext) -> None:
            booking = self._booking(context, booking_id)
            self._lifecycle.reject_lost_race(context, booking, operation_type, actor, payload)

        return self._with_retry(business_id, attempt, give_up)

    def join_waitlist(self, request: BookingRequest, actor: Actor) -> WaitlistEntry:
        """Queue a party for a full window; the window must be valid but have no free resource."""
        context = self._loader.load(request.business_id)
        service = self._service(request.business_id, request.service_id)
        return self._waitlist.join(context, service, request, actor)

    def waitlist_for(self, business_id: str) -> list[WaitlistEntry]:
        return self._store.list_waitlist(business_id)

    def evaluate_policy(
        self,
        business_id: str,
        booking_id: str,
        action: PolicyAction,
        now: datetime | None = None,
    ) -> PolicyDecision:
        context = self._loader.load(business_id, now)
        booking = self._booking(context, booking_id)
        policy = select_current_policy(context.policies, business_id, context.now, context.rule_set)
        return self._policies.evaluate(
            action,
            booking,
            policy,
            context.rule_set,
            context.now,
            prior_no_shows(context, booking),
        )

    def get_booking(self, business_id: str, booking_id: str) -> Booking:
        booking = self._store.get_booking(business_id, booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    def operations_for(self, business_id: str, booking_id: str | None = None) -> list[BookingOperation]:
        return self._store.list_operations(business_id, booking_id)

    def status_history_for(self, business_id: str, booking_id: str) -> list[StatusHistoryEntry]:
        return self._store.list_status_history(business_id, booking_id)

    def _with_retry(
        self,
        business_id: str,
        attempt: Callable[[BusinessContext], T],
        give_up: Callable[[BusinessContext], None],
    ) -> T:
        for attempt_number in range(self._retry_limit + 1):
            context = self._loader.load(business_id)
            try:
                return attempt(context)
            except StaleSnapshotError:
                self._logger.info(
                    "Bookings changed during commit, retrying",
                    extra={"business_id": business_id, "reason": f"attempt={attempt_number + 1}"},
                )
        give_up(context)
        raise SlotConflictError("slot no longer available")

    def _service(self, business_id: str, service_id: str) -> ServiceDefinition:
        service = self._catalog.get_service(business_id, service_id)
        if service is None:
            raise ServiceNotFoundError(f"Unknown service: {service_id}")
        return service

    def _booking(self, context: BusinessContext, booking_id: str) -> Booking:
        for booking in context.bookings:
            if booking.id == booking_id:
                return booking
        raise BookingNotFoundError(f"Booking {booking_id} not found")
