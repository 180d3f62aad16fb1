from __future__ import annotations

import logging
from typing import Callable
from uuid import uuid4

from booking_engine.application.exceptions import BookingValidationError, OperationNotPermittedError
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.use_cases.check_availability import assess_request, localize_request
from booking_engine.application.use_cases.validate_booking import ConstraintValidator
from booking_engine.application.utils.industry import industry_profile
from booking_engine.domain.entities.booking import BookingRequest
from booking_engine.domain.entities.constraint import ConstraintViolation
from booking_engine.domain.entities.context import BusinessContext
from booking_engine.domain.entities.operation import Actor, ActorRole
from booking_engine.domain.entities.service_catalog import ServiceDefinition
from booking_engine.domain.entities.waitlist import WaitlistEntry


class WaitlistManager:
    """Queue parties for windows that are full, with an estimated wait per party size."""

    def __init__(
        self,
        store: BookingStorePort,
        validator: ConstraintValidator,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._validator = validator
        self._new_id = id_factory or (lambda: uuid4().hex)
        self._logger = logging.getLogger(__name__)

    def join(
        self,
        context: BusinessContext,
        service: ServiceDefinition,
        request: BookingRequest,
        actor: Actor,
    ) -> WaitlistEntry:
        request = localize_request(request, context)

        customer_ref = request.customer_ref
        if actor.role == ActorRole.customer:
            if customer_ref is not None and customer_ref != actor.identity:
                violation = ConstraintViolation(
                    constraint_name="authorization",
                    violation_type="not_permitted",
                    message="customer is not allowed to join the waitlist for someone else",
                )
                raise OperationNotPermittedError(violation.message, [violation])
            customer_ref = actor.identity

        assessment = assess_request(context, service, request, self._validator)
        report = assessment.report()
        if not assessment.validation.is_valid:
            raise BookingValidationError("Waitlist request failed validation", assessment.validation.errors, report.warnings)
        if assessment.is_available:
            violation = ConstraintViolation(
                constraint_name="waitlist",
                violation_type="slot_available",
                message="The requested time is available and can be booked directly",
                suggested_action="Create a booking instead",
            )
            raise BookingValidationError(violation.message, [violation])

        ahead = sum(
            1
            for entry in self._store.list_waitlist(context.business_id)
            if entry.service_id == service.service_id and entry.requested_start == request.start
        )
        entry = WaitlistEntry(
            id=self._new_id(),
            business_id=context.business_id,
            service_id=service.service_id,
            requested_start=request.start,
            requested_end=request.end,
            party_size=request.party_size,
            estimated_wait_minutes=industry_profile(context.profile.industry).wait_estimate(request.party_size),
            position=ahead + 1,
            customer_ref=customer_ref,
            preferences=dict(request.preferences),
            notes=request.notes,
            created_at=context.now,
        )
        self._store.add_waitlist_entry(context.business_id, entry)

        self._logger.info(
            "Added to waitlist",
            extra={
                "business_id": context.business_id,
                "service": service.service_id,
                "reason": f"position={entry.position}",
            },
        )
        return entry
