from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from booking_engine.application.use_cases.match_resources import ResourceMatcher
from booking_engine.application.use_cases.validate_booking import ConstraintValidator
from booking_engine.application.utils.conflicts import find_conflicts
from booking_engine.application.utils.constraint_rules import ConstraintCheck
from booking_engine.application.utils.industry import industry_profile
from booking_engine.application.utils.time_windows import to_local
from booking_engine.domain.entities.booking import Booking, BookingRequest
from booking_engine.domain.entities.constraint import BookingValidation, ConstraintEvaluation, ConstraintViolation
from booking_engine.domain.entities.context import BusinessContext
from booking_engine.domain.entities.operation import ActorRole, OperationType
from booking_engine.domain.entities.resource import Resource
from booking_engine.domain.entities.service_catalog import ServiceDefinition


@dataclass(frozen=True)
class RequestAssessment:
    """Constraint result plus whether the window is free and who would take it."""

    validation: BookingValidation
    resource: Resource | None = None
    availability_errors: list[ConstraintViolation] = field(default_factory=list)
    warnings: list[ConstraintViolation] = field(default_factory=list)
    conflicts: list[Booking] = field(default_factory=list)
    availability_checked: bool = False

    @property
    def is_available(self) -> bool:
        return not self.availability_errors

    def report(self) -> BookingValidation:
        """One combined validation result for callers that only want to know yes/no and why."""
        evaluated = list(self.validation.evaluated)
        if self.availability_checked:
            evaluated.append(
                ConstraintEvaluation("time_slot_availability", "availability", self.is_available, True, 1)
            )
        errors = self.validation.errors + self.availability_errors
        return BookingValidation(
            is_valid=not errors,
            errors=errors,
            warnings=self.validation.warnings + self.warnings,
            evaluated=evaluated,
        )


def build_check(
    context: BusinessContext,
    service: ServiceDefinition,
    request: BookingRequest,
    operation_type: OperationType = OperationType.create,
    actor_role: ActorRole | None = None,
) -> ConstraintCheck:
    request = localize_request(request, context)
    return ConstraintCheck(
        operation_type=operation_type,
        start=request.start,
        end=request.end,
        now=context.now,
        timezone=context.profile.tz,
        party_size=request.party_size,
        service=service,
        resource=context.resource(request.resource_id),
        resources=context.resources,
        skills=context.skills,
        working_hours=context.profile.working_hours,
        custom_data=dict(request.custom_data),
        deposit_amount=request.deposit_amount,
        actor_role=actor_role,
    )


def assess_request(
    context: BusinessContext,
    service: ServiceDefinition,
    request: BookingRequest,
    validator: ConstraintValidator,
    operation_type: OperationType = OperationType.create,
    actor_role: ActorRole | None = None,
    exclude_booking_id: str | None = None,
) -> RequestAssessment:
    """
    Validate a request and find out whether its window can be served.

    Services without a resource type are checked against every booking of the
    business unless double booking is allowed. Otherwise a resource is matched;
    a requested resource that is not free falls back to the best match with a
    warning.
    """
    request = localize_request(request, context)
    validation = validator.validate(
        build_check(context, service, request, operation_type, actor_role),
        context.rule_set,
        context.constraints,
        context.overrides,
    )
    if request.end <= request.start:
        return RequestAssessment(validation=validation)

    rule_set = context.rule_set

    if service.resource_type is None:
        clashes: list[Booking] = []
        if not rule_set.allow_double_booking:
            clashes = find_conflicts(
                request.start,
                request.end,
                context.bookings,
                rule_set.buffer_minutes,
                exclude_booking_id,
            )
        return RequestAssessment(
            validation=validation,
            availability_errors=[_conflict_violation(clashes)] if clashes else [],
            conflicts=clashes,
            availability_checked=True,
        )

    match = ResourceMatcher.for_industry(context.profile.industry).find_available(
        service,
        request.start,
        request.end,
        context.resources,
        context.skills,
        context.bookings,
        preferences=request.preferences,
        buffer_minutes=rule_set.buffer_minutes,
        timezone=context.profile.tz,
        business_hours=context.profile.working_hours,
        party_size=request.party_size,
        exclude_booking_id=exclude_booking_id,
    )
    warnings = list(match.warnings)

    chosen = match.best
    if request.resource_id is not None:
        requested = next((resource for resource in match.resources if resource.id == request.resource_id), None)
        if requested is not None:
            chosen = requested
        elif chosen is not None:
            warnings.append(
                ConstraintViolation(
                    constraint_name="resource_preference",
                    violation_type="requested_resource_unavailable",
                    message=f"Requested resource is not available, assigned {chosen.name} instead",
                    priority=5,
                    mandatory=False,
                )
            )

    if chosen is not None:
        return RequestAssessment(
            validation=validation,
            resource=chosen,
            warnings=warnings,
            availability_checked=True,
        )

    conflicts: list[Booking] = []
    if request.resource_id is not None:
        conflicts = find_conflicts(
            request.start,
            request.end,
            [booking for booking in context.bookings if booking.resource_id == request.resource_id],
            rule_set.buffer_minutes,
            exclude_booking_id,
        )
    return RequestAssessment(
        validation=validation,
        availability_errors=[_conflict_violation(conflicts)],
        warnings=warnings,
        conflicts=conflicts,
        availability_checked=True,
    )


def _conflict_violation(conflicts: list[Booking]) -> ConstraintViolation:
    if conflicts:
        return ConstraintViolation(
            constraint_name="time_slot_availability",
            violation_type="booking_conflict",
            message=f"Time slot conflicts with {len(conflicts)} existing booking(s)",
            suggested_action="Choose a different time",
        )
    return ConstraintViolation(
        constraint_name="time_slot_availability",
        violation_type="no_resource_available",
        message="No qualified resource is free for this time",
        suggested_action="Choose a different time",
    )


def request_for_booking(booking: Booking, **changes) -> BookingRequest:
    """Rebuild the request a booking was made from, with some fields changed."""
    request = BookingRequest(
        business_id=booking.business_id,
        service_id=booking.service_id,
        start=booking.start,
        end=booking.end,
        customer_ref=booking.customer_ref,
        resource_id=booking.resource_id,
        party_size=booking.party_size,
        notes=booking.notes,
        deposit_amount=booking.deposit.amount if booking.deposit else None,
    )
    return replace(request, **changes)


def localize_request(request: BookingRequest, context: BusinessContext) -> BookingRequest:
    """Pin naive start/end to the business timezone; aware values are kept as given."""
    if request.start.tzinfo is not None and request.end.tzinfo is not None:
        return request
    tz = context.profile.tz
    return replace(request, start=to_local(request.start, tz), end=to_local(request.end, tz))


def quote_price(
    context: BusinessContext,
    service: ServiceDefinition,
    resource: Resource | None,
    start: datetime,
    party_size: int = 1,
) -> Decimal:
    """Price of the service for this resource and time under the business's industry pricing."""
    pricing = industry_profile(context.profile.industry).pricing
    return pricing(service, resource, context.skills, to_local(start, context.profile.tz), party_size)
