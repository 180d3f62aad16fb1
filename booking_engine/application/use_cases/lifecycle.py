from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable
from uuid import uuid4

from booking_engine.application.exceptions import (
    BookingValidationError,
    InvalidTransitionError,
    OperationNotPermittedError,
    PolicyViolationError,
    SlotConflictError,
)
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.ports.follow_up_scheduler import FollowUpSchedulerPort
from booking_engine.application.use_cases.check_availability import (
    assess_request,
    localize_request,
    quote_price,
    request_for_booking,
)
from booking_engine.application.use_cases.evaluate_policy import PolicyEngine, select_current_policy
from booking_engine.application.use_cases.validate_booking import ConstraintValidator
from booking_engine.application.utils.constraint_rules import ConstraintCheck
from booking_engine.application.utils.lifecycle_rules import (
    POLICY_OVERRIDE_ROLES,
    history_entry,
    is_permitted,
    next_status,
)
from booking_engine.application.utils.time_windows import to_local
from booking_engine.domain.entities.booking import Booking, BookingRequest, BookingStatus, DepositRecord
from booking_engine.domain.entities.constraint import ConstraintEvaluation, ConstraintViolation
from booking_engine.domain.entities.context import BusinessContext
from booking_engine.domain.entities.operation import (
    PAYLOAD_TYPES,
    Actor,
    ActorRole,
    BookingOperation,
    CancelPayload,
    CreatePayload,
    ModifyPayload,
    NoShowPayload,
    OperationPayload,
    OperationType,
    ReschedulePayload,
    StatusHistoryEntry,
)
from booking_engine.domain.entities.policy import PolicyDecision, ScheduledFollowUp
from booking_engine.domain.entities.service_catalog import ServiceDefinition


def prior_no_shows(context: BusinessContext, booking: Booking) -> list[datetime]:
    """Start times of the same customer's earlier no-shows in this business."""
    if booking.customer_ref is None:
        return []
    return [
        other.start
        for other in context.bookings
        if other.id != booking.id
        and other.customer_ref == booking.customer_ref
        and other.status == BookingStatus.no_show
    ]


def creation_payload(service: ServiceDefinition, request: BookingRequest) -> CreatePayload:
    return CreatePayload(
        service_id=service.service_id,
        start=request.start,
        end=request.end,
        resource_id=request.resource_id,
        party_size=request.party_size,
    )


def _policy_violation(decision: PolicyDecision) -> ConstraintViolation:
    return ConstraintViolation(
        constraint_name="booking_policy",
        violation_type=f"{decision.action.value}_not_allowed",
        message="; ".join(decision.reasons) or "Not allowed by the booking policy",
    )


class LifecycleManager:
    """
    The only place bookings change.

    Every attempt, successful or not, leaves a BookingOperation behind. Successful
    ones are committed together with the updated bookings and their status
    history against the snapshot version they were decided on; a
    StaleSnapshotError from the store is left for the caller to retry.
    """

    def __init__(
        self,
        store: BookingStorePort,
        scheduler: FollowUpSchedulerPort,
        validator: ConstraintValidator,
        policy_engine: PolicyEngine,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._validator = validator
        self._policies = policy_engine
        self._new_id = id_factory or (lambda: uuid4().hex)
        self._logger = logging.getLogger(__name__)

    def create(
        self,
        context: BusinessContext,
        service: ServiceDefinition,
        request: BookingRequest,
        actor: Actor,
    ) -> Booking:
        request = localize_request(request, context)
        payload = creation_payload(service, request)

        customer_ref = request.customer_ref
        if actor.role == ActorRole.customer:
            if customer_ref is not None and customer_ref != actor.identity:
                violation = self._not_permitted(OperationType.create, actor)
                self._reject(context, None, OperationType.create, actor, payload, [violation])
                raise OperationNotPermittedError(violation.message, [violation])
            customer_ref = actor.identity

        assessment = assess_request(context, service, request, self._validator, OperationType.create, actor.role)
        report = assessment.report()

        if not assessment.validation.is_valid:
            self._reject(
                context,
                None,
                OperationType.create,
                actor,
                payload,
                report.errors,
                report.evaluated,
            )
            raise BookingValidationError(
                "Booking request failed validation",
                assessment.validation.errors,
                report.warnings,
            )

        if not assessment.is_available:
            self._reject(
                context,
                None,
                OperationType.create,
                actor,
                payload,
                report.errors,
                report.evaluated,
            )
            raise SlotConflictError("Requested time is not available", assessment.conflicts)

        now = context.now
        booking = Booking(
            id=self._new_id(),
            business_id=context.business_id,
            service_id=service.service_id,
            start=request.start,
            end=request.end,
            status=BookingStatus.requested,
            resource_id=assessment.resource.id if assessment.resource else None,
            customer_ref=customer_ref,
            price=quote_price(context, service, assessment.resource, request.start, request.party_size),
            party_size=request.party_size,
            deposit=DepositRecord(request.deposit_amount, paid_at=now) if request.deposit_amount else None,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )

        policy = select_current_policy(context.policies, context.business_id, now, context.rule_set)
        payment = self._policies.evaluate_payment(booking, policy, context.rule_set, now)

        operation = self._operation(
            context,
            booking.id,
            OperationType.create,
            actor,
            replace(payload, resource_id=booking.resource_id),
            previous_state={},
            new_state=booking.snapshot(),
            evaluated=report.evaluated,
            violations=report.warnings,
            financial_impact=payment.financial_impact(),
        )
        self._commit(context, [booking], [operation])
        self._schedule(self._policies.schedule_follow_ups(booking, policy, now))

        self._logger.info(
            "Booking created",
            extra={
                "booking_id": booking.id,
                "business_id": booking.business_id,
                "service": booking.service_id,
                "operation": OperationType.create.value,
            },
        )
        return booking

    def transition(
        self,
        context: BusinessContext,
        booking: Booking,
        service: ServiceDefinition,
        operation_type: OperationType,
        actor: Actor,
        payload: OperationPayload | None = None,
    ) -> Booking:
        """Apply one operation to an existing booking and return the booking the caller should now see."""
        if operation_type == OperationType.create:
            violation = ConstraintViolation(
                constraint_name="lifecycle",
                violation_type="invalid_transition",
                message="An existing booking cannot be created again",
            )
            self._reject(context, booking, operation_type, actor, payload, [violation])
            raise InvalidTransitionError(violation.message, [violation])

        typed = self._coerce_payload(operation_type, payload)
        if typed is None:
            violation = ConstraintViolation(
                constraint_name="lifecycle",
                violation_type="malformed_payload",
                message=f"Payload does not match a {operation_type.value} operation",
            )
            self._reject(context, booking, operation_type, actor, payload, [violation])
            raise BookingValidationError(violation.message, [violation])

        customer_mismatch = actor.role == ActorRole.customer and booking.customer_ref != actor.identity
        if not is_permitted(operation_type, actor.role) or customer_mismatch:
            violation = self._not_permitted(operation_type, actor)
            self._reject(context, booking, operation_type, actor, typed, [violation])
            raise OperationNotPermittedError(violation.message, [violation])

        if next_status(operation_type, booking.status) is None:
            violation = ConstraintViolation(
                constraint_name="lifecycle",
                violation_type="invalid_transition",
                message=f"Cannot {operation_type.value} a booking that is {booking.status.value}",
            )
            self._reject(context, booking, operation_type, actor, typed, [violation])
            raise InvalidTransitionError(violation.message, [violation])

        if operation_type == OperationType.cancel:
            return self._cancel(context, booking, actor, typed)
        if operation_type == OperationType.reschedule:
            return self._reschedule(context, booking, service, actor, typed)
        if operation_type == OperationType.no_show:
            return self._no_show(context, booking, actor, typed)
        if operation_type == OperationType.modify:
            return self._modify(context, booking, service, actor, typed)
        if operation_type in (OperationType.confirm, OperationType.complete):
            return self._advance(context, booking, operation_type, actor, typed)
        return self._audit_only(context, booking, operation_type, actor, typed)

    def _advance(
        self,
        context: BusinessContext,
        booking: Booking,
        operation_type: OperationType,
        actor: Actor,
        payload: OperationPayload,
    ) -> Booking:
        updated = booking.with_status(next_status(operation_type, booking.status), context.now)
        operation = self._operation(
            context,
            booking.id,
            operation_type,
            actor,
            payload,
            previous_state=booking.snapshot(),
            new_state=updated.snapshot(),
        )
        self._commit(context, [updated], [operation])
        self._log_transition(updated, operation_type)
        return updated

    def _cancel(
        self,
        context: BusinessContext,
        booking: Booking,
        actor: Actor,
        payload: CancelPayload,
    ) -> Booking:
        can_override = payload.override_policy and actor.role in POLICY_OVERRIDE_ROLES

        validation = self._validator.validate(
            ConstraintCheck(
                operation_type=OperationType.cancel,
                start=booking.start,
                end=booking.end,
                now=context.now,
                timezone=context.profile.tz,
                party_size=booking.party_size,
                resource=context.resource(booking.resource_id),
                actor_role=actor.role,
            ),
            context.rule_set,
            context.constraints,
            context.overrides,
        )
        if not validation.is_valid and not can_override:
            self._reject(context, booking, OperationType.cancel, actor, payload, validation.errors, validation.evaluated)
            raise BookingValidationError("Cancellation failed validation", validation.errors, validation.warnings)

        policy = select_current_policy(context.policies, context.business_id, context.now, context.rule_set)
        decision = self._policies.evaluate_cancellation(booking, policy, context.now, emergency=payload.emergency)
        recorded = list(validation.errors) + list(validation.warnings)
        if not decision.allowed:
            if not can_override:
                self._reject(context, booking, OperationType.cancel, actor, payload, [_policy_violation(decision)])
                raise PolicyViolationError("Cancellation not allowed by policy", decision)
            recorded.append(replace(_policy_violation(decision), mandatory=False))

        updated = booking.with_status(BookingStatus.cancelled, context.now)
        operation = self._operation(
            context,
            booking.id,
            OperationType.cancel,
            actor,
            payload,
            previous_state=booking.snapshot(),
            new_state=updated.snapshot(),
            evaluated=validation.evaluated,
            violations=recorded,
            financial_impact=decision.financial_impact(),
        )
        self._commit(context, [updated], [operation])
        self._schedule(decision.follow_ups)
        self._log_transition(updated, OperationType.cancel, payload.reason)
        return updated

    def _no_show(
        self,
        context: BusinessContext,
        booking: Booking,
        actor: Actor,
        payload: NoShowPayload,
    ) -> Booking:
        policy = select_current_policy(context.policies, context.business_id, context.now, context.rule_set)
        decision = self._policies.evaluate_no_show(booking, policy, context.now, prior_no_shows(context, booking))
        if not decision.allowed:
            self._reject(context, booking, OperationType.no_show, actor, payload, [_policy_violation(decision)])
            raise PolicyViolationError("No-show not allowed yet", decision)

        recorded: list[ConstraintViolation] = []
        if decision.block_recommended_until is not None:
            recorded.append(
                ConstraintViolation(
                    constraint_name="repeat_no_show",
                    violation_type="blocking_recommended",
                    message=f"Customer blocking recommended until {decision.block_recommended_until.isoformat()}",
                    priority=5,
                    mandatory=False,
                )
            )

        updated = booking.with_status(BookingStatus.no_show, context.now)
        operation = self._operation(
            context,
            booking.id,
            OperationType.no_show,
            actor,
            payload,
            previous_state=booking.snapshot(),
            new_state=updated.snapshot(),
            violations=recorded,
            financial_impact=decision.financial_impact(),
        )
        self._commit(context, [updated], [operation])
        self._log_transition(updated, OperationType.no_show, payload.reason)
        return updated

    def _modify(
        self,
        context: BusinessContext,
        booking: Booking,
        service: ServiceDefinition,
        actor: Actor,
        payload: ModifyPayload,
    ) -> Booking:
        changes: dict[str, Any] = {}
        if payload.resource_id is not None and payload.resource_id != booking.resource_id:
            changes["resource_id"] = payload.resource_id
        if payload.party_size is not None and payload.party_size != booking.party_size:
            changes["party_size"] = payload.party_size
        if payload.notes is not None:
            changes["notes"] = payload.notes
        updated = replace(booking, updated_at=context.now, **changes)

        evaluated: list[ConstraintEvaluation] = []
        warnings: list[ConstraintViolation] = []
        if "resource_id" in changes or "party_size" in changes:
            assessment = assess_request(
                context,
                service,
                request_for_booking(updated),
                self._validator,
                OperationType.modify,
                actor.role,
                exclude_booking_id=booking.id,
            )
            report = assessment.report()
            if not assessment.validation.is_valid:
                self._reject(context, booking, OperationType.modify, actor, payload, report.errors, report.evaluated)
                raise BookingValidationError("Modification failed validation", assessment.validation.errors, report.warnings)
            keeps_resource = (
                service.resource_type is None
                or (assessment.resource is not None and assessment.resource.id == updated.resource_id)
            )
            if not assessment.is_available or not keeps_resource:
                self._reject(context, booking, OperationType.modify, actor, payload, report.errors, report.evaluated)
                raise SlotConflictError("Requested resource is not available", assessment.conflicts)
            evaluated = report.evaluated
            warnings = [warning for warning in report.warnings if warning.violation_type != "requested_resource_unavailable"]
            updated = replace(
                updated,
                price=quote_price(
                    context,
                    service,
                    context.resource(updated.resource_id),
                    updated.start,
                    updated.party_size,
                ),
            )

        operation = self._operation(
            context,
            booking.id,
            OperationType.modify,
            actor,
            payload,
            previous_state=booking.snapshot(),
            new_state=updated.snapshot(),
            evaluated=evaluated,
            violations=warnings,
        )
        self._commit(context, [updated], [operation])
        self._log_transition(updated, OperationType.modify)
        return updated

    def _reschedule(
        self,
        context: BusinessContext,
        booking: Booking,
        service: ServiceDefinition,
        actor: Actor,
        payload: ReschedulePayload,
    ) -> Booking:
        """
        Close the old booking as rescheduled and open a confirmed one at the new time.

        Two operations are written in one commit: the reschedule of the old
        booking and the create of the new one. They point at each other through
        related_booking_id and share a reference.
        """
        tz = context.profile.tz
        payload = replace(payload, new_start=to_local(payload.new_start, tz), new_end=to_local(payload.new_end, tz))
        now = context.now
        policy = select_current_policy(context.policies, context.business_id, now, context.rule_set)
        decision = self._policies.evaluate_reschedule(booking, policy, now, payload.new_start)
        if not decision.allowed:
            self._reject(context, booking, OperationType.reschedule, actor, payload, [_policy_violation(decision)])
            raise PolicyViolationError("Reschedule not allowed by policy", decision)

        request = request_for_booking(
            booking,
            start=payload.new_start,
            end=payload.new_end,
            resource_id=payload.new_resource_id or booking.resource_id,
        )
        assessment = assess_request(
            context,
            service,
            request,
            self._validator,
            OperationType.reschedule,
            actor.role,
            exclude_booking_id=booking.id,
        )
        report = assessment.report()
        if not assessment.validation.is_valid:
            self._reject(context, booking, OperationType.reschedule, actor, payload, report.errors, report.evaluated)
            raise BookingValidationError("New time failed validation", assessment.validation.errors, report.warnings)
        if not assessment.is_available:
            self._reject(context, booking, OperationType.reschedule, actor, payload, report.errors, report.evaluated)
            raise SlotConflictError("New time is not available", assessment.conflicts)

        new_id = self._new_id()
        reference = self._new_id()
        closed = replace(booking, status=BookingStatus.rescheduled, related_booking_id=new_id, updated_at=now)
        opened = Booking(
            id=new_id,
            business_id=booking.business_id,
            service_id=booking.service_id,
            start=payload.new_start,
            end=payload.new_end,
            status=BookingStatus.confirmed,
            resource_id=assessment.resource.id if assessment.resource else None,
            customer_ref=booking.customer_ref,
            price=quote_price(context, service, assessment.resource, payload.new_start, booking.party_size),
            party_size=booking.party_size,
            deposit=booking.deposit,
            reschedule_count=booking.reschedule_count + 1,
            related_booking_id=booking.id,
            notes=booking.notes,
            created_at=now,
            updated_at=now,
        )

        close_operation = self._operation(
            context,
            booking.id,
            OperationType.reschedule,
            actor,
            replace(payload, rescheduled_to=new_id),
            previous_state=booking.snapshot(),
            new_state=closed.snapshot(),
            evaluated=report.evaluated,
            violations=report.warnings,
            financial_impact=decision.financial_impact(),
            related_booking_id=new_id,
            reference=reference,
        )
        open_operation = self._operation(
            context,
            new_id,
            OperationType.create,
            actor,
            CreatePayload(
                service_id=opened.service_id,
                start=opened.start,
                end=opened.end,
                resource_id=opened.resource_id,
                party_size=opened.party_size,
                initial_status=BookingStatus.confirmed,
                rescheduled_from=booking.id,
            ),
            previous_state={},
            new_state=opened.snapshot(),
            related_booking_id=booking.id,
            reference=reference,
        )
        self._commit(context, [closed, opened], [close_operation, open_operation])
        self._schedule(self._policies.schedule_follow_ups(opened, policy, now))

        self._logger.info(
            "Booking rescheduled",
            extra={
                "booking_id": booking.id,
                "business_id": booking.business_id,
                "operation": OperationType.reschedule.value,
                "reason": f"rescheduled_to={new_id}",
            },
        )
        return opened

    def _audit_only(
        self,
        context: BusinessContext,
        booking: Booking,
        operation_type: OperationType,
        actor: Actor,
        payload: OperationPayload,
    ) -> Booking:
        """Refunds, charges and reminders are recorded without touching the booking."""
        financial_impact: dict[str, Any] = {}
        if operation_type in (OperationType.refund, OperationType.charge):
            amount = Decimal(payload.amount)
            if amount <= 0:
                violation = ConstraintViolation(
                    constraint_name="lifecycle",
                    violation_type="malformed_payload",
                    message=f"A {operation_type.value} needs a positive amount",
                )
                self._reject(context, booking, operation_type, actor, payload, [violation])
                raise BookingValidationError(violation.message, [violation])
            financial_impact[operation_type.value] = str(amount)

        operation = self._operation(
            context,
            booking.id,
            operation_type,
            actor,
            payload,
            previous_state=booking.snapshot(),
            new_state=booking.snapshot(),
            financial_impact=financial_impact,
        )
        self._store.append_operation(context.business_id, operation)
        self._log_transition(booking, operation_type)
        return booking

    def reject_lost_race(
        self,
        context: BusinessContext,
        booking: Booking | None,
        operation_type: OperationType,
        actor: Actor,
        payload: OperationPayload | None,
    ) -> BookingOperation:
        """Record an attempt whose commit kept finding the bookings changed underneath it."""
        violation = ConstraintViolation(
            constraint_name="time_slot_availability",
            violation_type="slot_no_longer_available",
            message="Slot no longer available",
            suggested_action="Choose a different time",
        )
        return self._reject(context, booking, operation_type, actor, payload, [violation])

    def _coerce_payload(
        self,
        operation_type: OperationType,
        payload: OperationPayload | None,
    ) -> OperationPayload | None:
        expected = PAYLOAD_TYPES[operation_type]
        if payload is None:
            try:
                return expected()
            except TypeError:
                # Payload has required fields.
                return None
        if not isinstance(payload, expected):
            return None
        return payload

    def _not_permitted(self, operation_type: OperationType, actor: Actor) -> ConstraintViolation:
        return ConstraintViolation(
            constraint_name="authorization",
            violation_type="not_permitted",
            message=f"{actor.role.value} is not allowed to {operation_type.value} this booking",
        )

    def _operation(
        self,
        context: BusinessContext,
        booking_id: str | None,
        operation_type: OperationType,
        actor: Actor,
        payload: OperationPayload | None,
        previous_state: dict[str, Any],
        new_state: dict[str, Any],
        evaluated: Iterable[ConstraintEvaluation] = (),
        violations: Iterable[ConstraintViolation] = (),
        financial_impact: dict[str, Any] | None = None,
        related_booking_id: str | None = None,
        reference: str | None = None,
        passed: bool = True,
    ) -> BookingOperation:
        return BookingOperation(
            id=self._new_id(),
            business_id=context.business_id,
            booking_id=booking_id,
            operation_type=operation_type,
            actor=actor,
            payload=payload,
            created_at=context.now,
            previous_state=previous_state,
            new_state=new_state,
            constraints_evaluated=list(evaluated),
            constraints_passed=passed,
            violations=list(violations),
            financial_impact=dict(financial_impact or {}),
            related_booking_id=related_booking_id,
            reference=reference,
        )

    def _reject(
        self,
        context: BusinessContext,
        booking: Booking | None,
        operation_type: OperationType,
        actor: Actor,
        payload: OperationPayload | None,
        violations: Iterable[ConstraintViolation],
        evaluated: Iterable[ConstraintEvaluation] = (),
    ) -> BookingOperation:
        state = booking.snapshot() if booking else {}
        operation = self._operation(
            context,
            booking.id if booking else None,
            operation_type,
            actor,
            payload,
            previous_state=state,
            new_state=state,
            evaluated=evaluated,
            violations=violations,
            passed=False,
        )
        self._store.append_operation(context.business_id, operation)
        self._logger.info(
            "Operation rejected",
            extra={
                "booking_id": operation.booking_id,
                "business_id": context.business_id,
                "operation": operation_type.value,
                "reason": ",".join(violation.violation_type for violation in operation.violations),
            },
        )
        return operation

    def _commit(
        self,
        context: BusinessContext,
        bookings: list[Booking],
        operations: list[BookingOperation],
    ) -> int:
        history: list[StatusHistoryEntry] = []
        for operation in operations:
            entry = history_entry(operation, getattr(operation.payload, "reason", None))
            if entry is not None:
                history.append(entry)
        return self._store.commit(context.business_id, context.snapshot.version, bookings, operations, history)

    def _schedule(self, follow_ups: Iterable[ScheduledFollowUp]) -> None:
        for follow_up in follow_ups:
            self._scheduler.schedule(follow_up)

    def _log_transition(self, booking: Booking, operation_type: OperationType, reason: str | None = None) -> None:
        self._logger.info(
            "Booking updated",
            extra={
                "booking_id": booking.id,
                "business_id": booking.business_id,
                "operation": operation_type.value,
                "reason": reason,
            },
        )
