from dataclasses import fields
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from booking_engine.api.v1.schemas import (
    ActorSchema,
    BookingRequestSchema,
    BookingSchema,
    CreateBookingSchema,
    EvaluationSchema,
    FollowUpSchema,
    OperationPayloadSchema,
    OperationSchema,
    PolicyDecisionSchema,
    SlotSchema,
    StatusHistorySchema,
    TransitionRequestSchema,
    ValidationResponseSchema,
    ViolationSchema,
    WaitlistEntrySchema,
)
from booking_engine.application.exceptions import (
    BookingNotFoundError,
    BookingValidationError,
    BusinessNotFoundError,
    InvalidTransitionError,
    OperationNotPermittedError,
    PolicyConfigurationError,
    PolicyViolationError,
    ServiceNotFoundError,
    SlotConflictError,
)
from booking_engine.application.use_cases.engine import BookingEngine
from booking_engine.domain.entities.booking import Booking, BookingRequest
from booking_engine.domain.entities.constraint import ConstraintViolation
from booking_engine.domain.entities.operation import (
    PAYLOAD_TYPES,
    Actor,
    BookingOperation,
    OperationPayload,
    OperationType,
)
from booking_engine.domain.entities.policy import PolicyAction, PolicyDecision
from booking_engine.domain.entities.waitlist import WaitlistEntry
from booking_engine.wiring.dependencies import get_booking_engine

router = APIRouter()

NOT_FOUND = (BookingNotFoundError, BusinessNotFoundError, ServiceNotFoundError)


@router.post("/bookings/validate", response_model=ValidationResponseSchema)
def validate_booking(
    req: BookingRequestSchema,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        result = engine.validate(_to_request(req))
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))

    return ValidationResponseSchema(
        is_valid=result.is_valid,
        errors=[_violation(v) for v in result.errors],
        warnings=[_violation(v) for v in result.warnings],
        evaluated=[
            EvaluationSchema(
                constraint_name=e.constraint_name,
                constraint_type=e.constraint_type,
                passed=e.passed,
                mandatory=e.mandatory,
                priority=e.priority,
            )
            for e in result.evaluated
        ],
    )


@router.post("/bookings", response_model=BookingSchema, status_code=201)
def create_booking(
    req: CreateBookingSchema,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        booking = engine.create_booking(_to_request(req.request), _to_actor(req.actor))
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OperationNotPermittedError as e:
        raise HTTPException(status_code=403, detail=_error_detail(e))
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=_error_detail(e))
    except SlotConflictError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "conflicts": [b.id for b in e.conflicts]})
    except PolicyConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return _booking_schema(booking, engine.operations_for(booking.business_id, booking.id))


@router.post("/bookings/waitlist", response_model=WaitlistEntrySchema, status_code=201)
def join_waitlist(
    req: CreateBookingSchema,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        entry = engine.join_waitlist(_to_request(req.request), _to_actor(req.actor))
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OperationNotPermittedError as e:
        raise HTTPException(status_code=403, detail=_error_detail(e))
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=_error_detail(e))

    return _waitlist_schema(entry)


@router.get("/businesses/{business_id}/waitlist", response_model=list[WaitlistEntrySchema])
def list_waitlist(
    business_id: str,
    engine: BookingEngine = Depends(get_booking_engine),
):
    return [_waitlist_schema(entry) for entry in engine.waitlist_for(business_id)]


@router.get("/businesses/{business_id}/bookings/{booking_id}", response_model=BookingSchema)
def get_booking(
    business_id: str,
    booking_id: str,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        booking = engine.get_booking(business_id, booking_id)
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _booking_schema(booking)


@router.post("/businesses/{business_id}/bookings/{booking_id}/operations", response_model=BookingSchema)
def apply_operation(
    business_id: str,
    booking_id: str,
    req: TransitionRequestSchema,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        booking = engine.transition(
            business_id,
            booking_id,
            req.operation_type,
            _to_actor(req.actor),
            _to_payload(req.operation_type, req.payload),
        )
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OperationNotPermittedError as e:
        raise HTTPException(status_code=403, detail=_error_detail(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=_error_detail(e))
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=_error_detail(e))
    except SlotConflictError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "conflicts": [b.id for b in e.conflicts]})
    except PolicyViolationError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "reasons": e.decision.reasons})
    except PolicyConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return _booking_schema(booking)


@router.get("/businesses/{business_id}/services/{service_id}/slots", response_model=list[SlotSchema])
def list_slots(
    business_id: str,
    service_id: str,
    day: date,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        slots = engine.generate_slots(business_id, service_id, day)
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [SlotSchema(start=s.start, end=s.end, available=s.available, resource_id=s.resource_id, price=s.price) for s in slots]


@router.get("/businesses/{business_id}/services/{service_id}/suggestions", response_model=list[SlotSchema])
def suggest_slots(
    business_id: str,
    service_id: str,
    preferred_day: date,
    count: int = 3,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        slots = engine.suggest_slots(business_id, service_id, preferred_day, count)
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [SlotSchema(start=s.start, end=s.end, available=s.available, resource_id=s.resource_id, price=s.price) for s in slots]


@router.get("/businesses/{business_id}/bookings/{booking_id}/policy/{action}", response_model=PolicyDecisionSchema)
def evaluate_policy(
    business_id: str,
    booking_id: str,
    action: PolicyAction,
    now: datetime | None = None,
    engine: BookingEngine = Depends(get_booking_engine),
):
    try:
        decision = engine.evaluate_policy(business_id, booking_id, action, now)
    except NOT_FOUND as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PolicyConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _decision_schema(decision)


@router.get("/businesses/{business_id}/bookings/{booking_id}/operations", response_model=list[OperationSchema])
def list_operations(
    business_id: str,
    booking_id: str,
    engine: BookingEngine = Depends(get_booking_engine),
):
    return [_operation_schema(op) for op in engine.operations_for(business_id, booking_id)]


@router.get("/businesses/{business_id}/bookings/{booking_id}/history", response_model=list[StatusHistorySchema])
def list_status_history(
    business_id: str,
    booking_id: str,
    engine: BookingEngine = Depends(get_booking_engine),
):
    return [
        StatusHistorySchema(
            booking_id=entry.booking_id,
            from_status=entry.from_status,
            to_status=entry.to_status,
            changed_at=entry.changed_at,
            operation_id=entry.operation_id,
            changed_by_role=entry.changed_by_role,
            reason=entry.reason,
        )
        for entry in engine.status_history_for(business_id, booking_id)
    ]


def _to_request(req: BookingRequestSchema) -> BookingRequest:
    return BookingRequest(**req.model_dump())


def _to_actor(actor: ActorSchema) -> Actor:
    return Actor(role=actor.role, identity=actor.identity)


def _to_payload(operation_type: OperationType, body: OperationPayloadSchema | None) -> OperationPayload | None:
    """Pick the fields the operation's payload accepts. Missing required fields yield None."""
    if body is None:
        return None
    payload_type = PAYLOAD_TYPES[operation_type]
    accepted = {f.name for f in fields(payload_type)}
    values = {k: v for k, v in body.model_dump(exclude_none=True).items() if k in accepted}
    try:
        return payload_type(**values)
    except TypeError:
        return None


def _violation(v: ConstraintViolation) -> ViolationSchema:
    return ViolationSchema(**v.to_payload())


def _error_detail(e: BookingValidationError) -> dict[str, Any]:
    return {
        "message": str(e),
        "violations": [v.to_payload() for v in e.violations],
        "warnings": [v.to_payload() for v in e.warnings],
    }


def _booking_schema(booking: Booking, operations: list[BookingOperation] | None = None) -> BookingSchema:
    warnings: list[ViolationSchema] = []
    for op in operations or []:
        if op.operation_type == OperationType.create and op.constraints_passed:
            warnings = [_violation(v) for v in op.violations if not v.mandatory]
    return BookingSchema(
        id=booking.id,
        business_id=booking.business_id,
        service_id=booking.service_id,
        start=booking.start,
        end=booking.end,
        status=booking.status,
        resource_id=booking.resource_id,
        customer_ref=booking.customer_ref,
        price=booking.price,
        party_size=booking.party_size,
        reschedule_count=booking.reschedule_count,
        related_booking_id=booking.related_booking_id,
        notes=booking.notes,
        warnings=warnings,
    )


def _decision_schema(decision: PolicyDecision) -> PolicyDecisionSchema:
    return PolicyDecisionSchema(
        action=decision.action,
        allowed=decision.allowed,
        fee_amount=decision.fee_amount,
        refund_eligible=decision.refund_eligible,
        refund_amount=decision.refund_amount,
        deposit_due=decision.deposit_due,
        policy_version=decision.policy_version,
        reasons=decision.reasons,
        warnings=decision.warnings,
        follow_ups=[FollowUpSchema(kind=f.kind, run_at=f.run_at, payload=f.payload) for f in decision.follow_ups],
        block_recommended_until=decision.block_recommended_until,
    )


def _operation_schema(op: BookingOperation) -> OperationSchema:
    return OperationSchema(
        id=op.id,
        booking_id=op.booking_id,
        operation_type=op.operation_type,
        actor=ActorSchema(role=op.actor.role, identity=op.actor.identity),
        created_at=op.created_at,
        constraints_passed=op.constraints_passed,
        violations=[_violation(v) for v in op.violations],
        financial_impact=op.financial_impact,
        related_booking_id=op.related_booking_id,
        reference=op.reference,
    )


def _waitlist_schema(entry: WaitlistEntry) -> WaitlistEntrySchema:
    return WaitlistEntrySchema(
        id=entry.id,
        business_id=entry.business_id,
        service_id=entry.service_id,
        requested_start=entry.requested_start,
        requested_end=entry.requested_end,
        party_size=entry.party_size,
        estimated_wait_minutes=entry.estimated_wait_minutes,
        position=entry.position,
        customer_ref=entry.customer_ref,
        created_at=entry.created_at,
    )
