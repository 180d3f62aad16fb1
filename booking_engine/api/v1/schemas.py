from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from booking_engine.domain.entities.booking import BookingStatus
from booking_engine.domain.entities.operation import ActorRole, OperationType
from booking_engine.domain.entities.policy import PolicyAction


class ActorSchema(BaseModel):
    role: ActorRole
    identity: str | None = None


class BookingRequestSchema(BaseModel):
    business_id: str
    service_id: str
    start: datetime
    end: datetime
    customer_ref: str | None = None
    resource_id: str | None = None
    preferences: dict[str, Any] = Field(default_factory=dict)
    party_size: int = Field(default=1, ge=1)
    notes: str | None = None
    custom_data: dict[str, Any] = Field(default_factory=dict)
    deposit_amount: Decimal | None = None


class CreateBookingSchema(BaseModel):
    request: BookingRequestSchema
    actor: ActorSchema


class OperationPayloadSchema(BaseModel):
    reason: str | None = None
    note: str | None = None
    emergency: bool | None = None
    override_policy: bool | None = None
    automatic: bool | None = None
    new_start: datetime | None = None
    new_end: datetime | None = None
    new_resource_id: str | None = None
    resource_id: str | None = None
    party_size: int | None = Field(default=None, ge=1)
    notes: str | None = None
    amount: Decimal | None = None
    channel: str | None = None


class TransitionRequestSchema(BaseModel):
    operation_type: OperationType
    actor: ActorSchema
    payload: OperationPayloadSchema | None = None


class ViolationSchema(BaseModel):
    constraint_name: str
    violation_type: str
    message: str
    priority: int
    mandatory: bool
    suggested_action: str | None = None


class EvaluationSchema(BaseModel):
    constraint_name: str
    constraint_type: str
    passed: bool
    mandatory: bool
    priority: int


class ValidationResponseSchema(BaseModel):
    is_valid: bool
    errors: list[ViolationSchema] = Field(default_factory=list)
    warnings: list[ViolationSchema] = Field(default_factory=list)
    evaluated: list[EvaluationSchema] = Field(default_factory=list)


class BookingSchema(BaseModel):
    id: str
    business_id: str
    service_id: str
    start: datetime
    end: datetime
    status: BookingStatus
    resource_id: str | None = None
    customer_ref: str | None = None
    price: Decimal
    party_size: int
    reschedule_count: int = 0
    related_booking_id: str | None = None
    notes: str | None = None
    warnings: list[ViolationSchema] = Field(default_factory=list)


class SlotSchema(BaseModel):
    start: datetime
    end: datetime
    available: bool
    resource_id: str | None = None
    price: Decimal | None = None


class FollowUpSchema(BaseModel):
    kind: str
    run_at: datetime
    payload: dict[str, Any] = Field(default_factory=dict)


class PolicyDecisionSchema(BaseModel):
    action: PolicyAction
    allowed: bool
    fee_amount: Decimal
    refund_eligible: bool
    refund_amount: Decimal
    deposit_due: Decimal
    policy_version: int | None = None
    reasons: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    follow_ups: list[FollowUpSchema] = Field(default_factory=list)
    block_recommended_until: datetime | None = None


class OperationSchema(BaseModel):
    id: str
    booking_id: str | None = None
    operation_type: OperationType
    actor: ActorSchema
    created_at: datetime
    constraints_passed: bool
    violations: list[ViolationSchema] = Field(default_factory=list)
    financial_impact: dict[str, Any] = Field(default_factory=dict)
    related_booking_id: str | None = None
    reference: str | None = None


class StatusHistorySchema(BaseModel):
    booking_id: str
    from_status: BookingStatus | None = None
    to_status: BookingStatus
    changed_at: datetime
    operation_id: str
    changed_by_role: ActorRole
    reason: str | None = None


class WaitlistEntrySchema(BaseModel):
    id: str
    business_id: str
    service_id: str
    requested_start: datetime
    requested_end: datetime
    party_size: int
    estimated_wait_minutes: int
    position: int
    customer_ref: str | None = None
    created_at: datetime | None = None
