from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union, get_args

from booking_engine.domain.entities.booking import BookingStatus
from booking_engine.domain.entities.constraint import ConstraintEvaluation, ConstraintViolation


class OperationType(str, Enum):
    create = "create"
    confirm = "confirm"
    cancel = "cancel"
    reschedule = "reschedule"
    no_show = "no_show"
    complete = "complete"
    modify = "modify"
    refund = "refund"
    charge = "charge"
    reminder_sent = "reminder_sent"


class ActorRole(str, Enum):
    customer = "customer"
    staff = "staff"
    system = "system"
    admin = "admin"


@dataclass(frozen=True)
class Actor:
    role: ActorRole
    identity: str | None = None


@dataclass(frozen=True)
class CreatePayload:
    operation_type: ClassVar[OperationType] = OperationType.create

    service_id: str
    start: datetime
    end: datetime
    resource_id: str | None = None
    party_size: int = 1
    initial_status: BookingStatus = BookingStatus.requested
    rescheduled_from: str | None = None


@dataclass(frozen=True)
class ConfirmPayload:
    operation_type: ClassVar[OperationType] = OperationType.confirm

    note: str | None = None


@dataclass(frozen=True)
class CancelPayload:
    operation_type: ClassVar[OperationType] = OperationType.cancel

    reason: str | None = None
    emergency: bool = False
    override_policy: bool = False


@dataclass(frozen=True)
class ReschedulePayload:
    operation_type: ClassVar[OperationType] = OperationType.reschedule

    new_start: datetime
    new_end: datetime
    new_resource_id: str | None = None
    reason: str | None = None
    rescheduled_to: str | None = None  # filled in by the engine once the new booking id exists


@dataclass(frozen=True)
class NoShowPayload:
    operation_type: ClassVar[OperationType] = OperationType.no_show

    reason: str | None = None
    automatic: bool = False


@dataclass(frozen=True)
class CompletePayload:
    operation_type: ClassVar[OperationType] = OperationType.complete

    note: str | None = None


@dataclass(frozen=True)
class ModifyPayload:
    operation_type: ClassVar[OperationType] = OperationType.modify

    resource_id: str | None = None
    party_size: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RefundPayload:
    operation_type: ClassVar[OperationType] = OperationType.refund

    amount: Decimal
    reason: str | None = None


@dataclass(frozen=True)
class ChargePayload:
    operation_type: ClassVar[OperationType] = OperationType.charge

    amount: Decimal
    reason: str | None = None


@dataclass(frozen=True)
class ReminderSentPayload:
    operation_type: ClassVar[OperationType] = OperationType.reminder_sent

    channel: str | None = None


OperationPayload = Union[
    CreatePayload,
    ConfirmPayload,
    CancelPayload,
    ReschedulePayload,
    NoShowPayload,
    CompletePayload,
    ModifyPayload,
    RefundPayload,
    ChargePayload,
    ReminderSentPayload,
]

PAYLOAD_TYPES: dict[OperationType, type] = {
    payload_type.operation_type: payload_type
    for payload_type in get_args(OperationPayload)
}


@dataclass(frozen=True)
class BookingOperation:
    id: str
    business_id: str
    booking_id: str | None
    operation_type: OperationType
    actor: Actor
    payload: OperationPayload | None
    created_at: datetime
    previous_state: dict[str, Any] = field(default_factory=dict)
    new_state: dict[str, Any] = field(default_factory=dict)
    constraints_evaluated: list[ConstraintEvaluation] = field(default_factory=list)
    constraints_passed: bool = True
    violations: list[ConstraintViolation] = field(default_factory=list)
    financial_impact: dict[str, Any] = field(default_factory=dict)
    related_booking_id: str | None = None
    reference: str | None = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    booking_id: str
    from_status: BookingStatus | None
    to_status: BookingStatus
    changed_at: datetime
    operation_id: str
    changed_by_role: ActorRole
    reason: str | None = None
