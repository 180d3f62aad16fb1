from __future__ import annotations

from typing import Iterable

from booking_engine.domain.entities.booking import BookingStatus
from booking_engine.domain.entities.operation import (
    ActorRole,
    BookingOperation,
    CreatePayload,
    OperationType,
    StatusHistoryEntry,
)

# operation -> {from_status: to_status}. Audit-only operations keep the status.
TRANSITIONS: dict[OperationType, dict[BookingStatus, BookingStatus]] = {
    OperationType.confirm: {BookingStatus.requested: BookingStatus.confirmed},
    OperationType.cancel: {
        BookingStatus.requested: BookingStatus.cancelled,
        BookingStatus.confirmed: BookingStatus.cancelled,
    },
    OperationType.reschedule: {BookingStatus.confirmed: BookingStatus.rescheduled},
    OperationType.no_show: {BookingStatus.confirmed: BookingStatus.no_show},
    OperationType.complete: {BookingStatus.confirmed: BookingStatus.completed},
    OperationType.modify: {
        BookingStatus.requested: BookingStatus.requested,
        BookingStatus.confirmed: BookingStatus.confirmed,
    },
    OperationType.reminder_sent: {
        BookingStatus.requested: BookingStatus.requested,
        BookingStatus.confirmed: BookingStatus.confirmed,
    },
    OperationType.refund: {status: status for status in BookingStatus},
    OperationType.charge: {status: status for status in BookingStatus},
}

ROLE_PERMISSIONS: dict[OperationType, frozenset[ActorRole]] = {
    OperationType.create: frozenset({ActorRole.customer, ActorRole.staff, ActorRole.admin, ActorRole.system}),
    OperationType.confirm: frozenset({ActorRole.staff, ActorRole.admin, ActorRole.system}),
    OperationType.cancel: frozenset({ActorRole.customer, ActorRole.staff, ActorRole.admin, ActorRole.system}),
    OperationType.reschedule: frozenset({ActorRole.customer, ActorRole.staff, ActorRole.admin}),
    OperationType.no_show: frozenset({ActorRole.staff, ActorRole.admin, ActorRole.system}),
    OperationType.complete: frozenset({ActorRole.staff, ActorRole.admin, ActorRole.system}),
    OperationType.modify: frozenset({ActorRole.customer, ActorRole.staff, ActorRole.admin}),
    OperationType.refund: frozenset({ActorRole.staff, ActorRole.admin}),
    OperationType.charge: frozenset({ActorRole.staff, ActorRole.admin}),
    OperationType.reminder_sent: frozenset({ActorRole.staff, ActorRole.admin, ActorRole.system}),
}

# Roles allowed to push a cancellation through when the policy refuses it.
POLICY_OVERRIDE_ROLES = frozenset({ActorRole.staff, ActorRole.admin})


def is_permitted(operation_type: OperationType, role: ActorRole) -> bool:
    return role in ROLE_PERMISSIONS[operation_type]


def next_status(operation_type: OperationType, current: BookingStatus) -> BookingStatus | None:
    """Status after applying the operation, or None if it is not allowed from `current`."""
    return TRANSITIONS.get(operation_type, {}).get(current)


def replay_status(operations: Iterable[BookingOperation]) -> BookingStatus | None:
    """Fold a booking's successful operations, oldest first, into its status."""
    status: BookingStatus | None = None
    for operation in operations:
        if not operation.constraints_passed:
            continue
        if operation.operation_type == OperationType.create:
            payload = operation.payload
            status = payload.initial_status if isinstance(payload, CreatePayload) else BookingStatus.requested
            continue
        if status is None:
            continue
        status = next_status(operation.operation_type, status) or status
    return status


def history_entry(operation: BookingOperation, reason: str | None = None) -> StatusHistoryEntry | None:
    """History row for an operation that changed (or set) a booking's status."""
    if operation.booking_id is None or not operation.constraints_passed:
        return None
    before = operation.previous_state.get("status")
    after = operation.new_state.get("status")
    if after is None or before == after:
        return None
    return StatusHistoryEntry(
        booking_id=operation.booking_id,
        from_status=BookingStatus(before) if before else None,
        to_status=BookingStatus(after),
        changed_at=operation.created_at,
        operation_id=operation.id,
        changed_by_role=operation.actor.role,
        reason=reason,
    )
