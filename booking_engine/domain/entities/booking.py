from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class BookingStatus(str, Enum):
    requested = "requested"
    confirmed = "confirmed"
    rescheduled = "rescheduled"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


TERMINAL_STATUSES = frozenset(
    {
        BookingStatus.completed,
        BookingStatus.cancelled,
        BookingStatus.no_show,
        BookingStatus.rescheduled,
    }
)

# Statuses whose interval still blocks a resource.
OCCUPYING_STATUSES = frozenset({BookingStatus.requested, BookingStatus.confirmed})


@dataclass(frozen=True)
class DepositRecord:
    amount: Decimal
    paid_at: datetime | None = None
    reference: str | None = None


@dataclass(frozen=True)
class BookingRequest:
    business_id: str
    service_id: str
    start: datetime
    end: datetime
    customer_ref: str | None = None
    resource_id: str | None = None  # preferred resource, optional
    preferences: dict[str, Any] = field(default_factory=dict)  # e.g. {"gender": "female"}
    party_size: int = 1
    notes: str | None = None
    custom_data: dict[str, Any] = field(default_factory=dict)
    deposit_amount: Decimal | None = None


@dataclass(frozen=True)
class Booking:
    id: str
    business_id: str
    service_id: str
    start: datetime
    end: datetime
    status: BookingStatus = BookingStatus.requested
    resource_id: str | None = None
    customer_ref: str | None = None
    price: Decimal = Decimal("0.00")
    party_size: int = 1
    deposit: DepositRecord | None = None
    reschedule_count: int = 0
    related_booking_id: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def occupies_resource(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def with_status(self, status: BookingStatus, at: datetime) -> "Booking":
        return replace(self, status=status, updated_at=at)

    def snapshot(self) -> dict[str, Any]:
        """Plain mapping of the booking, stored as before/after state on operations."""
        return {
            "id": self.id,
            "business_id": self.business_id,
            "service_id": self.service_id,
            "resource_id": self.resource_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "status": self.status.value,
            "customer_ref": self.customer_ref,
            "price": str(self.price),
            "party_size": self.party_size,
            "deposit": str(self.deposit.amount) if self.deposit else None,
            "reschedule_count": self.reschedule_count,
            "related_booking_id": self.related_booking_id,
        }
