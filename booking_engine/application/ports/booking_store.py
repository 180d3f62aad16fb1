from __future__ import annotations

from abc import ABC, abstractmethod

from booking_engine.domain.entities.booking import Booking
from booking_engine.domain.entities.context import BookingSnapshot
from booking_engine.domain.entities.operation import BookingOperation, StatusHistoryEntry
from booking_engine.domain.entities.waitlist import WaitlistEntry


class BookingStorePort(ABC):
    @abstractmethod
    def snapshot(self, business_id: str) -> BookingSnapshot:
        """Read all bookings of a business together with the current version."""
        raise NotImplementedError

    @abstractmethod
    def get_booking(self, business_id: str, booking_id: str) -> Booking | None:
        """Get a booking, or None if it does not exist inside this business."""
        raise NotImplementedError

    @abstractmethod
    def commit(
        self,
        business_id: str,
        expected_version: int,
        bookings: list[Booking],
        operations: list[BookingOperation],
        history: list[StatusHistoryEntry],
    ) -> int:
        """
        Atomically upsert bookings and append their operations and history rows.

        Raises StaleSnapshotError if the business's bookings changed after
        `expected_version` was read. Returns the new version.
        """
        raise NotImplementedError

    @abstractmethod
    def append_operation(self, business_id: str, operation: BookingOperation) -> None:
        """Append an operation that did not change any booking (rejected attempts, audit-only ops)."""
        raise NotImplementedError

    @abstractmethod
    def list_operations(self, business_id: str, booking_id: str | None = None) -> list[BookingOperation]:
        raise NotImplementedError

    @abstractmethod
    def list_status_history(self, business_id: str, booking_id: str) -> list[StatusHistoryEntry]:
        raise NotImplementedError

    @abstractmethod
    def add_waitlist_entry(self, business_id: str, entry: WaitlistEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_waitlist(self, business_id: str) -> list[WaitlistEntry]:
        """Entries in the order they joined."""
        raise NotImplementedError
