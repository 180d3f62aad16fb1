from __future__ import annotations

import threading
from collections import defaultdict

from booking_engine.application.exceptions import StaleSnapshotError
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.domain.entities.booking import Booking
from booking_engine.domain.entities.context import BookingSnapshot
from booking_engine.domain.entities.operation import BookingOperation, StatusHistoryEntry
from booking_engine.domain.entities.waitlist import WaitlistEntry


class MemoryBookingStore(BookingStorePort):
    """Bookings, operation log, status history and waitlist per business, guarded by one lock per business."""

    def __init__(self) -> None:
        self._bookings: dict[str, dict[str, Booking]] = defaultdict(dict)
        self._versions: dict[str, int] = defaultdict(int)
        self._operations: dict[str, list[BookingOperation]] = defaultdict(list)
        self._history: dict[str, list[StatusHistoryEntry]] = defaultdict(list)
        self._waitlist: dict[str, list[WaitlistEntry]] = defaultdict(list)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def snapshot(self, business_id: str) -> BookingSnapshot:
        with self._lock(business_id):
            return BookingSnapshot(
                business_id=business_id,
                bookings=tuple(self._bookings[business_id].values()),
                version=self._versions[business_id],
            )

    def get_booking(self, business_id: str, booking_id: str) -> Booking | None:
        with self._lock(business_id):
            return self._bookings[business_id].get(booking_id)

    def commit(
        self,
        business_id: str,
        expected_version: int,
        bookings: list[Booking],
        operations: list[BookingOperation],
        history: list[StatusHistoryEntry],
    ) -> int:
        with self._lock(business_id):
            if self._versions[business_id] != expected_version:
                raise StaleSnapshotError(
                    f"Bookings of {business_id} changed: expected version {expected_version}, "
                    f"found {self._versions[business_id]}"
                )
            for booking in bookings:
                if booking.business_id != business_id:
                    raise ValueError(f"Booking {booking.id} belongs to {booking.business_id}, not {business_id}")
                self._bookings[business_id][booking.id] = booking
            self._operations[business_id].extend(operations)
            self._history[business_id].extend(history)
            self._versions[business_id] += 1
            return self._versions[business_id]

    def append_operation(self, business_id: str, operation: BookingOperation) -> None:
        with self._lock(business_id):
            self._operations[business_id].append(operation)

    def list_operations(self, business_id: str, booking_id: str | None = None) -> list[BookingOperation]:
        with self._lock(business_id):
            operations = list(self._operations[business_id])
        if booking_id is None:
            return operations
        return [operation for operation in operations if operation.booking_id == booking_id]

    def list_status_history(self, business_id: str, booking_id: str) -> list[StatusHistoryEntry]:
        with self._lock(business_id):
            return [entry for entry in self._history[business_id] if entry.booking_id == booking_id]

    def add_waitlist_entry(self, business_id: str, entry: WaitlistEntry) -> None:
        if entry.business_id != business_id:
            raise ValueError(f"Waitlist entry {entry.id} belongs to {entry.business_id}, not {business_id}")
        with self._lock(business_id):
            self._waitlist[business_id].append(entry)

    def list_waitlist(self, business_id: str) -> list[WaitlistEntry]:
        with self._lock(business_id):
            return list(self._waitlist[business_id])

    def _lock(self, business_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(business_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[business_id] = lock
            return lock
