from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from booking_engine.domain.entities.booking import Booking
    from booking_engine.domain.entities.constraint import ConstraintViolation
    from booking_engine.domain.entities.policy import PolicyDecision


class BookingEngineError(RuntimeError):
    """Base class for errors surfaced by the booking engine."""
    pass


class BookingValidationError(BookingEngineError):
    """Raised when a mandatory constraint or a temporal sanity check fails."""

    def __init__(
        self,
        message: str,
        violations: "list[ConstraintViolation] | None" = None,
        warnings: "list[ConstraintViolation] | None" = None,
    ) -> None:
        super().__init__(message)
        self.violations = list(violations or [])
        self.warnings = list(warnings or [])


class InvalidTransitionError(BookingValidationError):
    """Raised when an operation is not allowed from the booking's current status."""
    pass


class SlotConflictError(BookingEngineError):
    """Raised when the requested time/resource combination is no longer free."""

    def __init__(self, message: str, conflicts: "list[Booking] | None" = None) -> None:
        super().__init__(message)
        self.conflicts = list(conflicts or [])


class PolicyViolationError(BookingEngineError):
    """Raised when a cancel/reschedule/no-show request falls outside policy bounds."""

    def __init__(self, message: str, decision: "PolicyDecision") -> None:
        super().__init__(message)
        self.decision = decision


class PolicyConfigurationError(BookingEngineError):
    """Raised when a business has no unambiguous current policy version."""
    pass


class BookingNotFoundError(BookingEngineError):
    """Raised when a booking does not exist inside the caller's business."""
    pass


class StaleSnapshotError(BookingEngineError):
    """Raised by a store when the booking set changed since the snapshot was taken."""
    pass


class BusinessNotFoundError(BookingEngineError):
    """Raised when no profile is configured for a business id."""
    pass


class ServiceNotFoundError(BookingEngineError):
    """Raised when a service id is not in the business's catalog."""
    pass


class OperationNotPermittedError(BookingValidationError):
    """Raised when the actor's role or identity does not allow the operation."""
    pass
