from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class FeeStructure(str, Enum):
    flat = "flat"
    percentage = "percentage"


class PolicyAction(str, Enum):
    cancel = "cancel"
    reschedule = "reschedule"
    no_show = "no_show"
    payment = "payment"


@dataclass(frozen=True)
class CancellationPolicy:
    free_cancellation_hours: float = 24
    fee_structure: FeeStructure = FeeStructure.flat
    fee_amount: Decimal = Decimal("0")
    fee_percentage: Decimal = Decimal("0")
    no_refund_hours: float = 2
    emergency_exceptions: bool = True


@dataclass(frozen=True)
class ReschedulePolicy:
    allowed_until_hours: float = 24
    max_reschedules: int = 3
    fee_after_limit: Decimal = Decimal("0")
    same_day_allowed: bool = False
    advance_booking_limit_days: int = 30


@dataclass(frozen=True)
class NoShowPolicy:
    grace_period_minutes: int = 15
    auto_cancel_minutes: int = 30
    fee_amount: Decimal = Decimal("0")
    fee_percentage: Decimal = Decimal("0")
    repeat_offender_limit: int = 3
    blocking_period_days: int = 30
    rolling_window_days: int = 90


@dataclass(frozen=True)
class PaymentPolicy:
    payment_timing: str = "pay_at_shop"  # "pay_at_shop" | "prepay" | "deposit"
    deposit_required: bool = False
    deposit_percentage: Decimal = Decimal("0")
    deposit_amount: Decimal = Decimal("0")
    refund_processing_days: int = 7
    payment_methods: tuple[str, ...] = ("cash", "card")


@dataclass(frozen=True)
class BookingPolicy:
    business_id: str
    version: int = 1
    effective_from: datetime | None = None
    effective_until: datetime | None = None
    active: bool = True
    cancellation: CancellationPolicy = CancellationPolicy()
    reschedule: ReschedulePolicy = ReschedulePolicy()
    no_show: NoShowPolicy = NoShowPolicy()
    payment: PaymentPolicy = PaymentPolicy()

    def is_effective_at(self, moment: datetime) -> bool:
        if not self.active:
            return False
        if self.effective_from is not None and moment < self.effective_from:
            return False
        if self.effective_until is not None and moment >= self.effective_until:
            return False
        return True


@dataclass(frozen=True)
class ScheduledFollowUp:
    """An instruction for an external worker; the engine never executes it itself."""

    kind: str  # "reminder" | "no_show_check" | "auto_cancel" | "refund"
    business_id: str
    booking_id: str
    run_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PolicyDecision:
    action: PolicyAction
    allowed: bool
    fee_amount: Decimal = Decimal("0.00")
    refund_eligible: bool = False
    refund_amount: Decimal = Decimal("0.00")
    policy_version: int | None = None
    reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    follow_ups: list[ScheduledFollowUp] = field(default_factory=list)
    block_recommended_until: datetime | None = None
    deposit_due: Decimal = Decimal("0.00")

    def financial_impact(self) -> dict[str, Any]:
        impact: dict[str, Any] = {}
        if self.fee_amount:
            impact["charge"] = str(self.fee_amount)
        if self.refund_amount:
            impact["refund"] = str(self.refund_amount)
        if self.deposit_due:
            impact["hold"] = str(self.deposit_due)
        return impact
