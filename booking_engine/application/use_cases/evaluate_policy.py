from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from booking_engine.application.exceptions import PolicyConfigurationError
from booking_engine.domain.entities.booking import Booking, BookingStatus
from booking_engine.domain.entities.policy import (
    BookingPolicy,
    CancellationPolicy,
    FeeStructure,
    PolicyAction,
    PolicyDecision,
    ScheduledFollowUp,
)
from booking_engine.domain.entities.rule_set import RuleSet

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

logger = logging.getLogger(__name__)


def select_current_policy(
    policies: Iterable[BookingPolicy],
    business_id: str,
    moment: datetime,
    rule_set: RuleSet | None = None,
) -> BookingPolicy:
    """
    Return the single policy version in force at `moment`.

    Without one, a version 0 default is used whose free cancellation window
    comes from the business rule set when one is given.
    """
    current = [
        policy
        for policy in policies
        if policy.business_id == business_id and policy.is_effective_at(moment)
    ]
    if not current:
        logger.warning(
            "No booking policy in force, using defaults",
            extra={"business_id": business_id},
        )
        if rule_set is None:
            return BookingPolicy(business_id=business_id, version=0)
        return BookingPolicy(
            business_id=business_id,
            version=0,
            cancellation=CancellationPolicy(free_cancellation_hours=rule_set.cancellation_hours),
        )
    if len(current) > 1:
        versions = sorted(policy.version for policy in current)
        raise PolicyConfigurationError(
            f"Business {business_id} has {len(current)} policy versions in force: {versions}"
        )
    return current[0]


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def _hours_until(booking: Booking, now: datetime) -> float:
    return (booking.start - now).total_seconds() / 3600


def _fee(
    price: Decimal,
    structure: FeeStructure,
    flat: Decimal,
    percentage: Decimal,
    warnings: list[str],
) -> Decimal:
    if flat and percentage:
        warnings.append(
            f"Both a flat fee and a percentage fee are configured; applying the {structure.value} fee"
        )
    if structure == FeeStructure.percentage:
        return _money(price * Decimal(percentage) / Decimal(100))
    return _money(flat)


class PolicyEngine:
    """Cancellation, reschedule, no-show and payment decisions for one booking."""

    def __init__(self, reminder_hours_before: int = 24) -> None:
        self._reminder_hours_before = reminder_hours_before
        self._logger = logging.getLogger(__name__)

    def evaluate_cancellation(
        self,
        booking: Booking,
        policy: BookingPolicy,
        now: datetime,
        emergency: bool = False,
    ) -> PolicyDecision:
        rules = policy.cancellation
        if booking.is_terminal:
            return self._refused(PolicyAction.cancel, policy, f"Booking is already {booking.status.value}")

        hours_until = _hours_until(booking, now)
        if hours_until < 0:
            return self._refused(PolicyAction.cancel, policy, "Booking has already started")

        deposit = booking.deposit.amount if booking.deposit else ZERO
        reasons: list[str] = []
        warnings: list[str] = []

        if hours_until >= rules.free_cancellation_hours:
            fee = ZERO
            reasons.append(f"Cancelled more than {rules.free_cancellation_hours:g} hours before start")
        else:
            fee = _fee(
                booking.price,
                rules.fee_structure,
                rules.fee_amount,
                rules.fee_percentage,
                warnings,
            )
            reasons.append(f"Cancelled within {rules.free_cancellation_hours:g} hours of start")
            if emergency and rules.emergency_exceptions:
                fee = ZERO
                reasons.append("Fee waived under the emergency exception")

        refund_eligible = hours_until >= rules.no_refund_hours
        refund_amount = _money(max(deposit - fee, ZERO)) if refund_eligible else ZERO
        if not refund_eligible:
            reasons.append(f"No refund within {rules.no_refund_hours:g} hours of start")

        follow_ups: list[ScheduledFollowUp] = []
        if refund_amount:
            follow_ups.append(
                ScheduledFollowUp(
                    kind="refund",
                    business_id=booking.business_id,
                    booking_id=booking.id,
                    run_at=now,
                    payload={
                        "amount": str(refund_amount),
                        "processing_days": policy.payment.refund_processing_days,
                    },
                )
            )

        return PolicyDecision(
            action=PolicyAction.cancel,
            allowed=True,
            fee_amount=fee,
            refund_eligible=refund_eligible,
            refund_amount=refund_amount,
            policy_version=policy.version,
            reasons=reasons,
            warnings=warnings,
            follow_ups=follow_ups,
        )

    def evaluate_reschedule(
        self,
        booking: Booking,
        policy: BookingPolicy,
        now: datetime,
        new_start: datetime | None = None,
    ) -> PolicyDecision:
        rules = policy.reschedule
        if booking.status != BookingStatus.confirmed:
            return self._refused(
                PolicyAction.reschedule,
                policy,
                f"Only confirmed bookings can be rescheduled, booking is {booking.status.value}",
            )

        hours_until = _hours_until(booking, now)
        if hours_until < rules.allowed_until_hours:
            return self._refused(
                PolicyAction.reschedule,
                policy,
                f"Rescheduling closes {rules.allowed_until_hours:g} hours before start",
            )

        if new_start is not None:
            if not rules.same_day_allowed and new_start.date() == now.astimezone(new_start.tzinfo).date():
                return self._refused(PolicyAction.reschedule, policy, "Same-day rescheduling is not allowed")
            if new_start > now + timedelta(days=rules.advance_booking_limit_days):
                return self._refused(
                    PolicyAction.reschedule,
                    policy,
                    f"New time must be within {rules.advance_booking_limit_days} days",
                )

        fee = ZERO
        reasons = [f"Reschedule {booking.reschedule_count + 1} of {rules.max_reschedules}"]
        warnings: list[str] = []
        if booking.reschedule_count >= rules.max_reschedules:
            if not rules.fee_after_limit:
                return self._refused(
                    PolicyAction.reschedule,
                    policy,
                    f"Reschedule limit of {rules.max_reschedules} reached",
                )
            fee = _money(rules.fee_after_limit)
            reasons = [f"Reschedule limit of {rules.max_reschedules} reached, fee applies"]
            warnings.append("Further reschedules are charged")

        return PolicyDecision(
            action=PolicyAction.reschedule,
            allowed=True,
            fee_amount=fee,
            policy_version=policy.version,
            reasons=reasons,
            warnings=warnings,
        )

    def evaluate_no_show(
        self,
        booking: Booking,
        policy: BookingPolicy,
        now: datetime,
        prior_no_shows: Iterable[datetime] = (),
    ) -> PolicyDecision:
        """
        A confirmed booking becomes a no-show once the grace period has passed.

        `prior_no_shows` are the start times of the customer's earlier no-shows.
        Crossing the repeat-offender limit inside the rolling window yields a
        blocking recommendation; enforcing it is up to the caller.
        """
        rules = policy.no_show
        if booking.status != BookingStatus.confirmed:
            return self._refused(
                PolicyAction.no_show,
                policy,
                f"Only confirmed bookings can be marked as no-show, booking is {booking.status.value}",
            )

        eligible_at = booking.start + timedelta(minutes=rules.grace_period_minutes)
        if now < eligible_at:
            return self._refused(
                PolicyAction.no_show,
                policy,
                f"Grace period of {rules.grace_period_minutes} minutes has not elapsed",
            )

        warnings: list[str] = []
        if rules.fee_amount and rules.fee_percentage:
            warnings.append("Both a flat and a percentage no-show fee are configured; applying the flat fee")
        if rules.fee_amount:
            fee = _money(rules.fee_amount)
        else:
            fee = _money(booking.price * Decimal(rules.fee_percentage) / Decimal(100))

        window_start = now - timedelta(days=rules.rolling_window_days)
        recent = sum(1 for moment in prior_no_shows if moment >= window_start) + 1
        block_until = None
        if recent >= rules.repeat_offender_limit:
            block_until = now + timedelta(days=rules.blocking_period_days)
            warnings.append(
                f"{recent} no-shows in {rules.rolling_window_days} days, blocking recommended"
            )
            self._logger.info(
                "Repeat no-show",
                extra={"booking_id": booking.id, "business_id": booking.business_id, "reason": "repeat_offender"},
            )

        return PolicyDecision(
            action=PolicyAction.no_show,
            allowed=True,
            fee_amount=fee,
            policy_version=policy.version,
            reasons=[f"No arrival within {rules.grace_period_minutes} minutes of start"],
            warnings=warnings,
            block_recommended_until=block_until,
        )

    def evaluate_payment(
        self,
        booking: Booking,
        policy: BookingPolicy,
        rule_set: RuleSet,
        now: datetime,
    ) -> PolicyDecision:
        rules = policy.payment
        warnings: list[str] = []
        reasons = [f"Payment timing: {rules.payment_timing}"]

        required = rules.deposit_required or rule_set.require_deposit
        if not required:
            return PolicyDecision(
                action=PolicyAction.payment,
                allowed=True,
                policy_version=policy.version,
                reasons=reasons + ["No deposit required"],
            )

        if rules.deposit_amount and rules.deposit_percentage:
            warnings.append("Both a flat and a percentage deposit are configured; applying the flat deposit")
        if rules.deposit_amount:
            expected = _money(rules.deposit_amount)
        elif rules.deposit_percentage:
            expected = _money(booking.price * Decimal(rules.deposit_percentage) / Decimal(100))
        else:
            expected = _money(rule_set.deposit_amount or ZERO)

        paid = booking.deposit.amount if booking.deposit else ZERO
        due = _money(max(expected - paid, ZERO))
        reasons.append(f"Deposit of {expected} required, {_money(paid)} paid")

        return PolicyDecision(
            action=PolicyAction.payment,
            allowed=True,
            policy_version=policy.version,
            reasons=reasons,
            warnings=warnings,
            deposit_due=due,
        )

    def schedule_follow_ups(
        self,
        booking: Booking,
        policy: BookingPolicy,
        now: datetime,
    ) -> list[ScheduledFollowUp]:
        """Reminder, no-show check and auto-cancel instructions for an active booking."""
        follow_ups: list[ScheduledFollowUp] = []
        reminder_at = booking.start - timedelta(hours=self._reminder_hours_before)
        if reminder_at > now:
            follow_ups.append(
                ScheduledFollowUp("reminder", booking.business_id, booking.id, reminder_at)
            )
        follow_ups.append(
            ScheduledFollowUp(
                "no_show_check",
                booking.business_id,
                booking.id,
                booking.start + timedelta(minutes=policy.no_show.grace_period_minutes),
            )
        )
        follow_ups.append(
            ScheduledFollowUp(
                "auto_cancel",
                booking.business_id,
                booking.id,
                booking.start + timedelta(minutes=policy.no_show.auto_cancel_minutes),
                {"reason": "no_show"},
            )
        )
        return follow_ups

    def evaluate(
        self,
        action: PolicyAction,
        booking: Booking,
        policy: BookingPolicy,
        rule_set: RuleSet,
        now: datetime,
        prior_no_shows: Iterable[datetime] = (),
    ) -> PolicyDecision:
        if action == PolicyAction.cancel:
            return self.evaluate_cancellation(booking, policy, now)
        if action == PolicyAction.reschedule:
            return self.evaluate_reschedule(booking, policy, now)
        if action == PolicyAction.no_show:
            return self.evaluate_no_show(booking, policy, now, prior_no_shows)
        return self.evaluate_payment(booking, policy, rule_set, now)

    def _refused(self, action: PolicyAction, policy: BookingPolicy, reason: str) -> PolicyDecision:
        return PolicyDecision(
            action=action,
            allowed=False,
            policy_version=policy.version,
            reasons=[reason],
        )
