from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable

from booking_engine.application.utils.constraint_rules import (
    ConstraintCheck,
    applies_to,
    evaluate_constraint,
    resolve_constraints,
)
from booking_engine.application.utils.time_windows import within_working_hours
from booking_engine.domain.entities.constraint import (
    BookingValidation,
    BusinessConstraintOverride,
    ConstraintDefinition,
    ConstraintEvaluation,
    ConstraintViolation,
)
from booking_engine.domain.entities.operation import OperationType
from booking_engine.domain.entities.rule_set import RuleSet

# Operations that pick a new time and therefore face the advance window.
TIME_SELECTING_OPERATIONS = frozenset({OperationType.create, OperationType.reschedule})

DURATION_TOLERANCE_MINUTES = 15


class ConstraintValidator:
    """
    Check a candidate booking against the generic rules and the industry catalog.

    Generic rules run first (advance window, start before end, business hours),
    then the catalog constraints most-critical first. A failed mandatory
    constraint is an error, anything else a warning. The validator reads only
    what it is given, so the same input always yields the same result.
    """

    def __init__(self, duration_tolerance_minutes: int = DURATION_TOLERANCE_MINUTES) -> None:
        self._duration_tolerance = duration_tolerance_minutes
        self._logger = logging.getLogger(__name__)

    def validate(
        self,
        check: ConstraintCheck,
        rule_set: RuleSet,
        catalog: Iterable[ConstraintDefinition],
        overrides: Iterable[BusinessConstraintOverride] = (),
    ) -> BookingValidation:
        errors: list[ConstraintViolation] = []
        warnings: list[ConstraintViolation] = []
        evaluated: list[ConstraintEvaluation] = []

        if check.operation_type in TIME_SELECTING_OPERATIONS:
            found = self._check_advance_window(check, rule_set)
            evaluated.append(ConstraintEvaluation("advance_booking", "generic", not found, True, 1))
            errors.extend(found)

        if check.end <= check.start:
            errors.append(
                ConstraintViolation(
                    constraint_name="temporal_sanity",
                    violation_type="invalid_time_range",
                    message="End time must be after start time",
                )
            )
            evaluated.append(ConstraintEvaluation("temporal_sanity", "generic", False, True, 1))
            return self._result(check, errors, warnings, evaluated)
        evaluated.append(ConstraintEvaluation("temporal_sanity", "generic", True, True, 1))

        if check.operation_type in TIME_SELECTING_OPERATIONS or check.operation_type == OperationType.modify:
            # No hours configured means closed.
            inside = within_working_hours(
                check.start,
                check.end,
                check.working_hours,
                check.timezone,
            )
            evaluated.append(ConstraintEvaluation("business_hours", "generic", inside, True, 1))
            if not inside:
                errors.append(
                    ConstraintViolation(
                        constraint_name="business_hours",
                        violation_type="outside_business_hours",
                        message="Booking falls outside business hours or during a break",
                        suggested_action="Choose a time within opening hours",
                    )
                )
            warnings.extend(self._check_service_duration(check))

        for constraint in resolve_constraints(catalog, overrides):
            if not applies_to(constraint, check.operation_type):
                continue
            found = evaluate_constraint(constraint, check)
            blocking = [violation for violation in found if violation.mandatory]
            advisory = [violation for violation in found if not violation.mandatory]
            errors.extend(blocking)
            warnings.extend(advisory)
            evaluated.append(
                ConstraintEvaluation(
                    constraint_name=constraint.name,
                    constraint_type=constraint.constraint_type.value,
                    passed=not found,
                    mandatory=constraint.mandatory,
                    priority=constraint.priority,
                )
            )

        return self._result(check, errors, warnings, evaluated)

    def _check_advance_window(self, check: ConstraintCheck, rule_set: RuleSet) -> list[ConstraintViolation]:
        earliest = check.now + timedelta(hours=rule_set.advance_booking_hours)
        latest = check.now + timedelta(days=rule_set.max_advance_booking_days)
        if check.start < earliest:
            return [
                ConstraintViolation(
                    constraint_name="advance_booking",
                    violation_type="insufficient_advance_notice",
                    message=f"Bookings must be made at least {rule_set.advance_booking_hours} hours in advance",
                    suggested_action="Choose a later time",
                )
            ]
        if check.start > latest:
            return [
                ConstraintViolation(
                    constraint_name="advance_booking",
                    violation_type="too_far_in_advance",
                    message=f"Bookings cannot be made more than {rule_set.max_advance_booking_days} days in advance",
                    suggested_action="Choose an earlier date",
                )
            ]
        return []

    def _check_service_duration(self, check: ConstraintCheck) -> list[ConstraintViolation]:
        if check.service is None:
            return []
        expected = check.service.duration_minutes
        if abs(check.duration_minutes - expected) <= self._duration_tolerance:
            return []
        return [
            ConstraintViolation(
                constraint_name="service_duration",
                violation_type="duration_mismatch",
                message=f"{check.service.display_name} usually takes {expected} minutes",
                priority=8,
                mandatory=False,
            )
        ]

    def _result(
        self,
        check: ConstraintCheck,
        errors: list[ConstraintViolation],
        warnings: list[ConstraintViolation],
        evaluated: list[ConstraintEvaluation],
    ) -> BookingValidation:
        if errors:
            self._logger.info(
                "Booking rejected by constraints",
                extra={
                    "operation": check.operation_type.value,
                    "reason": ",".join(sorted({error.constraint_name for error in errors})),
                },
            )
        return BookingValidation(is_valid=not errors, errors=errors, warnings=warnings, evaluated=evaluated)
