from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable
from zoneinfo import ZoneInfo

from booking_engine.application.utils.time_windows import open_interval, to_local, working_day_for
from booking_engine.domain.entities.constraint import (
    BusinessConstraintOverride,
    ConstraintDefinition,
    ConstraintType,
    ConstraintViolation,
    EffectiveConstraint,
)
from booking_engine.domain.entities.operation import ActorRole, OperationType
from booking_engine.domain.entities.resource import Resource, ResourceType, StaffSkill, WorkingHours
from booking_engine.domain.entities.service_catalog import ServiceDefinition


@dataclass(frozen=True)
class ConstraintCheck:
    """The candidate booking as seen by catalog constraints."""

    operation_type: OperationType
    start: datetime
    end: datetime
    now: datetime
    timezone: ZoneInfo
    party_size: int = 1
    service: ServiceDefinition | None = None
    resource: Resource | None = None
    resources: tuple[Resource, ...] = ()
    skills: tuple[StaffSkill, ...] = ()
    working_hours: WorkingHours = field(default_factory=dict)
    custom_data: dict[str, Any] = field(default_factory=dict)
    deposit_amount: Decimal | None = None
    actor_role: ActorRole | None = None

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def local_start(self) -> datetime:
        return to_local(self.start, self.timezone)


Evaluator = Callable[[EffectiveConstraint, ConstraintCheck], "list[ConstraintViolation]"]

BOOKING_OPERATIONS = frozenset({OperationType.create, OperationType.reschedule, OperationType.modify})


def resolve_constraints(
    definitions: Iterable[ConstraintDefinition],
    overrides: Iterable[BusinessConstraintOverride],
) -> list[EffectiveConstraint]:
    """
    Apply business overrides to the catalog and order the result most-critical first.

    Overrides only touch customizable constraints. A mandatory constraint cannot
    be switched off, but its rules and priority may still be replaced.
    """
    by_constraint = {override.constraint_id: override for override in overrides}
    effective: list[EffectiveConstraint] = []

    for definition in definitions:
        if not definition.active:
            continue
        override = by_constraint.get(definition.id)
        if override is None or not definition.business_customizable:
            effective.append(EffectiveConstraint(definition, dict(definition.rules), definition.priority))
            continue
        if not override.enabled and not definition.mandatory:
            continue
        effective.append(
            EffectiveConstraint(
                definition,
                dict(override.custom_rules) if override.custom_rules is not None else dict(definition.rules),
                override.custom_priority if override.custom_priority is not None else definition.priority,
                overridden=True,
            )
        )

    return sorted(effective, key=lambda item: (item.priority, item.name))


def applies_to(constraint: EffectiveConstraint, operation_type: OperationType) -> bool:
    declared = constraint.rules.get("applies_to")
    if declared:
        return operation_type.value in {str(value) for value in declared}
    if constraint.constraint_type == ConstraintType.cancellation:
        return operation_type == OperationType.cancel
    if constraint.constraint_type == ConstraintType.reschedule:
        return operation_type == OperationType.reschedule
    return operation_type in BOOKING_OPERATIONS


def _violation(
    constraint: EffectiveConstraint,
    violation_type: str,
    message: str,
    suggested_action: str | None = None,
    mandatory: bool | None = None,
) -> ConstraintViolation:
    return ConstraintViolation(
        constraint_name=constraint.name,
        violation_type=violation_type,
        message=message,
        priority=constraint.priority,
        mandatory=constraint.mandatory if mandatory is None else mandatory,
        suggested_action=suggested_action,
    )


def check_timing(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    rules = constraint.rules
    found: list[ConstraintViolation] = []
    duration = check.duration_minutes

    min_duration = rules.get("min_duration_minutes")
    if min_duration is not None and duration < int(min_duration):
        found.append(_violation(constraint, "duration_too_short", f"Booking must last at least {min_duration} minutes"))

    max_duration = rules.get("max_duration_minutes")
    if max_duration is not None and duration > int(max_duration):
        found.append(_violation(constraint, "duration_too_long", f"Booking cannot last more than {max_duration} minutes"))

    allowed_weekdays = rules.get("allowed_weekdays")
    if allowed_weekdays is not None and check.local_start.weekday() not in {int(day) for day in allowed_weekdays}:
        found.append(_violation(constraint, "weekday_not_allowed", "This booking is not offered on the requested day"))

    min_notice = rules.get("min_notice_hours")
    if min_notice is not None and check.start - check.now < timedelta(hours=float(min_notice)):
        found.append(
            _violation(
                constraint,
                "insufficient_notice",
                f"Requires at least {min_notice} hours notice",
                suggested_action="Choose a later time",
            )
        )

    last_seating = rules.get("last_seating_minutes")
    if last_seating is not None:
        day = check.local_start.date()
        working_day = working_day_for(day, check.working_hours)
        if working_day is not None:
            _, closes_at = open_interval(day, working_day, check.timezone)
            if check.local_start > closes_at - timedelta(minutes=int(last_seating)):
                found.append(
                    _violation(
                        constraint,
                        "late_booking",
                        f"Booking starts within {last_seating} minutes of closing",
                        suggested_action="Consider an earlier time",
                    )
                )

    return found


def check_capacity(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    rules = constraint.rules
    found: list[ConstraintViolation] = []
    party = check.party_size

    min_party = rules.get("min_party_size")
    if min_party is not None and party < int(min_party):
        found.append(_violation(constraint, "party_too_small", f"Minimum party size is {min_party}"))

    max_party = rules.get("max_party_size")
    if max_party is not None and party > int(max_party):
        found.append(
            _violation(
                constraint,
                "party_too_large",
                f"Maximum party size is {max_party}",
                suggested_action="Contact the business for large party arrangements",
            )
        )

    resource = check.resource
    if rules.get("check_resource_capacity") and resource is not None:
        table_minimum = int(resource.attributes.get("min_party", 1))
        if party > resource.capacity:
            found.append(
                _violation(
                    constraint,
                    "capacity_exceeded",
                    f"{resource.name} seats {resource.capacity}, party is {party}",
                    suggested_action="Choose a larger resource",
                )
            )
        elif party < table_minimum:
            # Seating a small party at a large table is allowed but wasteful.
            found.append(
                _violation(
                    constraint,
                    "inefficient_table_usage",
                    f"{resource.name} is intended for at least {table_minimum} guests",
                    suggested_action="Consider a smaller table",
                    mandatory=False,
                )
            )

    return found


def check_availability(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    if constraint.rules.get("require_active_resource") and check.resource is not None and not check.resource.active:
        return [_violation(constraint, "resource_inactive", f"{check.resource.name} is not taking bookings")]
    return []


def check_staffing(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    if not constraint.rules.get("require_staff") or check.service is None:
        return []
    if check.service.resource_type != ResourceType.staff:
        return []
    service_id = check.service.service_id
    staff_ids = {
        resource.id
        for resource in check.resources
        if resource.active and resource.type == ResourceType.staff
    }
    minimum = check.service.min_proficiency
    qualified = [
        skill
        for skill in check.skills
        if skill.service_id == service_id
        and skill.resource_id in staff_ids
        and (minimum is None or skill.proficiency.rank >= minimum.rank)
    ]
    if qualified:
        return []
    return [
        _violation(
            constraint,
            "no_qualified_staff",
            f"No staff member is qualified for {check.service.display_name}",
        )
    ]


def check_equipment(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    required = constraint.rules.get("required_equipment") or []
    if not required:
        return []
    available = {
        resource.attributes.get("equipment_kind", resource.name)
        for resource in check.resources
        if resource.active and resource.type == ResourceType.equipment
    }
    missing = [item for item in required if item not in available]
    if not missing:
        return []
    return [_violation(constraint, "equipment_unavailable", f"Missing equipment: {', '.join(missing)}")]


def check_notice_window(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    """Cancellation and reschedule constraints: notice and who may act."""
    rules = constraint.rules
    found: list[ConstraintViolation] = []

    min_notice = rules.get("min_notice_hours")
    if min_notice is not None and check.start - check.now < timedelta(hours=float(min_notice)):
        found.append(
            _violation(
                constraint,
                "insufficient_notice",
                f"Must be done at least {min_notice} hours before the booking",
            )
        )

    allowed_roles = rules.get("allowed_roles")
    if allowed_roles and check.actor_role is not None and check.actor_role.value not in set(allowed_roles):
        found.append(_violation(constraint, "role_not_allowed", f"{check.actor_role.value} cannot perform this operation"))

    return found


def check_payment(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    rules = constraint.rules
    deposit = check.deposit_amount or Decimal("0")

    threshold = rules.get("deposit_above_party_size")
    if threshold is not None and check.party_size <= int(threshold):
        return []

    min_deposit = rules.get("min_deposit")
    if min_deposit is not None and deposit < Decimal(str(min_deposit)):
        return [
            _violation(
                constraint,
                "deposit_required",
                f"A deposit of at least {min_deposit} is required",
                suggested_action="Pay the deposit to secure the booking",
            )
        ]
    return []


def check_safety(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    rules = constraint.rules
    found: list[ConstraintViolation] = []

    max_attendees = rules.get("max_attendees")
    if max_attendees is not None and check.party_size > int(max_attendees):
        found.append(_violation(constraint, "attendee_limit_exceeded", f"At most {max_attendees} attendees are allowed"))

    min_age = rules.get("min_age")
    if min_age is not None:
        age = check.custom_data.get("age")
        if age is None or int(age) < int(min_age):
            found.append(_violation(constraint, "age_requirement", f"Attendees must be at least {min_age}"))

    return found


def check_compliance(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    rules = constraint.rules
    required = list(rules.get("required_fields") or [])

    # {"field": "viewing_type", "equals": "virtual", "then": ["email"]}
    conditional = rules.get("required_fields_if")
    if conditional and check.custom_data.get(conditional.get("field")) == conditional.get("equals"):
        required.extend(conditional.get("then") or [])

    missing = [name for name in required if check.custom_data.get(name) in (None, "")]
    if not missing:
        return []
    return [
        _violation(
            constraint,
            "missing_information",
            f"Required information missing: {', '.join(missing)}",
        )
    ]


EVALUATORS: dict[ConstraintType, Evaluator] = {
    ConstraintType.timing: check_timing,
    ConstraintType.capacity: check_capacity,
    ConstraintType.availability: check_availability,
    ConstraintType.staffing: check_staffing,
    ConstraintType.equipment: check_equipment,
    ConstraintType.cancellation: check_notice_window,
    ConstraintType.reschedule: check_notice_window,
    ConstraintType.payment: check_payment,
    ConstraintType.safety: check_safety,
    ConstraintType.compliance: check_compliance,
}


def evaluate_constraint(constraint: EffectiveConstraint, check: ConstraintCheck) -> list[ConstraintViolation]:
    return EVALUATORS[constraint.constraint_type](constraint, check)

