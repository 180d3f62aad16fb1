from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ConstraintType(str, Enum):
    availability = "availability"
    capacity = "capacity"
    timing = "timing"
    staffing = "staffing"
    equipment = "equipment"
    cancellation = "cancellation"
    reschedule = "reschedule"
    payment = "payment"
    safety = "safety"
    compliance = "compliance"


@dataclass(frozen=True)
class ConstraintDefinition:
    id: str
    name: str
    industry: str
    constraint_type: ConstraintType
    rules: dict[str, Any] = field(default_factory=dict)
    priority: int = 5  # 1 = critical ... 10 = advisory
    mandatory: bool = True
    active: bool = True
    business_customizable: bool = False


@dataclass(frozen=True)
class BusinessConstraintOverride:
    business_id: str
    constraint_id: str
    enabled: bool = True
    custom_rules: dict[str, Any] | None = None
    custom_priority: int | None = None
    override_reason: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None


@dataclass(frozen=True)
class EffectiveConstraint:
    """A catalog constraint with any business override already applied."""

    definition: ConstraintDefinition
    rules: dict[str, Any]
    priority: int
    overridden: bool = False

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def mandatory(self) -> bool:
        return self.definition.mandatory

    @property
    def constraint_type(self) -> ConstraintType:
        return self.definition.constraint_type


@dataclass(frozen=True)
class ConstraintViolation:
    constraint_name: str
    violation_type: str
    message: str
    priority: int = 1
    mandatory: bool = True
    suggested_action: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "constraint_name": self.constraint_name,
            "violation_type": self.violation_type,
            "message": self.message,
            "priority": self.priority,
            "mandatory": self.mandatory,
            "suggested_action": self.suggested_action,
        }


@dataclass(frozen=True)
class ConstraintEvaluation:
    constraint_name: str
    constraint_type: str
    passed: bool
    mandatory: bool
    priority: int


@dataclass(frozen=True)
class BookingValidation:
    is_valid: bool
    errors: list[ConstraintViolation] = field(default_factory=list)
    warnings: list[ConstraintViolation] = field(default_factory=list)
    evaluated: list[ConstraintEvaluation] = field(default_factory=list)
