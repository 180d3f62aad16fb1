from __future__ import annotations

from abc import ABC, abstractmethod

from booking_engine.domain.entities.constraint import BusinessConstraintOverride, ConstraintDefinition
from booking_engine.domain.entities.context import BusinessProfile
from booking_engine.domain.entities.policy import BookingPolicy
from booking_engine.domain.entities.resource import Resource, StaffSkill
from booking_engine.domain.entities.rule_set import RuleSet


class BusinessConfigPort(ABC):
    """Read-only, business-scoped configuration supplied by the caller's platform."""

    @abstractmethod
    def get_profile(self, business_id: str) -> BusinessProfile | None:
        raise NotImplementedError

    @abstractmethod
    def get_rule_set(self, business_id: str) -> RuleSet:
        raise NotImplementedError

    @abstractmethod
    def get_constraints(self, industry: str) -> list[ConstraintDefinition]:
        raise NotImplementedError

    @abstractmethod
    def get_overrides(self, business_id: str) -> list[BusinessConstraintOverride]:
        raise NotImplementedError

    @abstractmethod
    def get_policies(self, business_id: str) -> list[BookingPolicy]:
        raise NotImplementedError

    @abstractmethod
    def get_resources(self, business_id: str) -> list[Resource]:
        raise NotImplementedError

    @abstractmethod
    def get_skills(self, business_id: str) -> list[StaffSkill]:
        raise NotImplementedError
