from __future__ import annotations

from collections import defaultdict

from booking_engine.application.ports.business_config import BusinessConfigPort
from booking_engine.application.utils.industry import industry_profile
from booking_engine.domain.entities.constraint import BusinessConstraintOverride, ConstraintDefinition
from booking_engine.domain.entities.context import BusinessProfile
from booking_engine.domain.entities.policy import BookingPolicy
from booking_engine.domain.entities.resource import Resource, StaffSkill
from booking_engine.domain.entities.rule_set import RuleSet
from booking_engine.infrastructure.knowledge.constraint_catalog_data import CONSTRAINT_CATALOG


class InMemoryBusinessConfig(BusinessConfigPort):
    """
    Business configuration held in memory.

    A business without its own rule set gets its industry's defaults, and the
    constraint catalog defaults to the bundled industry catalog.
    """

    def __init__(self, catalog: dict[str, list[ConstraintDefinition]] | None = None) -> None:
        self._catalog = catalog if catalog is not None else CONSTRAINT_CATALOG
        self._profiles: dict[str, BusinessProfile] = {}
        self._rule_sets: dict[str, RuleSet] = {}
        self._overrides: dict[str, list[BusinessConstraintOverride]] = defaultdict(list)
        self._policies: dict[str, list[BookingPolicy]] = defaultdict(list)
        self._resources: dict[str, list[Resource]] = defaultdict(list)
        self._skills: dict[str, list[StaffSkill]] = defaultdict(list)

    def register_business(self, profile: BusinessProfile, rule_set: RuleSet | None = None) -> None:
        self._profiles[profile.business_id] = profile
        if rule_set is not None:
            self._rule_sets[profile.business_id] = rule_set

    def set_rule_set(self, business_id: str, rule_set: RuleSet) -> None:
        # RuleSets are replaced, never merged.
        self._rule_sets[business_id] = rule_set

    def add_override(self, override: BusinessConstraintOverride) -> None:
        self._overrides[override.business_id] = [
            existing
            for existing in self._overrides[override.business_id]
            if existing.constraint_id != override.constraint_id
        ] + [override]

    def add_policy(self, policy: BookingPolicy) -> None:
        self._policies[policy.business_id].append(policy)

    def add_resource(self, resource: Resource) -> None:
        self._resources[resource.business_id].append(resource)

    def add_skill(self, business_id: str, skill: StaffSkill) -> None:
        self._skills[business_id].append(skill)

    def get_profile(self, business_id: str) -> BusinessProfile | None:
        return self._profiles.get(business_id)

    def get_rule_set(self, business_id: str) -> RuleSet:
        rule_set = self._rule_sets.get(business_id)
        if rule_set is not None:
            return rule_set
        profile = self._profiles.get(business_id)
        return industry_profile(profile.industry if profile else "").default_rule_set

    def get_constraints(self, industry: str) -> list[ConstraintDefinition]:
        return list(self._catalog.get(industry.lower().strip(), []))

    def get_overrides(self, business_id: str) -> list[BusinessConstraintOverride]:
        return list(self._overrides[business_id])

    def get_policies(self, business_id: str) -> list[BookingPolicy]:
        return list(self._policies[business_id])

    def get_resources(self, business_id: str) -> list[Resource]:
        return list(self._resources[business_id])

    def get_skills(self, business_id: str) -> list[StaffSkill]:
        return list(self._skills[business_id])
