from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable

from booking_engine.domain.entities.resource import Proficiency, Resource, StaffSkill
from booking_engine.domain.entities.rule_set import RuleSet
from booking_engine.domain.entities.service_catalog import ServiceDefinition

# (resource, party_size) -> sort key, lower ranks first
TieBreak = Callable[[Resource, int], float]

# (service, assigned resource, skills, local start, party_size) -> price
Pricing = Callable[[ServiceDefinition, Resource | None, Iterable[StaffSkill], datetime, int], Decimal]

# party_size -> estimated minutes until a table frees up
WaitEstimate = Callable[[int], int]

CENTS = Decimal("0.01")

PROFICIENCY_MULTIPLIERS = {
    Proficiency.trainee: Decimal("0.8"),
    Proficiency.junior: Decimal("1.0"),
    Proficiency.senior: Decimal("1.2"),
    Proficiency.expert: Decimal("1.5"),
}

# Seatings starting 18:00 through 21:59 local time.
PEAK_HOURS = range(18, 22)
PEAK_FEE_PER_GUEST = Decimal("10.00")


def no_tie_break(resource: Resource, party_size: int) -> float:
    return 0


def tightest_fit(resource: Resource, party_size: int) -> float:
    """Prefer the table whose seats exceed the party by the least."""
    seats = resource.attributes.get("seats", resource.capacity)
    return max(seats - party_size, 0)


def list_price(
    service: ServiceDefinition,
    resource: Resource | None,
    skills: Iterable[StaffSkill],
    local_start: datetime,
    party_size: int,
) -> Decimal:
    return service.price


def proficiency_price(
    service: ServiceDefinition,
    resource: Resource | None,
    skills: Iterable[StaffSkill],
    local_start: datetime,
    party_size: int,
) -> Decimal:
    """Scale the list price by the assigned stylist's level for this service."""
    if resource is None:
        return service.price
    for skill in skills:
        if skill.resource_id == resource.id and skill.service_id == service.service_id:
            return (service.price * PROFICIENCY_MULTIPLIERS[skill.proficiency]).quantize(CENTS, rounding=ROUND_HALF_UP)
    return service.price


def peak_hour_price(
    service: ServiceDefinition,
    resource: Resource | None,
    skills: Iterable[StaffSkill],
    local_start: datetime,
    party_size: int,
) -> Decimal:
    """Add a per-guest reservation fee to evening peak seatings."""
    if local_start.hour in PEAK_HOURS:
        return (service.price + PEAK_FEE_PER_GUEST * party_size).quantize(CENTS, rounding=ROUND_HALF_UP)
    return service.price


def party_wait_minutes(party_size: int) -> int:
    return 15 + 5 * party_size


@dataclass(frozen=True)
class IndustryProfile:
    name: str
    default_rule_set: RuleSet
    tie_break: TieBreak = no_tie_break
    pricing: Pricing = list_price
    wait_estimate: WaitEstimate = party_wait_minutes


INDUSTRY_PROFILES: dict[str, IndustryProfile] = {
    "salon": IndustryProfile(
        name="salon",
        default_rule_set=RuleSet(
            advance_booking_hours=2,
            max_advance_booking_days=60,
            cancellation_hours=24,
            buffer_minutes=15,
        ),
        pricing=proficiency_price,
    ),
    "restaurant": IndustryProfile(
        name="restaurant",
        default_rule_set=RuleSet(
            advance_booking_hours=1,
            max_advance_booking_days=30,
            cancellation_hours=2,
            buffer_minutes=30,  # table turnover
            allow_double_booking=True,
        ),
        tie_break=tightest_fit,
        pricing=peak_hour_price,
    ),
    "realestate": IndustryProfile(
        name="realestate",
        default_rule_set=RuleSet(
            advance_booking_hours=2,
            max_advance_booking_days=60,
            cancellation_hours=4,
            buffer_minutes=15,
            allow_double_booking=True,
        ),
    ),
    "professional": IndustryProfile(
        name="professional",
        default_rule_set=RuleSet(
            advance_booking_hours=4,
            max_advance_booking_days=90,
            cancellation_hours=24,
            buffer_minutes=15,
            require_deposit=True,
        ),
    ),
    "event": IndustryProfile(
        name="event",
        default_rule_set=RuleSet(
            advance_booking_hours=48,
            max_advance_booking_days=365,
            cancellation_hours=72,
            buffer_minutes=120,  # setup and teardown
            require_deposit=True,
        ),
        tie_break=tightest_fit,
    ),
    "retail": IndustryProfile(
        name="retail",
        default_rule_set=RuleSet(
            advance_booking_hours=2,
            max_advance_booking_days=30,
            cancellation_hours=4,
            buffer_minutes=15,
        ),
    ),
}

GENERIC_PROFILE = IndustryProfile(name="generic", default_rule_set=RuleSet())


def industry_profile(industry: str) -> IndustryProfile:
    return INDUSTRY_PROFILES.get(industry.lower().strip(), GENERIC_PROFILE)
