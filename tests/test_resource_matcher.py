"""
Tests for resource matching: qualification, preferences, availability and ranking.
"""

from __future__ import annotations

from dataclasses import replace

from booking_engine.application.use_cases.match_resources import ResourceMatcher
from booking_engine.domain.entities.resource import Proficiency, StaffSkill, WorkingDay
from factories import COLOR, DINNER, HAIRCUT, MONDAY, RESTAURANT_HOURS, SALON_HOURS, at, booking, staff, table

ANA = staff("staff-ana", "female")
BEN = staff("staff-ben", "male")
HAIRCUT_SKILLS = [
    StaffSkill("staff-ana", "haircut", Proficiency.expert),
    StaffSkill("staff-ben", "haircut", Proficiency.junior),
]


def test_no_qualified_staff_is_an_empty_match():
    """An expert-only service with only a junior trained is unavailable, not an error."""
    match = ResourceMatcher().find_available(
        COLOR,
        at(MONDAY, 10),
        at(MONDAY, 12),
        [ANA, BEN],
        [StaffSkill("staff-ben", "color", Proficiency.junior)],
        [],
        business_hours=SALON_HOURS,
    )

    assert not match.available
    assert match.best is None


def test_higher_proficiency_ranks_first():
    match = ResourceMatcher().find_available(
        HAIRCUT, at(MONDAY, 10), at(MONDAY, 10, 45), [BEN, ANA], HAIRCUT_SKILLS, [], business_hours=SALON_HOURS
    )

    assert [r.id for r in match.resources] == ["staff-ana", "staff-ben"]


def test_preference_narrows_candidates():
    match = ResourceMatcher().find_available(
        HAIRCUT,
        at(MONDAY, 10),
        at(MONDAY, 10, 45),
        [ANA, BEN],
        HAIRCUT_SKILLS,
        [],
        preferences={"gender": "male"},
        business_hours=SALON_HOURS,
    )

    assert [r.id for r in match.resources] == ["staff-ben"]
    assert match.warnings == []


def test_unmatched_preference_is_dropped_with_warning():
    match = ResourceMatcher().find_available(
        HAIRCUT,
        at(MONDAY, 10),
        at(MONDAY, 10, 45),
        [ANA, BEN],
        HAIRCUT_SKILLS,
        [],
        preferences={"gender": "nonbinary"},
        business_hours=SALON_HOURS,
    )

    assert len(match.resources) == 2
    assert [w.violation_type for w in match.warnings] == ["preference_not_available"]
    assert not match.warnings[0].mandatory


def test_inactive_and_busy_staff_are_skipped():
    existing = [booking("b1", at(MONDAY, 10), at(MONDAY, 11), resource_id="staff-ana")]

    match = ResourceMatcher().find_available(
        HAIRCUT,
        at(MONDAY, 11, 10),
        at(MONDAY, 11, 55),
        [ANA, staff("staff-ben", "male", active=False)],
        HAIRCUT_SKILLS,
        existing,
        buffer_minutes=15,
        business_hours=SALON_HOURS,
    )

    assert not match.available


def test_own_working_hours_take_precedence():
    """Ben does not work Mondays even though the salon is open."""
    ben_off_monday = replace(BEN, working_hours={**SALON_HOURS, 0: WorkingDay(is_open=False)})

    match = ResourceMatcher().find_available(
        HAIRCUT,
        at(MONDAY, 10),
        at(MONDAY, 10, 45),
        [ben_off_monday],
        HAIRCUT_SKILLS,
        [],
        business_hours=SALON_HOURS,
    )

    assert not match.available


def test_lighter_day_wins_between_equals():
    """With equal proficiency the staff member with fewer bookings that day comes first."""
    skills = [
        StaffSkill("staff-ana", "haircut", Proficiency.senior),
        StaffSkill("staff-ben", "haircut", Proficiency.senior),
    ]
    existing = [booking("b1", at(MONDAY, 15), at(MONDAY, 16), resource_id="staff-ana")]

    match = ResourceMatcher().find_available(
        HAIRCUT, at(MONDAY, 10), at(MONDAY, 10, 45), [ANA, BEN], skills, existing, business_hours=SALON_HOURS
    )

    assert match.best.id == "staff-ben"


def test_restaurant_seats_party_at_tightest_table():
    tables = [table("t6", 6), table("t2", 2), table("t4", 4)]

    match = ResourceMatcher.for_industry("restaurant").find_available(
        DINNER, at(MONDAY, 19), at(MONDAY, 20, 30), tables, [], [], party_size=3, business_hours=RESTAURANT_HOURS
    )

    assert [r.id for r in match.resources] == ["t4", "t6"]


def test_table_minimum_party_is_respected():
    tables = [table("t2", 2), table("t4", 4, min_party=3), table("t8", 8, min_party=5)]

    match = ResourceMatcher.for_industry("restaurant").find_available(
        DINNER, at(MONDAY, 19), at(MONDAY, 20, 30), tables, [], [], party_size=6, business_hours=RESTAURANT_HOURS
    )

    assert [r.id for r in match.resources] == ["t8"]
