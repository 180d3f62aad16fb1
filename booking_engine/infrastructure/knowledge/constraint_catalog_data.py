from __future__ import annotations

from booking_engine.domain.entities.constraint import ConstraintDefinition, ConstraintType

CONSTRAINT_CATALOG: dict[str, list[ConstraintDefinition]] = {
    "restaurant": [
        ConstraintDefinition(
            id="restaurant_party_size",
            name="party_size_limits",
            industry="restaurant",
            constraint_type=ConstraintType.capacity,
            rules={"min_party_size": 1, "max_party_size": 20},
            priority=1,
            business_customizable=True,
        ),
        ConstraintDefinition(
            id="restaurant_table_capacity",
            name="table_capacity",
            industry="restaurant",
            constraint_type=ConstraintType.capacity,
            rules={"check_resource_capacity": True},
            priority=2,
        ),
        ConstraintDefinition(
            id="restaurant_large_party",
            name="large_party_deposit",
            industry="restaurant",
            constraint_type=ConstraintType.payment,
            rules={"deposit_above_party_size": 12, "min_deposit": 50},
            priority=6,
            mandatory=False,
            business_customizable=True,
        ),
        ConstraintDefinition(
            id="restaurant_last_seating",
            name="last_seating",
            industry="restaurant",
            constraint_type=ConstraintType.timing,
            rules={"last_seating_minutes": 60},
            priority=7,
            mandatory=False,
            business_customizable=True,
        ),
    ],
    "salon": [
        ConstraintDefinition(
            id="salon_staff_skill",
            name="staff_skill_match",
            industry="salon",
            constraint_type=ConstraintType.staffing,
            rules={"require_staff": True},
            priority=1,
        ),
        ConstraintDefinition(
            id="salon_service_length",
            name="service_length",
            industry="salon",
            constraint_type=ConstraintType.timing,
            rules={"min_duration_minutes": 15, "max_duration_minutes": 240},
            priority=3,
            business_customizable=True,
        ),
        ConstraintDefinition(
            id="salon_late_cancellation",
            name="late_cancellation",
            industry="salon",
            constraint_type=ConstraintType.cancellation,
            rules={"min_notice_hours": 2},
            priority=6,
            mandatory=False,
            business_customizable=True,
        ),
    ],
    "realestate": [
        ConstraintDefinition(
            id="realestate_virtual_viewing",
            name="virtual_viewing_contact",
            industry="realestate",
            constraint_type=ConstraintType.compliance,
            rules={"required_fields_if": {"field": "viewing_type", "equals": "virtual", "then": ["email"]}},
            priority=2,
        ),
        ConstraintDefinition(
            id="realestate_viewing_group",
            name="viewing_group_size",
            industry="realestate",
            constraint_type=ConstraintType.capacity,
            rules={"max_party_size": 6},
            priority=3,
            business_customizable=True,
        ),
    ],
    "professional": [
        ConstraintDefinition(
            id="professional_consultant",
            name="consultant_available",
            industry="professional",
            constraint_type=ConstraintType.staffing,
            rules={"require_staff": True},
            priority=1,
        ),
        ConstraintDefinition(
            id="professional_session_length",
            name="session_length",
            industry="professional",
            constraint_type=ConstraintType.timing,
            rules={"min_duration_minutes": 30, "max_duration_minutes": 180},
            priority=3,
            business_customizable=True,
        ),
    ],
    "event": [
        ConstraintDefinition(
            id="event_attendee_limit",
            name="attendee_limit",
            industry="event",
            constraint_type=ConstraintType.safety,
            rules={"max_attendees": 500},
            priority=1,
            business_customizable=True,
        ),
        ConstraintDefinition(
            id="event_venue_capacity",
            name="venue_capacity",
            industry="event",
            constraint_type=ConstraintType.capacity,
            rules={"check_resource_capacity": True},
            priority=2,
        ),
        ConstraintDefinition(
            id="event_large_event_deposit",
            name="large_event_deposit",
            industry="event",
            constraint_type=ConstraintType.payment,
            rules={"deposit_above_party_size": 50, "min_deposit": 500},
            priority=4,
            business_customizable=True,
        ),
    ],
    "retail": [
        ConstraintDefinition(
            id="retail_group_size",
            name="shopping_group_size",
            industry="retail",
            constraint_type=ConstraintType.capacity,
            rules={"max_party_size": 4},
            priority=3,
            business_customizable=True,
        ),
        ConstraintDefinition(
            id="retail_reschedule_notice",
            name="reschedule_notice",
            industry="retail",
            constraint_type=ConstraintType.reschedule,
            rules={"min_notice_hours": 4},
            priority=6,
            mandatory=False,
        ),
    ],
}
