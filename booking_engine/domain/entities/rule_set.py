from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class RuleSet:
    """Per-business scalar booking rules. Replaced wholesale, never patched."""

    advance_booking_hours: float = 2
    max_advance_booking_days: int = 60
    cancellation_hours: float = 24
    buffer_minutes: int = 15
    allow_double_booking: bool = False
    require_deposit: bool = False
    deposit_amount: Decimal | None = None
