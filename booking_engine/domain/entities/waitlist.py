from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class WaitlistEntry:
    """A party waiting for a window that had no free resource when they asked."""

    id: str
    business_id: str
    service_id: str
    requested_start: datetime
    requested_end: datetime
    party_size: int
    estimated_wait_minutes: int
    position: int  # 1 = first in line for this start time
    customer_ref: str | None = None
    preferences: dict[str, Any] = field(default_factory=dict)
    notes: str | None = None
    created_at: datetime | None = None
