from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class BookingSlot:
    start: datetime
    end: datetime
    available: bool
    resource_id: str | None = None
    price: Decimal | None = None
