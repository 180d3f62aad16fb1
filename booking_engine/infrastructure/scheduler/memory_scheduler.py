from __future__ import annotations

import logging

from booking_engine.application.ports.follow_up_scheduler import FollowUpSchedulerPort
from booking_engine.domain.entities.policy import ScheduledFollowUp


class MemoryFollowUpScheduler(FollowUpSchedulerPort):
    """Keeps follow-ups in memory for a worker (or a test) to pick up."""

    def __init__(self) -> None:
        self._pending: list[ScheduledFollowUp] = []
        self._logger = logging.getLogger(__name__)

    def schedule(self, follow_up: ScheduledFollowUp) -> None:
        self._pending.append(follow_up)
        self._logger.info(
            "Follow-up scheduled",
            extra={
                "booking_id": follow_up.booking_id,
                "business_id": follow_up.business_id,
                "operation": follow_up.kind,
            },
        )

    def pending(self, booking_id: str | None = None) -> list[ScheduledFollowUp]:
        if booking_id is None:
            return list(self._pending)
        return [follow_up for follow_up in self._pending if follow_up.booking_id == booking_id]
