from __future__ import annotations

from datetime import datetime
from typing import Callable

from booking_engine.application.exceptions import BusinessNotFoundError
from booking_engine.application.ports.booking_store import BookingStorePort
from booking_engine.application.ports.business_config import BusinessConfigPort
from booking_engine.application.utils.time_windows import to_local
from booking_engine.domain.entities.context import BusinessContext


class ContextLoader:
    """Read one business's configuration and bookings into a single context for a call."""

    def __init__(
        self,
        config: BusinessConfigPort,
        store: BookingStorePort,
        clock: Callable[[], datetime],
    ) -> None:
        self._config = config
        self._store = store
        self._clock = clock

    def load(self, business_id: str, now: datetime | None = None) -> BusinessContext:
        profile = self._config.get_profile(business_id)
        if profile is None:
            raise BusinessNotFoundError(f"Unknown business: {business_id}")
        if now is not None and now.tzinfo is None:
            now = to_local(now, profile.tz)
        return BusinessContext(
            profile=profile,
            rule_set=self._config.get_rule_set(business_id),
            constraints=tuple(self._config.get_constraints(profile.industry)),
            overrides=tuple(self._config.get_overrides(business_id)),
            policies=tuple(self._config.get_policies(business_id)),
            resources=tuple(self._config.get_resources(business_id)),
            skills=tuple(self._config.get_skills(business_id)),
            snapshot=self._store.snapshot(business_id),
            now=now or self._clock(),
        )
