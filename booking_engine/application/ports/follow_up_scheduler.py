from abc import ABC, abstractmethod

from booking_engine.domain.entities.policy import ScheduledFollowUp


class FollowUpSchedulerPort(ABC):
    @abstractmethod
    def schedule(self, follow_up: ScheduledFollowUp) -> None:
        raise NotImplementedError
