from __future__ import annotations

from abc import ABC, abstractmethod

from booking_engine.domain.entities.service_catalog import ServiceDefinition


class ServiceCatalogPort(ABC):
    @abstractmethod
    def get_service(self, business_id: str, service_id: str) -> ServiceDefinition | None:
        """Get a service definition by id, scoped to the business."""
        raise NotImplementedError

