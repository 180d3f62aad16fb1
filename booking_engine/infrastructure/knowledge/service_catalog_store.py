from __future__ import annotations

from typing import Iterable

from booking_engine.application.ports.service_catalog import ServiceCatalogPort
from booking_engine.domain.entities.service_catalog import ServiceDefinition


class ServiceCatalogStore(ServiceCatalogPort):
    def __init__(self, services: Iterable[ServiceDefinition] = ()) -> None:
        self._catalog: dict[tuple[str, str], ServiceDefinition] = {}
        for service in services:
            self.add_service(service)

    def add_service(self, service: ServiceDefinition) -> None:
        self._catalog[(service.business_id, _normalize(service.service_id))] = service

    def get_service(self, business_id: str, service_id: str) -> ServiceDefinition | None:
        return self._catalog.get((business_id, _normalize(service_id)))

    def list_services(self, business_id: str) -> list[ServiceDefinition]:
        return [service for (owner, _), service in self._catalog.items() if owner == business_id]


def _normalize(service_id: str) -> str:
    return service_id.lower().strip()
