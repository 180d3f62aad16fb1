from datetime import datetime, timezone
from functools import lru_cache
import logging

from booking_engine.core.config import settings
from booking_engine.application.use_cases.engine import BookingEngine
from booking_engine.infrastructure.config.memory_config import InMemoryBusinessConfig
from booking_engine.infrastructure.knowledge.demo_business import seed_demo_business
from booking_engine.infrastructure.knowledge.service_catalog_store import ServiceCatalogStore
from booking_engine.infrastructure.scheduler.memory_scheduler import MemoryFollowUpScheduler
from booking_engine.infrastructure.store.memory_store import MemoryBookingStore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache
def get_business_config() -> InMemoryBusinessConfig:
    return InMemoryBusinessConfig()


@lru_cache
def get_service_catalog() -> ServiceCatalogStore:
    return ServiceCatalogStore()


@lru_cache
def get_booking_store() -> MemoryBookingStore:
    return MemoryBookingStore()


@lru_cache
def get_follow_up_scheduler() -> MemoryFollowUpScheduler:
    return MemoryFollowUpScheduler()


@lru_cache
def get_booking_engine() -> BookingEngine:
    config = get_business_config()
    catalog = get_service_catalog()
    if settings.ENV.lower() in {"dev", "local"}:
        logger = logging.getLogger(__name__)
        logger.info("Seeding demo business (ENV=%s)", settings.ENV)
        seed_demo_business(config, catalog)

    return BookingEngine(
        config=config,
        catalog=catalog,
        store=get_booking_store(),
        scheduler=get_follow_up_scheduler(),
        clock=utc_now,
        step_minutes=settings.SLOT_STEP_MINUTES,
        commit_retry_limit=settings.COMMIT_RETRY_LIMIT,
        reminder_hours_before=settings.REMINDER_HOURS_BEFORE,
    )
