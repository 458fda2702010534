"""
FastAPI dependency wiring.

The only place (with api.main) that reads get_settings(): everything below
receives the Settings instance through its constructor. Tests replace these
providers with app.dependency_overrides.
"""

import logging
from functools import lru_cache

from agenda.gateways.calendar_gateway import CalendarGateway, GoogleCalendarGateway
from agenda.gateways.memory_gateway import InMemoryCalendarGateway
from agenda.services.reservation_service import ReservationLifecycleManager
from agenda.services.slot_lock import build_slot_lock_manager
from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


def get_app_settings() -> Settings:
    return get_settings()


def build_gateway(settings: Settings) -> CalendarGateway:
    """Calendar Gateway selected by CALENDAR_BACKEND."""
    if settings.CALENDAR_BACKEND == "memory":
        logger.warning("Using in-memory calendar backend - appointments are not persisted")
        return InMemoryCalendarGateway(settings.TIMEZONE)
    return GoogleCalendarGateway(settings)


def build_lifecycle_manager(settings: Settings) -> ReservationLifecycleManager:
    return ReservationLifecycleManager(
        build_gateway(settings),
        settings,
        slot_locks=build_slot_lock_manager(settings),
    )


@lru_cache
def get_lifecycle_manager() -> ReservationLifecycleManager:
    """
    Process-wide manager.

    Cached so every request shares one lock registry and one gateway
    (credentials are loaded once).
    """
    return build_lifecycle_manager(get_settings())
