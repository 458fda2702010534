"""
Reservation services.

Services:
- pricing_service: price by start hour
- reservation_directory: reservation id -> calendar event lookup
- reservation_service: create / reschedule / cancel / check / availability
- slot_lock: per-slot mutual exclusion (asyncio or Redis)
"""

from agenda.services.pricing_service import PricingPolicy, format_price, parse_price
from agenda.services.reservation_directory import ReservationDirectory
from agenda.services.reservation_service import ReservationLifecycleManager
from agenda.services.slot_lock import (
    InMemorySlotLockManager,
    RedisSlotLockManager,
    acquire_all,
    build_slot_lock_manager,
)

__all__ = [
    # Pricing
    "PricingPolicy",
    "format_price",
    "parse_price",
    # Lookup
    "ReservationDirectory",
    # Lifecycle
    "ReservationLifecycleManager",
    # Locking
    "InMemorySlotLockManager",
    "RedisSlotLockManager",
    "acquire_all",
    "build_slot_lock_manager",
]
