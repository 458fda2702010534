"""
Slot conflict checking against the calendar.

A slot is occupied when the calendar returns any live event overlapping its
one-hour window. There is no partial-overlap reasoning beyond that: no two
appointments may share any part of the same hour.
"""

import logging
from typing import Any

from agenda.gateways.calendar_gateway import CalendarGateway
from agenda.models import TimeSlot

logger = logging.getLogger(__name__)


def is_live(event: dict[str, Any]) -> bool:
    """Cancelled instances still show up when a recurring series is expanded."""
    return event.get("status") != "cancelled"


class SlotConflictChecker:
    """
    Double-booking detection.

    Usage:
        checker = SlotConflictChecker(gateway, calendar_id)
        if await checker.is_occupied(slot):
            raise ConflictError(...)

    Gateway failures propagate as UpstreamError: a failed check is never
    reported as a free slot.
    """

    def __init__(self, gateway: CalendarGateway, calendar_id: str):
        self.gateway = gateway
        self.calendar_id = calendar_id

    async def conflicting_events(
        self, slot: TimeSlot, exclude_event_id: str | None = None
    ) -> list[dict[str, Any]]:
        page = await self.gateway.list_events(self.calendar_id, slot.start, slot.end)
        return [
            event for event in page.items
            if is_live(event) and event.get("id") != exclude_event_id
        ]

    async def is_occupied(self, slot: TimeSlot, exclude_event_id: str | None = None) -> bool:
        """
        True when another live event overlaps the slot.

        Args:
            slot: Candidate one-hour slot
            exclude_event_id: Event being moved; never conflicts with itself
        """
        conflicts = await self.conflicting_events(slot, exclude_event_id)
        if conflicts:
            logger.info(
                f"Slot occupied | slot={slot.key} | "
                f"conflicting_event_ids={[e.get('id') for e in conflicts]}",
                extra={"slot": slot.key},
            )
            return True
        return False
