"""
Reservation lookup by caller-chosen reservation id.

The calendar is the only store, so a reservation is found by scanning events
for its id: the private extended property "reservationId" when the event
has one, otherwise the "ID Reserva: <id>" description line. The scan is
linear over what the gateway returns, bounded to RESERVATION_SCAN_MAX_PAGES
pages of RESERVATION_SCAN_PAGE_SIZE events, optionally narrowed server-side
with the calendar free-text search and limited to events from the last
RESERVATION_LOOKBACK_DAYS days.

If several live events carry the same marker (a retried create), the first
one in start-time order is authoritative and the duplicates are logged.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from agenda.errors import NotFoundError
from agenda.gateways.calendar_gateway import CalendarGateway
from agenda.models import Channel, Reservation
from agenda.services.pricing_service import parse_price
from agenda.utils import event_description as desc
from agenda.utils.date_parser import DateTimeNormalizer
from agenda.validators.slot_validator import is_live
from shared.config import Settings

logger = logging.getLogger(__name__)


def event_reservation_id(event: dict[str, Any]) -> str | None:
    """Reservation id stored on an event, None for events without one."""
    private = (event.get("extendedProperties") or {}).get("private") or {}
    if private.get("reservationId"):
        return private["reservationId"]
    reservation_ids = desc.extract_reservation_ids(event.get("description"))
    return reservation_ids[0] if reservation_ids else None


class ReservationDirectory:
    """
    Map a reservation id to the calendar event that stores it.

    Usage:
        directory = ReservationDirectory(gateway, settings, normalizer)
        event = await directory.find_by_reservation_id("res-1001")
        reservation = directory.parse_reservation(event)
    """

    def __init__(
        self,
        gateway: CalendarGateway,
        settings: Settings,
        normalizer: DateTimeNormalizer,
        clock: Callable[[], datetime] | None = None,
    ):
        self.gateway = gateway
        self.calendar_id = settings.GOOGLE_CALENDAR_ID
        self.normalizer = normalizer
        self.page_size = settings.RESERVATION_SCAN_PAGE_SIZE
        self.max_pages = settings.RESERVATION_SCAN_MAX_PAGES
        self.lookback_days = settings.RESERVATION_LOOKBACK_DAYS
        self.use_query = settings.RESERVATION_SCAN_USE_QUERY
        self.clock = clock or (lambda: datetime.now(normalizer.tz))

    def _scan_start(self) -> datetime | None:
        if not self.lookback_days:
            return None
        today = self.clock().astimezone(self.normalizer.tz)
        start = today.replace(hour=0, minute=0, second=0, microsecond=0)
        return start - timedelta(days=self.lookback_days)

    async def find_all(self, reservation_id: str) -> list[dict[str, Any]]:
        """
        Live events carrying the reservation marker, in start-time order.

        Stops at the end of the first page that produced a match, or after
        max_pages pages.
        """
        matches: list[dict[str, Any]] = []
        page_token = None
        scanned = 0
        time_min = self._scan_start()

        for _ in range(self.max_pages):
            page = await self.gateway.list_events(
                self.calendar_id,
                time_min,
                query=reservation_id if self.use_query else None,
                max_results=self.page_size,
                page_token=page_token,
            )
            scanned += len(page.items)
            matches.extend(
                event for event in page.items
                if is_live(event) and event_reservation_id(event) == reservation_id
            )
            page_token = page.next_page_token
            if matches or not page_token:
                break

        logger.debug(
            f"Reservation scan | reservation_id={reservation_id} | scanned={scanned} | "
            f"matches={len(matches)}"
        )
        return matches

    async def find_by_reservation_id(self, reservation_id: str) -> dict[str, Any]:
        """
        The calendar event for a reservation id.

        Raises:
            NotFoundError: no live event carries the marker
            UpstreamError: the gateway failed
        """
        matches = await self.find_all(reservation_id)
        if not matches:
            raise NotFoundError(
                f"Reserva {reservation_id} não encontrada",
                details={"reservation_id": reservation_id},
            )

        if len(matches) > 1:
            logger.warning(
                f"Duplicate reservation marker | reservation_id={reservation_id} | "
                f"event_ids={[e.get('id') for e in matches]} | using first",
                extra={"reservation_id": reservation_id},
            )
        return matches[0]

    def parse_reservation(self, event: dict[str, Any]) -> Reservation:
        """Project a calendar event back to a Reservation."""
        fields = desc.parse_description(event.get("description"))
        return Reservation(
            reservation_id=event_reservation_id(event) or "",
            event_id=event.get("id", ""),
            slot=self.normalizer.slot_from_event(event),
            name=fields.get(desc.PATIENT, ""),
            phone=fields.get(desc.PHONE, ""),
            email=fields.get(desc.EMAIL, ""),
            channel=Channel.parse(fields.get(desc.CHANNEL)),
            payment_method=fields.get(desc.PAYMENT, ""),
            accessibility=desc.parse_flag(fields.get(desc.ACCESSIBILITY)),
            price=parse_price(fields.get(desc.PRICE)),
            location=event.get("location", ""),
            notes=fields.get(desc.NOTES, ""),
            meeting_link=event.get("hangoutLink"),
        )
