"""
Calendar Gateways: the only I/O against the calendar store.

- GoogleCalendarGateway: Google Calendar API v3 (service account)
- InMemoryCalendarGateway: dict-backed store for tests and local runs
"""

from agenda.gateways.calendar_gateway import (
    CalendarGateway,
    GoogleCalendarGateway,
    load_credentials,
)
from agenda.gateways.memory_gateway import InMemoryCalendarGateway

__all__ = [
    "CalendarGateway",
    "GoogleCalendarGateway",
    "InMemoryCalendarGateway",
    "load_credentials",
]
