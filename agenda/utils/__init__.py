"""
Utility functions for the reservation core.

- date_parser: DD/MM/YYYY + HH:MM strings to timezone-aware TimeSlots
- event_description: "Label: value" layout of calendar event descriptions
"""

from agenda.utils.date_parser import DateTimeNormalizer, overlaps, parse_iso_datetime
from agenda.utils.event_description import (
    build_description,
    extract_reservation_ids,
    parse_description,
    replace_field,
)

__all__ = [
    # Date parsing
    "DateTimeNormalizer",
    "overlaps",
    "parse_iso_datetime",
    # Event description
    "build_description",
    "extract_reservation_ids",
    "parse_description",
    "replace_field",
]
