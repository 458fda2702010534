"""
Slot validators.

- SlotConflictChecker: detects live events overlapping a TimeSlot
- is_live: cancelled events never block a slot
"""

from agenda.validators.slot_validator import SlotConflictChecker, is_live

__all__ = ["SlotConflictChecker", "is_live"]
