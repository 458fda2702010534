"""Appointment pricing by time of day."""

from decimal import Decimal

from agenda.models import TimeSlot
from shared.config import Settings


class PricingPolicy:
    """
    Price of an appointment as a function of its start hour.

    Slots starting before PRICE_EVENING_START_HOUR cost PRICE_BASE_AMOUNT,
    later slots cost PRICE_EVENING_AMOUNT. Pure, no I/O.
    """

    def __init__(self, settings: Settings):
        self.base_amount = settings.PRICE_BASE_AMOUNT
        self.evening_amount = settings.PRICE_EVENING_AMOUNT
        self.evening_start_hour = settings.PRICE_EVENING_START_HOUR

    def price_for(self, slot: TimeSlot) -> Decimal:
        if slot.start.hour < self.evening_start_hour:
            return self.base_amount
        return self.evening_amount


def format_price(amount: Decimal) -> str:
    """
    Format an amount the way it is shown in the event description.

    Example:
        >>> format_price(Decimal("1500.5"))
        'R$ 1.500,50'
    """
    formatted = f"{amount:,.2f}"
    return "R$ " + formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def parse_price(text: str | None) -> Decimal | None:
    """Inverse of format_price(); None when the text holds no amount."""
    digits = (text or "").replace("R$", "").strip().replace(".", "").replace(",", ".")
    if not digits:
        return None
    try:
        return Decimal(digits)
    except ArithmeticError:
        return None
