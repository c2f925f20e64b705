from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from backend.app.booking.slots import check_hours

MINOR_UNIT = Decimal("0.01")
CURRENCY = "AED"


@dataclass(frozen=True)
class Quote:
    hourly_rate: Decimal
    hours: int
    discount_percent: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal


def _money(value: Decimal) -> Decimal:
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def quote(hourly_rate, hours: int, discount_percent=0) -> Quote:
    """Price a charter: ``rate * hours`` less the offer's percentage."""
    rate = Decimal(str(hourly_rate))
    pct = Decimal(str(discount_percent or 0))
    check_hours(hours)
    if rate < 0:
        raise ValueError("hourly rate must be non-negative")
    if pct < 0 or pct > 100:
        raise ValueError("discount percent must be between 0 and 100")

    subtotal = rate * hours
    discount = subtotal * pct / 100
    return Quote(
        hourly_rate=_money(rate),
        hours=hours,
        discount_percent=pct,
        subtotal=_money(subtotal),
        discount=_money(discount),
        total=_money(subtotal - discount),
    )
