"""Money helpers. Every amount in the service is an integer number of pence."""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal, str]

CURRENCY_SYMBOLS = {"GBP": "£", "USD": "$", "EUR": "€"}


def round_half_up(value: Number) -> int:
    """Round to the nearest whole penny, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage_of(amount_pence: int, rate: Number) -> int:
    """Return ``rate`` percent of ``amount_pence`` rounded to whole pence."""
    return round_half_up(Decimal(amount_pence) * Decimal(str(rate)) / Decimal(100))


def parse_pence(value, default: int = 0) -> int:
    """Parse a Stripe metadata string (always strings) into pence."""
    if value is None or value == "":
        return default
    try:
        return int(Decimal(str(value)))
    except (ArithmeticError, ValueError):
        return default


def format_money(amount_pence: int | None, currency: str = "GBP") -> str:
    """Format pence as e.g. ``£12.50``."""
    code = (currency or "GBP").upper()
    symbol = CURRENCY_SYMBOLS.get(code, code)
    pence = Decimal(amount_pence or 0)
    return f"{symbol}{(pence / 100).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"
