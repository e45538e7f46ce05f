from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def round_currency(value: Decimal) -> Decimal:
    """Round to whole cents. Presentation only; calculations keep full precision."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(value: Decimal) -> str:
    return f"{round_currency(value):,.2f}"


def format_quantity(value: Decimal) -> str:
    # normalize() alone would render 100 as 1E+2
    return f"{value.normalize():f}"
