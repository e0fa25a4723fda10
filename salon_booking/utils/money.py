"""
Montants monétaires: Decimal arrondi au centime (ROUND_HALF_UP).
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

def to_money(value: Any) -> Decimal:
    """
    Convertit str|int|float|Decimal|None en Decimal au centime.
    - None ou valeur illisible => 0.00
    """
    if value is None or value == "":
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)

def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))

def to_minor_units(amount: Decimal) -> int:
    """Centimes (Stripe) / kobo, pesewas (Paystack)."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
