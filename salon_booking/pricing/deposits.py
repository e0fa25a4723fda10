"""
Acompte configuré pour un panier.
- Règle propre à l'article (table services): pourcentage de la ligne ou montant fixe plafonné à la ligne
- Sinon pourcentage par défaut du salon
- Chaque ligne est arrondie au centime avant la somme
"""
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field, field_validator

from salon_booking.cart.models import CartItem
from salon_booking.utils.money import ZERO, to_money


class DepositType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DepositRule(BaseModel):
    deposit_required: bool = False
    deposit_type: DepositType = DepositType.PERCENTAGE
    deposit_value: Decimal = ZERO

    @field_validator("deposit_value", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)


class DepositPolicy(BaseModel):
    enabled: bool = False
    default_percentage: Decimal = ZERO
    item_rules: Dict[str, DepositRule] = Field(default_factory=dict)


def line_deposit(item: CartItem, policy: DepositPolicy) -> Decimal:
    line_total = item.line_total
    rule = policy.item_rules.get(item.source_id)
    if rule is not None and rule.deposit_required:
        if rule.deposit_type == DepositType.PERCENTAGE:
            return to_money(line_total * rule.deposit_value / 100)
        return min(rule.deposit_value, line_total)
    if policy.default_percentage > ZERO:
        return to_money(line_total * policy.default_percentage / 100)
    return ZERO


def configured_deposit(items: Iterable[CartItem], policy: Optional[DepositPolicy]) -> Decimal:
    """Somme des acomptes par ligne; 0 si la politique est désactivée."""
    if policy is None or not policy.enabled:
        return ZERO
    return to_money(sum((line_deposit(i, policy) for i in items), ZERO))
