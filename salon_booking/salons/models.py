from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from salon_booking.config import (
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_SLOT_CAPACITY,
    DEFAULT_SLOT_GRANULARITY_MINUTES,
)
from salon_booking.utils.money import to_money


class TenantSettings(BaseModel):
    """Réglages publics d'un salon utilisés par le checkout."""
    id: str
    name: str = ""
    currency: str = "USD"
    country: Optional[str] = None
    pay_at_venue_enabled: bool = True
    deposits_enabled: bool = False
    default_deposit_percentage: Decimal = Decimal("0")
    slot_capacity: int = DEFAULT_SLOT_CAPACITY
    slot_granularity_minutes: int = DEFAULT_SLOT_GRANULARITY_MINUTES
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES

    @field_validator("default_deposit_percentage", mode="before")
    @classmethod
    def _percentage(cls, v):
        return to_money(v)
