"""
Types du panier de réservation publique.
- CartItem: ligne de panier (prestation, forfait ou produit)
- GiftRecipient: bénéficiaire d'une ligne offerte
- BookerInfo: l'acheteur (distinct des bénéficiaires)
"""
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from salon_booking.utils.money import to_money


class ItemType(str, Enum):
    SERVICE = "service"
    PACKAGE = "package"
    PRODUCT = "product"


class FulfillmentType(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class SchedulingChoice(str, Enum):
    SCHEDULE_NOW = "schedule_now"
    LEAVE_UNSCHEDULED = "leave_unscheduled"


class CartItem(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    item_type: ItemType
    source_id: str
    name: str
    unit_price: Decimal
    quantity: int = Field(default=1, ge=1)
    is_gift: bool = False
    fulfillment_type: Optional[FulfillmentType] = None
    scheduling_choice: Optional[SchedulingChoice] = None
    chosen_date: Optional[date] = None
    chosen_time: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)

    @field_validator("unit_price", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)

    @property
    def is_product(self) -> bool:
        return self.item_type == ItemType.PRODUCT

    @property
    def is_schedulable(self) -> bool:
        """Prestation/forfait que le client n'a pas choisi de laisser sans date."""
        return (
            not self.is_product
            and self.scheduling_choice != SchedulingChoice.LEAVE_UNSCHEDULED
        )

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class GiftRecipient(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    message: Optional[str] = None
    hide_sender_identity: bool = False


class BookerInfo(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    notes: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
