"""
Module 'cart' (feature-first): point d'entrée public du panier.
"""
from .models import (
    BookerInfo,
    CartItem,
    FulfillmentType,
    GiftRecipient,
    ItemType,
    SchedulingChoice,
)
from .store import CartStore

__all__ = [
    "BookerInfo",
    "CartItem",
    "CartStore",
    "FulfillmentType",
    "GiftRecipient",
    "ItemType",
    "SchedulingChoice",
]
