"""
Panier en mémoire (pas de DB, pas de Stripe).

Politique d'ajout: une ligne déjà présente pour le même couple
(source_id, item_type) voit sa quantité incrémentée; elle garde son id
(les bénéficiaires cadeau y sont rattachés) et ses options.
"""
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from salon_booking.utils.money import ZERO, to_money
from .models import CartItem, ItemType

# Champs non modifiables via update_item
_FROZEN_FIELDS = {"id", "item_type", "source_id"}


class CartStore:
    """Lignes du panier d'une session de checkout, protégées par un verrou unique."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: List[CartItem] = []

    # --- mutations ---

    def add_item(self, item: CartItem) -> CartItem:
        with self._lock:
            existing = self._find(item.source_id, item.item_type)
            if existing is not None:
                existing.quantity += item.quantity
                return existing.model_copy()
            self._items.append(item.model_copy())
            return item.model_copy()

    def update_item(self, item_id: str, changes: Dict[str, Any]) -> Optional[CartItem]:
        """
        Applique une mise à jour partielle.
        - quantity <= 0 retire la ligne (retourne None)
        - id/item_type/source_id sont ignorés
        Lève KeyError si la ligne est introuvable.
        """
        with self._lock:
            idx = self._index(item_id)
            current = self._items[idx]
            updates = {k: v for k, v in (changes or {}).items() if k not in _FROZEN_FIELDS}
            if "quantity" in updates and int(updates["quantity"] or 0) <= 0:
                del self._items[idx]
                return None
            merged = current.model_dump()
            merged.update(updates)
            updated = CartItem.model_validate(merged)
            self._items[idx] = updated
            return updated.model_copy()

    def update_quantity(self, item_id: str, delta: int) -> Optional[CartItem]:
        with self._lock:
            idx = self._index(item_id)
            new_qty = self._items[idx].quantity + delta
        return self.update_item(item_id, {"quantity": new_qty})

    def remove_item(self, item_id: str) -> bool:
        with self._lock:
            before = len(self._items)
            self._items = [i for i in self._items if i.id != item_id]
            return len(self._items) != before

    def clear(self) -> None:
        with self._lock:
            self._items = []

    # --- lectures ---

    def items(self) -> List[CartItem]:
        with self._lock:
            return [i.model_copy() for i in self._items]

    def get_item(self, item_id: str) -> Optional[CartItem]:
        with self._lock:
            for it in self._items:
                if it.id == item_id:
                    return it.model_copy()
        return None

    def find_item(self, source_id: str, item_type: ItemType) -> Optional[CartItem]:
        with self._lock:
            found = self._find(source_id, item_type)
            return found.model_copy() if found else None

    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    def get_total(self) -> Decimal:
        with self._lock:
            total = sum((i.unit_price * i.quantity for i in self._items), ZERO)
        return to_money(total)

    def get_total_duration_minutes(self) -> int:
        with self._lock:
            return sum(
                (i.duration_minutes or 0) * i.quantity
                for i in self._items
                if i.is_schedulable
            )

    def get_gift_items(self) -> List[CartItem]:
        with self._lock:
            return [i.model_copy() for i in self._items if i.is_gift]

    def get_item_count(self) -> int:
        with self._lock:
            return sum(i.quantity for i in self._items)

    def fingerprint(self) -> Tuple[Tuple[str, str, int, str, bool], ...]:
        """Empreinte du contenu, pour savoir si une réservation en cours correspond encore au panier."""
        with self._lock:
            return tuple(
                (i.source_id, i.item_type.value, i.quantity, str(i.unit_price), i.is_gift)
                for i in self._items
            )

    # --- interne (verrou déjà pris) ---

    def _find(self, source_id: str, item_type: ItemType) -> Optional[CartItem]:
        for it in self._items:
            if it.source_id == source_id and it.item_type == item_type:
                return it
        return None

    def _index(self, item_id: str) -> int:
        for idx, it in enumerate(self._items):
            if it.id == item_id:
                return idx
        raise KeyError(item_id)
