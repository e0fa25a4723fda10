"""
Extraction des métadonnées de réservation depuis les événements des passerelles.
"""
import json
from typing import Any, Dict, Optional

from pydantic import BaseModel

from salon_booking.utils.money import to_money

# module salon_booking.payments.metadata
class PaymentNotification(BaseModel):
    """Paiement confirmé par une passerelle, ramené à ce que la réconciliation utilise."""
    booking_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    is_deposit: bool = False
    amount: Any = None
    gateway_reference: Optional[str] = None


def _truthy(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes")


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def from_stripe_event(event: Dict[str, Any]) -> PaymentNotification:
    """
    Lit event.data.object (session Checkout): metadata.{appointment_id, payment_intent_id, is_deposit}.
    - amount_total est en centimes
    """
    data_obj = (event or {}).get("data", {}).get("object", {}) if isinstance(event, dict) else {}
    meta = _as_dict(data_obj.get("metadata"))
    total = data_obj.get("amount_total")
    return PaymentNotification(
        booking_id=meta.get("appointment_id") or None,
        payment_intent_id=meta.get("payment_intent_id") or None,
        is_deposit=_truthy(meta.get("is_deposit")),
        amount=to_money(total) / 100 if total is not None else None,
        gateway_reference=data_obj.get("id"),
    )


def from_paystack_event(event: Dict[str, Any]) -> PaymentNotification:
    """
    Lit event.data: metadata peut arriver en objet ou en JSON sérialisé.
    - amount est en kobo/pesewas
    """
    data = (event or {}).get("data", {}) if isinstance(event, dict) else {}
    meta = _as_dict(data.get("metadata"))
    amount = data.get("amount")
    return PaymentNotification(
        booking_id=meta.get("appointment_id") or None,
        payment_intent_id=meta.get("payment_intent_id") or None,
        is_deposit=_truthy(meta.get("is_deposit")),
        amount=to_money(amount) / 100 if amount is not None else None,
        gateway_reference=data.get("reference"),
    )
