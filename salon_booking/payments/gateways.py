"""
Choix de la passerelle et ouverture d'une session de paiement carte.

Heuristique régionale: Paystack pour le Nigeria/Ghana (pays ou devise NGN/GHS),
Stripe partout ailleurs; une préférence explicite du client l'emporte.
"""
import logging
import time
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from salon_booking.config import PAYSTACK_COUNTRIES, PAYSTACK_CURRENCIES
from salon_booking.utils.money import to_minor_units
from . import paystack_client
from . import repository
from . import stripe_client

logger = logging.getLogger(__name__)


class Gateway(str, Enum):
    STRIPE = "stripe"
    PAYSTACK = "paystack"


class PaymentSessionRequest(BaseModel):
    tenant_id: str
    booking_id: str
    amount: Decimal
    currency: str
    customer_email: str
    customer_name: str = ""
    description: str = "Paiement de réservation"
    success_url: str
    cancel_url: str
    gateway: Gateway
    is_deposit: bool = False


class PaymentSession(BaseModel):
    checkout_url: str
    gateway: Gateway
    payment_intent_id: Optional[str] = None
    reference: Optional[str] = None


def is_paystack_region(country: Optional[str], currency: Optional[str]) -> bool:
    return (country or "") in PAYSTACK_COUNTRIES or (currency or "").upper() in PAYSTACK_CURRENCIES


def select_gateway(country: Optional[str], currency: Optional[str], preferred: Optional[Gateway] = None) -> Gateway:
    if preferred is not None:
        return Gateway(preferred)
    return Gateway.PAYSTACK if is_paystack_region(country, currency) else Gateway.STRIPE


def _reference(booking_id: str) -> str:
    return f"sm_{booking_id[:8]}_{int(time.time() * 1000)}"


def create_payment_session(req: PaymentSessionRequest) -> PaymentSession:
    """
    Ouvre la session chez la passerelle choisie et renvoie l'URL de paiement.
    - Trace un payment_intent (best-effort) puis le passe en 'processing'
    - Les erreurs SDK/HTTP remontent telles quelles: l'orchestrateur les traduit
    """
    reference = _reference(req.booking_id) if req.gateway == Gateway.PAYSTACK else None
    intent = repository.insert_payment_intent(
        tenant_id=req.tenant_id,
        booking_id=req.booking_id,
        amount=req.amount,
        currency=req.currency,
        customer_email=req.customer_email,
        customer_name=req.customer_name,
        gateway=req.gateway.value,
        is_deposit=req.is_deposit,
        reference=reference,
    )
    intent_id = str(intent["id"]) if intent and intent.get("id") else None
    metadata = {
        "appointment_id": req.booking_id,
        "payment_intent_id": intent_id,
        "tenant_id": req.tenant_id,
        "is_deposit": req.is_deposit,
        "intent_type": "appointment_payment",
    }
    amount_minor = to_minor_units(req.amount)

    if req.gateway == Gateway.PAYSTACK:
        data = paystack_client.initialize_transaction(
            amount_minor=amount_minor,
            currency=req.currency,
            email=req.customer_email,
            reference=reference,
            callback_url=req.success_url,
            metadata={**metadata, "customer_name": req.customer_name},
        )
        checkout_url = data.get("authorization_url") or ""
        changes = {"paystack_access_code": data.get("access_code"), "status": "processing"}
    else:
        session = stripe_client.create_session(
            amount_minor=amount_minor,
            currency=req.currency,
            description=req.description,
            customer_email=req.customer_email,
            success_url=req.success_url,
            cancel_url=req.cancel_url,
            metadata=metadata,
        )
        checkout_url = session.get("url") or ""
        changes = {"stripe_session_id": session.get("id"), "status": "processing"}

    if not checkout_url:
        raise RuntimeError("La passerelle n'a pas renvoyé d'URL de paiement")
    if intent_id:
        repository.update_payment_intent(intent_id, changes)
    logger.info("payments.session gateway=%s booking=%s amount=%s", req.gateway.value, req.booking_id, req.amount)
    return PaymentSession(checkout_url=checkout_url, gateway=req.gateway, payment_intent_id=intent_id, reference=reference)
