"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
"""
import stripe
from typing import Any, Dict
from fastapi import Request

from salon_booking.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, EXTERNAL_CALL_TIMEOUT_SECONDS

# module salon_booking.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY.
    - Lève RuntimeError si la clé manque (traduit en GatewayError par l'appelant).
    """
    if not STRIPE_SECRET_KEY:
        raise RuntimeError("Stripe non configuré (STRIPE_SECRET_KEY manquant)")
    stripe.api_key = STRIPE_SECRET_KEY
    stripe.max_network_retries = 1
    # Client HTTP borné: une passerelle lente remonte une erreur réessayable
    stripe.default_http_client = stripe.RequestsClient(timeout=EXTERNAL_CALL_TIMEOUT_SECONDS)
    return stripe

def create_session(
    *,
    amount_minor: int,
    currency: str,
    description: str,
    customer_email: str,
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout pour un montant unique (une ligne).
    - amount_minor: montant en centimes
    - success_url reçoit ?session_id={CHECKOUT_SESSION_ID}
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    sep = "&" if "?" in success_url else "?"
    session = stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[{
            "quantity": 1,
            "price_data": {
                "currency": currency.lower(),
                "unit_amount": amount_minor,
                "product_data": {"name": description or "Paiement de réservation"},
            },
        }],
        customer_email=customer_email,
        success_url=f"{success_url}{sep}session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=cancel_url,
        metadata={k: ("" if v is None else str(v)) for k, v in metadata.items()},
    )
    return dict(session)

async def parse_event(request: Request):
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    - Valide la signature via Webhook.construct_event (STRIPE_WEBHOOK_SECRET)
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or ""
    event = stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET or "")
    return event
