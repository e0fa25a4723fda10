import json
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from salon_booking.payments import paystack_client
from salon_booking.payments import stripe_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module salon_booking.payments.views
@router.post("/webhook/stripe", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe: consomme checkout.session.completed pour marquer le rendez-vous payé.
    - Signature: stripe_client.parse_event (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - Réponses: {"status": "ok"|"duplicate"|"ignored", ...}
    - Erreurs: 400 si signature/payload invalide, 500 si l'enregistrement échoue (Stripe réessaie)
    """
    try:
        event = await stripe_client.parse_event(request)
    except Exception:
        logger.exception("Erreur webhook_stripe (signature/payload)")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")
    # Importer le module pour bénéficier des monkeypatchs de tests
    from salon_booking.payments import service as payments_service
    try:
        result = payments_service.handle_stripe_event(event)
    except Exception:
        logger.exception("Erreur webhook_stripe (réconciliation)")
        raise HTTPException(status_code=500, detail="Payment reconciliation failed")
    return JSONResponse(result)

@router.post("/webhook/paystack", include_in_schema=False)
async def webhook_paystack(request: Request):
    """
    Webhook Paystack: consomme charge.success.
    - Signature: en-tête x-paystack-signature (HMAC-SHA512 du body brut)
    """
    body = await request.body()
    if not paystack_client.verify_signature(body, request.headers.get("x-paystack-signature") or ""):
        raise HTTPException(status_code=400, detail="Invalid Paystack signature")
    try:
        event = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Paystack webhook payload")
    from salon_booking.payments import service as payments_service
    try:
        result = payments_service.handle_paystack_event(event)
    except Exception:
        logger.exception("Erreur webhook_paystack (réconciliation)")
        raise HTTPException(status_code=500, detail="Payment reconciliation failed")
    return JSONResponse(result)
