"""
Accès aux données pour la feature 'payments' (table payment_intents).
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import salon_booking.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

# module salon_booking.payments.repository
def insert_payment_intent(
    *,
    tenant_id: str,
    booking_id: str,
    amount: Decimal,
    currency: str,
    customer_email: str,
    customer_name: str,
    gateway: str,
    is_deposit: bool,
    reference: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Trace l'intention de paiement (status 'pending'); None si l'insertion échoue (non bloquant)."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("payment_intents")
            .insert({
                "tenant_id": tenant_id,
                "appointment_id": booking_id,
                "amount": str(amount),
                "currency": currency.upper(),
                "customer_email": customer_email,
                "customer_name": customer_name,
                "gateway": gateway,
                "is_deposit": is_deposit,
                "status": "pending",
                "paystack_reference": reference,
                "intent_type": "appointment_payment",
            })
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("payments.repository.insert_payment_intent failed booking=%s", booking_id)
        return None

def update_payment_intent(intent_id: str, changes: Dict[str, Any]) -> bool:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("payment_intents")
            .update(changes)
            .eq("id", intent_id)
            .execute()
        )
        return bool(res.data)
    except Exception:
        logger.exception("payments.repository.update_payment_intent failed intent=%s", intent_id)
        return False
