"""
Adaptateur Paystack (API REST via httpx).
"""
import hashlib
import hmac
from typing import Any, Dict

import httpx

from salon_booking.config import PAYSTACK_API_URL, PAYSTACK_SECRET_KEY, EXTERNAL_CALL_TIMEOUT_SECONDS

# module salon_booking.payments.paystack_client
def _headers() -> Dict[str, str]:
    if not PAYSTACK_SECRET_KEY:
        raise RuntimeError("Paystack non configuré (PAYSTACK_SECRET_KEY manquant)")
    return {
        "Authorization": f"Bearer {PAYSTACK_SECRET_KEY}",
        "Content-Type": "application/json",
    }

def initialize_transaction(
    *,
    amount_minor: int,
    currency: str,
    email: str,
    reference: str,
    callback_url: str,
    metadata: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Initialise une transaction Paystack.
    - amount_minor: kobo (NGN) / pesewas (GHS)
    Retour: data Paystack {authorization_url, access_code, reference}
    Lève RuntimeError si Paystack refuse la transaction, httpx.HTTPError si l'appel échoue.
    """
    resp = httpx.post(
        f"{PAYSTACK_API_URL}/transaction/initialize",
        headers=_headers(),
        json={
            "email": email,
            "amount": amount_minor,
            "currency": currency.upper(),
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        },
        timeout=EXTERNAL_CALL_TIMEOUT_SECONDS,
    )
    payload = resp.json() if resp.content else {}
    if resp.status_code >= 400 or not payload.get("status"):
        raise RuntimeError(payload.get("message") or "Échec d'initialisation de la transaction Paystack")
    return payload.get("data") or {}

def verify_signature(body: bytes, signature: str) -> bool:
    """Signature webhook Paystack: HMAC-SHA512 du body brut avec la clé secrète."""
    if not PAYSTACK_SECRET_KEY or not signature:
        return False
    expected = hmac.new(PAYSTACK_SECRET_KEY.encode("utf-8"), body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)
