"""
Accès aux données pour la feature 'pricing': bons d'achat, règles d'acompte, porte-monnaie client.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

import salon_booking.infra.supabase_client as supabase_client
from salon_booking.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)

# module salon_booking.pricing.repository
def fetch_voucher(tenant_id: str, code: str) -> Optional[Dict[str, Any]]:
    """Bon d'achat actif du salon pour ce code (insensible à la casse), ou None."""
    try:
        res = (
            supabase_client.get_supabase()
            .table("vouchers")
            .select("id, code, balance, expires_at, status")
            .eq("tenant_id", tenant_id)
            .eq("code", code.strip().upper())
            .eq("status", "active")
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("pricing.repository.fetch_voucher failed tenant=%s", tenant_id)
        return None

def get_deposit_rules(tenant_id: str, source_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """
    Règles d'acompte par prestation {service_id: {deposit_required, deposit_type, deposit_value}}.
    - {} si aucun id ou en cas d'erreur (on retombe sur le pourcentage du salon)
    """
    ids = [str(i) for i in source_ids if i]
    if not ids:
        return {}
    try:
        res = (
            supabase_client.get_supabase()
            .table("services")
            .select("id, deposit_required, deposit_type, deposit_value")
            .eq("tenant_id", tenant_id)
            .in_("id", ids)
            .execute()
        )
        return {str(r.get("id")): r for r in (res.data or [])}
    except Exception:
        logger.exception("pricing.repository.get_deposit_rules failed tenant=%s ids=%s", tenant_id, ids)
        return {}

def get_stored_credit_balance(tenant_id: str, customer_email: str) -> Tuple[Optional[str], Decimal]:
    """
    (customer_id, solde du porte-monnaie) pour un email client.
    - Client inconnu ou erreur => (None, 0.00)
    """
    email = (customer_email or "").strip().lower()
    if not email:
        return None, ZERO
    try:
        client = supabase_client.get_service_supabase()
        res = (
            client.table("customers")
            .select("id")
            .eq("tenant_id", tenant_id)
            .eq("email", email)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        if not rows:
            return None, ZERO
        customer_id = str(rows[0]["id"])
        purse = (
            client.table("customer_purses")
            .select("balance")
            .eq("tenant_id", tenant_id)
            .eq("customer_id", customer_id)
            .limit(1)
            .execute()
        )
        purse_rows = purse.data or []
        balance = to_money(purse_rows[0].get("balance")) if purse_rows else ZERO
        return customer_id, balance
    except Exception:
        logger.exception("pricing.repository.get_stored_credit_balance failed tenant=%s", tenant_id)
        return None, ZERO
