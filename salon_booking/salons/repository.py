"""
Lecture des réglages publics d'un salon (table 'tenants').
"""
import logging
from typing import Optional

import salon_booking.infra.supabase_client as supabase_client
from .models import TenantSettings

logger = logging.getLogger(__name__)

TENANT_COLUMNS = (
    "id, name, currency, country, pay_at_salon_enabled, deposits_enabled, "
    "default_deposit_percentage, slot_capacity, slot_duration_minutes, buffer_minutes"
)

# module salon_booking.salons.repository
def get_public_tenant(tenant_id: str) -> Optional[TenantSettings]:
    """
    Salon dont la réservation en ligne est activée, ou None.
    - Les colonnes nulles retombent sur les valeurs par défaut de la config.
    """
    try:
        res = (
            supabase_client.get_supabase()
            .table("tenants")
            .select(TENANT_COLUMNS)
            .eq("id", tenant_id)
            .eq("online_booking_enabled", True)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        if not rows:
            return None
        row = rows[0]
        data = {
            "id": str(row.get("id")),
            "name": row.get("name") or "",
            "currency": (row.get("currency") or "USD").upper(),
            "country": row.get("country"),
            "pay_at_venue_enabled": bool(row.get("pay_at_salon_enabled", True)),
            "deposits_enabled": bool(row.get("deposits_enabled")),
            "default_deposit_percentage": row.get("default_deposit_percentage") or 0,
        }
        # Ne pas écraser les défauts par des NULL
        for column, field in (
            ("slot_capacity", "slot_capacity"),
            ("slot_duration_minutes", "slot_granularity_minutes"),
            ("buffer_minutes", "buffer_minutes"),
        ):
            if row.get(column) is not None:
                data[field] = int(row[column])
        return TenantSettings(**data)
    except Exception:
        logger.exception("salons.repository.get_public_tenant failed tenant=%s", tenant_id)
        return None
