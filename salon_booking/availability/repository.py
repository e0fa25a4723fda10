"""
Accès aux données pour la feature 'availability' (lecture seule).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import salon_booking.infra.supabase_client as supabase_client
from salon_booking.config import BLOCKING_APPOINTMENT_STATUSES
from .models import ExistingBooking, Location, LocationSchedule

logger = logging.getLogger(__name__)

LOCATION_COLUMNS = "id, tenant_id, name, city, opening_days, opening_time, closing_time"

# module salon_booking.availability.repository
def _to_location(row: Dict[str, Any]) -> Location:
    return Location(
        id=str(row.get("id")),
        tenant_id=str(row.get("tenant_id") or "") or None,
        name=row.get("name") or "",
        city=row.get("city"),
        opening_days=[str(d) for d in (row.get("opening_days") or [])],
        opening_time=row.get("opening_time"),
        closing_time=row.get("closing_time"),
    )

def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None

def fetch_location(tenant_id: str, location_id: str) -> Optional[Location]:
    """Lieu actif du salon, ou None si introuvable/erreur."""
    try:
        res = (
            supabase_client.get_supabase()
            .table("locations")
            .select(LOCATION_COLUMNS)
            .eq("tenant_id", tenant_id)
            .eq("id", location_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return _to_location(rows[0]) if rows else None
    except Exception:
        logger.exception("availability.repository.fetch_location failed tenant=%s location=%s", tenant_id, location_id)
        return None

def get_public_locations(tenant_id: str) -> List[Location]:
    """Lieux publics d'un salon ([] en cas d'erreur)."""
    try:
        res = (
            supabase_client.get_supabase()
            .table("locations")
            .select(LOCATION_COLUMNS)
            .eq("tenant_id", tenant_id)
            .eq("is_active", True)
            .order("name")
            .execute()
        )
        return [_to_location(r) for r in (res.data or [])]
    except Exception:
        logger.exception("availability.repository.get_public_locations failed tenant=%s", tenant_id)
        return []

def fetch_blocking_bookings(tenant_id: str, location_id: str, start: datetime, end: datetime) -> List[ExistingBooking]:
    """
    Rendez-vous qui occupent le lieu sur [start, end].
    Lève l'exception d'origine: l'appelant doit fermer les jours plutôt que de les croire libres.
    """
    res = (
        supabase_client.get_supabase()
        .table("appointments")
        .select("scheduled_start, scheduled_end, status")
        .eq("tenant_id", tenant_id)
        .eq("location_id", location_id)
        .gte("scheduled_start", start.isoformat())
        .lte("scheduled_start", end.isoformat())
        .in_("status", BLOCKING_APPOINTMENT_STATUSES)
        .execute()
    )
    bookings: List[ExistingBooking] = []
    for row in res.data or []:
        begin = _parse_ts(row.get("scheduled_start"))
        if begin is None:
            continue
        bookings.append(ExistingBooking(start=begin, end=_parse_ts(row.get("scheduled_end"))))
    return bookings

def get_location_schedule(tenant_id: str, location_id: str, start: datetime, end: datetime) -> Optional[LocationSchedule]:
    """
    Horaires du lieu + rendez-vous existants sur la période.
    - None si le lieu est introuvable ou si la lecture des rendez-vous échoue.
    """
    location = fetch_location(tenant_id, location_id)
    if location is None:
        return None
    try:
        bookings = fetch_blocking_bookings(tenant_id, location_id, start, end)
    except Exception:
        logger.exception("availability.repository.get_location_schedule failed tenant=%s location=%s", tenant_id, location_id)
        return None
    return LocationSchedule(location=location, bookings=bookings)
