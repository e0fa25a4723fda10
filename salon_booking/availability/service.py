"""
Cas d'usage 'availability': charge horaires + rendez-vous puis délègue au calcul pur.
Lecture seule: les grilles jours et créneaux peuvent être demandées en parallèle.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from salon_booking.salons.models import TenantSettings
from . import engine
from . import repository
from .engine import month_days
from .models import AvailabilityDay, AvailabilitySlot

logger = logging.getLogger(__name__)


def _closed_month(month: date) -> List[AvailabilityDay]:
    return [AvailabilityDay(date=d, is_open=False, has_capacity=False) for d in month_days(month)]


def _read_window(tenant: TenantSettings, first_day: date, last_day: date):
    # Le tampon peut faire déborder un rendez-vous de la veille ou du lendemain: on élargit la lecture
    buffer = timedelta(minutes=max(0, tenant.buffer_minutes))
    start = datetime.combine(first_day, time.min) - buffer - timedelta(hours=24)
    end = datetime.combine(last_day, time.max) + buffer
    return start, end


def fetch_available_days(
    tenant: TenantSettings,
    location_id: str,
    month: date,
    required_duration_minutes: int,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> List[AvailabilityDay]:
    """
    Grille du mois pour un lieu.
    - Lecture impossible => tous les jours fermés (jamais de surréservation).
    - Jour courant: seuls les créneaux pas encore commencés comptent.
    """
    now = now or datetime.now()
    month = month.replace(day=1)
    days = month_days(month)
    start, end = _read_window(tenant, days[0], days[-1])
    schedule = repository.get_location_schedule(tenant.id, location_id, start, end)
    if schedule is None:
        logger.warning("availability.days fermé (horaires indisponibles) tenant=%s location=%s month=%s",
                       tenant.id, location_id, month.isoformat())
        return _closed_month(month)
    return engine.get_available_days(
        schedule.location,
        month,
        required_duration_minutes,
        tenant.slot_capacity,
        tenant.buffer_minutes,
        schedule.bookings,
        today or now.date(),
        tenant.slot_granularity_minutes,
        now=now,
    )


def fetch_available_slots(
    tenant: TenantSettings,
    location_id: str,
    day: date,
    required_duration_minutes: int,
    now: Optional[datetime] = None,
) -> List[AvailabilitySlot]:
    """
    Créneaux proposables d'un jour.
    - Jour passé => []
    - Jour courant => heures déjà passées masquées
    """
    now = now or datetime.now()
    if day < now.date():
        return []
    schedule = _day_schedule(tenant, location_id, day)
    if schedule is None:
        return []
    return engine.get_available_slots(
        schedule.location,
        day,
        required_duration_minutes,
        tenant.slot_capacity,
        tenant.slot_granularity_minutes,
        tenant.buffer_minutes,
        schedule.bookings,
        not_before=now if day == now.date() else None,
    )


def is_slot_still_available(
    tenant: TenantSettings,
    location_id: str,
    day: date,
    start_label: str,
    required_duration_minutes: int,
) -> bool:
    """Re-vérifie le créneau choisi juste avant la création du rendez-vous."""
    schedule = _day_schedule(tenant, location_id, day)
    if schedule is None:
        return False
    return engine.is_slot_available(
        schedule.location,
        day,
        start_label,
        required_duration_minutes,
        tenant.slot_capacity,
        tenant.slot_granularity_minutes,
        tenant.buffer_minutes,
        schedule.bookings,
    )


def _day_schedule(tenant: TenantSettings, location_id: str, day: date):
    start, end = _read_window(tenant, day, day)
    schedule = repository.get_location_schedule(tenant.id, location_id, start, end)
    if schedule is None:
        logger.warning("availability.slots fermé (horaires indisponibles) tenant=%s location=%s day=%s",
                       tenant.id, location_id, day.isoformat())
    return schedule
