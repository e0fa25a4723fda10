"""
Calcul pur des disponibilités (pas de DB).

Modèle: une ressource unique par lieu, limitée à `capacity` rendez-vous
simultanés. Un rendez-vous existant occupe [début - tampon, fin + tampon];
un créneau candidat [début, début + durée) est proposé tant que le nombre de
rendez-vous qui le chevauchent reste strictement inférieur à la capacité.
Des horaires absents ou illisibles ferment la journée.
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from salon_booking.config import DEFAULT_APPOINTMENT_MINUTES
from .models import AvailabilityDay, AvailabilitySlot, ExistingBooking, Location

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def parse_clock(value: Optional[str]) -> Optional[time]:
    """
    "HH:MM" ou "HH:MM:SS" -> time; None si absent ou illisible.
    """
    raw = (value or "").strip()
    if not raw:
        return None
    parts = raw.split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
        second = int(parts[2]) if len(parts) == 3 else 0
        return time(hour, minute, second)
    except ValueError:
        return None


def opening_window(location: Location, day: date) -> Optional[Tuple[datetime, datetime]]:
    """Fenêtre [ouverture, fermeture] du lieu pour ce jour, ou None si fermé."""
    if WEEKDAYS[day.weekday()] not in {d.strip().lower() for d in location.opening_days or []}:
        return None
    opening = parse_clock(location.opening_time)
    closing = parse_clock(location.closing_time)
    if opening is None or closing is None:
        logger.warning("availability: horaires invalides location=%s open=%r close=%r",
                       location.id, location.opening_time, location.closing_time)
        return None
    start = datetime.combine(day, opening)
    end = datetime.combine(day, closing)
    if start >= end:
        return None
    return start, end


def _naive(dt: datetime) -> datetime:
    # Les horaires du salon sont des heures murales: on compare sans fuseau
    return dt.replace(tzinfo=None) if dt.tzinfo else dt


def _booking_window(booking: ExistingBooking, buffer: timedelta) -> Tuple[datetime, datetime]:
    start = _naive(booking.start)
    end = _naive(booking.end) if booking.end else start + timedelta(minutes=DEFAULT_APPOINTMENT_MINUTES)
    return start - buffer, end + buffer


def _blocked_windows(bookings: Iterable[ExistingBooking], buffer_minutes: int) -> List[Tuple[datetime, datetime]]:
    buffer = timedelta(minutes=max(0, buffer_minutes))
    return [_booking_window(b, buffer) for b in bookings or []]


def _bookings_touching(bookings: List[ExistingBooking], day: date, buffer_minutes: int) -> List[ExistingBooking]:
    """Rendez-vous dont la fenêtre tamponnée chevauche le jour, y compris ceux de la veille."""
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    buffer = timedelta(minutes=max(0, buffer_minutes))
    kept = []
    for b in bookings:
        w_start, w_end = _booking_window(b, buffer)
        if w_start < day_end and day_start < w_end:
            kept.append(b)
    return kept


def _count_overlaps(windows: List[Tuple[datetime, datetime]], start: datetime, end: datetime) -> int:
    return sum(1 for w_start, w_end in windows if w_start < end and start < w_end)


def _walk_slots(
    location: Location,
    day: date,
    required_duration_minutes: int,
    capacity: int,
    slot_granularity_minutes: int,
    buffer_minutes: int,
    bookings: Iterable[ExistingBooking],
    not_before: Optional[datetime] = None,
):
    window = opening_window(location, day)
    if window is None or capacity <= 0:
        return
    opening, closing = window
    step = timedelta(minutes=max(1, slot_granularity_minutes))
    duration = timedelta(minutes=required_duration_minutes if required_duration_minutes > 0 else max(1, slot_granularity_minutes))
    windows = _blocked_windows(bookings, buffer_minutes)
    limit = _naive(not_before) if not_before else None

    current = opening
    while current < closing:
        candidate_end = current + duration
        if candidate_end > closing:
            break
        if limit is None or current >= limit:
            remaining = capacity - _count_overlaps(windows, current, candidate_end)
            if remaining > 0:
                yield AvailabilitySlot(
                    start_time=current.time(),
                    end_time=candidate_end.time(),
                    remaining_capacity=remaining,
                )
        current += step


def get_available_slots(
    location: Location,
    day: date,
    required_duration_minutes: int,
    capacity: int,
    slot_granularity_minutes: int,
    buffer_minutes: int,
    bookings: Iterable[ExistingBooking],
    not_before: Optional[datetime] = None,
) -> List[AvailabilitySlot]:
    """
    Créneaux proposables pour un jour donné (uniquement remaining_capacity > 0).
    - not_before: masque les heures de début déjà passées (jour courant)
    """
    return list(_walk_slots(
        location, day, required_duration_minutes, capacity,
        slot_granularity_minutes, buffer_minutes, bookings, not_before,
    ))


def month_days(month: date) -> List[date]:
    last = calendar.monthrange(month.year, month.month)[1]
    return [date(month.year, month.month, d) for d in range(1, last + 1)]


def get_available_days(
    location: Location,
    month: date,
    required_duration_minutes: int,
    capacity: int,
    buffer_minutes: int,
    bookings: Iterable[ExistingBooking],
    today: date,
    slot_granularity_minutes: int = 30,
    now: Optional[datetime] = None,
) -> List[AvailabilityDay]:
    """
    Statut ouvert/complet de chaque jour du mois.
    - is_open: jour d'ouverture, horaires valides, pas dans le passé
    - has_capacity: au moins un créneau proposable ce jour-là
    - now: le jour courant ne compte que les créneaux pas encore commencés
    """
    all_bookings = list(bookings or [])
    current = _naive(now) if now else None
    result: List[AvailabilityDay] = []
    for day in month_days(month):
        is_open = day >= today and opening_window(location, day) is not None
        has_capacity = False
        if is_open:
            day_bookings = _bookings_touching(all_bookings, day, buffer_minutes)
            has_capacity = next(_walk_slots(
                location, day, required_duration_minutes, capacity,
                slot_granularity_minutes, buffer_minutes, day_bookings,
                not_before=current if current and current.date() == day else None,
            ), None) is not None
        result.append(AvailabilityDay(date=day, is_open=is_open, has_capacity=has_capacity))
    return result


def is_slot_available(
    location: Location,
    day: date,
    start_label: str,
    required_duration_minutes: int,
    capacity: int,
    slot_granularity_minutes: int,
    buffer_minutes: int,
    bookings: Iterable[ExistingBooking],
) -> bool:
    """Le créneau choisi (ex: "10:45") est-il toujours proposé?"""
    wanted = parse_clock(start_label)
    if wanted is None:
        return False
    return any(
        slot.start_time == wanted
        for slot in _walk_slots(
            location, day, required_duration_minutes, capacity,
            slot_granularity_minutes, buffer_minutes, bookings,
        )
    )
