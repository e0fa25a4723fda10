from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from salon_booking.salons import repository as salons_repository
from salon_booking.utils.rate_limit import optional_rate_limit
from . import repository
from . import service

router = APIRouter(prefix="/api/v1/availability", tags=["Availability API"])

# module salon_booking.availability.views
def _tenant_or_404(tenant_id: str):
    tenant = salons_repository.get_public_tenant(tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Salon introuvable")
    return tenant

def _parse_month(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError:
        raise HTTPException(status_code=422, detail="month attendu au format YYYY-MM")

@router.get("/locations")
def list_locations(tenant_id: str):
    tenant = _tenant_or_404(tenant_id)
    return {"locations": [loc.model_dump() for loc in repository.get_public_locations(tenant.id)]}

@router.get("/days", dependencies=[Depends(optional_rate_limit(times=60, seconds=60))])
def available_days(
    tenant_id: str,
    location_id: str,
    month: str,
    duration: int = Query(default=0, ge=0),
):
    """
    Grille d'un mois: {date, is_open, has_capacity} pour chaque jour.
    - Jours passés, fermés ou sans horaires lisibles => is_open=false
    """
    tenant = _tenant_or_404(tenant_id)
    days = service.fetch_available_days(tenant, location_id, _parse_month(month), duration)
    return {"days": [d.model_dump(mode="json") for d in days]}

@router.get("/slots", dependencies=[Depends(optional_rate_limit(times=60, seconds=60))])
def available_slots(
    tenant_id: str,
    location_id: str,
    date: date,
    duration: int = Query(default=0, ge=0),
):
    tenant = _tenant_or_404(tenant_id)
    slots = service.fetch_available_slots(tenant, location_id, date, duration)
    return {"slots": [{**s.model_dump(mode="json"), "label": s.label} for s in slots]}
