import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator

from salon_booking.cart.models import (
    BookerInfo,
    CartItem,
    FulfillmentType,
    GiftRecipient,
    ItemType,
    SchedulingChoice,
)
from salon_booking.payments.gateways import Gateway
from salon_booking.pricing.allocation import PaymentMode, PaymentOption
from salon_booking.salons import repository as salons_repository
from salon_booking.utils.rate_limit import optional_rate_limit
from .registry import registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])

# module salon_booking.checkout.views
class CreateSessionRequest(BaseModel):
    tenant_id: str = Field(min_length=1)

class AddItemRequest(BaseModel):
    item_type: ItemType
    source_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    is_gift: bool = False
    fulfillment_type: Optional[FulfillmentType] = None
    scheduling_choice: Optional[SchedulingChoice] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)

class UpdateItemRequest(BaseModel):
    # quantity <= 0 retire la ligne
    quantity: Optional[int] = None
    is_gift: Optional[bool] = None
    fulfillment_type: Optional[FulfillmentType] = None
    scheduling_choice: Optional[SchedulingChoice] = None

class ScheduleRequest(BaseModel):
    location_id: Optional[str] = None
    day: Optional[date] = Field(default=None, alias="date")
    time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    leave_unscheduled: bool = False

class BookerRequest(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: Optional[EmailStr] = None
    phone: str = ""
    notes: str = ""

    @field_validator("first_name", "last_name", "phone", "notes")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

class GiftRecipientRequest(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: Optional[EmailStr] = None
    phone: str = ""
    message: Optional[str] = Field(default=None, max_length=500)
    hide_sender_identity: bool = False

class VoucherRequest(BaseModel):
    code: str

class CreditRequest(BaseModel):
    amount: Decimal = Field(ge=0)

class ResumeRequest(BaseModel):
    booking_id: str = Field(min_length=1)

class PaymentRequest(BaseModel):
    payment_option: Optional[PaymentOption] = None
    payment_mode: Optional[PaymentMode] = None
    split_credit_amount: Optional[Decimal] = Field(default=None, ge=0)
    preferred_gateway: Optional[Gateway] = None


def _snapshot(session_id: str, wizard) -> JSONResponse:
    data = wizard.snapshot()
    data["session_id"] = session_id
    return JSONResponse(data)

def _open(session_id: str):
    if not registry.exists(session_id):
        raise HTTPException(status_code=404, detail="Session de checkout introuvable")
    return registry.session(session_id)


@router.post("/sessions", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
def create_session(body: CreateSessionRequest):
    """
    Ouvre une session de checkout pour un salon dont la réservation en ligne est active.
    - 404 si le salon est inconnu ou fermé à la réservation en ligne
    """
    tenant = salons_repository.get_public_tenant(body.tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Salon introuvable")
    session_id = registry.create(tenant)
    logger.info("checkout.session created tenant=%s session=%s", tenant.id, session_id)
    with registry.session(session_id) as wizard:
        return _snapshot(session_id, wizard)

@router.get("/sessions/{session_id}")
def get_session(session_id: str):
    with _open(session_id) as wizard:
        return _snapshot(session_id, wizard)

# --- panier ---

@router.post("/sessions/{session_id}/items")
def add_item(session_id: str, body: AddItemRequest):
    with _open(session_id) as wizard:
        wizard.add_item(CartItem(**body.model_dump()))
        return _snapshot(session_id, wizard)

@router.patch("/sessions/{session_id}/items/{item_id}")
def update_item(session_id: str, item_id: str, body: UpdateItemRequest):
    with _open(session_id) as wizard:
        try:
            wizard.update_item(item_id, body.model_dump(exclude_unset=True))
        except KeyError:
            raise HTTPException(status_code=404, detail="Article introuvable")
        return _snapshot(session_id, wizard)

@router.delete("/sessions/{session_id}/items/{item_id}")
def remove_item(session_id: str, item_id: str):
    with _open(session_id) as wizard:
        if not wizard.remove_item(item_id):
            raise HTTPException(status_code=404, detail="Article introuvable")
        return _snapshot(session_id, wizard)

# --- saisies de l'assistant ---

@router.put("/sessions/{session_id}/schedule")
def set_schedule(session_id: str, body: ScheduleRequest):
    with _open(session_id) as wizard:
        wizard.set_schedule(
            location_id=body.location_id,
            day=body.day,
            time_label=body.time,
            leave_unscheduled=body.leave_unscheduled,
        )
        return _snapshot(session_id, wizard)

@router.put("/sessions/{session_id}/booker")
def set_booker(session_id: str, body: BookerRequest):
    with _open(session_id) as wizard:
        data = body.model_dump()
        data["email"] = str(body.email or "")
        wizard.set_booker(BookerInfo(**data))
        return _snapshot(session_id, wizard)

@router.put("/sessions/{session_id}/gifts/{item_id}")
def set_gift_recipient(session_id: str, item_id: str, body: GiftRecipientRequest):
    with _open(session_id) as wizard:
        data = body.model_dump()
        data["email"] = str(body.email or "")
        wizard.set_gift_recipient(item_id, GiftRecipient(**data))
        return _snapshot(session_id, wizard)

@router.put("/sessions/{session_id}/voucher", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def apply_voucher(session_id: str, body: VoucherRequest):
    with _open(session_id) as wizard:
        wizard.apply_voucher(body.code)
        return _snapshot(session_id, wizard)

@router.delete("/sessions/{session_id}/voucher")
def remove_voucher(session_id: str):
    with _open(session_id) as wizard:
        wizard.remove_voucher()
        return _snapshot(session_id, wizard)

@router.put("/sessions/{session_id}/credit")
def set_credit(session_id: str, body: CreditRequest):
    with _open(session_id) as wizard:
        wizard.set_credit(body.amount)
        return _snapshot(session_id, wizard)

@router.put("/sessions/{session_id}/payment")
def set_payment(session_id: str, body: PaymentRequest):
    with _open(session_id) as wizard:
        wizard.set_payment(
            payment_option=body.payment_option,
            payment_mode=body.payment_mode,
            split_credit_amount=body.split_credit_amount,
            preferred_gateway=body.preferred_gateway,
        )
        return _snapshot(session_id, wizard)

# --- transitions ---

@router.post("/sessions/{session_id}/next", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def next_step(session_id: str):
    """
    Valide l'étape courante et avance; depuis review/payment, soumet la réservation.
    - Erreurs métier: JSON {"detail", "code", "step", ...} (422/409/402/502/503)
    """
    with _open(session_id) as wizard:
        wizard.next()
        return _snapshot(session_id, wizard)

@router.post("/sessions/{session_id}/back")
def previous_step(session_id: str):
    with _open(session_id) as wizard:
        wizard.back()
        return _snapshot(session_id, wizard)

@router.post("/sessions/{session_id}/reopen")
def reopen(session_id: str):
    with _open(session_id) as wizard:
        wizard.reopen()
        return _snapshot(session_id, wizard)

@router.post("/sessions/{session_id}/resume", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def resume_booking(session_id: str, body: ResumeRequest):
    """
    Reprend le paiement d'un rendez-vous en attente (ex: session précédente expirée).
    - 422 si le rendez-vous est inconnu, d'un autre salon ou déjà réglé
    - La prochaine soumission réutilise ce rendez-vous au lieu d'en créer un
    """
    with _open(session_id) as wizard:
        wizard.resume(body.booking_id)
        logger.info("checkout.session resume session=%s booking=%s", session_id, body.booking_id)
        return _snapshot(session_id, wizard)
