from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, Field

from salon_booking.cart.models import BookerInfo, CartItem, GiftRecipient


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAY_AT_SALON = "pay_at_salon"
    DEPOSIT_PAID = "deposit_paid"
    FULLY_PAID = "fully_paid"


class SagaStep(str, Enum):
    """Marqueurs d'avancement d'une soumission, enregistrés sur le rendez-vous."""
    BOOKING_CREATED = "booking_created"
    CREDIT_DEBITED = "credit_debited"
    PAYMENT_SESSION_OPENED = "payment_session_opened"
    PAID = "paid"


class BookingLine(BaseModel):
    item: CartItem
    gift_recipient: Optional[GiftRecipient] = None


class BookingPayload(BaseModel):
    """Ce que la persistance enregistre en un appel: rendez-vous + lignes + cadeaux."""
    tenant_id: str
    location_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    is_unscheduled: bool = False
    customer: BookerInfo
    lines: List[BookingLine]
    pay_at_venue: bool = False
    voucher_code: Optional[str] = None
    voucher_discount: Decimal = Decimal("0.00")
    stored_credit_applied: Decimal = Decimal("0.00")
    deposit_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    amount_due_now: Decimal = Decimal("0.00")
    total_duration_minutes: int = 0


class CreatedBooking(BaseModel):
    booking_id: str
    reference: str
    customer_id: Optional[str] = None


class SubmissionProgress(BaseModel):
    """Avancement d'une soumission: permet de reprendre sans recréer le rendez-vous."""
    booking_id: Optional[str] = None
    tenant_id: Optional[str] = None
    reference: Optional[str] = None
    customer_id: Optional[str] = None
    cart_fingerprint: Optional[str] = None
    idempotency_key: Optional[str] = None
    # Montant réservé avec la clé, puis débité: il ne change plus pour ce rendez-vous
    credit_debit_amount: Optional[Decimal] = None
    # Sous-total enregistré sur le rendez-vous (reprise depuis une autre session)
    total_amount: Optional[Decimal] = None
    checkout_url: Optional[str] = None
    completed: Set[SagaStep] = Field(default_factory=set)

    def done(self, step: SagaStep) -> bool:
        return step in self.completed


class SubmissionOutcome(BaseModel):
    """Résultat d'une soumission réussie."""
    booking_id: str
    reference: str
    payment_status: PaymentStatus
    checkout_url: Optional[str] = None
    gateway: Optional[str] = None

    @property
    def needs_redirect(self) -> bool:
        return bool(self.checkout_url)
