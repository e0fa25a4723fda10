"""
État d'une session de checkout (propre à un visiteur, jamais partagé).
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from salon_booking.bookings.models import SubmissionOutcome, SubmissionProgress
from salon_booking.cart.models import BookerInfo, GiftRecipient
from salon_booking.payments.gateways import Gateway
from salon_booking.pricing.allocation import PaymentMode, PaymentOption
from salon_booking.pricing.service import AppliedVoucher
from salon_booking.utils.money import ZERO
from .steps import Step


class WizardState(BaseModel):
    current_step: Step = Step.CART
    history: List[Step] = Field(default_factory=list)
    completed_steps: Set[Step] = Field(default_factory=set)
    closed: bool = False

    # planification
    location_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    leave_unscheduled: bool = False

    # personnes
    booker: BookerInfo = Field(default_factory=BookerInfo)
    gift_recipients: Dict[str, GiftRecipient] = Field(default_factory=dict)

    # prix et paiement
    voucher: Optional[AppliedVoucher] = None
    credit_requested: Decimal = ZERO
    payment_option: PaymentOption = PaymentOption.PAY_AT_VENUE
    payment_mode: PaymentMode = PaymentMode.CARD
    split_credit_amount: Decimal = ZERO
    preferred_gateway: Optional[Gateway] = None
    available_balance: Decimal = ZERO
    customer_id: Optional[str] = None

    # soumission
    progress: Optional[SubmissionProgress] = None
    outcome: Optional[SubmissionOutcome] = None
    last_error: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.current_step == Step.CONFIRMATION

    def go_to(self, step: Step) -> None:
        """Avance vers step en mémorisant le chemin pour back()."""
        self.completed_steps.add(self.current_step)
        self.history.append(self.current_step)
        self.current_step = step

    def rewind_to(self, step: Step) -> None:
        """Revient à une étape déjà visitée (conflit de créneau)."""
        while self.history and self.current_step != step:
            self.current_step = self.history.pop()
            self.completed_steps.discard(self.current_step)
        if self.current_step != step:
            self.current_step = step
