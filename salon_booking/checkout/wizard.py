"""
Assistant de réservation publique: une machine à états explicite par session.

L'assistant possède son WizardState et le panier de la session. Les
transitions passent toutes par next(), back() et reopen(); les setters ne
changent jamais l'étape courante. La soumission est déclenchée depuis
'review' (rien à payer maintenant) ou depuis 'payment'.
"""
import hashlib
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from salon_booking.bookings import service as bookings_service
from salon_booking.bookings.models import SubmissionProgress
from salon_booking.cart.models import BookerInfo, CartItem, GiftRecipient
from salon_booking.cart.store import CartStore
from salon_booking.config import BASE_URL, CHECKOUT_CANCEL_PATH, CHECKOUT_SUCCESS_PATH
from salon_booking.payments.gateways import Gateway
from salon_booking.pricing import service as pricing_service
from salon_booking.pricing.allocation import (
    PaymentAllocation,
    PaymentMode,
    PaymentOption,
    compute_allocation,
    remaining_balance_after_credit,
)
from salon_booking.pricing.deposits import DepositPolicy, configured_deposit
from salon_booking.salons.models import TenantSettings
from salon_booking.utils.money import ZERO, to_money
from salon_booking.utils.validators import is_valid_email
from . import steps
from .errors import AvailabilityConflict, CheckoutError, ValidationError
from .state import WizardState
from .steps import Step, StepContext

logger = logging.getLogger(__name__)


def cart_fingerprint(cart: CartStore) -> str:
    return hashlib.sha256(repr(cart.fingerprint()).encode("utf-8")).hexdigest()[:32]


class CheckoutWizard:
    def __init__(self, tenant: TenantSettings, cart: Optional[CartStore] = None, today: Optional[date] = None):
        self.tenant = tenant
        self.cart = cart or CartStore()
        self._today = today
        self._policy: Optional[DepositPolicy] = None
        self._policy_key: Optional[str] = None
        self.state = self._fresh_state()

    def _fresh_state(self) -> WizardState:
        option = PaymentOption.PAY_AT_VENUE if self.tenant.pay_at_venue_enabled else PaymentOption.PAY_NOW
        return WizardState(payment_option=option)

    @property
    def today(self) -> date:
        return self._today or date.today()

    # --- prix ---

    def _deposit_policy(self) -> DepositPolicy:
        key = cart_fingerprint(self.cart)
        if self._policy is None or self._policy_key != key:
            self._policy = pricing_service.load_deposit_policy(self.tenant, self.cart.items())
            self._policy_key = key
        return self._policy

    def _voucher_discount(self, subtotal: Decimal) -> Decimal:
        voucher = self.state.voucher
        if voucher is None:
            return ZERO
        # Le panier a pu changer depuis la validation du bon
        return min(voucher.balance, subtotal)

    def committed_credit(self) -> Optional[Decimal]:
        """Crédit déjà engagé sur le rendez-vous en cours, None s'il n'y en a pas."""
        progress = self.state.progress
        return progress.credit_debit_amount if progress is not None else None

    def _pending_booking(self) -> bool:
        progress = self.state.progress
        return progress is not None and progress.booking_id is not None and (
            progress.cart_fingerprint is None or progress.cart_fingerprint == cart_fingerprint(self.cart)
        )

    def allocation(
        self,
        payment_option: Optional[PaymentOption] = None,
        payment_mode: Optional[PaymentMode] = None,
        split_credit_amount: Optional[Decimal] = None,
    ) -> PaymentAllocation:
        """
        Répartition courante, recalculée à chaque appel (jamais stockée).
        Un crédit déjà engagé sur le rendez-vous est toujours prélevé en entier:
        si les choix actuels ne le reproduisent pas, il compte comme crédit appliqué.
        """
        s = self.state
        subtotal = self.cart.get_total()
        inputs = dict(
            subtotal=subtotal,
            voucher_discount=self._voucher_discount(subtotal),
            available_balance=s.available_balance,
            credit_requested=s.credit_requested,
            configured_deposit=configured_deposit(self.cart.items(), self._deposit_policy()),
            deposits_enabled=self.tenant.deposits_enabled,
            payment_option=payment_option or s.payment_option,
            payment_mode=payment_mode or s.payment_mode,
            split_credit_amount=s.split_credit_amount if split_credit_amount is None else split_credit_amount,
        )
        allocation = compute_allocation(**inputs)
        committed = self.committed_credit()
        if committed is None or allocation.total_credit_debit == committed:
            return allocation
        inputs.update(
            available_balance=max(s.available_balance, committed),
            credit_requested=committed,
            payment_mode=PaymentMode.CARD,
            split_credit_amount=ZERO,
        )
        return compute_allocation(**inputs)

    # --- setters ---

    def _ensure_open(self) -> None:
        if self.state.closed:
            raise ValidationError("Le checkout est fermé", step=self.state.current_step.value)
        if self.state.is_terminal:
            raise ValidationError("La réservation est déjà confirmée", step=Step.CONFIRMATION.value)

    def _ensure_no_committed_credit(self, field: str, step: Step) -> None:
        committed = self.committed_credit()
        if committed is not None:
            raise ValidationError(
                f"{committed} {self.tenant.currency} du porte-monnaie sont déjà engagés pour cette réservation",
                field=field, step=step.value,
            )

    def _ensure_no_pending_booking(self, field: str) -> None:
        if self._pending_booking():
            raise ValidationError("Le bon d'achat ne peut plus changer: la réservation est déjà enregistrée",
                                  field=field, step=Step.REVIEW.value)

    # --- panier ---

    def add_item(self, item: CartItem) -> CartItem:
        self._ensure_open()
        self._ensure_no_committed_credit("items", Step.CART)
        return self.cart.add_item(item)

    def update_item(self, item_id: str, changes: Dict[str, Any]) -> Optional[CartItem]:
        """Lève KeyError si la ligne est introuvable."""
        self._ensure_open()
        self._ensure_no_committed_credit("items", Step.CART)
        updated = self.cart.update_item(item_id, changes)
        if updated is None or not updated.is_gift:
            self.state.gift_recipients.pop(item_id, None)
        return updated

    def remove_item(self, item_id: str) -> bool:
        self._ensure_open()
        self._ensure_no_committed_credit("items", Step.CART)
        removed = self.cart.remove_item(item_id)
        self.state.gift_recipients.pop(item_id, None)
        return removed

    # --- saisies ---

    def set_schedule(
        self,
        *,
        location_id: Optional[str] = None,
        day: Optional[date] = None,
        time_label: Optional[str] = None,
        leave_unscheduled: bool = False,
    ) -> None:
        self._ensure_open()
        s = self.state
        s.leave_unscheduled = leave_unscheduled
        s.location_id = location_id
        s.scheduled_date = None if leave_unscheduled else day
        s.scheduled_time = None if leave_unscheduled else time_label

    def set_booker(self, booker: BookerInfo) -> None:
        """Enregistre l'acheteur et charge son porte-monnaie (solde 0 si client inconnu)."""
        self._ensure_open()
        s = self.state
        previous = (s.booker.email or "").strip().lower()
        s.booker = booker
        email = (booker.email or "").strip().lower()
        if email == previous and s.customer_id is not None:
            return
        s.customer_id, s.available_balance = None, ZERO
        s.credit_requested = ZERO
        if is_valid_email(email):
            customer_id, balance = pricing_service.lookup_stored_credit(self.tenant.id, email)
            s.customer_id, s.available_balance = customer_id, to_money(balance)

    def set_gift_recipient(self, item_id: str, recipient: GiftRecipient) -> None:
        self._ensure_open()
        item = self.cart.get_item(item_id)
        if item is None or not item.is_gift:
            raise ValidationError("Cet article n'est pas un cadeau", field="item_id", item_id=item_id,
                                  step=Step.GIFTS.value)
        self.state.gift_recipients[item_id] = recipient

    def apply_voucher(self, code: str) -> None:
        self._ensure_open()
        self._ensure_no_pending_booking("voucher")
        self.state.voucher = pricing_service.validate_voucher(code, self.tenant.id, self.cart.get_total())

    def remove_voucher(self) -> None:
        self._ensure_open()
        self._ensure_no_pending_booking("voucher")
        self.state.voucher = None

    def set_credit(self, amount) -> None:
        """Crédit de porte-monnaie demandé; borné au solde et au reste à payer par l'allocation."""
        self._ensure_open()
        amount = to_money(amount)
        if amount < ZERO:
            raise ValidationError("Montant invalide", field="credit_amount", step=Step.REVIEW.value)
        if self.committed_credit() is not None and amount != self.state.credit_requested:
            self._ensure_no_committed_credit("credit_amount", Step.REVIEW)
        if amount > self.state.available_balance:
            raise ValidationError("Solde du porte-monnaie insuffisant", field="credit_amount", step=Step.REVIEW.value)
        self.state.credit_requested = amount

    def set_payment(
        self,
        *,
        payment_option: Optional[PaymentOption] = None,
        payment_mode: Optional[PaymentMode] = None,
        split_credit_amount=None,
        preferred_gateway: Optional[Gateway] = None,
    ) -> None:
        """
        Choix de paiement, validé contre les réglages du salon et le solde disponible.
        Lève ValidationError sans rien modifier si le choix est impossible.
        """
        self._ensure_open()
        s = self.state
        step = s.current_step.value
        option = payment_option or s.payment_option
        mode = payment_mode or s.payment_mode
        split = s.split_credit_amount if split_credit_amount is None else to_money(split_credit_amount)

        if option == PaymentOption.PAY_AT_VENUE and not self.tenant.pay_at_venue_enabled:
            raise ValidationError("Ce salon n'accepte pas le paiement sur place", field="payment_option", step=step)
        if option == PaymentOption.PAY_DEPOSIT:
            if not self.tenant.deposits_enabled:
                raise ValidationError("Ce salon ne propose pas d'acompte", field="payment_option", step=step)
            if self.allocation(payment_option=option, payment_mode=PaymentMode.CARD).deposit_amount <= ZERO:
                raise ValidationError("Aucun acompte n'est demandé pour ce panier", field="payment_option", step=step)

        if self.committed_credit() is not None:
            # Seule l'option reste libre: la part porte-monnaie est déjà fixée
            if mode != s.payment_mode or split != s.split_credit_amount:
                self._ensure_no_committed_credit("payment_mode", s.current_step)
            mode, split = s.payment_mode, s.split_credit_amount
        else:
            self._check_credit_choice(option, mode, split)

        s.payment_option = option
        s.payment_mode = mode
        s.split_credit_amount = split
        if preferred_gateway is not None:
            s.preferred_gateway = preferred_gateway

    def _check_credit_choice(self, option: PaymentOption, mode: PaymentMode, split: Decimal) -> None:
        s = self.state
        step = s.current_step.value
        preview = self.allocation(payment_option=option, payment_mode=PaymentMode.CARD)
        remaining = remaining_balance_after_credit(s.available_balance, preview.stored_credit_applied)
        if mode == PaymentMode.CREDIT and remaining < preview.amount_due_now:
            raise ValidationError("Solde du porte-monnaie insuffisant pour payer la totalité",
                                  field="payment_mode", step=step)
        if mode == PaymentMode.SPLIT:
            if split <= ZERO:
                raise ValidationError("Indiquez la part payée avec le porte-monnaie", field="split_credit_amount", step=step)
            if split > remaining:
                raise ValidationError("Solde du porte-monnaie insuffisant", field="split_credit_amount", step=step)

    # --- transitions ---

    def _context(self, allocation: Optional[PaymentAllocation] = None) -> StepContext:
        s = self.state
        return StepContext(
            items=self.cart.items(),
            booker=s.booker,
            gift_recipients=s.gift_recipients,
            location_id=s.location_id,
            scheduled_date=s.scheduled_date,
            scheduled_time=s.scheduled_time,
            leave_unscheduled=s.leave_unscheduled,
            allocation=allocation,
            today=self.today,
        )

    def next(self) -> Step:
        """
        Valide l'étape courante puis avance.
        - review: calcule l'allocation, passe au paiement ou soumet directement
        - payment: soumet
        Lève ValidationError (étape inchangée) ou l'erreur de soumission.
        """
        self._ensure_open()
        s = self.state
        allocation = self.allocation() if s.current_step in (Step.REVIEW, Step.PAYMENT) else None
        ctx = self._context(allocation)
        try:
            steps.check_guard(s.current_step, ctx)
        except ValidationError as e:
            s.last_error = e.to_dict()
            raise
        s.last_error = None

        if s.current_step == Step.REVIEW and not steps.needs_payment(ctx):
            return self._submit(allocation)
        if s.current_step == Step.PAYMENT:
            return self._submit(allocation)

        target = steps.next_step(s.current_step, ctx)
        s.go_to(target)
        return target

    def back(self) -> Step:
        s = self.state
        if s.is_terminal:
            raise ValidationError("La réservation est déjà confirmée", step=Step.CONFIRMATION.value)
        if s.current_step == Step.CART or not s.history:
            s.closed = True
            return s.current_step
        s.completed_steps.discard(s.current_step)
        s.current_step = s.history.pop()
        s.last_error = None
        return s.current_step

    def reopen(self) -> Step:
        """
        Repart du panier avec un état vierge.
        La soumission en cours est conservée tant que le panier n'a pas changé,
        pour qu'une nouvelle tentative reprenne la même réservation.
        """
        old = self.state
        keep = None
        if old.outcome is None and old.progress is not None and old.progress.cart_fingerprint in (None, cart_fingerprint(self.cart)):
            keep = old.progress
        self.state = self._fresh_state()
        self.state.progress = keep
        return self.state.current_step

    def resume(self, booking_id: str) -> None:
        """
        Rattache à la session un rendez-vous en attente de paiement (session
        précédente expirée). Le panier doit ensuite correspondre au rendez-vous:
        la soumission reprend alors ce rendez-vous sans le recréer.
        """
        self._ensure_open()
        progress = bookings_service.resume_payment(booking_id, self.tenant.id)
        progress.cart_fingerprint = None
        self.state.progress = progress
        self.state.last_error = None

    # --- soumission ---

    def _submission_request(self, allocation: PaymentAllocation, step: Step) -> bookings_service.SubmissionRequest:
        s = self.state
        items = self.cart.items()
        return bookings_service.SubmissionRequest(
            tenant=self.tenant,
            items=items,
            gift_recipients={k: v for k, v in s.gift_recipients.items() if any(i.id == k and i.is_gift for i in items)},
            booker=s.booker,
            location_id=s.location_id,
            scheduled_date=s.scheduled_date,
            scheduled_time=s.scheduled_time,
            leave_unscheduled=s.leave_unscheduled or not any(i.is_schedulable for i in items),
            total_duration_minutes=self.cart.get_total_duration_minutes(),
            allocation=allocation,
            voucher_code=s.voucher.code if s.voucher else None,
            customer_id=s.customer_id,
            preferred_gateway=s.preferred_gateway,
            success_url=f"{BASE_URL}{CHECKOUT_SUCCESS_PATH}",
            cancel_url=f"{BASE_URL}{CHECKOUT_CANCEL_PATH}",
            cart_fingerprint=cart_fingerprint(self.cart),
            step=step.value,
        )

    def _rewind_for(self, step: Step) -> None:
        """Revient à l'étape fautive, ou à la dernière visitée avant elle si elle ne l'a jamais été."""
        s = self.state
        if step not in s.history:
            earlier = [h for h in s.history if steps.STEP_ORDER.index(h) < steps.STEP_ORDER.index(step)]
            step = earlier[-1] if earlier else Step.CART
        s.rewind_to(step)

    def _check_path(self, allocation: PaymentAllocation) -> None:
        # Le panier et les saisies ont pu changer depuis que leurs étapes ont été validées
        s = self.state
        try:
            steps.check_path(s.current_step, self._context(allocation))
        except ValidationError as e:
            s.last_error = e.to_dict()
            self._rewind_for(Step(e.step))
            raise

    def _bind_resumed(self, allocation: PaymentAllocation, fingerprint: str) -> None:
        s = self.state
        expected = s.progress.total_amount
        if expected is not None and allocation.subtotal != expected:
            e = ValidationError(
                f"Le panier ({allocation.subtotal}) ne correspond pas à la réservation reprise ({expected})",
                field="items", step=Step.CART.value,
            )
            s.last_error = e.to_dict()
            raise e
        s.progress.cart_fingerprint = fingerprint

    def _submit(self, allocation: PaymentAllocation) -> Step:
        s = self.state
        self._check_path(allocation)
        fingerprint = cart_fingerprint(self.cart)
        if s.progress is not None and s.progress.booking_id and s.progress.cart_fingerprint is None:
            self._bind_resumed(allocation, fingerprint)
        if s.progress is None or (s.progress.booking_id and s.progress.cart_fingerprint != fingerprint):
            s.progress = SubmissionProgress(cart_fingerprint=fingerprint)
        request = self._submission_request(allocation, s.current_step)
        try:
            outcome = bookings_service.submit_booking(request, s.progress)
        except AvailabilityConflict as e:
            s.last_error = e.to_dict()
            s.rewind_to(Step.SCHEDULING)
            raise
        except CheckoutError as e:
            s.last_error = e.to_dict()
            raise
        s.outcome = outcome
        s.last_error = None
        s.go_to(Step.CONFIRMATION)
        self.cart.clear()
        logger.info("checkout.submit tenant=%s booking=%s status=%s redirect=%s",
                    self.tenant.id, outcome.booking_id, outcome.payment_status.value, outcome.needs_redirect)
        return Step.CONFIRMATION

    # --- lecture ---

    def snapshot(self) -> Dict[str, Any]:
        s = self.state
        items = self.cart.items()
        allocation = self.allocation() if items else None
        ctx = self._context(allocation)
        return {
            "current_step": s.current_step.value,
            "history": [h.value for h in s.history],
            "completed_steps": sorted(c.value for c in s.completed_steps),
            "closed": s.closed,
            "steps": [step.value for step in steps.STEP_ORDER if steps.is_included(step, ctx)],
            "items": [i.model_dump(mode="json") for i in items],
            "total": str(self.cart.get_total()),
            "total_duration_minutes": self.cart.get_total_duration_minutes(),
            "schedule": {
                "location_id": s.location_id,
                "date": s.scheduled_date.isoformat() if s.scheduled_date else None,
                "time": s.scheduled_time,
                "leave_unscheduled": s.leave_unscheduled,
            },
            "booker": s.booker.model_dump(),
            "gift_recipients": {k: v.model_dump() for k, v in s.gift_recipients.items()},
            "voucher": s.voucher.model_dump(mode="json") if s.voucher else None,
            "available_balance": str(s.available_balance),
            "allocation": allocation.model_dump(mode="json") if allocation else None,
            "preferred_gateway": s.preferred_gateway.value if s.preferred_gateway else None,
            "booking": s.outcome.model_dump(mode="json") if s.outcome else None,
            "pending_booking_id": s.progress.booking_id if s.progress else None,
            "committed_credit": str(self.committed_credit()) if self.committed_credit() is not None else None,
            "last_error": s.last_error,
        }
