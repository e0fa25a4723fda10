"""
Orchestrateur de soumission d'une réservation (petite saga sans compensation).

Étapes, strictement séquentielles:
  1) re-vérifier le créneau puis créer le rendez-vous (persistance)
  2) débiter le porte-monnaie si du crédit est utilisé (clé d'idempotence et
     montant écrits sur le rendez-vous avant l'appel)
  3) ouvrir une session de paiement carte s'il reste un montant carte
  4) sinon marquer le rendez-vous payé et confirmer

Chaque étape terminée est notée dans SubmissionProgress et sur le rendez-vous:
une nouvelle tentative reprend là où la précédente s'est arrêtée, sans recréer
le rendez-vous ni redébiter le porte-monnaie. Toute exception d'un
collaborateur est traduite ici en erreur métier du checkout.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from salon_booking.availability import service as availability_service
from salon_booking.cart.models import BookerInfo, CartItem, GiftRecipient
from salon_booking.checkout.errors import (
    AvailabilityConflict,
    GatewayError,
    PaymentDebitFailure,
    PersistenceFailure,
    ValidationError,
)
from salon_booking.config import IDEMPOTENCY_BUCKET_SECONDS
from salon_booking.payments import gateways
from salon_booking.pricing.allocation import PaymentAllocation
from salon_booking.salons.models import TenantSettings
from salon_booking.utils.money import ZERO, to_money
from . import repository
from .models import (
    BookingLine,
    BookingPayload,
    PaymentStatus,
    SagaStep,
    SubmissionOutcome,
    SubmissionProgress,
)

logger = logging.getLogger(__name__)

CREDIT_PURPOSE = "booking_credit"


class SubmissionRequest(BaseModel):
    tenant: TenantSettings
    items: List[CartItem]
    gift_recipients: Dict[str, GiftRecipient] = Field(default_factory=dict)
    booker: BookerInfo
    location_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    leave_unscheduled: bool = False
    total_duration_minutes: int = 0
    allocation: PaymentAllocation
    voucher_code: Optional[str] = None
    customer_id: Optional[str] = None
    preferred_gateway: Optional[gateways.Gateway] = None
    success_url: str
    cancel_url: str
    cart_fingerprint: Optional[str] = None
    # Étape de l'assistant à laquelle les erreurs sont rattachées
    step: str = "review"

    @property
    def is_scheduled(self) -> bool:
        return not self.leave_unscheduled and bool(self.scheduled_date and self.scheduled_time and self.location_id)


def make_idempotency_key(booking_id: str, purpose: str, now: Optional[datetime] = None) -> str:
    """(booking, usage, tranche de temps): deux tentatives rapprochées partagent la même clé."""
    ts = (now or datetime.now()).timestamp()
    bucket = int(ts // max(1, IDEMPOTENCY_BUCKET_SECONDS))
    return f"{purpose}:{booking_id}:{bucket}"


def build_payload(req: SubmissionRequest) -> BookingPayload:
    allocation = req.allocation
    return BookingPayload(
        tenant_id=req.tenant.id,
        location_id=req.location_id,
        scheduled_date=req.scheduled_date if req.is_scheduled else None,
        scheduled_time=req.scheduled_time if req.is_scheduled else None,
        is_unscheduled=not req.is_scheduled,
        customer=req.booker,
        lines=[
            BookingLine(item=item, gift_recipient=req.gift_recipients.get(item.id) if item.is_gift else None)
            for item in req.items
        ],
        pay_at_venue=allocation.pays_at_venue,
        voucher_code=req.voucher_code,
        voucher_discount=allocation.voucher_discount,
        stored_credit_applied=allocation.stored_credit_applied,
        deposit_amount=allocation.deposit_amount if allocation.is_deposit else ZERO,
        total_amount=allocation.subtotal,
        amount_due_now=allocation.amount_due_now,
        total_duration_minutes=req.total_duration_minutes,
    )


def _record(progress: SubmissionProgress, step: SagaStep) -> None:
    progress.completed.add(step)
    if progress.booking_id:
        repository.record_checkout_step(
            progress.booking_id,
            [s.value for s in progress.completed],
            idempotency_key=progress.idempotency_key,
            credit_debit_amount=progress.credit_debit_amount,
        )


def _check_slot(req: SubmissionRequest) -> None:
    if not req.is_scheduled:
        return
    try:
        ok = availability_service.is_slot_still_available(
            req.tenant, req.location_id, req.scheduled_date, req.scheduled_time, req.total_duration_minutes,
        )
    except Exception:
        logger.exception("bookings.submit vérification du créneau impossible tenant=%s", req.tenant.id)
        ok = False
    if not ok:
        raise AvailabilityConflict(
            "Ce créneau n'est plus disponible, veuillez en choisir un autre",
            step="scheduling",
        )


def _create(req: SubmissionRequest, progress: SubmissionProgress) -> None:
    _check_slot(req)
    try:
        created = repository.create_booking(build_payload(req))
    except Exception:
        logger.exception("bookings.submit create_booking a levé une exception tenant=%s", req.tenant.id)
        created = None
    if created is None:
        raise PersistenceFailure(
            "La réservation n'a pas pu être enregistrée. Aucune réservation n'a été créée, veuillez réessayer.",
            step=req.step,
        )
    progress.booking_id = created.booking_id
    progress.reference = created.reference
    progress.customer_id = progress.customer_id or created.customer_id
    progress.cart_fingerprint = req.cart_fingerprint
    logger.info("bookings.submit booking créé id=%s ref=%s", created.booking_id, created.reference)
    _record(progress, SagaStep.BOOKING_CREATED)


def _reserve_credit(req: SubmissionRequest, progress: SubmissionProgress, amount, now: Optional[datetime]) -> None:
    """
    Écrit clé d'idempotence et montant sur le rendez-vous AVANT l'appel à la RPC.
    Une reprise (même depuis un autre processus) relit cette clé: un débit déjà
    passé mais dont la réponse s'est perdue n'est jamais rejoué avec une autre clé.
    """
    if progress.idempotency_key:
        if progress.credit_debit_amount is None:
            progress.credit_debit_amount = amount
        return
    key = make_idempotency_key(progress.booking_id, CREDIT_PURPOSE, now)
    saved = repository.record_checkout_step(
        progress.booking_id,
        [s.value for s in progress.completed],
        idempotency_key=key,
        credit_debit_amount=amount,
    )
    if not saved:
        logger.error("bookings.submit clé de débit non enregistrée booking=%s", progress.booking_id)
        raise PaymentDebitFailure(
            "Votre réservation est enregistrée mais le paiement par porte-monnaie n'a pas pu être préparé. Vous pouvez réessayer.",
            booking_id=progress.booking_id, step=req.step,
        )
    progress.idempotency_key = key
    progress.credit_debit_amount = amount


def _check_committed_credit(req: SubmissionRequest, progress: SubmissionProgress) -> None:
    committed = progress.credit_debit_amount
    if committed is None or req.allocation.total_credit_debit == committed:
        return
    raise ValidationError(
        f"{committed} {req.tenant.currency} du porte-monnaie sont déjà engagés pour cette réservation: "
        "ce montant ne peut plus être modifié",
        field="credit_amount", step=req.step,
    )


def _debit(req: SubmissionRequest, progress: SubmissionProgress, now: Optional[datetime]) -> None:
    amount = req.allocation.total_credit_debit
    customer_id = req.customer_id or progress.customer_id
    if not customer_id:
        raise PaymentDebitFailure(
            "Porte-monnaie introuvable pour ce client: le paiement n'a pas été effectué",
            booking_id=progress.booking_id, step=req.step,
        )
    _reserve_credit(req, progress, amount, now)
    try:
        repository.debit_stored_credit(
            tenant_id=req.tenant.id,
            customer_id=customer_id,
            booking_id=progress.booking_id,
            amount=progress.credit_debit_amount,
            currency=req.tenant.currency,
            idempotency_key=progress.idempotency_key,
        )
    except Exception:
        logger.exception("bookings.submit débit porte-monnaie échoué booking=%s", progress.booking_id)
        raise PaymentDebitFailure(
            "Votre réservation est enregistrée mais le paiement par porte-monnaie n'a pas abouti. Vous pouvez réessayer.",
            booking_id=progress.booking_id, step=req.step,
        )
    logger.info("bookings.submit porte-monnaie débité booking=%s amount=%s", progress.booking_id, amount)
    _record(progress, SagaStep.CREDIT_DEBITED)


def _debited(progress: SubmissionProgress) -> Decimal:
    if progress.done(SagaStep.CREDIT_DEBITED) and progress.credit_debit_amount is not None:
        return progress.credit_debit_amount
    return ZERO


def _description(req: SubmissionRequest) -> str:
    allocation = req.allocation
    if allocation.is_deposit:
        return "Acompte de réservation"
    if allocation.credit_amount > ZERO:
        return f"Paiement de réservation ({allocation.credit_amount} {req.tenant.currency} depuis le porte-monnaie)"
    return "Paiement de réservation"


def _open_card_session(req: SubmissionRequest, progress: SubmissionProgress) -> SubmissionOutcome:
    allocation = req.allocation
    gateway = gateways.select_gateway(req.tenant.country, req.tenant.currency, req.preferred_gateway)
    try:
        session = gateways.create_payment_session(gateways.PaymentSessionRequest(
            tenant_id=req.tenant.id,
            booking_id=progress.booking_id,
            amount=allocation.card_amount,
            currency=req.tenant.currency,
            customer_email=req.booker.email,
            customer_name=req.booker.full_name,
            description=_description(req),
            success_url=req.success_url,
            cancel_url=req.cancel_url,
            gateway=gateway,
            is_deposit=allocation.is_deposit,
        ))
    except Exception:
        logger.exception("bookings.submit session %s échouée booking=%s", gateway.value, progress.booking_id)
        raise GatewayError(
            "Le paiement en ligne est momentanément indisponible. Réessayez"
            + (" ou choisissez de payer au salon." if req.tenant.pay_at_venue_enabled else "."),
            booking_id=progress.booking_id,
            pay_at_venue_eligible=req.tenant.pay_at_venue_enabled,
            step=req.step,
        )
    debited = _debited(progress)
    if debited > ZERO and not repository.mark_booking_payment(progress.booking_id, PaymentStatus.UNPAID.value, debited):
        # La session est ouverte: le webhook complètera le montant payé
        logger.error("bookings.submit montant débité non enregistré booking=%s amount=%s",
                     progress.booking_id, debited)
    progress.checkout_url = session.checkout_url
    _record(progress, SagaStep.PAYMENT_SESSION_OPENED)
    return SubmissionOutcome(
        booking_id=progress.booking_id,
        reference=progress.reference,
        payment_status=PaymentStatus.UNPAID,
        checkout_url=session.checkout_url,
        gateway=session.gateway.value,
    )


def settled_status(allocation: PaymentAllocation) -> PaymentStatus:
    """Statut de paiement quand plus rien n'est dû par carte."""
    if allocation.pays_at_venue:
        return PaymentStatus.PAY_AT_SALON
    if allocation.is_deposit and allocation.amount_due_at_venue > ZERO:
        return PaymentStatus.DEPOSIT_PAID
    return PaymentStatus.FULLY_PAID


def _settle(req: SubmissionRequest, progress: SubmissionProgress) -> SubmissionOutcome:
    status = settled_status(req.allocation)
    amount_paid = _debited(progress)
    if not progress.done(SagaStep.PAID):
        if not repository.mark_booking_payment(progress.booking_id, status.value, amount_paid):
            # Le rendez-vous et le débit existent: on confirme, la réconciliation reprendra le statut
            logger.error("bookings.submit statut de paiement non enregistré booking=%s status=%s",
                         progress.booking_id, status.value)
        _record(progress, SagaStep.PAID)
    return SubmissionOutcome(
        booking_id=progress.booking_id,
        reference=progress.reference,
        payment_status=status,
    )


def submit_booking(
    req: SubmissionRequest,
    progress: Optional[SubmissionProgress] = None,
    now: Optional[datetime] = None,
) -> SubmissionOutcome:
    """
    Exécute (ou reprend) la soumission.
    - progress est modifié sur place: l'appelant le conserve pour une nouvelle tentative
    - Une fois engagé, le montant du porte-monnaie ne change plus (ValidationError sinon)
    - Lève AvailabilityConflict, PersistenceFailure, PaymentDebitFailure ou GatewayError
    """
    progress = progress if progress is not None else SubmissionProgress()

    if not progress.done(SagaStep.BOOKING_CREATED):
        _create(req, progress)
    else:
        logger.info("bookings.submit reprise booking=%s étapes=%s",
                    progress.booking_id, sorted(s.value for s in progress.completed))
        _check_committed_credit(req, progress)

    if req.allocation.total_credit_debit > ZERO and not progress.done(SagaStep.CREDIT_DEBITED):
        _debit(req, progress, now)

    if req.allocation.card_amount > ZERO and not progress.done(SagaStep.PAID):
        return _open_card_session(req, progress)

    return _settle(req, progress)


def load_progress(booking_id: str) -> Optional[SubmissionProgress]:
    """Reconstitue l'avancement d'une soumission depuis le rendez-vous enregistré."""
    row = repository.get_booking_progress(booking_id)
    if not row:
        return None
    completed = set()
    for value in row.get("checkout_progress") or []:
        try:
            completed.add(SagaStep(value))
        except ValueError:
            logger.warning("bookings.load_progress marqueur inconnu booking=%s value=%r", booking_id, value)
    completed.add(SagaStep.BOOKING_CREATED)
    committed = row.get("credit_debit_amount")
    total = row.get("total_amount")
    return SubmissionProgress(
        booking_id=str(row.get("id")),
        tenant_id=str(row["tenant_id"]) if row.get("tenant_id") else None,
        reference=row.get("reference"),
        customer_id=str(row["customer_id"]) if row.get("customer_id") else None,
        idempotency_key=row.get("credit_idempotency_key"),
        credit_debit_amount=to_money(committed) if committed is not None else None,
        total_amount=to_money(total) if total is not None else None,
        completed=completed,
    )


def resume_payment(booking_id: str, tenant_id: str) -> SubmissionProgress:
    """
    Prépare la reprise du paiement d'un rendez-vous existant, par exemple
    depuis une nouvelle session après expiration de la précédente.
    - ValidationError si le rendez-vous est inconnu, d'un autre salon ou déjà réglé
    - Le progrès renvoyé est passé tel quel à submit_booking
    """
    progress = load_progress(booking_id)
    if progress is None or progress.tenant_id != tenant_id:
        raise ValidationError("Réservation introuvable", field="booking_id", step="cart")
    if progress.done(SagaStep.PAID):
        raise ValidationError("Cette réservation est déjà réglée", field="booking_id", step="cart")
    logger.info("bookings.resume booking=%s étapes=%s", booking_id, sorted(s.value for s in progress.completed))
    return progress
