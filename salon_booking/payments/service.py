"""
Cas d'usage 'payments': réconciliation des paiements confirmés par webhook.
"""
import logging
from typing import Any, Dict

from salon_booking.bookings import repository as bookings_repository
from salon_booking.bookings import service as bookings_service
from salon_booking.bookings.models import PaymentStatus, SagaStep
from salon_booking.utils.money import to_money
from . import metadata as payments_metadata
from . import repository

logger = logging.getLogger(__name__)

STRIPE_PAID_EVENTS = ("checkout.session.completed",)
PAYSTACK_PAID_EVENTS = ("charge.success",)


def reconcile_payment(notification: payments_metadata.PaymentNotification) -> Dict[str, Any]:
    """
    Passe le rendez-vous en 'deposit_paid' ou 'fully_paid' et l'intention en 'succeeded'.
    - Rejouer la même notification ne change rien (marqueur 'paid' déjà posé)
    - Retour: {"status": "ok"|"ignored"|"duplicate", "booking_id": ...}
    """
    booking_id = notification.booking_id
    if not booking_id:
        logger.warning("payments.reconcile notification sans appointment_id ref=%s", notification.gateway_reference)
        return {"status": "ignored", "booking_id": None}

    progress = bookings_service.load_progress(booking_id)
    if progress is None:
        logger.warning("payments.reconcile rendez-vous introuvable booking=%s", booking_id)
        return {"status": "ignored", "booking_id": booking_id}
    if progress.done(SagaStep.PAID):
        return {"status": "duplicate", "booking_id": booking_id}

    status = PaymentStatus.DEPOSIT_PAID if notification.is_deposit else PaymentStatus.FULLY_PAID
    row = bookings_repository.get_booking_progress(booking_id) or {}
    paid_before = to_money(row.get("amount_paid"))
    amount_paid = paid_before + to_money(notification.amount) if notification.amount is not None else None
    if not bookings_repository.mark_booking_payment(booking_id, status.value, amount_paid):
        # L'erreur fait répondre la vue en 5xx: la passerelle renverra l'événement
        raise RuntimeError(f"Statut de paiement non enregistré pour {booking_id}")

    if notification.payment_intent_id:
        repository.update_payment_intent(notification.payment_intent_id, {"status": "succeeded"})
    progress.completed.add(SagaStep.PAID)
    bookings_repository.record_checkout_step(
        booking_id, [s.value for s in progress.completed], idempotency_key=progress.idempotency_key,
    )
    logger.info("payments.reconcile booking=%s status=%s amount=%s", booking_id, status.value, notification.amount)
    return {"status": "ok", "booking_id": booking_id}


def handle_stripe_event(event: Dict[str, Any]) -> Dict[str, Any]:
    if (event or {}).get("type") not in STRIPE_PAID_EVENTS:
        return {"status": "ignored"}
    return reconcile_payment(payments_metadata.from_stripe_event(event))


def handle_paystack_event(event: Dict[str, Any]) -> Dict[str, Any]:
    if (event or {}).get("event") not in PAYSTACK_PAID_EVENTS:
        return {"status": "ignored"}
    return reconcile_payment(payments_metadata.from_paystack_event(event))
