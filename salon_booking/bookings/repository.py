"""
Accès aux données pour la feature 'bookings' (service-role: écritures du checkout public).
"""
import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import salon_booking.infra.supabase_client as supabase_client
from salon_booking.cart.models import ItemType
from .models import BookingPayload, CreatedBooking

logger = logging.getLogger(__name__)

_ALPHABET = string.digits + string.ascii_uppercase

# module salon_booking.bookings.repository
def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _ALPHABET[r] + out
    return out or "0"

def generate_reference() -> str:
    """Référence lisible communiquée au client, ex: BKLX3K9QZ2A7F."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(3))
    return f"BK{_base36(int(time.time() * 1000))}{suffix}"

def _find_or_create_customer(client, payload: BookingPayload) -> Optional[str]:
    email = payload.customer.email.strip().lower()
    res = (
        client.table("customers")
        .select("id")
        .eq("tenant_id", payload.tenant_id)
        .eq("email", email)
        .limit(1)
        .execute()
    )
    rows = res.data or []
    if rows:
        return str(rows[0]["id"])
    created = (
        client.table("customers")
        .insert({
            "tenant_id": payload.tenant_id,
            "full_name": payload.customer.full_name,
            "email": email,
            "phone": payload.customer.phone or None,
        })
        .execute()
    )
    new_rows = created.data or []
    return str(new_rows[0]["id"]) if new_rows else None

def _schedule_bounds(payload: BookingPayload):
    if payload.is_unscheduled or not (payload.scheduled_date and payload.scheduled_time and payload.location_id):
        return None, None
    hour, minute = (int(p) for p in payload.scheduled_time.split(":")[:2])
    start = datetime(payload.scheduled_date.year, payload.scheduled_date.month, payload.scheduled_date.day, hour, minute)
    end = start + timedelta(minutes=payload.total_duration_minutes)
    return start.isoformat(), end.isoformat()

def _service_rows(booking_id: str, payload: BookingPayload) -> List[Dict[str, Any]]:
    return [
        {
            "appointment_id": booking_id,
            "service_id": line.item.source_id if line.item.item_type == ItemType.SERVICE else None,
            "package_id": line.item.source_id if line.item.item_type == ItemType.PACKAGE else None,
            "service_name": line.item.name,
            "duration_minutes": line.item.duration_minutes or 60,
            "price": str(line.item.unit_price),
            "quantity": line.item.quantity,
            "status": "scheduled",
        }
        for line in payload.lines
        if line.item.item_type != ItemType.PRODUCT
    ]

def _product_rows(booking_id: str, payload: BookingPayload) -> List[Dict[str, Any]]:
    return [
        {
            "appointment_id": booking_id,
            "product_id": line.item.source_id,
            "product_name": line.item.name,
            "quantity": line.item.quantity,
            "unit_price": str(line.item.unit_price),
            "total_price": str(line.item.line_total),
            "fulfillment_type": line.item.fulfillment_type.value if line.item.fulfillment_type else None,
            "fulfillment_status": "pending",
        }
        for line in payload.lines
        if line.item.item_type == ItemType.PRODUCT
    ]

def _gift_rows(booking_id: str, payload: BookingPayload) -> List[Dict[str, Any]]:
    rows = []
    for line in payload.lines:
        if not line.item.is_gift or line.gift_recipient is None:
            continue
        r = line.gift_recipient
        rows.append({
            "appointment_id": booking_id,
            "item_type": line.item.item_type.value,
            "item_id": line.item.source_id,
            "recipient_first_name": r.first_name,
            "recipient_last_name": r.last_name,
            "recipient_email": r.email,
            "recipient_phone": r.phone,
            "message": r.message,
            "hide_sender": r.hide_sender_identity,
        })
    return rows

def _delete_appointment(client, booking_id: str) -> None:
    try:
        client.table("appointments").delete().eq("id", booking_id).execute()
    except Exception:
        logger.exception("bookings.repository rollback failed booking=%s", booking_id)

def create_booking(payload: BookingPayload) -> Optional[CreatedBooking]:
    """
    Enregistre le rendez-vous, ses lignes (prestations/produits) et les cadeaux.
    - Retourne None en cas d'échec; un rendez-vous à moitié écrit est supprimé.
    - La notification au salon est best-effort.
    """
    client = supabase_client.get_service_supabase()
    booking_id: Optional[str] = None
    try:
        customer_id = _find_or_create_customer(client, payload)
        if not customer_id:
            logger.error("bookings.repository.create_booking customer non créé tenant=%s", payload.tenant_id)
            return None
        start, end = _schedule_bounds(payload)
        res = (
            client.table("appointments")
            .insert({
                "tenant_id": payload.tenant_id,
                "customer_id": customer_id,
                "location_id": payload.location_id,
                "scheduled_start": start,
                "scheduled_end": end,
                "is_unscheduled": start is None,
                "is_gifted": any(line.item.is_gift for line in payload.lines),
                "status": "scheduled",
                "payment_status": "pay_at_salon" if payload.pay_at_venue else "unpaid",
                "total_amount": str(payload.total_amount),
                "voucher_code": payload.voucher_code,
                "voucher_discount": str(payload.voucher_discount),
                "deposit_amount": str(payload.deposit_amount),
                "notes": payload.customer.notes or None,
                "checkout_progress": [],
            })
            .execute()
        )
        rows = res.data or []
        if not rows:
            return None
        booking_id = str(rows[0]["id"])

        services = _service_rows(booking_id, payload)
        if services:
            client.table("appointment_services").insert(services).execute()
        products = _product_rows(booking_id, payload)
        if products:
            client.table("appointment_products").insert(products).execute()
        gifts = _gift_rows(booking_id, payload)
        if gifts:
            client.table("appointment_gifts").insert(gifts).execute()
    except Exception:
        logger.exception("bookings.repository.create_booking failed tenant=%s booking=%s", payload.tenant_id, booking_id)
        if booking_id:
            _delete_appointment(client, booking_id)
        return None

    reference = generate_reference()
    try:
        client.table("appointments").update({"reference": reference}).eq("id", booking_id).execute()
        client.table("notifications").insert({
            "tenant_id": payload.tenant_id,
            "type": "new_booking",
            "title": "Nouvelle réservation",
            "description": f"{payload.customer.full_name} a réservé {len(payload.lines)} article(s) pour {payload.total_amount}",
            "entity_type": "appointment",
            "entity_id": booking_id,
            "urgent": False,
        }).execute()
    except Exception:
        logger.exception("bookings.repository.create_booking post-insert failed booking=%s", booking_id)
    return CreatedBooking(booking_id=booking_id, reference=reference, customer_id=customer_id)

def debit_stored_credit(
    *,
    tenant_id: str,
    customer_id: str,
    booking_id: str,
    amount: Decimal,
    currency: str,
    idempotency_key: str,
) -> Dict[str, Any]:
    """
    Débite le porte-monnaie via la RPC debit_customer_purse_for_booking.
    - La RPC est idempotente sur p_idempotency_key: un rejeu renvoie l'écriture existante.
    - Lève l'exception d'origine en cas de refus (solde insuffisant, erreur réseau...).
    """
    res = supabase_client.get_service_supabase().rpc(
        "debit_customer_purse_for_booking",
        {
            "p_tenant_id": tenant_id,
            "p_customer_id": customer_id,
            "p_appointment_id": booking_id,
            "p_amount": str(amount),
            "p_currency": currency,
            "p_idempotency_key": idempotency_key,
        },
    ).execute()
    data = res.data
    if isinstance(data, list):
        data = data[0] if data else None
    if not data:
        raise RuntimeError("Débit du porte-monnaie refusé")
    return data

def mark_booking_payment(booking_id: str, payment_status: str, amount_paid: Optional[Decimal] = None) -> bool:
    changes: Dict[str, Any] = {"payment_status": payment_status}
    if amount_paid is not None:
        changes["amount_paid"] = str(amount_paid)
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("appointments")
            .update(changes)
            .eq("id", booking_id)
            .execute()
        )
        return bool(res.data)
    except Exception:
        logger.exception("bookings.repository.mark_booking_payment failed booking=%s", booking_id)
        return False

def record_checkout_step(
    booking_id: str,
    completed: List[str],
    idempotency_key: Optional[str] = None,
    credit_debit_amount: Optional[Decimal] = None,
) -> bool:
    """
    Enregistre les marqueurs d'avancement (checkout_progress) sur le rendez-vous.
    La clé d'idempotence et le montant du débit sont écrits avec, dès qu'ils existent.
    """
    changes: Dict[str, Any] = {"checkout_progress": sorted(completed)}
    if idempotency_key:
        changes["credit_idempotency_key"] = idempotency_key
    if credit_debit_amount is not None:
        changes["credit_debit_amount"] = str(credit_debit_amount)
    try:
        (
            supabase_client.get_service_supabase()
            .table("appointments")
            .update(changes)
            .eq("id", booking_id)
            .execute()
        )
        return True
    except Exception:
        logger.exception("bookings.repository.record_checkout_step failed booking=%s", booking_id)
        return False

def get_booking_progress(booking_id: str) -> Optional[Dict[str, Any]]:
    """Rendez-vous + marqueurs d'avancement, pour reprendre un paiement."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("appointments")
            .select("id, tenant_id, customer_id, reference, payment_status, total_amount, amount_paid, checkout_progress, credit_idempotency_key, credit_debit_amount")
            .eq("id", booking_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("bookings.repository.get_booking_progress failed booking=%s", booking_id)
        return None
