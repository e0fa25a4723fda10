import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from salon_booking.bookings import service as bookings_service
from salon_booking.bookings.models import CreatedBooking, PaymentStatus, SagaStep, SubmissionProgress
from salon_booking.cart.models import BookerInfo, GiftRecipient
from salon_booking.checkout.errors import (
    AvailabilityConflict,
    GatewayError,
    PaymentDebitFailure,
    PersistenceFailure,
    ValidationError,
)
from salon_booking.payments.gateways import Gateway, PaymentSession
from salon_booking.pricing import PaymentMode, PaymentOption, compute_allocation

NOW = datetime(2031, 3, 1, 12, 0)


@pytest.fixture
def calls(monkeypatch):
    """Collaborateurs de l'orchestrateur remplacés par des faux qui tracent les appels."""
    log = {"create": [], "debit": [], "session": [], "mark": [], "steps": [], "reserved": []}

    def fake_create(payload):
        log["create"].append(payload)
        return CreatedBooking(booking_id="bk-1", reference="BKREF1", customer_id="cust-db")

    def fake_debit(**kw):
        log["debit"].append(kw)
        return {"id": "tx-1"}

    def fake_session(req):
        log["session"].append(req)
        return PaymentSession(checkout_url="https://pay.test/cs_1", gateway=req.gateway, payment_intent_id="pi-1")

    def fake_mark(booking_id, status, amount=None):
        log["mark"].append((booking_id, status, amount))
        return True

    def fake_record(booking_id, completed, idempotency_key=None, credit_debit_amount=None):
        log["steps"].append((booking_id, sorted(completed), idempotency_key))
        log["reserved"].append(credit_debit_amount)
        return True

    monkeypatch.setattr("salon_booking.bookings.service.availability_service.is_slot_still_available", lambda *a: True)
    monkeypatch.setattr("salon_booking.bookings.service.repository.create_booking", fake_create)
    monkeypatch.setattr("salon_booking.bookings.service.repository.debit_stored_credit", fake_debit)
    monkeypatch.setattr("salon_booking.bookings.service.repository.mark_booking_payment", fake_mark)
    monkeypatch.setattr("salon_booking.bookings.service.repository.record_checkout_step", fake_record)
    monkeypatch.setattr("salon_booking.bookings.service.gateways.create_payment_session", fake_session)
    return log


def _request(tenant, items, allocation, **kw):
    data = dict(
        tenant=tenant,
        items=items,
        booker=BookerInfo(first_name="Ann", last_name="Doe", email="ann@example.com"),
        location_id="loc-1",
        scheduled_date=date(2031, 3, 3),
        scheduled_time="10:00",
        total_duration_minutes=30,
        allocation=allocation,
        success_url="https://salon.test/ok",
        cancel_url="https://salon.test/ko",
        cart_fingerprint="fp-1",
    )
    data.update(kw)
    return bookings_service.SubmissionRequest(**data)


def test_pay_at_venue_creates_and_confirms(tenant, make_item, calls):
    req = _request(tenant, [make_item()], compute_allocation(subtotal="50", payment_option=PaymentOption.PAY_AT_VENUE))
    outcome = bookings_service.submit_booking(req, now=NOW)

    assert outcome.booking_id == "bk-1"
    assert outcome.reference == "BKREF1"
    assert outcome.payment_status == PaymentStatus.PAY_AT_SALON
    assert outcome.checkout_url is None
    assert calls["debit"] == [] and calls["session"] == []
    assert calls["mark"] == [("bk-1", "pay_at_salon", Decimal("0.00"))]
    payload = calls["create"][0]
    assert payload.pay_at_venue is True
    assert payload.scheduled_time == "10:00"


def test_card_payment_opens_session(tenant, make_item, calls):
    req = _request(tenant, [make_item()], compute_allocation(subtotal="50", payment_option=PaymentOption.PAY_NOW))
    progress = SubmissionProgress()
    outcome = bookings_service.submit_booking(req, progress, now=NOW)

    assert outcome.checkout_url == "https://pay.test/cs_1"
    assert outcome.payment_status == PaymentStatus.UNPAID
    assert outcome.gateway == "stripe"
    session = calls["session"][0]
    assert session.amount == Decimal("50.00")
    assert session.booking_id == "bk-1"
    assert calls["mark"] == []
    assert progress.done(SagaStep.PAYMENT_SESSION_OPENED)


def test_credit_only_debits_once_and_marks_fully_paid(tenant, make_item, calls):
    allocation = compute_allocation(subtotal="40", available_balance="100", credit_requested="40",
                                    payment_option=PaymentOption.PAY_NOW)
    req = _request(tenant, [make_item(unit_price="40")], allocation, customer_id="cust-1")
    outcome = bookings_service.submit_booking(req, now=NOW)

    assert outcome.payment_status == PaymentStatus.FULLY_PAID
    assert len(calls["debit"]) == 1
    debit = calls["debit"][0]
    assert debit["amount"] == Decimal("40.00")
    assert debit["customer_id"] == "cust-1"
    assert debit["idempotency_key"] == bookings_service.make_idempotency_key("bk-1", "booking_credit", NOW)
    assert calls["session"] == []


def test_split_payment_debits_credit_then_opens_card_session(tenant, make_item, calls):
    allocation = compute_allocation(subtotal="100", available_balance="50", credit_requested="30",
                                    payment_option=PaymentOption.PAY_NOW, payment_mode=PaymentMode.SPLIT,
                                    split_credit_amount="20")
    req = _request(tenant, [make_item(unit_price="100")], allocation, customer_id="cust-1")
    outcome = bookings_service.submit_booking(req, now=NOW)

    assert calls["debit"][0]["amount"] == Decimal("50.00")
    assert calls["session"][0].amount == Decimal("50.00")
    # Le crédit déjà prélevé est enregistré sur le rendez-vous en attente du paiement carte
    assert calls["mark"] == [("bk-1", "unpaid", Decimal("50.00"))]
    assert outcome.needs_redirect


def test_deposit_with_balance_at_venue(tenant, make_item, calls):
    allocation = compute_allocation(subtotal="100", configured_deposit="30", deposits_enabled=True,
                                    payment_option=PaymentOption.PAY_DEPOSIT)
    req = _request(tenant, [make_item(unit_price="100")], allocation)
    bookings_service.submit_booking(req, now=NOW)

    session = calls["session"][0]
    assert session.amount == Decimal("30.00")
    assert session.is_deposit is True
    assert session.description == "Acompte de réservation"
    assert calls["create"][0].deposit_amount == Decimal("30.00")


def test_slot_taken_raises_conflict_before_anything_is_written(tenant, make_item, calls, monkeypatch):
    monkeypatch.setattr("salon_booking.bookings.service.availability_service.is_slot_still_available", lambda *a: False)
    req = _request(tenant, [make_item()], compute_allocation(subtotal="50", payment_option=PaymentOption.PAY_AT_VENUE))
    with pytest.raises(AvailabilityConflict) as exc:
        bookings_service.submit_booking(req, now=NOW)
    assert exc.value.step == "scheduling"
    assert calls["create"] == []


def test_unscheduled_booking_skips_slot_check(tenant, make_item, calls, monkeypatch):
    def fail(*a):
        raise AssertionError("pas de vérification pour un rendez-vous sans date")

    monkeypatch.setattr("salon_booking.bookings.service.availability_service.is_slot_still_available", fail)
    req = _request(tenant, [make_item()], compute_allocation(subtotal="50", payment_option=PaymentOption.PAY_AT_VENUE),
                   leave_unscheduled=True)
    bookings_service.submit_booking(req, now=NOW)
    assert calls["create"][0].is_unscheduled is True
    assert calls["create"][0].scheduled_date is None


def test_persistence_failure_is_retryable(tenant, make_item, calls, monkeypatch):
    monkeypatch.setattr("salon_booking.bookings.service.repository.create_booking", lambda payload: None)
    req = _request(tenant, [make_item()], compute_allocation(subtotal="50", payment_option=PaymentOption.PAY_AT_VENUE))
    progress = SubmissionProgress()
    with pytest.raises(PersistenceFailure) as exc:
        bookings_service.submit_booking(req, progress, now=NOW)
    assert exc.value.retryable
    assert progress.booking_id is None


def test_debit_failure_then_retry_reuses_booking_and_key(tenant, make_item, calls, monkeypatch):
    allocation = compute_allocation(subtotal="40", available_balance="40", credit_requested="40",
                                    payment_option=PaymentOption.PAY_NOW)
    req = _request(tenant, [make_item(unit_price="40")], allocation, customer_id="cust-1")
    keys = []

    def flaky_debit(**kw):
        keys.append(kw["idempotency_key"])
        if len(keys) == 1:
            raise RuntimeError("timeout")
        return {"id": "tx-1"}

    monkeypatch.setattr("salon_booking.bookings.service.repository.debit_stored_credit", flaky_debit)
    progress = SubmissionProgress()
    with pytest.raises(PaymentDebitFailure) as exc:
        bookings_service.submit_booking(req, progress, now=NOW)
    assert exc.value.booking_id == "bk-1"

    # Plus tard, dans une autre tranche de temps: même clé, pas de second rendez-vous
    outcome = bookings_service.submit_booking(req, progress, now=datetime(2031, 3, 1, 13, 0))
    assert outcome.payment_status == PaymentStatus.FULLY_PAID
    assert len(calls["create"]) == 1
    assert keys[0] == keys[1]


def test_debit_without_customer_fails(tenant, make_item, calls, monkeypatch):
    monkeypatch.setattr(
        "salon_booking.bookings.service.repository.create_booking",
        lambda payload: CreatedBooking(booking_id="bk-1", reference="R"),
    )
    allocation = compute_allocation(subtotal="40", available_balance="40", credit_requested="40")
    req = _request(tenant, [make_item(unit_price="40")], allocation)
    with pytest.raises(PaymentDebitFailure):
        bookings_service.submit_booking(req, now=NOW)
    assert calls["debit"] == []


def test_gateway_failure_then_retry_does_not_debit_twice(tenant, make_item, calls, monkeypatch):
    allocation = compute_allocation(subtotal="100", available_balance="30", credit_requested="30",
                                    payment_option=PaymentOption.PAY_NOW)
    req = _request(tenant, [make_item(unit_price="100")], allocation, customer_id="cust-1")
    attempts = []

    def flaky_session(session_req):
        attempts.append(session_req)
        if len(attempts) == 1:
            raise RuntimeError("stripe down")
        return PaymentSession(checkout_url="https://pay.test/cs_2", gateway=session_req.gateway)

    monkeypatch.setattr("salon_booking.bookings.service.gateways.create_payment_session", flaky_session)
    progress = SubmissionProgress()
    with pytest.raises(GatewayError) as exc:
        bookings_service.submit_booking(req, progress, now=NOW)
    assert exc.value.pay_at_venue_eligible is True
    assert exc.value.booking_id == "bk-1"
    assert progress.done(SagaStep.CREDIT_DEBITED)

    outcome = bookings_service.submit_booking(req, progress, now=NOW)
    assert outcome.checkout_url == "https://pay.test/cs_2"
    assert len(calls["debit"]) == 1
    assert len(calls["create"]) == 1


def test_progress_markers_are_recorded_on_booking(tenant, make_item, calls):
    req = _request(tenant, [make_item()], compute_allocation(subtotal="50", payment_option=PaymentOption.PAY_AT_VENUE))
    bookings_service.submit_booking(req, now=NOW)
    assert calls["steps"][-1] == ("bk-1", ["booking_created", "paid"], None)


def test_payload_attaches_gift_recipients(tenant, make_item, calls):
    gift = make_item(source_id="g", is_gift=True)
    plain = make_item(source_id="p")
    recipient = GiftRecipient(first_name="Léa", last_name="Martin", email="lea@example.com", phone="06")
    req = _request(tenant, [gift, plain], compute_allocation(subtotal="100", payment_option=PaymentOption.PAY_AT_VENUE),
                   gift_recipients={gift.id: recipient, plain.id: recipient})
    payload = bookings_service.build_payload(req)
    assert payload.lines[0].gift_recipient == recipient
    assert payload.lines[1].gift_recipient is None


@pytest.mark.parametrize("kwargs,status", [
    (dict(subtotal="50", payment_option=PaymentOption.PAY_AT_VENUE), PaymentStatus.PAY_AT_SALON),
    (dict(subtotal="50", configured_deposit="10", deposits_enabled=True, payment_option=PaymentOption.PAY_DEPOSIT),
     PaymentStatus.DEPOSIT_PAID),
    (dict(subtotal="50", payment_option=PaymentOption.PAY_NOW), PaymentStatus.FULLY_PAID),
])
def test_settled_status(kwargs, status):
    assert bookings_service.settled_status(compute_allocation(**kwargs)) == status


def test_idempotency_key_is_stable_within_bucket():
    a = bookings_service.make_idempotency_key("bk-1", "booking_credit", datetime(2031, 3, 1, 12, 0, 10))
    b = bookings_service.make_idempotency_key("bk-1", "booking_credit", datetime(2031, 3, 1, 12, 0, 50))
    c = bookings_service.make_idempotency_key("bk-2", "booking_credit", datetime(2031, 3, 1, 12, 0, 10))
    assert a == b
    assert a != c
    assert a.startswith("booking_credit:bk-1:")


def test_load_progress_skips_unknown_markers(monkeypatch):
    monkeypatch.setattr(
        "salon_booking.bookings.service.repository.get_booking_progress",
        lambda booking_id: {"id": "bk-9", "reference": "R9", "customer_id": 7,
                            "checkout_progress": ["credit_debited", "mystery"], "credit_idempotency_key": "k"},
    )
    progress = bookings_service.load_progress("bk-9")
    assert progress.completed == {SagaStep.BOOKING_CREATED, SagaStep.CREDIT_DEBITED}
    assert progress.customer_id == "7"
    assert progress.idempotency_key == "k"


def _gateway_down(session_req):
    raise RuntimeError("stripe down")


@pytest.fixture
def stored_row(monkeypatch):
    """Rendez-vous tel qu'enregistré en base: record_checkout_step y écrit, get_booking_progress le relit."""
    row = {"id": "bk-1", "tenant_id": "t1", "reference": "BKREF1", "customer_id": "cust-1", "checkout_progress": []}

    def fake_record(booking_id, completed, idempotency_key=None, credit_debit_amount=None):
        row["checkout_progress"] = sorted(completed)
        if idempotency_key:
            row["credit_idempotency_key"] = idempotency_key
        if credit_debit_amount is not None:
            row["credit_debit_amount"] = str(credit_debit_amount)
        return True

    monkeypatch.setattr("salon_booking.bookings.service.repository.record_checkout_step", fake_record)
    monkeypatch.setattr("salon_booking.bookings.service.repository.get_booking_progress", lambda booking_id: dict(row))
    return row


def test_debit_key_is_stored_before_the_rpc(tenant, make_item, calls, stored_row, monkeypatch):
    allocation = compute_allocation(subtotal="40", available_balance="40", credit_requested="40",
                                    payment_option=PaymentOption.PAY_NOW)
    req = _request(tenant, [make_item(unit_price="40")], allocation, customer_id="cust-1")
    keys = []

    def committed_then_lost(**kw):
        keys.append(kw["idempotency_key"])
        # La clé est déjà sur le rendez-vous au moment de l'appel
        assert stored_row["credit_idempotency_key"] == kw["idempotency_key"]
        if len(keys) == 1:
            raise TimeoutError("réponse perdue")
        return {"id": "tx-1"}

    monkeypatch.setattr("salon_booking.bookings.service.repository.debit_stored_credit", committed_then_lost)
    with pytest.raises(PaymentDebitFailure):
        bookings_service.submit_booking(req, SubmissionProgress(), now=NOW)

    # Autre processus, autre tranche de temps: la reprise relit la clé enregistrée
    progress = bookings_service.resume_payment("bk-1", "t1")
    assert progress.credit_debit_amount == Decimal("40.00")
    outcome = bookings_service.submit_booking(req, progress, now=NOW + timedelta(minutes=10))

    assert keys[0] == keys[1]
    assert outcome.payment_status == PaymentStatus.FULLY_PAID
    assert len(calls["create"]) == 1


def test_debit_is_not_attempted_when_key_cannot_be_stored(tenant, make_item, calls, monkeypatch):
    monkeypatch.setattr(
        "salon_booking.bookings.service.repository.record_checkout_step",
        lambda booking_id, completed, idempotency_key=None, credit_debit_amount=None: idempotency_key is None,
    )
    allocation = compute_allocation(subtotal="40", available_balance="40", credit_requested="40",
                                    payment_option=PaymentOption.PAY_NOW)
    req = _request(tenant, [make_item(unit_price="40")], allocation, customer_id="cust-1")
    progress = SubmissionProgress()
    with pytest.raises(PaymentDebitFailure):
        bookings_service.submit_booking(req, progress, now=NOW)
    assert calls["debit"] == []
    assert progress.idempotency_key is None


def test_debited_credit_survives_switch_to_pay_at_venue(tenant, make_item, calls, monkeypatch):
    split = compute_allocation(subtotal="50", available_balance="20", payment_option=PaymentOption.PAY_NOW,
                               payment_mode=PaymentMode.SPLIT, split_credit_amount="20")
    req = _request(tenant, [make_item()], split, customer_id="cust-1")

    monkeypatch.setattr("salon_booking.bookings.service.gateways.create_payment_session", _gateway_down)
    progress = SubmissionProgress()
    with pytest.raises(GatewayError):
        bookings_service.submit_booking(req, progress, now=NOW)
    assert progress.credit_debit_amount == Decimal("20.00")
    assert calls["reserved"][-1] == Decimal("20.00")

    # Le crédit débité devient du crédit appliqué, le reste se paie au salon
    at_venue = compute_allocation(subtotal="50", available_balance="20", credit_requested="20",
                                  payment_option=PaymentOption.PAY_AT_VENUE)
    outcome = bookings_service.submit_booking(req.model_copy(update={"allocation": at_venue}), progress, now=NOW)

    assert outcome.payment_status == PaymentStatus.PAY_AT_SALON
    assert calls["mark"] == [("bk-1", "pay_at_salon", Decimal("20.00"))]
    assert len(calls["debit"]) == 1


def test_committed_credit_amount_cannot_change(tenant, make_item, calls, monkeypatch):
    allocation = compute_allocation(subtotal="100", available_balance="30", credit_requested="30",
                                    payment_option=PaymentOption.PAY_NOW)
    req = _request(tenant, [make_item(unit_price="100")], allocation, customer_id="cust-1")
    monkeypatch.setattr("salon_booking.bookings.service.gateways.create_payment_session", _gateway_down)
    progress = SubmissionProgress()
    with pytest.raises(GatewayError):
        bookings_service.submit_booking(req, progress, now=NOW)

    more = compute_allocation(subtotal="100", available_balance="60", credit_requested="60",
                              payment_option=PaymentOption.PAY_NOW)
    with pytest.raises(ValidationError) as exc:
        bookings_service.submit_booking(req.model_copy(update={"allocation": more}), progress, now=NOW)
    assert exc.value.field == "credit_amount"
    assert len(calls["debit"]) == 1


def test_unrecorded_debit_after_session_is_logged(tenant, make_item, calls, monkeypatch, caplog):
    monkeypatch.setattr("salon_booking.bookings.service.repository.mark_booking_payment", lambda *a: False)
    allocation = compute_allocation(subtotal="100", available_balance="30", credit_requested="30",
                                    payment_option=PaymentOption.PAY_NOW)
    req = _request(tenant, [make_item(unit_price="100")], allocation, customer_id="cust-1")
    with caplog.at_level(logging.ERROR, logger="salon_booking.bookings.service"):
        outcome = bookings_service.submit_booking(req, now=NOW)
    assert outcome.needs_redirect
    assert "montant débité non enregistré" in caplog.text


def test_resume_payment_rejects_unknown_foreign_or_settled_booking(monkeypatch):
    rows = {
        "bk-other": {"id": "bk-other", "tenant_id": "t2", "checkout_progress": ["booking_created"]},
        "bk-paid": {"id": "bk-paid", "tenant_id": "t1", "checkout_progress": ["booking_created", "paid"]},
    }
    monkeypatch.setattr("salon_booking.bookings.service.repository.get_booking_progress", rows.get)
    for booking_id in ("nope", "bk-other", "bk-paid"):
        with pytest.raises(ValidationError):
            bookings_service.resume_payment(booking_id, "t1")


def test_resumed_progress_opens_session_without_recreating(tenant, make_item, calls, monkeypatch):
    monkeypatch.setattr(
        "salon_booking.bookings.service.repository.get_booking_progress",
        lambda booking_id: {"id": booking_id, "tenant_id": "t1", "reference": "R", "total_amount": "50.00",
                            "checkout_progress": ["booking_created", "payment_session_opened"]},
    )
    progress = bookings_service.resume_payment("bk-5", "t1")
    assert progress.total_amount == Decimal("50.00")

    req = _request(tenant, [make_item()], compute_allocation(subtotal="50", payment_option=PaymentOption.PAY_NOW),
                   preferred_gateway=Gateway.PAYSTACK)
    outcome = bookings_service.submit_booking(req, progress, now=NOW)
    assert calls["create"] == []
    assert outcome.booking_id == "bk-5"
    assert outcome.gateway == "paystack"
