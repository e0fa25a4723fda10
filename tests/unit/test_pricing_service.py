from datetime import datetime, timezone
from decimal import Decimal

import pytest

from salon_booking.checkout.errors import ValidationError
from salon_booking.pricing import service as pricing_service
from salon_booking.pricing.deposits import DepositType

NOW = datetime(2031, 3, 1, 12, 0, tzinfo=timezone.utc)


def _voucher(monkeypatch, row):
    monkeypatch.setattr("salon_booking.pricing.service.repository.fetch_voucher", lambda tenant_id, code: row)


def test_voucher_discount_is_capped_by_subtotal(monkeypatch):
    _voucher(monkeypatch, {"code": "GIFT50", "balance": "50", "expires_at": None})
    applied = pricing_service.validate_voucher(" gift50 ", "t1", Decimal("30"), now=NOW)
    assert applied.code == "GIFT50"
    assert applied.discount_amount == Decimal("30.00")
    assert applied.balance == Decimal("50.00")


def test_voucher_with_partial_balance(monkeypatch):
    _voucher(monkeypatch, {"code": "X", "balance": "12.50", "expires_at": "2031-12-31T00:00:00Z"})
    assert pricing_service.validate_voucher("X", "t1", "80", now=NOW).discount_amount == Decimal("12.50")


@pytest.mark.parametrize("code,row,message", [
    ("", None, "Veuillez saisir un code"),
    ("NOPE", None, "Code invalide ou expiré"),
    ("OLD", {"code": "OLD", "balance": "10", "expires_at": "2030-01-01T00:00:00Z"}, "Ce bon d'achat a expiré"),
    ("EMPTY", {"code": "EMPTY", "balance": "0", "expires_at": None}, "Ce bon d'achat n'a plus de solde"),
])
def test_invalid_vouchers_raise_validation_error(monkeypatch, code, row, message):
    _voucher(monkeypatch, row)
    with pytest.raises(ValidationError) as exc:
        pricing_service.validate_voucher(code, "t1", "50", now=NOW)
    assert exc.value.message == message
    assert exc.value.field == "voucher_code"


def test_deposit_policy_reads_service_rules(monkeypatch, tenant, make_item):
    tenant = tenant.model_copy(update={"deposits_enabled": True, "default_deposit_percentage": Decimal("20")})
    seen = {}

    def fake_rules(tenant_id, ids):
        seen["ids"] = ids
        return {"svc-1": {"deposit_required": True, "deposit_type": "fixed", "deposit_value": "15"}}

    monkeypatch.setattr("salon_booking.pricing.service.repository.get_deposit_rules", fake_rules)
    policy = pricing_service.load_deposit_policy(tenant, [make_item(source_id="svc-1")])

    assert seen["ids"] == ["svc-1"]
    assert policy.enabled
    assert policy.default_percentage == Decimal("20.00")
    assert policy.item_rules["svc-1"].deposit_type == DepositType.FIXED


def test_deposit_policy_disabled_skips_lookup(monkeypatch, tenant, make_item):
    def fail(*a):
        raise AssertionError("ne doit pas lire")

    monkeypatch.setattr("salon_booking.pricing.service.repository.get_deposit_rules", fail)
    assert pricing_service.load_deposit_policy(tenant, [make_item()]).enabled is False
