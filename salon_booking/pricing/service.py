"""
Cas d'usage 'pricing': bons d'achat, porte-monnaie et politique d'acompte d'un salon.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from pydantic import BaseModel

from salon_booking.cart.models import CartItem, ItemType
from salon_booking.checkout.errors import ValidationError
from salon_booking.salons.models import TenantSettings
from salon_booking.utils.money import ZERO, to_money
from . import repository
from .deposits import DepositPolicy, DepositRule

logger = logging.getLogger(__name__)


class AppliedVoucher(BaseModel):
    code: str
    discount_amount: Decimal
    balance: Decimal


def _is_expired(expires_at: Optional[str], now: datetime) -> bool:
    if not expires_at:
        return False
    try:
        expiry = datetime.fromisoformat(str(expires_at).replace("Z", "+00:00"))
    except ValueError:
        # Date illisible: on refuse plutôt que d'accepter un bon peut-être périmé
        return True
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry < now


def validate_voucher(code: str, tenant_id: str, subtotal, now: Optional[datetime] = None) -> AppliedVoucher:
    """
    Valide un bon d'achat (carte cadeau à montant fixe).
    - Remise = min(solde du bon, sous-total)
    - Lève ValidationError si le code est inconnu, épuisé ou expiré
    """
    clean = (code or "").strip()
    if not clean:
        raise ValidationError("Veuillez saisir un code", field="voucher_code", step="review")
    voucher = repository.fetch_voucher(tenant_id, clean)
    if not voucher:
        raise ValidationError("Code invalide ou expiré", field="voucher_code", step="review")
    now = now or datetime.now(timezone.utc)
    if _is_expired(voucher.get("expires_at"), now):
        raise ValidationError("Ce bon d'achat a expiré", field="voucher_code", step="review")
    balance = to_money(voucher.get("balance"))
    if balance <= ZERO:
        raise ValidationError("Ce bon d'achat n'a plus de solde", field="voucher_code", step="review")
    discount = min(balance, max(ZERO, to_money(subtotal)))
    logger.info("pricing.voucher applied tenant=%s code=%s discount=%s", tenant_id, clean.upper(), discount)
    return AppliedVoucher(code=clean.upper(), discount_amount=discount, balance=balance)


def lookup_stored_credit(tenant_id: str, customer_email: str) -> Tuple[Optional[str], Decimal]:
    """(customer_id, solde) du porte-monnaie, (None, 0) pour un client inconnu."""
    return repository.get_stored_credit_balance(tenant_id, customer_email)


def load_deposit_policy(tenant: TenantSettings, items: Iterable[CartItem]) -> DepositPolicy:
    """Politique d'acompte du salon + règles propres aux prestations du panier."""
    if not tenant.deposits_enabled:
        return DepositPolicy(enabled=False)
    service_ids = [i.source_id for i in items if i.item_type == ItemType.SERVICE]
    rows = repository.get_deposit_rules(tenant.id, service_ids)
    rules = {}
    for source_id, row in rows.items():
        try:
            rules[source_id] = DepositRule(
                deposit_required=bool(row.get("deposit_required")),
                deposit_type=row.get("deposit_type") or "percentage",
                deposit_value=row.get("deposit_value") or 0,
            )
        except ValueError:
            logger.warning("pricing.deposit règle ignorée service=%s row=%s", source_id, row)
    return DepositPolicy(
        enabled=True,
        default_percentage=tenant.default_deposit_percentage,
        item_rules=rules,
    )
