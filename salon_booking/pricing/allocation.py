"""
Répartition du prix (fonction pure, recalculée à chaque changement d'entrée).

Cascade, dans cet ordre:
  1) bon d'achat      after_voucher = max(0, subtotal - voucher)
  2) porte-monnaie    after_credit  = max(0, after_voucher - crédit appliqué)
  3) acompte          min(acompte configuré, after_credit) si activé
  4) option           payer tout / l'acompte / au salon
  5) mode             carte, porte-monnaie, ou partage porte-monnaie + carte

Invariants: amount_due_now + amount_due_at_venue == after_credit et
card_amount + credit_amount == amount_due_now.
"""
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict

from salon_booking.utils.money import ZERO, clamp, to_money


class PaymentOption(str, Enum):
    PAY_NOW = "pay_now"
    PAY_DEPOSIT = "pay_deposit"
    PAY_AT_VENUE = "pay_at_venue"


class PaymentMode(str, Enum):
    CARD = "card"
    CREDIT = "credit"
    SPLIT = "split"


class PaymentAllocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    voucher_discount: Decimal
    after_voucher: Decimal
    stored_credit_applied: Decimal
    after_credit: Decimal
    deposit_amount: Decimal
    amount_due_now: Decimal
    amount_due_at_venue: Decimal
    card_amount: Decimal
    credit_amount: Decimal
    payment_option: PaymentOption
    payment_mode: PaymentMode

    @property
    def requires_payment(self) -> bool:
        return self.amount_due_now > ZERO

    @property
    def total_credit_debit(self) -> Decimal:
        """Montant total à prélever sur le porte-monnaie (crédit appliqué + part porte-monnaie)."""
        return to_money(self.stored_credit_applied + self.credit_amount)

    @property
    def pays_at_venue(self) -> bool:
        # Rien à payer du tout: ce n'est pas un paiement au salon
        return self.payment_option == PaymentOption.PAY_AT_VENUE and self.after_credit > ZERO

    @property
    def is_deposit(self) -> bool:
        return self.payment_option == PaymentOption.PAY_DEPOSIT and self.amount_due_now > ZERO


def compute_allocation(
    *,
    subtotal,
    voucher_discount=ZERO,
    available_balance=ZERO,
    credit_requested=ZERO,
    configured_deposit=ZERO,
    deposits_enabled: bool = False,
    payment_option: PaymentOption = PaymentOption.PAY_AT_VENUE,
    payment_mode: PaymentMode = PaymentMode.CARD,
    split_credit_amount=ZERO,
) -> PaymentAllocation:
    subtotal = max(ZERO, to_money(subtotal))
    voucher_discount = max(ZERO, to_money(voucher_discount))
    balance = max(ZERO, to_money(available_balance))

    after_voucher = max(ZERO, subtotal - voucher_discount)

    credit_applied = clamp(to_money(credit_requested), ZERO, min(balance, after_voucher))
    after_credit = max(ZERO, after_voucher - credit_applied)

    deposit = ZERO
    if deposits_enabled:
        deposit = clamp(to_money(configured_deposit), ZERO, after_credit)

    if after_credit == ZERO:
        due_now = ZERO
    elif payment_option == PaymentOption.PAY_NOW:
        due_now = after_credit
    elif payment_option == PaymentOption.PAY_DEPOSIT:
        due_now = deposit
    else:
        due_now = ZERO
    due_at_venue = after_credit - due_now

    # Solde restant après le crédit appliqué à l'étape 2
    remaining = max(ZERO, balance - credit_applied)
    if payment_mode == PaymentMode.CREDIT:
        credit_amount = min(remaining, due_now)
    elif payment_mode == PaymentMode.SPLIT:
        credit_amount = clamp(to_money(split_credit_amount), ZERO, min(remaining, due_now))
    else:
        credit_amount = ZERO
    card_amount = due_now - credit_amount

    return PaymentAllocation(
        subtotal=subtotal,
        voucher_discount=voucher_discount,
        after_voucher=after_voucher,
        stored_credit_applied=credit_applied,
        after_credit=after_credit,
        deposit_amount=deposit,
        amount_due_now=due_now,
        amount_due_at_venue=due_at_venue,
        card_amount=card_amount,
        credit_amount=credit_amount,
        payment_option=payment_option,
        payment_mode=payment_mode,
    )


def remaining_balance_after_credit(available_balance, credit_applied) -> Decimal:
    return max(ZERO, to_money(available_balance) - to_money(credit_applied))
