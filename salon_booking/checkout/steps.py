"""
Table de transition de l'assistant de réservation.

  cart -> [scheduling] -> booker -> [gifts] -> review -> [payment] -> confirmation

Les étapes entre crochets ne sont incluses que si leur prédicat est vrai.
Chaque étape a une garde, vérifiée avant de la quitter vers l'avant:
elle lève ValidationError et l'étape courante ne change pas.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional

from salon_booking.cart.models import BookerInfo, CartItem, GiftRecipient
from salon_booking.pricing.allocation import PaymentAllocation
from salon_booking.utils.validators import is_blank, is_valid_email
from .errors import ValidationError


class Step(str, Enum):
    CART = "cart"
    SCHEDULING = "scheduling"
    BOOKER = "booker"
    GIFTS = "gifts"
    REVIEW = "review"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


STEP_ORDER: List[Step] = [
    Step.CART,
    Step.SCHEDULING,
    Step.BOOKER,
    Step.GIFTS,
    Step.REVIEW,
    Step.PAYMENT,
    Step.CONFIRMATION,
]


@dataclass
class StepContext:
    """Ce que les prédicats et les gardes lisent; construit par l'assistant à chaque transition."""
    items: List[CartItem]
    booker: BookerInfo = field(default_factory=BookerInfo)
    gift_recipients: Dict[str, GiftRecipient] = field(default_factory=dict)
    location_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    leave_unscheduled: bool = False
    allocation: Optional[PaymentAllocation] = None
    today: Optional[date] = None


# --- inclusion ---

def needs_scheduling(ctx: StepContext) -> bool:
    return any(i.is_schedulable for i in ctx.items)


def needs_gifts(ctx: StepContext) -> bool:
    return any(i.is_gift for i in ctx.items)


def needs_payment(ctx: StepContext) -> bool:
    return ctx.allocation is not None and ctx.allocation.amount_due_now > 0


INCLUSION: Dict[Step, Callable[[StepContext], bool]] = {
    Step.SCHEDULING: needs_scheduling,
    Step.GIFTS: needs_gifts,
    Step.PAYMENT: needs_payment,
}


def is_included(step: Step, ctx: StepContext) -> bool:
    predicate = INCLUSION.get(step)
    return predicate is None or predicate(ctx)


def next_step(current: Step, ctx: StepContext) -> Optional[Step]:
    """Première étape incluse après current, None après la confirmation."""
    idx = STEP_ORDER.index(current)
    for step in STEP_ORDER[idx + 1:]:
        if is_included(step, ctx):
            return step
    return None


# --- gardes ---

def guard_cart(ctx: StepContext) -> None:
    if not ctx.items:
        raise ValidationError("Votre panier est vide", field="items", step=Step.CART.value)
    for item in ctx.items:
        if item.is_product and item.fulfillment_type is None:
            raise ValidationError(
                f"Choisissez le retrait ou la livraison pour « {item.name} »",
                field="fulfillment_type", item_id=item.id, step=Step.CART.value,
            )


def guard_scheduling(ctx: StepContext) -> None:
    if ctx.leave_unscheduled:
        return
    step = Step.SCHEDULING.value
    if not ctx.location_id:
        raise ValidationError("Veuillez choisir un salon", field="location_id", step=step)
    if ctx.scheduled_date is None:
        raise ValidationError("Veuillez choisir une date", field="date", step=step)
    if ctx.today is not None and ctx.scheduled_date < ctx.today:
        raise ValidationError("Cette date est passée", field="date", step=step)
    if is_blank(ctx.scheduled_time):
        raise ValidationError("Veuillez choisir un horaire", field="time", step=step)


def guard_booker(ctx: StepContext) -> None:
    step = Step.BOOKER.value
    booker = ctx.booker
    if is_blank(booker.first_name):
        raise ValidationError("Le prénom est obligatoire", field="first_name", step=step)
    if is_blank(booker.last_name):
        raise ValidationError("Le nom est obligatoire", field="last_name", step=step)
    if is_blank(booker.email):
        raise ValidationError("L'email est obligatoire", field="email", step=step)
    if not is_valid_email(booker.email):
        raise ValidationError("Adresse email invalide", field="email", step=step)


def guard_gifts(ctx: StepContext) -> None:
    step = Step.GIFTS.value
    for item in ctx.items:
        if not item.is_gift:
            continue
        recipient = ctx.gift_recipients.get(item.id) or GiftRecipient()
        for name, label in (
            ("first_name", "le prénom"),
            ("last_name", "le nom"),
            ("email", "l'email"),
            ("phone", "le téléphone"),
        ):
            if is_blank(getattr(recipient, name)):
                raise ValidationError(
                    f"Renseignez {label} du bénéficiaire pour « {item.name} »",
                    field=name, item_id=item.id, step=step,
                )
        if not is_valid_email(recipient.email):
            raise ValidationError(
                f"Email du bénéficiaire invalide pour « {item.name} »",
                field="email", item_id=item.id, step=step,
            )


def _no_guard(ctx: StepContext) -> None:
    return None


GUARDS: Dict[Step, Callable[[StepContext], None]] = {
    Step.CART: guard_cart,
    Step.SCHEDULING: guard_scheduling,
    Step.BOOKER: guard_booker,
    Step.GIFTS: guard_gifts,
    Step.REVIEW: _no_guard,
    Step.PAYMENT: _no_guard,
}


def check_guard(step: Step, ctx: StepContext) -> None:
    GUARDS.get(step, _no_guard)(ctx)


def check_path(current: Step, ctx: StepContext) -> None:
    """Gardes de toutes les étapes incluses avant current, dans l'ordre."""
    for step in STEP_ORDER[:STEP_ORDER.index(current)]:
        if is_included(step, ctx):
            check_guard(step, ctx)
