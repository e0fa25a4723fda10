"""
Erreurs métier du checkout.

Tout échec d'un collaborateur (Supabase, Stripe, Paystack) est traduit en
l'une de ces erreurs avant d'atteindre la machine à états: l'interface reçoit
toujours un message exploitable lié à l'étape courante.
"""
from typing import Any, Dict, Optional


class CheckoutError(Exception):
    code = "checkout_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, *, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "step": self.step,
            "retryable": self.retryable,
        }


class ValidationError(CheckoutError):
    """Garde d'entrée d'étape non satisfaite: l'étape ne change pas."""
    code = "validation_error"
    http_status = 422

    def __init__(self, message: str, *, field: Optional[str] = None, item_id: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.field = field
        self.item_id = item_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"field": self.field, "item_id": self.item_id})
        return data


class AvailabilityConflict(CheckoutError):
    """Le créneau choisi n'a plus de place au moment de la soumission."""
    code = "availability_conflict"
    http_status = 409
    retryable = True


class PersistenceFailure(CheckoutError):
    """La création du rendez-vous a échoué: rien n'a été enregistré, on peut réessayer."""
    code = "persistence_failure"
    http_status = 503
    retryable = True


class PaymentDebitFailure(CheckoutError):
    """Le débit du porte-monnaie a échoué; le rendez-vous existe déjà."""
    code = "payment_debit_failure"
    http_status = 402
    retryable = True

    def __init__(self, message: str, *, booking_id: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.booking_id = booking_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["booking_id"] = self.booking_id
        return data


class GatewayError(CheckoutError):
    """La session de paiement n'a pas pu être ouverte chez la passerelle."""
    code = "gateway_error"
    http_status = 502
    retryable = True

    def __init__(self, message: str, *, booking_id: Optional[str] = None, pay_at_venue_eligible: bool = False, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.booking_id = booking_id
        self.pay_at_venue_eligible = pay_at_venue_eligible

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"booking_id": self.booking_id, "pay_at_venue_eligible": self.pay_at_venue_eligible})
        return data
