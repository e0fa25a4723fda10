"""
Module 'pricing' (feature-first): répartition du prix, acomptes, bons d'achat, porte-monnaie.
"""
from .allocation import PaymentAllocation, PaymentMode, PaymentOption, compute_allocation
from .deposits import DepositPolicy, DepositRule, DepositType, configured_deposit

__all__ = [
    "PaymentAllocation",
    "PaymentMode",
    "PaymentOption",
    "compute_allocation",
    "DepositPolicy",
    "DepositRule",
    "DepositType",
    "configured_deposit",
]
