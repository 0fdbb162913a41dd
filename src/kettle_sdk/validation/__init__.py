"""Offer validation against live chain state."""

from .balances import (
    collateral_approved_for_all,
    collateral_balance,
    currency_allowance,
    currency_balance,
)
from .batch import BatchValidator, OfferVerdict
from .single import OfferValidator

__all__ = [
    # Balances
    "collateral_approved_for_all",
    "collateral_balance",
    "currency_allowance",
    "currency_balance",
    # Validators
    "BatchValidator",
    "OfferValidator",
    "OfferVerdict",
]
