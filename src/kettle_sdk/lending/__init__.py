"""Lien accounting: debt accrual and lien state."""

from .interest import (
    WAD,
    YEAR_SECONDS,
    DebtAmount,
    accrue,
    current_debt_amount,
)
from .liens import (
    SettlementPreview,
    find_matching_lien,
    lien_debt,
    lien_is_current,
    lien_is_defaulted,
    lien_matches_offer_collateral,
    refinance_data,
    sell_in_lien_data,
)

__all__ = [
    # Interest
    "WAD",
    "YEAR_SECONDS",
    "DebtAmount",
    "accrue",
    "current_debt_amount",
    # Liens
    "SettlementPreview",
    "find_matching_lien",
    "lien_debt",
    "lien_is_current",
    "lien_is_defaulted",
    "lien_matches_offer_collateral",
    "refinance_data",
    "sell_in_lien_data",
]
