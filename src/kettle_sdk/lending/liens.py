"""Lien state helpers."""

from dataclasses import dataclass
from typing import Optional

from ..offers.types import Lien, LoanOffer, MarketOffer
from ..offers.utils import calculate_net_market_amount, equal_addresses
from .interest import DebtAmount, current_debt_amount


def lien_is_current(lien: Lien, now: int) -> bool:
    """A lien is current until its grace period has passed."""
    return lien.default_time > now


def lien_is_defaulted(lien: Lien, now: int) -> bool:
    return not lien_is_current(lien, now)


def lien_matches_offer_collateral(
    lien: Lien,
    collection: str,
    identifier: int,
    currency: str,
) -> bool:
    """Check that a lien is over the exact collateral and currency of an offer."""
    return (
        equal_addresses(lien.collection, collection)
        and equal_addresses(lien.currency, currency)
        and lien.token_id == identifier
    )


def lien_debt(lien: Lien, now: int) -> DebtAmount:
    """Local preview of the lien's debt, matching the contract's arithmetic."""
    return current_debt_amount(
        now,
        lien.principal,
        lien.start_time,
        lien.duration,
        lien.fee,
        lien.rate,
        lien.default_rate,
    )


@dataclass(frozen=True)
class SettlementPreview:
    """What the borrower owes or receives when a lien is closed out."""

    owed: int
    """Amount the borrower must pay in."""

    paid: int
    """Amount the borrower receives."""


def refinance_data(debt: int, offer: LoanOffer) -> SettlementPreview:
    """Preview a refinance of a lien with ``debt`` into ``offer``."""
    if debt > offer.terms.max_amount:
        return SettlementPreview(owed=debt - offer.terms.max_amount, paid=0)
    return SettlementPreview(owed=0, paid=offer.terms.max_amount - debt)


def sell_in_lien_data(debt: int, offer: MarketOffer) -> SettlementPreview:
    """Preview selling a collateral in lien into a bid, net of the market fee."""
    net_amount = calculate_net_market_amount(offer.terms.amount, offer.fee.rate)
    if debt > net_amount:
        return SettlementPreview(owed=debt - net_amount, paid=0)
    return SettlementPreview(owed=0, paid=net_amount - debt)


def find_matching_lien(
    lien: Optional[Lien],
    collection: str,
    identifier: int,
    currency: str,
    now: int,
) -> Optional[Lien]:
    """Return ``lien`` if it is current and over the given collateral."""
    if lien is None:
        return None
    if not lien_is_current(lien, now):
        return None
    if not lien_matches_offer_collateral(lien, collection, identifier, currency):
        return None
    return lien
