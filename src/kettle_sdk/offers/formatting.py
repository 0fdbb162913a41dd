"""Offer construction from user input.

Fills in defaults the maker does not choose (salt, size, criteria) and the
maker's current on-chain nonce.
"""

from typing import Optional, TypedDict

from .types import (
    BorrowOffer,
    BorrowOfferTerms,
    Collateral,
    Criteria,
    FeeTerms,
    ItemType,
    Lien,
    LoanOffer,
    LoanOfferTerms,
    MarketOffer,
    MarketOfferTerms,
    Side,
)
from .utils import BYTES_ZERO, generate_random_salt


class _CollateralInput(TypedDict, total=False):
    collection: str
    criteria: Criteria
    item_type: ItemType
    identifier: int
    size: int


class CreateLoanOfferInput(_CollateralInput, total=False):
    """Parameters for a new loan offer.

    ``amount`` sets total, max and min amounts at once; the explicit
    ``total_amount``/``max_amount``/``min_amount`` keys override it.
    """

    currency: str
    amount: int
    total_amount: int
    max_amount: int
    min_amount: int
    rate: int
    default_rate: int
    fee: int
    recipient: str
    duration: int
    grace_period: int
    expiration: int
    lien: Lien
    """Lien the lender already holds on this collateral (refinance offers)."""


class CreateBorrowOfferInput(_CollateralInput, total=False):
    """Parameters for a new borrow offer."""

    currency: str
    amount: int
    rate: int
    default_rate: int
    fee: int
    recipient: str
    duration: int
    grace_period: int
    expiration: int


class CreateMarketOfferInput(_CollateralInput, total=False):
    """Parameters for a new bid or ask.

    ``with_loan``, ``borrow_amount`` and ``loan_offer_hash`` apply to bids only.
    """

    currency: str
    amount: int
    with_loan: bool
    borrow_amount: int
    loan_offer_hash: str
    fee: int
    recipient: str
    expiration: int
    lien: Lien
    """Lien the seller is borrowing against (asks only)."""


def _collateral(params: _CollateralInput) -> Collateral:
    return Collateral(
        collection=params["collection"],
        criteria=params.get("criteria", Criteria.SIMPLE),
        item_type=params.get("item_type", ItemType.ERC721),
        identifier=params["identifier"],
        size=params.get("size", 1),
    )


def create_loan_offer(
    lender: str,
    params: CreateLoanOfferInput,
    nonce: int,
    salt: Optional[int] = None,
) -> LoanOffer:
    """Create a loan offer.

    Args:
        lender: Address of the lender (offer maker)
        params: Offer parameters
        nonce: Lender's current nonce on the settlement contract
        salt: Offer salt (default: random 8 bytes)

    Returns:
        LoanOffer

    Raises:
        ValueError: If any field is invalid or amounts are inconsistent
    """
    amount = params.get("amount")
    total_amount = params.get("total_amount", amount)
    if total_amount is None:
        raise ValueError("Either amount or total_amount is required")

    terms = LoanOfferTerms(
        currency=params["currency"],
        total_amount=total_amount,
        max_amount=params.get("max_amount", total_amount if amount is None else amount),
        min_amount=params.get("min_amount", total_amount if amount is None else amount),
        rate=params["rate"],
        default_rate=params["default_rate"],
        duration=params["duration"],
        grace_period=params["grace_period"],
    )

    return LoanOffer(
        lender=lender,
        collateral=_collateral(params),
        terms=terms,
        fee=FeeTerms(recipient=params["recipient"], rate=params["fee"]),
        expiration=params["expiration"],
        salt=generate_random_salt() if salt is None else salt,
        nonce=nonce,
    )


def create_borrow_offer(
    borrower: str,
    params: CreateBorrowOfferInput,
    nonce: int,
    salt: Optional[int] = None,
) -> BorrowOffer:
    """Create a borrow offer. Borrow offers are always SIMPLE criteria."""
    terms = BorrowOfferTerms(
        currency=params["currency"],
        amount=params["amount"],
        rate=params["rate"],
        default_rate=params["default_rate"],
        duration=params["duration"],
        grace_period=params["grace_period"],
    )

    collateral = _collateral({**params, "criteria": Criteria.SIMPLE})

    return BorrowOffer(
        borrower=borrower,
        collateral=collateral,
        terms=terms,
        fee=FeeTerms(recipient=params["recipient"], rate=params["fee"]),
        expiration=params["expiration"],
        salt=generate_random_salt() if salt is None else salt,
        nonce=nonce,
    )


def create_market_offer(
    side: Side,
    maker: str,
    params: CreateMarketOfferInput,
    nonce: int,
    salt: Optional[int] = None,
) -> MarketOffer:
    """Create a bid or ask. Loan fields are forced empty for asks."""
    is_bid = side == Side.BID
    terms = MarketOfferTerms(
        currency=params["currency"],
        amount=params["amount"],
        with_loan=params.get("with_loan", False) if is_bid else False,
        borrow_amount=params.get("borrow_amount", 0) if is_bid else 0,
        loan_offer_hash=params.get("loan_offer_hash", BYTES_ZERO) if is_bid else BYTES_ZERO,
    )

    return MarketOffer(
        side=side,
        maker=maker,
        collateral=_collateral(params),
        terms=terms,
        fee=FeeTerms(recipient=params["recipient"], rate=params["fee"]),
        expiration=params["expiration"],
        salt=generate_random_salt() if salt is None else salt,
        nonce=nonce,
    )
