"""Sequential validation of a single offer before it is taken.

Checks run strictly in order (expiration, ownership, balance and allowance,
amount remaining, cancellation, nonce) and stop at the first failure with an
``OfferValidationError``.
"""

import logging
from typing import Callable, NoReturn, Optional, Union

from ..chain.contracts import SettlementContract
from ..chain.rpc import ChainProvider
from ..errors import OfferValidationError
from ..lending.liens import find_matching_lien, lien_is_defaulted
from ..offers.signing import EIP712Domain, hash_offer
from ..offers.types import (
    BorrowOffer,
    Criteria,
    ItemType,
    Lien,
    LoanOffer,
    MarketOffer,
    Offer,
    Side,
)
from ..offers.utils import calculate_net_market_amount, equal_addresses, get_epoch
from .balances import (
    collateral_approved_for_all,
    collateral_balance,
    currency_allowance,
    currency_balance,
)

logger = logging.getLogger(__name__)


def _fail(reason: str) -> NoReturn:
    logger.debug("Offer validation failed: %s", reason)
    raise OfferValidationError(reason)


class OfferValidator:
    """Point-query validator used on the take path.

    Args:
        provider: Chain provider for token reads
        settlement: Settlement contract wrapper
        domain: EIP-712 domain used to compute offer hashes
        clock: Returns the current unix time in seconds
    """

    def __init__(
        self,
        provider: ChainProvider,
        settlement: SettlementContract,
        domain: EIP712Domain,
        clock: Callable[[], int] = get_epoch,
    ):
        self.provider = provider
        self.settlement = settlement
        self.domain = domain
        self.clock = clock

    @property
    def operator(self) -> str:
        return self.settlement.address

    async def _check_cancelled_and_nonce(self, offer: Offer) -> None:
        if await self.settlement.cancelled_or_fulfilled(offer.maker, offer.salt) == 1:
            _fail("Offer has been cancelled")
        if offer.nonce != await self.settlement.nonces(offer.maker):
            _fail("Invalid nonce")

    async def validate(self, offer: Offer, lien: Optional[Lien] = None) -> None:
        """Validate any offer kind.

        Raises:
            OfferValidationError: On the first failing rule
        """
        if isinstance(offer, LoanOffer):
            await self.validate_loan_offer(offer, lien)
        elif isinstance(offer, BorrowOffer):
            await self.validate_borrow_offer(offer)
        elif offer.side == Side.ASK:
            await self.validate_ask_offer(offer, lien)
        else:
            await self.validate_bid_offer(offer)

    async def validate_loan_offer(self, offer: LoanOffer, lien: Optional[Lien] = None) -> None:
        """Validate a loan offer.

        Args:
            offer: Loan offer
            lien: Lien the lender already holds on the collateral, if any. When
                it is current and matches, the lender only needs to fund
                ``max_amount`` minus its debt.

        Raises:
            OfferValidationError: On the first failing rule
        """
        now = self.clock()
        terms = offer.terms
        collateral = offer.collateral

        if offer.is_expired(now):
            _fail("Offer has expired")

        if collateral.item_type == ItemType.ERC721 and collateral.criteria == Criteria.SIMPLE:
            if await collateral_balance(self.provider, offer.lender, collateral):
                _fail("Lender cannot own collateral")

        required = terms.max_amount
        matching = find_matching_lien(
            lien, collateral.collection, collateral.identifier, terms.currency, now
        )
        if matching is not None and equal_addresses(matching.lender, offer.lender):
            debt = (await self.settlement.current_debt_amount(matching)).debt
            required = max(terms.max_amount - debt, 0)

        if not await currency_balance(self.provider, offer.lender, terms.currency, required):
            _fail("Insufficient lender balance")

        allowance = await currency_allowance(
            self.provider, offer.lender, terms.currency, self.operator
        )
        if allowance < required:
            _fail("Insufficient lender allowance")

        amount_taken = await self.settlement.amount_taken(hash_offer(offer, self.domain))
        if terms.total_amount - amount_taken < terms.min_amount:
            _fail("Insufficient offer amount remaining")

        await self._check_cancelled_and_nonce(offer)

    async def validate_borrow_offer(self, offer: BorrowOffer) -> None:
        if offer.is_expired(self.clock()):
            _fail("Offer has expired")

        if not await collateral_balance(self.provider, offer.borrower, offer.collateral):
            _fail("Borrower does not own collateral")

        if not await collateral_approved_for_all(
            self.provider, offer.borrower, offer.collateral.collection, self.operator
        ):
            _fail("Borrower has not approved collateral")

        await self._check_cancelled_and_nonce(offer)

    async def validate_ask_lien(self, offer: MarketOffer, lien: Lien, now: int) -> None:
        """Check that ``lien`` lets the maker sell ``offer`` without holding the token."""
        if not equal_addresses(lien.currency, offer.terms.currency):
            _fail("Lien currency does not match offer currency")
        if not equal_addresses(lien.collection, offer.collateral.collection):
            _fail("Lien collection does not match offer collection")
        if lien.item_type != offer.collateral.item_type:
            _fail("Lien itemType does not match offer itemType")
        if lien.token_id != offer.collateral.identifier:
            _fail("Lien tokenId does not match offer tokenId")
        if not equal_addresses(lien.borrower, offer.maker):
            _fail("Seller is not the borrower")
        if lien_is_defaulted(lien, now):
            _fail("Lien is defaulted")

        debt = (await self.settlement.current_debt_amount(lien)).debt
        if debt > calculate_net_market_amount(offer.terms.amount, offer.fee.rate):
            _fail("Ask does not cover debt")

    async def validate_ask_offer(self, offer: MarketOffer, lien: Optional[Lien] = None) -> None:
        """Validate an ask.

        A seller who does not hold the collateral must pass ``lien``, the
        current lien they borrowed against it; the ask net of the market fee
        must cover the lien's debt, and no collateral approval is needed.

        Raises:
            OfferValidationError: On the first failing rule
        """
        now = self.clock()

        if offer.is_expired(now):
            _fail("Offer has expired")

        in_lien = False
        if not await collateral_balance(self.provider, offer.maker, offer.collateral):
            if lien is None:
                _fail("Seller does not own collateral")
            await self.validate_ask_lien(offer, lien, now)
            in_lien = True

        if not in_lien and not await collateral_approved_for_all(
            self.provider, offer.maker, offer.collateral.collection, self.operator
        ):
            _fail("Seller has not approved collateral")

        await self._check_cancelled_and_nonce(offer)

    async def validate_bid_offer(self, offer: MarketOffer) -> None:
        now = self.clock()
        terms = offer.terms
        collateral = offer.collateral

        if offer.is_expired(now):
            _fail("Offer has expired")

        if collateral.item_type == ItemType.ERC721 and collateral.criteria == Criteria.SIMPLE:
            if await collateral_balance(self.provider, offer.maker, collateral):
                _fail("Bidder cannot own collateral")

        if not await currency_balance(self.provider, offer.maker, terms.currency, terms.amount):
            _fail("Insufficient buyer balance")

        allowance = await currency_allowance(
            self.provider, offer.maker, terms.currency, self.operator
        )
        if allowance < terms.amount:
            _fail("Insufficient buyer allowance")

        await self._check_cancelled_and_nonce(offer)

    def _check_lien_against_offer(
        self, taker: str, lien: Lien, offer: Union[LoanOffer, MarketOffer]
    ) -> None:
        currency = offer.terms.currency
        if not equal_addresses(taker, lien.borrower):
            _fail("Invalid borrower")
        if not equal_addresses(lien.currency, currency):
            _fail("Currencies do not match")
        if not equal_addresses(lien.collection, offer.collateral.collection):
            _fail("Collections do not match")
        if offer.collateral.criteria == Criteria.SIMPLE:
            if lien.token_id != offer.collateral.identifier:
                _fail("TokenIds do not match")
        if lien_is_defaulted(lien, self.clock()):
            _fail("Lien is defaulted")

    async def _check_shortfall(self, lien: Lien, debt: int, proceeds: int) -> None:
        if debt > proceeds:
            if not await currency_balance(
                self.provider, lien.borrower, lien.currency, debt - proceeds
            ):
                _fail("Insufficient borrower balance")

    async def validate_refinance(self, taker: str, lien: Lien, offer: LoanOffer) -> int:
        """Validate refinancing ``lien`` into a new loan offer.

        Args:
            taker: Account refinancing; must be the lien's borrower
            lien: Lien being refinanced
            offer: New loan offer

        Returns:
            The lien's current debt

        Raises:
            OfferValidationError: On the first failing rule
        """
        self._check_lien_against_offer(taker, lien, offer)
        debt = (await self.settlement.current_debt_amount(lien)).debt
        await self._check_shortfall(lien, debt, offer.terms.max_amount)
        return debt

    async def validate_sell_in_lien(self, taker: str, lien: Lien, offer: MarketOffer) -> int:
        """Validate selling a collateral in lien into a bid.

        The borrower must cover any part of the debt the bid, net of the
        market fee, does not.

        Returns:
            The lien's current debt
        """
        self._check_lien_against_offer(taker, lien, offer)
        debt = (await self.settlement.current_debt_amount(lien)).debt
        net_amount = calculate_net_market_amount(offer.terms.amount, offer.fee.rate)
        await self._check_shortfall(lien, debt, net_amount)
        return debt

    async def validate_repay(self, lien: Lien) -> int:
        """Validate repaying ``lien`` in full.

        Returns:
            The lien's current debt
        """
        if lien_is_defaulted(lien, self.clock()):
            _fail("Lien is defaulted")

        debt = (await self.settlement.current_debt_amount(lien)).debt
        if not await currency_balance(self.provider, lien.borrower, lien.currency, debt):
            _fail("Insufficient borrower balance")
        return debt
