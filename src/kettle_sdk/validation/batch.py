"""Batched validation of many offers against live chain state.

All reads for a list of offers (token balances, allowances, collateral
ownership and approval, cancellation flags, nonces, amounts taken and lien
debt) go out as one multicall. Each offer gets a verdict; business rule
failures never raise.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from eth_utils import to_hex

from ..chain.abi import ERC20, ERC721, ERC1155, KettleABI, lien_tuple
from ..chain.multicall import (
    CallKey,
    CollateralId,
    HolderTokenRef,
    MakerRef,
    Multicall,
    MulticallBatch,
    MulticallResults,
    OfferHashRef,
    SaltRef,
    TokenRef,
)
from ..lending.liens import find_matching_lien, lien_is_current
from ..offers.signing import EIP712Domain, hash_offer
from ..offers.types import (
    BorrowOffer,
    Collateral,
    Criteria,
    ItemType,
    Lien,
    LoanOffer,
    MarketOffer,
    Offer,
    Side,
)
from ..offers.utils import calculate_net_market_amount, equal_addresses, get_epoch

logger = logging.getLogger(__name__)

INVALID_RETURN_DATA = "Invalid return data"
OFFER_EXPIRED = "Offer has expired"
OFFER_CANCELLED = "Offer has been cancelled"
INVALID_NONCE = "Invalid nonce"


@dataclass(frozen=True)
class OfferVerdict:
    """Outcome of validating one offer."""

    hash: str
    """Offer hash (0x-prefixed hex)."""

    valid: bool

    reason: Optional[str] = None
    """Failed rule, when ``valid`` is False."""


def _owner_of_key(identifier: int) -> CallKey:
    return CallKey("ownerOf", TokenRef(identifier))


def _holder_balance_key(maker: str, identifier: int) -> CallKey:
    return CallKey("balanceOf", HolderTokenRef(maker, identifier))


def _approval_key(maker: str) -> CallKey:
    return CallKey("isApprovedForAll", MakerRef(maker))


def _balance_key(maker: str) -> CallKey:
    return CallKey("balanceOf", MakerRef(maker))


def _allowance_key(maker: str) -> CallKey:
    return CallKey("allowance", MakerRef(maker))


def _cancelled_key(maker: str, salt: int) -> CallKey:
    return CallKey("cancelledOrFulfilled", SaltRef(maker, salt))


def _nonce_key(maker: str) -> CallKey:
    return CallKey("nonces", MakerRef(maker))


def _amount_taken_key(offer_hash: str) -> CallKey:
    return CallKey("amountTaken", OfferHashRef(offer_hash))


def _debt_key(collateral_id: CollateralId) -> CallKey:
    return CallKey("currentDebtAmount", collateral_id)


class _Missing(Exception):
    """An expected result is absent or failed."""


class BatchValidator:
    """Validates lists of offers of one kind in a single round trip.

    Args:
        settlement_address: Kettle settlement contract (approval operator)
        multicall: Batched reader
        domain: EIP-712 domain used to compute offer hashes
        clock: Returns the current unix time in seconds
    """

    def __init__(
        self,
        settlement_address: str,
        multicall: Multicall,
        domain: EIP712Domain,
        clock: Callable[[], int] = get_epoch,
    ):
        self.settlement_address = settlement_address
        self.multicall = multicall
        self.domain = domain
        self.clock = clock

    def _hash(self, offer: Offer) -> str:
        return to_hex(hash_offer(offer, self.domain))

    # Request building

    def _add_collateral_calls(
        self, batch: MulticallBatch, maker: str, collateral: Collateral, approval: bool
    ) -> None:
        if collateral.item_type == ItemType.ERC721:
            batch.add(
                collateral.collection,
                _owner_of_key(collateral.identifier),
                ERC721.owner_of,
                collateral.identifier,
            )
        else:
            batch.add(
                collateral.collection,
                _holder_balance_key(maker, collateral.identifier),
                ERC1155.balance_of,
                maker,
                collateral.identifier,
            )
        if approval:
            batch.add(
                collateral.collection,
                _approval_key(maker),
                ERC721.is_approved_for_all,
                maker,
                self.settlement_address,
            )

    def _add_currency_calls(self, batch: MulticallBatch, maker: str, currency: str) -> None:
        batch.add(currency, _balance_key(maker), ERC20.balance_of, maker)
        batch.add(
            currency,
            _allowance_key(maker),
            ERC20.allowance,
            maker,
            self.settlement_address,
        )

    def _add_settlement_calls(self, batch: MulticallBatch, maker: str, salt: int) -> None:
        batch.add(
            self.settlement_address,
            _cancelled_key(maker, salt),
            KettleABI.cancelled_or_fulfilled,
            maker,
            salt,
        )
        batch.add(self.settlement_address, _nonce_key(maker), KettleABI.nonces, maker)

    def _add_debt_calls(
        self, batch: MulticallBatch, liens: Dict[CollateralId, Lien]
    ) -> None:
        for collateral_id, lien in liens.items():
            batch.add(
                self.settlement_address,
                _debt_key(collateral_id),
                KettleABI.current_debt_amount,
                lien_tuple(lien),
            )

    @staticmethod
    def _lien_map(liens: Iterable[Lien]) -> Dict[CollateralId, Lien]:
        mapping: Dict[CollateralId, Lien] = {}
        for lien in liens:
            collateral_id = CollateralId(lien.collection, lien.token_id)
            existing = mapping.get(collateral_id)
            if existing is not None and existing != lien:
                raise ValueError(f"Conflicting liens for collateral {collateral_id}")
            mapping[collateral_id] = lien
        return mapping

    # Result decoding

    def _require(self, results: MulticallResults, target: str, key: CallKey) -> Any:
        result = results.get(target, key)
        if result is None or not result.success:
            raise _Missing(key)
        return result.value

    def _holds_collateral(
        self, results: MulticallResults, maker: str, collateral: Collateral
    ) -> bool:
        # A failed ownership read (unminted token, burned token) means not held
        if collateral.item_type == ItemType.ERC721:
            result = results.get(collateral.collection, _owner_of_key(collateral.identifier))
            if result is None:
                raise _Missing("ownerOf")
            return result.success and equal_addresses(result.value, maker)

        result = results.get(
            collateral.collection, _holder_balance_key(maker, collateral.identifier)
        )
        if result is None:
            raise _Missing("balanceOf")
        return result.success and result.value >= collateral.size

    def _lien_debt(
        self,
        results: MulticallResults,
        liens: Dict[CollateralId, Lien],
        collateral: Collateral,
        currency: str,
        now: int,
    ) -> Tuple[Optional[Lien], Optional[int]]:
        collateral_id = CollateralId(collateral.collection, collateral.identifier)
        lien = find_matching_lien(
            liens.get(collateral_id),
            collateral.collection,
            collateral.identifier,
            currency,
            now,
        )
        if lien is None:
            return None, None
        debt, _fee, _interest = self._require(
            results, self.settlement_address, _debt_key(collateral_id)
        )
        return lien, debt

    def _settlement_state(
        self, results: MulticallResults, maker: str, salt: int
    ) -> Tuple[int, int]:
        cancelled = self._require(
            results, self.settlement_address, _cancelled_key(maker, salt)
        )
        nonce = self._require(results, self.settlement_address, _nonce_key(maker))
        return cancelled, nonce

    @staticmethod
    def _final_checks(offer: Offer, cancelled: int, nonce: int) -> Optional[str]:
        if cancelled == 1:
            return OFFER_CANCELLED
        if offer.nonce != nonce:
            return INVALID_NONCE
        return None

    def _collect(
        self,
        offers: Sequence[Offer],
        results: MulticallResults,
        check: Callable[[Offer, MulticallResults, int], Optional[str]],
        now: int,
    ) -> Dict[str, OfferVerdict]:
        verdicts: Dict[str, OfferVerdict] = {}
        for offer in offers:
            offer_hash = self._hash(offer)
            try:
                reason = check(offer, results, now)
            except _Missing as e:
                logger.debug("Offer %s missing result for %s", offer_hash, e)
                reason = INVALID_RETURN_DATA

            if reason is None:
                verdicts[offer_hash] = OfferVerdict(hash=offer_hash, valid=True)
            else:
                logger.debug("Offer %s invalid: %s", offer_hash, reason)
                verdicts[offer_hash] = OfferVerdict(hash=offer_hash, valid=False, reason=reason)
        return verdicts

    # Loan offers

    async def validate_loan_offers(
        self, offers: Sequence[LoanOffer], liens: Iterable[Lien] = ()
    ) -> Dict[str, OfferVerdict]:
        """Validate loan offers.

        A lender who already holds a current lien on the offer's collateral
        only needs to cover ``max_amount`` minus the lien's current debt.

        Args:
            offers: Loan offers
            liens: Active liens, matched to offers by collection and token id

        Returns:
            Verdict per offer hash

        Raises:
            TransportError: If the batch could not be executed at all
            ValueError: If ``liens`` holds two different liens on one token
        """
        now = self.clock()
        lien_map = self._lien_map(liens)
        hashes = {offer: self._hash(offer) for offer in offers}

        batch = MulticallBatch()
        for offer in offers:
            if _checks_lender_ownership(offer.collateral):
                self._add_collateral_calls(batch, offer.lender, offer.collateral, approval=False)
            self._add_currency_calls(batch, offer.lender, offer.terms.currency)
            self._add_settlement_calls(batch, offer.lender, offer.salt)
            batch.add(
                self.settlement_address,
                _amount_taken_key(hashes[offer]),
                KettleABI.amount_taken,
                bytes.fromhex(hashes[offer][2:]),
            )
        self._add_debt_calls(batch, _current_liens(lien_map, now))

        results = await self.multicall.execute(batch)

        def check(offer: LoanOffer, results: MulticallResults, now: int) -> Optional[str]:
            terms = offer.terms
            balance = self._require(results, terms.currency, _balance_key(offer.lender))
            allowance = self._require(results, terms.currency, _allowance_key(offer.lender))
            amount_taken = self._require(
                results, self.settlement_address, _amount_taken_key(hashes[offer])
            )
            cancelled, nonce = self._settlement_state(results, offer.lender, offer.salt)
            owns = (
                self._holds_collateral(results, offer.lender, offer.collateral)
                if _checks_lender_ownership(offer.collateral)
                else False
            )
            lien, debt = self._lien_debt(
                results, lien_map, offer.collateral, terms.currency, now
            )

            if offer.is_expired(now):
                return OFFER_EXPIRED

            if owns:
                return "Lender cannot own collateral"

            required = terms.max_amount
            if lien is not None and equal_addresses(lien.lender, offer.lender):
                required = max(terms.max_amount - debt, 0)

            if balance < required:
                return "Insufficient lender balance"
            if allowance < required:
                return "Insufficient lender allowance"

            if terms.total_amount - amount_taken < terms.min_amount:
                return "Insufficient offer amount remaining"

            return self._final_checks(offer, cancelled, nonce)

        return self._collect(offers, results, check, now)

    # Borrow offers

    async def validate_borrow_offers(
        self, offers: Sequence[BorrowOffer]
    ) -> Dict[str, OfferVerdict]:
        """Validate borrow offers: the borrower must hold and approve the collateral."""
        now = self.clock()

        batch = MulticallBatch()
        for offer in offers:
            self._add_collateral_calls(batch, offer.borrower, offer.collateral, approval=True)
            self._add_settlement_calls(batch, offer.borrower, offer.salt)

        results = await self.multicall.execute(batch)

        def check(offer: BorrowOffer, results: MulticallResults, now: int) -> Optional[str]:
            collection = offer.collateral.collection
            owns = self._holds_collateral(results, offer.borrower, offer.collateral)
            approved = self._require(results, collection, _approval_key(offer.borrower))
            cancelled, nonce = self._settlement_state(results, offer.borrower, offer.salt)

            if offer.is_expired(now):
                return OFFER_EXPIRED
            if not owns:
                return "Borrower does not own collateral"
            if not approved:
                return "Borrower has not approved collateral"
            return self._final_checks(offer, cancelled, nonce)

        return self._collect(offers, results, check, now)

    # Ask offers

    async def validate_ask_offers(
        self, offers: Sequence[MarketOffer], liens: Iterable[Lien] = ()
    ) -> Dict[str, OfferVerdict]:
        """Validate ask offers.

        A seller who does not hold the collateral passes the ownership check
        when a current lien on it names them as borrower and the ask, net of
        the market fee, covers the lien's debt. Such asks need no collateral
        approval.
        """
        _require_side(offers, Side.ASK)
        now = self.clock()
        lien_map = self._lien_map(liens)

        batch = MulticallBatch()
        for offer in offers:
            self._add_collateral_calls(batch, offer.maker, offer.collateral, approval=True)
            self._add_settlement_calls(batch, offer.maker, offer.salt)
        self._add_debt_calls(batch, _current_liens(lien_map, now))

        results = await self.multicall.execute(batch)

        def check(offer: MarketOffer, results: MulticallResults, now: int) -> Optional[str]:
            collection = offer.collateral.collection
            owns = self._holds_collateral(results, offer.maker, offer.collateral)
            approved = self._require(results, collection, _approval_key(offer.maker))
            cancelled, nonce = self._settlement_state(results, offer.maker, offer.salt)
            lien, debt = self._lien_debt(
                results, lien_map, offer.collateral, offer.terms.currency, now
            )

            if offer.is_expired(now):
                return OFFER_EXPIRED

            in_lien = False
            if not owns:
                if lien is None or not equal_addresses(lien.borrower, offer.maker):
                    return "Seller does not own collateral"
                net_amount = calculate_net_market_amount(offer.terms.amount, offer.fee.rate)
                if debt > net_amount:
                    return "Ask does not cover debt"
                in_lien = True

            if not approved and not in_lien:
                return "Seller has not approved collateral"

            return self._final_checks(offer, cancelled, nonce)

        return self._collect(offers, results, check, now)

    # Bid offers

    async def validate_bid_offers(
        self, offers: Sequence[MarketOffer]
    ) -> Dict[str, OfferVerdict]:
        """Validate bid offers: the bidder must fund ``amount`` and must not
        already own a specific ERC-721 they bid on."""
        _require_side(offers, Side.BID)
        now = self.clock()

        batch = MulticallBatch()
        for offer in offers:
            if _checks_bidder_ownership(offer.collateral):
                self._add_collateral_calls(batch, offer.maker, offer.collateral, approval=False)
            self._add_currency_calls(batch, offer.maker, offer.terms.currency)
            self._add_settlement_calls(batch, offer.maker, offer.salt)

        results = await self.multicall.execute(batch)

        def check(offer: MarketOffer, results: MulticallResults, now: int) -> Optional[str]:
            currency = offer.terms.currency
            balance = self._require(results, currency, _balance_key(offer.maker))
            allowance = self._require(results, currency, _allowance_key(offer.maker))
            cancelled, nonce = self._settlement_state(results, offer.maker, offer.salt)
            owns = (
                self._holds_collateral(results, offer.maker, offer.collateral)
                if _checks_bidder_ownership(offer.collateral)
                else False
            )

            if offer.is_expired(now):
                return OFFER_EXPIRED
            if owns:
                return "Bidder cannot own collateral"
            if balance < offer.terms.amount:
                return "Insufficient buyer balance"
            if allowance < offer.terms.amount:
                return "Insufficient buyer allowance"
            return self._final_checks(offer, cancelled, nonce)

        return self._collect(offers, results, check, now)


def _checks_lender_ownership(collateral: Collateral) -> bool:
    return collateral.item_type == ItemType.ERC721 and collateral.criteria == Criteria.SIMPLE


_checks_bidder_ownership = _checks_lender_ownership


def _current_liens(liens: Dict[CollateralId, Lien], now: int) -> Dict[CollateralId, Lien]:
    return {cid: lien for cid, lien in liens.items() if lien_is_current(lien, now)}


def _require_side(offers: Sequence[MarketOffer], side: Side) -> None:
    for offer in offers:
        if offer.side != side:
            raise ValueError(f"Expected {side.name} offers, got {offer.side.name}")


