"""Kettle client.

Builds the ordered steps for every user intent (create, take, refinance,
repay, claim, cancel, increment nonce). Each call validates the offer and the
account first, raises if a balance or ownership requirement is not met, and
returns any missing approvals ahead of the terminal action.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Union

from eth_utils import to_hex

from .actions import (
    Action,
    ApprovalAction,
    CancelOfferAction,
    ClaimAction,
    CreateOfferAction,
    IncrementNonceAction,
    RepayAction,
    TakeOfferAction,
)
from .chain.contracts import (
    SettlementContract,
    erc20_approve_transaction,
    set_approval_for_all_transaction,
)
from .chain.multicall import Multicall
from .chain.rpc import ChainProvider
from .config import KettleConfig, ResolvedKettleConfig, resolve_config
from .errors import OfferValidationError, SignerRequiredError
from .lending.interest import DebtAmount
from .lending.liens import (
    SettlementPreview,
    find_matching_lien,
    lien_debt,
    lien_is_current,
    refinance_data,
    sell_in_lien_data,
)
from .offers.formatting import (
    CreateBorrowOfferInput,
    CreateLoanOfferInput,
    CreateMarketOfferInput,
    create_borrow_offer,
    create_loan_offer,
    create_market_offer,
)
from .offers.signing import (
    EIP712Domain,
    create_eip712_domain,
    get_offer_payload,
    hash_offer,
    offer_message_to_sign,
    sign_offer_with_signer,
    verify_offer_signature,
)
from .offers.types import (
    BorrowOffer,
    Collateral,
    Criteria,
    Lien,
    LoanOffer,
    MarketOffer,
    Offer,
    Side,
)
from .offers.utils import (
    ZERO_ADDRESS,
    calculate_market_fee,
    calculate_net_market_amount,
    equal_addresses,
    get_epoch,
)
from .signers import KettleSigner
from .validation.balances import (
    collateral_approved_for_all,
    collateral_balance,
    currency_allowance,
    currency_balance,
)
from .validation.batch import BatchValidator, OfferVerdict
from .validation.single import OfferValidator

logger = logging.getLogger(__name__)

Steps = List[Action]


class KettleClient:
    """Client for the Kettle lending and marketplace protocol.

    Example:
        ```python
        rpc = RpcClient(config["rpc_url"])
        signer = LocalAccountSigner(private_key, rpc)
        kettle = KettleClient(rpc, {"contract_address": "0x..."}, signer)

        steps = await kettle.take_loan_offer(offer, signature)
        for step in steps:
            await step.execute()
        ```
    """

    def __init__(
        self,
        provider: ChainProvider,
        config: Union[KettleConfig, ResolvedKettleConfig],
        signer: Optional[KettleSigner] = None,
        clock: Callable[[], int] = get_epoch,
    ):
        """Initialize the client.

        Args:
            provider: Chain provider used for all reads
            config: Client configuration
            signer: Signer used to sign offers and send transactions
            clock: Returns the current unix time in seconds
        """
        if isinstance(config, ResolvedKettleConfig):
            self.config = config
        else:
            self.config = resolve_config(config)
        self.provider = provider
        self.signer = signer
        self.clock = clock
        self.contract = SettlementContract(provider, self.config.contract_address)
        self.multicall = Multicall(
            provider, self.config.multicall_address, self.config.multicall_chunk_size
        )
        self._domain: Optional[EIP712Domain] = None

    @property
    def contract_address(self) -> str:
        return self.config.contract_address

    def connect(self, signer: KettleSigner) -> "KettleClient":
        """Return a client for the same contract bound to ``signer``."""
        client = KettleClient(self.provider, self.config, signer, self.clock)
        client._domain = self._domain
        return client

    def _require_signer(self, operation: str) -> KettleSigner:
        if self.signer is None:
            raise SignerRequiredError(operation)
        return self.signer

    async def _account(self, signer: KettleSigner, account: Optional[str]) -> str:
        return account if account is not None else await signer.get_address()

    # Hashing and signing

    async def get_domain(self) -> EIP712Domain:
        if self._domain is None:
            chain_id = self.config.chain_id
            if chain_id is None:
                chain_id = await self.provider.chain_id()
            self._domain = create_eip712_domain(self.contract_address, chain_id)
        return self._domain

    async def hash_offer(self, offer: Offer) -> str:
        """Offer hash (its identity) as 0x-prefixed hex."""
        return to_hex(hash_offer(offer, await self.get_domain()))

    async def hash_offer_on_chain(self, offer: Offer) -> str:
        """Offer hash as computed by the settlement contract."""
        return to_hex(await self.contract.hash_offer(offer))

    async def get_offer_message_to_sign(self, offer: Offer) -> bytes:
        return offer_message_to_sign(offer, await self.get_domain())

    async def get_offer_payload(self, offer: Offer) -> Dict:
        """EIP-712 payload for ``eth_signTypedData_v4``."""
        return get_offer_payload(offer, await self.get_domain())

    async def sign_offer(self, offer: Offer) -> str:
        """Sign an offer with the bound signer.

        Raises:
            SignerRequiredError: If no signer is bound
        """
        signer = self._require_signer("signing offers")
        return await sign_offer_with_signer(signer, offer, await self.get_domain())

    async def verify_offer_signature(
        self, offer: Offer, signature: str, maker: Optional[str] = None
    ) -> bool:
        """Check that ``signature`` is the maker's signature over ``offer``.

        Args:
            offer: Signed offer
            signature: Signature to check
            maker: Expected signer (default: the offer's maker)
        """
        expected = maker if maker is not None else offer.maker
        return verify_offer_signature(offer, signature, await self.get_domain(), expected)

    # Debt and previews

    async def current_debt_amount(self, lien: Lien) -> DebtAmount:
        """Debt of ``lien`` as computed by the settlement contract."""
        return await self.contract.current_debt_amount(lien)

    def preview_debt(self, lien: Lien, at: Optional[int] = None) -> DebtAmount:
        """Local computation of a lien's debt at ``at`` (default: now)."""
        return lien_debt(lien, self.clock() if at is None else at)

    async def refinance_data(self, lien: Lien, offer: LoanOffer) -> SettlementPreview:
        debt = (await self.current_debt_amount(lien)).debt
        return refinance_data(debt, offer)

    async def sell_in_lien_data(self, lien: Lien, offer: MarketOffer) -> SettlementPreview:
        debt = (await self.current_debt_amount(lien)).debt
        return sell_in_lien_data(debt, offer)

    @staticmethod
    def calculate_market_fee(amount: int, rate: int) -> int:
        return calculate_market_fee(amount, rate)

    @staticmethod
    def calculate_net_market_amount(amount: int, rate: int) -> int:
        return calculate_net_market_amount(amount, rate)

    # Validation

    async def _batch_validator(self) -> BatchValidator:
        return BatchValidator(
            self.contract_address, self.multicall, await self.get_domain(), self.clock
        )

    async def _validator(self) -> OfferValidator:
        return OfferValidator(self.provider, self.contract, await self.get_domain(), self.clock)

    async def validate_loan_offers(
        self, offers: Sequence[LoanOffer], liens: Sequence[Lien] = ()
    ) -> Dict[str, OfferVerdict]:
        return await (await self._batch_validator()).validate_loan_offers(offers, liens)

    async def validate_borrow_offers(
        self, offers: Sequence[BorrowOffer]
    ) -> Dict[str, OfferVerdict]:
        return await (await self._batch_validator()).validate_borrow_offers(offers)

    async def validate_ask_offers(
        self, offers: Sequence[MarketOffer], liens: Sequence[Lien] = ()
    ) -> Dict[str, OfferVerdict]:
        return await (await self._batch_validator()).validate_ask_offers(offers, liens)

    async def validate_bid_offers(
        self, offers: Sequence[MarketOffer]
    ) -> Dict[str, OfferVerdict]:
        return await (await self._batch_validator()).validate_bid_offers(offers)

    async def validate_offer(self, offer: Offer, lien: Optional[Lien] = None) -> None:
        """Validate one offer, raising ``OfferValidationError`` on the first failure."""
        await (await self._validator()).validate(offer, lien)

    async def validate_refinance(self, taker: str, lien: Lien, offer: LoanOffer) -> int:
        return await (await self._validator()).validate_refinance(taker, lien, offer)

    async def validate_sell_in_lien(self, taker: str, lien: Lien, offer: MarketOffer) -> int:
        return await (await self._validator()).validate_sell_in_lien(taker, lien, offer)

    async def validate_repay(self, lien: Lien) -> int:
        return await (await self._validator()).validate_repay(lien)

    # Approvals

    async def _currency_approvals(
        self, signer: KettleSigner, owner: str, currency: str, required: int
    ) -> List[ApprovalAction]:
        allowance = await currency_allowance(
            self.provider, owner, currency, self.contract_address
        )
        if allowance >= required:
            return []
        return [
            ApprovalAction(
                signer,
                erc20_approve_transaction(currency, self.contract_address),
                token=currency,
                operator=self.contract_address,
            )
        ]

    async def _collateral_approvals(
        self, signer: KettleSigner, owner: str, collection: str
    ) -> List[ApprovalAction]:
        if await collateral_approved_for_all(
            self.provider, owner, collection, self.contract_address
        ):
            return []
        return [
            ApprovalAction(
                signer,
                set_approval_for_all_transaction(collection, self.contract_address),
                token=collection,
                operator=self.contract_address,
            )
        ]

    async def _create_action(self, signer: KettleSigner, offer: Offer) -> CreateOfferAction:
        domain = await self.get_domain()
        return CreateOfferAction(signer, offer, domain, get_offer_payload(offer, domain))

    # Create offers

    async def create_loan_offer(
        self, params: CreateLoanOfferInput, account: Optional[str] = None
    ) -> Steps:
        """Build the steps to create a loan offer.

        When ``params["lien"]`` is a current lien the lender already holds on
        the same collateral, only ``max_amount`` minus its debt must be funded.

        Args:
            params: Offer parameters
            account: Maker address (default: the signer's address)

        Returns:
            Currency approval if needed, then a CreateOfferAction

        Raises:
            SignerRequiredError: If no signer is bound
            OfferValidationError: If the lender cannot fund the offer
        """
        signer = self._require_signer("create_loan_offer")
        lender = await self._account(signer, account)
        offer = create_loan_offer(lender, params, await self.contract.nonces(lender))
        terms = offer.terms

        required = terms.max_amount
        lien = find_matching_lien(
            params.get("lien"),
            offer.collateral.collection,
            offer.collateral.identifier,
            terms.currency,
            self.clock(),
        )
        if lien is not None and equal_addresses(lien.lender, offer.lender):
            debt = (await self.current_debt_amount(lien)).debt
            required = max(terms.max_amount - debt, 0)

        if not await currency_balance(self.provider, lender, terms.currency, required):
            raise OfferValidationError("Insufficient balance")

        approvals = await self._currency_approvals(signer, lender, terms.currency, required)
        return [*approvals, await self._create_action(signer, offer)]

    async def create_borrow_offer(
        self, params: CreateBorrowOfferInput, account: Optional[str] = None
    ) -> Steps:
        signer = self._require_signer("create_borrow_offer")
        borrower = await self._account(signer, account)
        offer = create_borrow_offer(borrower, params, await self.contract.nonces(borrower))

        if not await collateral_balance(self.provider, borrower, offer.collateral):
            raise OfferValidationError("Insufficient collateral balance")

        approvals = await self._collateral_approvals(
            signer, borrower, offer.collateral.collection
        )
        return [*approvals, await self._create_action(signer, offer)]

    async def create_ask_offer(
        self, params: CreateMarketOfferInput, account: Optional[str] = None
    ) -> Steps:
        """Build the steps to create an ask.

        A seller whose token is held by the protocol as collateral passes the
        lien in ``params["lien"]``; the ask must then cover the lien's debt net
        of the market fee and needs no collateral approval.

        Raises:
            SignerRequiredError: If no signer is bound
            OfferValidationError: If the seller neither holds the token nor
                passes a lien that covers it
        """
        signer = self._require_signer("create_ask_offer")
        seller = await self._account(signer, account)
        offer = create_market_offer(
            Side.ASK, seller, params, await self.contract.nonces(seller)
        )

        if not await collateral_balance(self.provider, seller, offer.collateral):
            lien = params.get("lien")
            if lien is None:
                raise OfferValidationError("Insufficient collateral balance")
            validator = await self._validator()
            await validator.validate_ask_lien(offer, lien, self.clock())
            return [await self._create_action(signer, offer)]

        approvals = await self._collateral_approvals(signer, seller, offer.collateral.collection)
        return [*approvals, await self._create_action(signer, offer)]

    async def create_bid_offer(
        self, params: CreateMarketOfferInput, account: Optional[str] = None
    ) -> Steps:
        signer = self._require_signer("create_bid_offer")
        buyer = await self._account(signer, account)
        offer = create_market_offer(Side.BID, buyer, params, await self.contract.nonces(buyer))
        terms = offer.terms

        if not await currency_balance(self.provider, buyer, terms.currency, terms.amount):
            raise OfferValidationError("Insufficient balance")

        approvals = await self._currency_approvals(signer, buyer, terms.currency, terms.amount)
        return [*approvals, await self._create_action(signer, offer)]

    async def edit_borrow_offer(
        self, salt: int, params: CreateBorrowOfferInput, account: Optional[str] = None
    ) -> Steps:
        """Cancel the borrow offer with ``salt`` and create a replacement."""
        cancel_steps = await self.cancel_offer(salt)
        return [*cancel_steps, *await self.create_borrow_offer(params, account)]

    async def edit_ask_offer(
        self, salt: int, params: CreateMarketOfferInput, account: Optional[str] = None
    ) -> Steps:
        """Cancel the ask with ``salt`` and create a replacement."""
        cancel_steps = await self.cancel_offer(salt)
        return [*cancel_steps, *await self.create_ask_offer(params, account)]

    # Take offers

    async def _require_collateral(
        self, owner: str, collateral: Collateral, reason: str
    ) -> None:
        if not await collateral_balance(self.provider, owner, collateral):
            raise OfferValidationError(reason)

    async def _require_currency(self, owner: str, currency: str, amount: int, reason: str) -> None:
        if not await currency_balance(self.provider, owner, currency, amount):
            raise OfferValidationError(reason)

    async def _require_remaining(self, offer: LoanOffer, amount: int) -> None:
        amount_taken = await self.contract.amount_taken(hash_offer(offer, await self.get_domain()))
        if offer.terms.total_amount - amount_taken < amount:
            raise OfferValidationError("Insufficient offer amount remaining")

    @staticmethod
    def _token_collateral(collateral: Collateral, token_id: int) -> Collateral:
        return Collateral(
            collection=collateral.collection,
            criteria=Criteria.SIMPLE,
            item_type=collateral.item_type,
            identifier=token_id,
            size=collateral.size,
        )

    async def _take_loan_offer(
        self,
        offer: LoanOffer,
        signature: str,
        token_id: int,
        amount: Optional[int],
        proof: Sequence[str],
        account: Optional[str],
    ) -> Steps:
        signer = self._require_signer("taking a loan offer")
        borrower = await self._account(signer, account)

        borrow_amount = offer.terms.max_amount if amount is None else amount
        if not offer.terms.min_amount <= borrow_amount <= offer.terms.max_amount:
            raise ValueError(
                f"Invalid amount: {borrow_amount}. Must be between "
                f"{offer.terms.min_amount} and {offer.terms.max_amount}"
            )

        await (await self._validator()).validate_loan_offer(offer)
        await self._require_remaining(offer, borrow_amount)

        collateral = self._token_collateral(offer.collateral, token_id)
        await self._require_collateral(borrower, collateral, "Borrower does not own collateral")
        approvals = await self._collateral_approvals(signer, borrower, collateral.collection)

        tx = self.contract.borrow_transaction(
            offer, borrow_amount, token_id, ZERO_ADDRESS, signature, proof
        )
        return [*approvals, TakeOfferAction(signer, tx)]

    async def take_loan_offer(
        self,
        offer: LoanOffer,
        signature: str,
        amount: Optional[int] = None,
        account: Optional[str] = None,
    ) -> Steps:
        """Build the steps to borrow against a loan offer.

        Args:
            offer: Loan offer
            signature: Lender's signature
            amount: Amount to borrow (default: ``max_amount``)
            account: Borrower address (default: the signer's address)

        Returns:
            Collateral approval if needed, then a TakeOfferAction

        Raises:
            SignerRequiredError: If no signer is bound
            OfferValidationError: If the offer is invalid or the borrower does
                not hold the collateral
        """
        return await self._take_loan_offer(
            offer, signature, offer.collateral.identifier, amount, (), account
        )

    async def take_collection_loan_offer(
        self,
        offer: LoanOffer,
        token_id: int,
        proof: Sequence[str],
        signature: str,
        amount: Optional[int] = None,
        account: Optional[str] = None,
    ) -> Steps:
        """Borrow against a collection loan offer with ``token_id`` and its Merkle proof."""
        return await self._take_loan_offer(offer, signature, token_id, amount, proof, account)

    async def take_borrow_offer(
        self, offer: BorrowOffer, signature: str, account: Optional[str] = None
    ) -> Steps:
        signer = self._require_signer("taking a borrow offer")
        lender = await self._account(signer, account)
        terms = offer.terms

        await (await self._validator()).validate_borrow_offer(offer)

        await self._require_currency(
            lender, terms.currency, terms.amount, "Insufficient lender balance"
        )
        approvals = await self._currency_approvals(signer, lender, terms.currency, terms.amount)

        tx = self.contract.loan_transaction(offer, signature)
        return [*approvals, TakeOfferAction(signer, tx)]

    async def take_ask_offer(
        self, offer: MarketOffer, signature: str, account: Optional[str] = None
    ) -> Steps:
        signer = self._require_signer("taking an ask offer")
        buyer = await self._account(signer, account)
        terms = offer.terms

        await (await self._validator()).validate_ask_offer(offer)

        await self._require_currency(buyer, terms.currency, terms.amount, "Insufficient buyer balance")
        approvals = await self._currency_approvals(signer, buyer, terms.currency, terms.amount)

        tx = self.contract.market_order_transaction(offer.collateral.identifier, offer, signature)
        return [*approvals, TakeOfferAction(signer, tx)]

    async def take_ask_offer_in_lien(
        self,
        lien_id: int,
        lien: Lien,
        offer: MarketOffer,
        signature: str,
        account: Optional[str] = None,
    ) -> Steps:
        """Buy a token that is collateral for ``lien``; the sale repays the lien."""
        signer = self._require_signer("taking an ask offer")
        buyer = await self._account(signer, account)
        terms = offer.terms

        await (await self._validator()).validate_ask_offer(offer, lien)

        await self._require_currency(buyer, terms.currency, terms.amount, "Insufficient buyer balance")
        approvals = await self._currency_approvals(signer, buyer, terms.currency, terms.amount)

        tx = self.contract.buy_in_lien_transaction(lien_id, lien, offer, signature)
        return [*approvals, TakeOfferAction(signer, tx)]

    async def _take_bid_offer(
        self,
        offer: MarketOffer,
        signature: str,
        token_id: int,
        proof: Sequence[str],
        account: Optional[str],
    ) -> Steps:
        signer = self._require_signer("taking a bid offer")
        seller = await self._account(signer, account)

        await (await self._validator()).validate_bid_offer(offer)

        collateral = self._token_collateral(offer.collateral, token_id)
        await self._require_collateral(seller, collateral, "Seller does not own collateral")
        approvals = await self._collateral_approvals(signer, seller, collateral.collection)

        tx = self.contract.market_order_transaction(token_id, offer, signature, proof)
        return [*approvals, TakeOfferAction(signer, tx)]

    async def take_bid_offer(
        self, offer: MarketOffer, signature: str, account: Optional[str] = None
    ) -> Steps:
        return await self._take_bid_offer(
            offer, signature, offer.collateral.identifier, (), account
        )

    async def take_collection_bid_offer(
        self,
        token_id: int,
        offer: MarketOffer,
        proof: Sequence[str],
        signature: str,
        account: Optional[str] = None,
    ) -> Steps:
        """Sell ``token_id`` into a collection bid, proven by ``proof``."""
        return await self._take_bid_offer(offer, signature, token_id, proof, account)

    async def take_bid_offer_in_lien(
        self,
        lien_id: int,
        lien: Lien,
        offer: MarketOffer,
        signature: str,
        proof: Sequence[str] = (),
        account: Optional[str] = None,
    ) -> Steps:
        """Sell a token held as collateral into a bid; the proceeds repay ``lien``.

        If the bid, net of the market fee, does not cover the debt, the
        borrower pays the difference and may need a currency approval.
        """
        signer = self._require_signer("taking a bid offer")
        taker = await self._account(signer, account)

        validator = await self._validator()
        await validator.validate_bid_offer(offer)
        debt = await validator.validate_sell_in_lien(taker, lien, offer)

        approvals: List[ApprovalAction] = []
        net_amount = calculate_net_market_amount(offer.terms.amount, offer.fee.rate)
        if debt > net_amount:
            approvals = await self._currency_approvals(
                signer, taker, offer.terms.currency, debt - net_amount
            )

        tx = self.contract.sell_in_lien_transaction(lien_id, lien, offer, signature, proof)
        return [*approvals, TakeOfferAction(signer, tx)]

    async def take_collection_bid_offer_in_lien(
        self,
        lien_id: int,
        lien: Lien,
        offer: MarketOffer,
        proof: Sequence[str],
        signature: str,
        account: Optional[str] = None,
    ) -> Steps:
        return await self.take_bid_offer_in_lien(lien_id, lien, offer, signature, proof, account)

    # Lien lifecycle

    async def refinance(
        self,
        lien_id: int,
        lien: Lien,
        offer: LoanOffer,
        signature: str,
        proof: Sequence[str] = (),
        account: Optional[str] = None,
    ) -> Steps:
        """Build the steps to move ``lien`` onto a new loan offer.

        If the new loan's ``max_amount`` does not cover the current debt, the
        borrower pays the difference and may need a currency approval.

        Raises:
            SignerRequiredError: If no signer is bound
            OfferValidationError: If the offer or the refinance is invalid
        """
        signer = self._require_signer("refinance")
        taker = await self._account(signer, account)

        validator = await self._validator()
        await validator.validate_loan_offer(offer, lien)
        debt = await validator.validate_refinance(taker, lien, offer)
        await self._require_remaining(offer, offer.terms.max_amount)

        approvals: List[ApprovalAction] = []
        if debt > offer.terms.max_amount:
            approvals = await self._currency_approvals(
                signer, taker, offer.terms.currency, debt - offer.terms.max_amount
            )

        tx = self.contract.refinance_transaction(
            lien_id, offer.terms.max_amount, lien, offer, signature, proof
        )
        return [*approvals, TakeOfferAction(signer, tx)]

    async def refinance_collection_offer(
        self,
        lien_id: int,
        lien: Lien,
        offer: LoanOffer,
        proof: Sequence[str],
        signature: str,
        account: Optional[str] = None,
    ) -> Steps:
        return await self.refinance(lien_id, lien, offer, signature, proof, account)

    async def repay(self, lien_id: int, lien: Lien, account: Optional[str] = None) -> Steps:
        """Build the steps to repay ``lien`` in full.

        Raises:
            SignerRequiredError: If no signer is bound
            OfferValidationError: If the lien is defaulted or the borrower
                cannot cover the debt
        """
        signer = self._require_signer("repay")
        payer = await self._account(signer, account)

        debt = await (await self._validator()).validate_repay(lien)
        approvals = await self._currency_approvals(signer, payer, lien.currency, debt)

        tx = self.contract.repay_transaction(lien_id, lien)
        return [*approvals, RepayAction(signer, tx)]

    async def claim(self, lien_id: int, lien: Lien) -> Steps:
        """Build the step to claim the collateral of a defaulted lien."""
        if lien_is_current(lien, self.clock()):
            raise OfferValidationError("Lien is not defaulted")

        signer = self._require_signer("claim")
        return [ClaimAction(signer, self.contract.claim_transaction(lien_id, lien))]

    # Cancellation

    async def cancel_offer(self, salt: int) -> Steps:
        signer = self._require_signer("cancel_offer")
        tx = self.contract.cancel_offer_transaction(salt)
        return [
            CancelOfferAction(
                signer, tx, self.provider, [salt], self.config.confirmation_timeout
            )
        ]

    async def cancel_offers(self, salts: Sequence[int]) -> Steps:
        signer = self._require_signer("cancel_offers")
        tx = self.contract.cancel_offers_transaction(salts)
        return [
            CancelOfferAction(
                signer, tx, self.provider, salts, self.config.confirmation_timeout
            )
        ]

    async def increment_nonce(self) -> Steps:
        """Invalidate every outstanding offer of the signer."""
        signer = self._require_signer("increment_nonce")
        return [IncrementNonceAction(signer, self.contract.increment_nonce_transaction())]
