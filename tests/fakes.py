"""In-memory chain, signer and offer builders used by the tests."""

import itertools
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from eth_abi import decode, encode
from eth_account import Account

from kettle_sdk.chain.abi import ERC20, ERC721, ERC1155, ContractFunction, KettleABI, Multicall3ABI
from kettle_sdk.errors import ContractCallReverted, TransactionRejectedError, TransportError
from kettle_sdk.lending.liens import lien_debt
from kettle_sdk.offers.types import (
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
from kettle_sdk.signers import LocalAccountSigner


# Test wallets (DO NOT use in production)
LENDER_KEY = "0x" + "ab" * 32
BORROWER_KEY = "0x" + "cd" * 32
BUYER_KEY = "0x" + "ef" * 32
LENDER = Account.from_key(LENDER_KEY).address
BORROWER = Account.from_key(BORROWER_KEY).address
BUYER = Account.from_key(BUYER_KEY).address
OTHER_LENDER = "0x" + "66" * 20

CONTRACT = "0x" + "11" * 20
CURRENCY = "0x" + "22" * 20
COLLECTION = "0x" + "33" * 20
COLLECTION_1155 = "0x" + "44" * 20
RECIPIENT = "0x" + "55" * 20

CHAIN_ID = 1
NOW = 1_700_000_000
DAY = 86_400
ETH = 10**18
TOKEN_ID = 42


def _key(*parts: Any) -> Tuple[Any, ...]:
    return tuple(p.lower() if isinstance(p, str) else p for p in parts)


class FakeChain:
    """ChainProvider answering token and settlement reads from dictionaries.

    Calls are dispatched by selector, so both direct ``eth_call`` reads and
    reads nested inside ``aggregate3`` see the same state.
    """

    def __init__(self, now: int = NOW, chain_id: int = CHAIN_ID):
        self.now = now
        self._chain_id = chain_id
        self.balances: Dict[Tuple, int] = {}
        self.allowances: Dict[Tuple, int] = {}
        self.owners: Dict[Tuple, str] = {}
        self.holdings: Dict[Tuple, int] = {}
        self.approvals: Dict[Tuple, bool] = {}
        self.nonces: Dict[str, int] = {}
        self.cancelled: Dict[Tuple, int] = {}
        self.taken: Dict[str, int] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}

        self.failing_targets: Set[str] = set()
        self.failing_aggregates: Set[int] = set()
        self.aggregate_sizes: List[int] = []
        self.reads: List[Tuple[str, str]] = []

        self._handlers: Dict[bytes, Tuple[ContractFunction, Callable]] = {}
        for fn, handler in [
            (ERC20.balance_of, self._balance_of),
            (ERC20.allowance, self._allowance),
            (ERC721.owner_of, self._owner_of),
            (ERC721.is_approved_for_all, self._is_approved_for_all),
            (ERC1155.balance_of, self._balance_of_1155),
            (KettleABI.nonces, self._nonces),
            (KettleABI.cancelled_or_fulfilled, self._cancelled_or_fulfilled),
            (KettleABI.amount_taken, self._amount_taken),
            (KettleABI.current_debt_amount, self._current_debt_amount),
        ]:
            self._handlers[fn.selector] = (fn, handler)

    # State setup

    def fund(self, token: str, owner: str, amount: int) -> None:
        self.balances[_key(token, owner)] = amount

    def set_allowance(self, token: str, owner: str, spender: str, amount: int) -> None:
        self.allowances[_key(token, owner, spender)] = amount

    def mint(self, collection: str, token_id: int, owner: str) -> None:
        self.owners[_key(collection, token_id)] = owner

    def mint_1155(self, collection: str, owner: str, token_id: int, amount: int) -> None:
        self.holdings[_key(collection, owner, token_id)] = amount

    def approve_all(self, collection: str, owner: str, operator: str) -> None:
        self.approvals[_key(collection, owner, operator)] = True

    # Read handlers

    def _balance_of(self, to, owner):
        return (self.balances.get(_key(to, owner), 0),)

    def _allowance(self, to, owner, spender):
        return (self.allowances.get(_key(to, owner, spender), 0),)

    def _owner_of(self, to, token_id):
        owner = self.owners.get(_key(to, token_id))
        if owner is None:
            raise ContractCallReverted("execution reverted: ERC721: invalid token ID", code=3)
        return (owner,)

    def _is_approved_for_all(self, to, owner, operator):
        return (self.approvals.get(_key(to, owner, operator), False),)

    def _balance_of_1155(self, to, owner, token_id):
        return (self.holdings.get(_key(to, owner, token_id), 0),)

    def _nonces(self, to, account):
        return (self.nonces.get(account.lower(), 0),)

    def _cancelled_or_fulfilled(self, to, account, salt):
        return (self.cancelled.get(_key(account, salt), 0),)

    def _amount_taken(self, to, offer_hash):
        return (self.taken.get("0x" + offer_hash.hex(), 0),)

    def _current_debt_amount(self, to, lien):
        debt = lien_debt(Lien(*lien), self.now)
        return (debt.debt, debt.fee_interest, debt.lender_interest)

    # ChainProvider

    def _call(self, to: str, data: bytes) -> bytes:
        if to.lower() in self.failing_targets:
            raise ContractCallReverted("execution reverted", code=3)
        entry = self._handlers.get(bytes(data[:4]))
        if entry is None:
            raise ContractCallReverted("execution reverted: unknown function", code=3)
        fn, handler = entry
        args = decode(list(fn.inputs), bytes(data[4:]))
        self.reads.append((to.lower(), fn.name))
        return encode(list(fn.outputs), list(handler(to, *args)))

    async def call(self, to: str, data: bytes) -> bytes:
        if bytes(data[:4]) != Multicall3ABI.aggregate3.selector:
            return self._call(to, data)

        index = len(self.aggregate_sizes)
        (calls,) = decode(list(Multicall3ABI.aggregate3.inputs), bytes(data[4:]))
        self.aggregate_sizes.append(len(calls))
        if index in self.failing_aggregates:
            raise TransportError("RPC request eth_call failed: 503 Service Unavailable")

        returned = []
        for target, _allow_failure, calldata in calls:
            try:
                returned.append((True, self._call(target, calldata)))
            except ContractCallReverted:
                returned.append((False, b""))
        return encode(list(Multicall3ABI.aggregate3.outputs), [returned])

    async def chain_id(self) -> int:
        return self._chain_id

    async def wait_for_transaction_receipt(self, tx_hash: str, timeout: float) -> Dict[str, Any]:
        receipt = self.receipts.get(tx_hash)
        if receipt is None:
            raise TimeoutError(f"Transaction {tx_hash} not mined after {timeout}s")
        return receipt

    # Transactions

    def apply(self, sender: str, to: str, data: bytes) -> None:
        selector, body = data[:4], data[4:]
        if selector == ERC20.approve.selector:
            spender, amount = decode(list(ERC20.approve.inputs), body)
            self.set_allowance(to, sender, spender, amount)
        elif selector == ERC721.set_approval_for_all.selector:
            operator, approved = decode(list(ERC721.set_approval_for_all.inputs), body)
            self.approvals[_key(to, sender, operator)] = approved
        elif selector == KettleABI.cancel_offer.selector:
            (salt,) = decode(list(KettleABI.cancel_offer.inputs), body)
            self.cancelled[_key(sender, salt)] = 1
        elif selector == KettleABI.cancel_offers.selector:
            (salts,) = decode(list(KettleABI.cancel_offers.inputs), body)
            for salt in salts:
                self.cancelled[_key(sender, salt)] = 1
        elif selector == KettleABI.increment_nonce.selector:
            self.nonces[sender.lower()] = self.nonces.get(sender.lower(), 0) + 1


class FakeSigner(LocalAccountSigner):
    """Signs typed data with a real key and applies transactions to a FakeChain."""

    def __init__(self, private_key: str, chain: FakeChain):
        super().__init__(private_key, rpc=None)
        self.chain = chain
        self.sent: List[Dict[str, Any]] = []
        self.reject = False
        self.error: Optional[Exception] = None
        self.mine = True
        self.revert = False
        self._hashes = itertools.count(1)

    async def send_transaction(self, tx):
        if self.reject:
            raise TransactionRejectedError()
        if self.error is not None:
            raise self.error

        self.sent.append(tx)
        if not self.revert:
            self.chain.apply(self.address, tx["to"], bytes.fromhex(tx["data"][2:]))

        tx_hash = "0x%064x" % next(self._hashes)
        if self.mine:
            self.chain.receipts[tx_hash] = {
                "transactionHash": tx_hash,
                "status": "0x0" if self.revert else "0x1",
            }
        return tx_hash


def decode_calldata(fn: ContractFunction, data: str) -> Tuple[Any, ...]:
    raw = bytes.fromhex(data[2:])
    assert raw[:4] == fn.selector, f"expected {fn.signature}"
    return tuple(decode(list(fn.inputs), raw[4:]))


# Builders

def make_collateral(
    collection: str = COLLECTION,
    identifier: int = TOKEN_ID,
    item_type: ItemType = ItemType.ERC721,
    criteria: Criteria = Criteria.SIMPLE,
    size: int = 1,
) -> Collateral:
    return Collateral(
        collection=collection,
        criteria=criteria,
        item_type=item_type,
        identifier=identifier,
        size=size,
    )


def make_loan_terms(
    total_amount: int = 10 * ETH,
    max_amount: int = 5 * ETH,
    min_amount: int = 1 * ETH,
    currency: str = CURRENCY,
) -> LoanOfferTerms:
    return LoanOfferTerms(
        currency=currency,
        total_amount=total_amount,
        max_amount=max_amount,
        min_amount=min_amount,
        rate=1000,
        default_rate=2000,
        duration=30 * DAY,
        grace_period=3 * DAY,
    )


def make_loan_offer(
    lender: str = LENDER,
    collateral: Optional[Collateral] = None,
    terms: Optional[LoanOfferTerms] = None,
    expiration: int = NOW + DAY,
    salt: int = 1,
    nonce: int = 0,
) -> LoanOffer:
    return LoanOffer(
        lender=lender,
        collateral=collateral or make_collateral(),
        terms=terms or make_loan_terms(),
        fee=FeeTerms(recipient=RECIPIENT, rate=100),
        expiration=expiration,
        salt=salt,
        nonce=nonce,
    )


def make_borrow_offer(
    borrower: str = BORROWER,
    collateral: Optional[Collateral] = None,
    amount: int = 5 * ETH,
    expiration: int = NOW + DAY,
    salt: int = 2,
    nonce: int = 0,
) -> BorrowOffer:
    return BorrowOffer(
        borrower=borrower,
        collateral=collateral or make_collateral(),
        terms=BorrowOfferTerms(
            currency=CURRENCY,
            amount=amount,
            rate=1000,
            default_rate=2000,
            duration=30 * DAY,
            grace_period=3 * DAY,
        ),
        fee=FeeTerms(recipient=RECIPIENT, rate=100),
        expiration=expiration,
        salt=salt,
        nonce=nonce,
    )


def make_market_offer(
    side: Side,
    maker: str,
    collateral: Optional[Collateral] = None,
    amount: int = 10 * ETH,
    fee_rate: int = 250,
    expiration: int = NOW + DAY,
    salt: int = 3,
    nonce: int = 0,
) -> MarketOffer:
    return MarketOffer(
        side=side,
        maker=maker,
        collateral=collateral or make_collateral(),
        terms=MarketOfferTerms(currency=CURRENCY, amount=amount),
        fee=FeeTerms(recipient=RECIPIENT, rate=fee_rate),
        expiration=expiration,
        salt=salt,
        nonce=nonce,
    )


def make_lien(
    borrower: str = BORROWER,
    lender: Optional[str] = OTHER_LENDER,
    principal: int = 5 * ETH,
    start_time: int = NOW - 10 * DAY,
    token_id: int = TOKEN_ID,
    collection: str = COLLECTION,
    currency: str = CURRENCY,
) -> Lien:
    return Lien(
        recipient=RECIPIENT,
        borrower=borrower,
        currency=currency,
        collection=collection,
        item_type=ItemType.ERC721,
        token_id=token_id,
        size=1,
        principal=principal,
        rate=1000,
        default_rate=2000,
        fee=100,
        duration=30 * DAY,
        grace_period=3 * DAY,
        start_time=start_time,
        lender=lender,
    )


def defaulted_lien(**kwargs) -> Lien:
    """A lien whose grace period ended before NOW."""
    return make_lien(start_time=NOW - 40 * DAY, **kwargs)
