"""Typed wrappers around the settlement and token contracts."""

from typing import Any, Dict, List, Sequence, Tuple

from eth_utils import to_checksum_address, to_hex

from ..lending.interest import DebtAmount
from ..offers.types import BorrowOffer, Lien, LoanOffer, MarketOffer, Offer
from ..offers.utils import MAX_UINT256
from .abi import (
    ERC20,
    ERC721,
    ERC1155,
    ContractFunction,
    KettleABI,
    lien_tuple,
    offer_tuple,
    to_bytes32,
    to_signature_bytes,
)
from .rpc import ChainProvider

TxRequest = Dict[str, Any]
"""Unsigned transaction request: ``{"to": address, "data": hex}``."""


async def read(
    provider: ChainProvider, address: str, fn: ContractFunction, *args: Any
) -> Tuple[Any, ...]:
    data = await provider.call(address, fn.encode_call(*args))
    return fn.decode_output(data)


def build_transaction(address: str, fn: ContractFunction, *args: Any) -> TxRequest:
    return {"to": to_checksum_address(address), "data": to_hex(fn.encode_call(*args))}


def _proof(proof: Sequence[str]) -> List[bytes]:
    return [to_bytes32(p) for p in proof]


class SettlementContract:
    """Reads from and builds transactions for the Kettle settlement contract."""

    def __init__(self, provider: ChainProvider, address: str):
        self.provider = provider
        self.address = to_checksum_address(address)

    async def nonces(self, account: str) -> int:
        (nonce,) = await read(self.provider, self.address, KettleABI.nonces, account)
        return nonce

    async def cancelled_or_fulfilled(self, account: str, salt: int) -> int:
        (flag,) = await read(
            self.provider, self.address, KettleABI.cancelled_or_fulfilled, account, salt
        )
        return flag

    async def amount_taken(self, offer_hash: bytes) -> int:
        (amount,) = await read(
            self.provider, self.address, KettleABI.amount_taken, offer_hash
        )
        return amount

    async def current_debt_amount(self, lien: Lien) -> DebtAmount:
        debt, fee, interest = await read(
            self.provider, self.address, KettleABI.current_debt_amount, lien_tuple(lien)
        )
        return DebtAmount(debt=debt, fee_interest=fee, lender_interest=interest)

    async def hash_offer(self, offer: Offer) -> bytes:
        """Offer hash as computed by the contract."""
        if isinstance(offer, LoanOffer):
            fn = KettleABI.hash_loan_offer
        elif isinstance(offer, BorrowOffer):
            fn = KettleABI.hash_borrow_offer
        else:
            fn = KettleABI.hash_market_offer
        (offer_hash,) = await read(self.provider, self.address, fn, offer_tuple(offer))
        return offer_hash

    def borrow_transaction(
        self,
        offer: LoanOffer,
        amount: int,
        token_id: int,
        borrower: str,
        signature: str,
        proof: Sequence[str] = (),
    ) -> TxRequest:
        return build_transaction(
            self.address,
            KettleABI.borrow,
            offer_tuple(offer),
            amount,
            token_id,
            borrower,
            to_signature_bytes(signature),
            _proof(proof),
        )

    def loan_transaction(self, offer: BorrowOffer, signature: str) -> TxRequest:
        return build_transaction(
            self.address, KettleABI.loan, offer_tuple(offer), to_signature_bytes(signature)
        )

    def market_order_transaction(
        self,
        token_id: int,
        offer: MarketOffer,
        signature: str,
        proof: Sequence[str] = (),
    ) -> TxRequest:
        return build_transaction(
            self.address,
            KettleABI.market_order,
            token_id,
            offer_tuple(offer),
            to_signature_bytes(signature),
            _proof(proof),
        )

    def buy_in_lien_transaction(
        self,
        lien_id: int,
        lien: Lien,
        offer: MarketOffer,
        signature: str,
        proof: Sequence[str] = (),
    ) -> TxRequest:
        return build_transaction(
            self.address,
            KettleABI.buy_in_lien,
            lien_id,
            lien_tuple(lien),
            offer_tuple(offer),
            to_signature_bytes(signature),
            _proof(proof),
        )

    def sell_in_lien_transaction(
        self,
        lien_id: int,
        lien: Lien,
        offer: MarketOffer,
        signature: str,
        proof: Sequence[str] = (),
    ) -> TxRequest:
        return build_transaction(
            self.address,
            KettleABI.sell_in_lien,
            lien_id,
            lien_tuple(lien),
            offer_tuple(offer),
            to_signature_bytes(signature),
            _proof(proof),
        )

    def refinance_transaction(
        self,
        lien_id: int,
        amount: int,
        lien: Lien,
        offer: LoanOffer,
        signature: str,
        proof: Sequence[str] = (),
    ) -> TxRequest:
        return build_transaction(
            self.address,
            KettleABI.refinance,
            lien_id,
            amount,
            lien_tuple(lien),
            offer_tuple(offer),
            to_signature_bytes(signature),
            _proof(proof),
        )

    def repay_transaction(self, lien_id: int, lien: Lien) -> TxRequest:
        return build_transaction(self.address, KettleABI.repay, lien_id, lien_tuple(lien))

    def claim_transaction(self, lien_id: int, lien: Lien) -> TxRequest:
        return build_transaction(self.address, KettleABI.claim, lien_id, lien_tuple(lien))

    def cancel_offer_transaction(self, salt: int) -> TxRequest:
        return build_transaction(self.address, KettleABI.cancel_offer, salt)

    def cancel_offers_transaction(self, salts: Sequence[int]) -> TxRequest:
        return build_transaction(self.address, KettleABI.cancel_offers, list(salts))

    def increment_nonce_transaction(self) -> TxRequest:
        return build_transaction(self.address, KettleABI.increment_nonce)


def erc20_approve_transaction(
    currency: str, spender: str, amount: int = MAX_UINT256
) -> TxRequest:
    return build_transaction(currency, ERC20.approve, spender, amount)


def set_approval_for_all_transaction(collection: str, operator: str) -> TxRequest:
    return build_transaction(collection, ERC721.set_approval_for_all, operator, True)


async def erc20_balance_of(provider: ChainProvider, currency: str, owner: str) -> int:
    (balance,) = await read(provider, currency, ERC20.balance_of, owner)
    return balance


async def erc20_allowance(
    provider: ChainProvider, currency: str, owner: str, spender: str
) -> int:
    (allowance,) = await read(provider, currency, ERC20.allowance, owner, spender)
    return allowance


async def erc721_owner_of(provider: ChainProvider, collection: str, token_id: int) -> str:
    (owner,) = await read(provider, collection, ERC721.owner_of, token_id)
    return owner


async def erc1155_balance_of(
    provider: ChainProvider, collection: str, owner: str, token_id: int
) -> int:
    (balance,) = await read(provider, collection, ERC1155.balance_of, owner, token_id)
    return balance


async def is_approved_for_all(
    provider: ChainProvider, collection: str, owner: str, operator: str
) -> bool:
    (approved,) = await read(
        provider, collection, ERC721.is_approved_for_all, owner, operator
    )
    return approved
