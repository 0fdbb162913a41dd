"""ABI definitions for the contracts the SDK talks to.

Only the functions the SDK calls are described. Each ABI is bound to a
provider-less web3 contract, which encodes calldata; return data is decoded
with the web3 codec. Struct arguments are flattened into ABI tuples.
"""

from typing import Any, Dict, List, Sequence, Tuple

from eth_utils import function_signature_to_4byte_selector, to_bytes, to_checksum_address
from eth_utils.abi import collapse_if_tuple
from web3 import Web3

from ..offers.types import BorrowOffer, Lien, LoanOffer, MarketOffer, Offer

ABIParam = Dict[str, Any]

_w3 = Web3()


def _param(abi_type: str, name: str = "") -> ABIParam:
    return {"name": name, "type": abi_type}


def _struct(name: str, components: List[ABIParam], array: bool = False) -> ABIParam:
    return {
        "name": name,
        "type": "tuple[]" if array else "tuple",
        "components": components,
    }


def _function(
    name: str,
    inputs: Sequence[ABIParam] = (),
    outputs: Sequence[ABIParam] = (),
    mutability: str = "view",
) -> ABIParam:
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


# Structs
COLLATERAL = [
    _param("address", "collection"),
    _param("uint8", "criteria"),
    _param("uint8", "itemType"),
    _param("uint256", "identifier"),
    _param("uint256", "size"),
]
FEE_TERMS = [_param("address", "recipient"), _param("uint256", "rate")]
LOAN_OFFER_TERMS = [
    _param("address", "currency"),
    _param("uint256", "totalAmount"),
    _param("uint256", "maxAmount"),
    _param("uint256", "minAmount"),
    _param("uint256", "rate"),
    _param("uint256", "defaultRate"),
    _param("uint256", "duration"),
    _param("uint256", "gracePeriod"),
]
BORROW_OFFER_TERMS = [
    _param("address", "currency"),
    _param("uint256", "amount"),
    _param("uint256", "rate"),
    _param("uint256", "defaultRate"),
    _param("uint256", "duration"),
    _param("uint256", "gracePeriod"),
]
MARKET_OFFER_TERMS = [
    _param("address", "currency"),
    _param("uint256", "amount"),
    _param("bool", "withLoan"),
    _param("uint256", "borrowAmount"),
    _param("bytes32", "loanOfferHash"),
]
_OFFER_TAIL = [
    _param("uint256", "expiration"),
    _param("uint256", "salt"),
    _param("uint256", "nonce"),
]


def _offer(maker: str, terms: List[ABIParam], side: bool = False) -> List[ABIParam]:
    head = [_param("uint8", "side")] if side else []
    return head + [
        _param("address", maker),
        _struct("collateral", COLLATERAL),
        _struct("terms", terms),
        _struct("fee", FEE_TERMS),
    ] + _OFFER_TAIL


LOAN_OFFER = _struct("offer", _offer("lender", LOAN_OFFER_TERMS))
BORROW_OFFER = _struct("offer", _offer("borrower", BORROW_OFFER_TERMS))
MARKET_OFFER = _struct("offer", _offer("maker", MARKET_OFFER_TERMS, side=True))
LIEN = _struct(
    "lien",
    [
        _param("address", "recipient"),
        _param("address", "borrower"),
        _param("address", "currency"),
        _param("address", "collection"),
        _param("uint8", "itemType"),
        _param("uint256", "tokenId"),
        _param("uint256", "size"),
        _param("uint256", "principal"),
        _param("uint256", "rate"),
        _param("uint256", "defaultRate"),
        _param("uint256", "fee"),
        _param("uint256", "duration"),
        _param("uint256", "gracePeriod"),
        _param("uint256", "startTime"),
    ],
)

ERC20_ABI = [
    _function("balanceOf", [_param("address", "owner")], [_param("uint256")]),
    _function(
        "allowance",
        [_param("address", "owner"), _param("address", "spender")],
        [_param("uint256")],
    ),
    _function(
        "approve",
        [_param("address", "spender"), _param("uint256", "amount")],
        [_param("bool")],
        mutability="nonpayable",
    ),
]

ERC721_ABI = [
    _function("ownerOf", [_param("uint256", "tokenId")], [_param("address")]),
    _function(
        "isApprovedForAll",
        [_param("address", "owner"), _param("address", "operator")],
        [_param("bool")],
    ),
    _function(
        "setApprovalForAll",
        [_param("address", "operator"), _param("bool", "approved")],
        mutability="nonpayable",
    ),
]

ERC1155_ABI = [
    _function(
        "balanceOf",
        [_param("address", "account"), _param("uint256", "id")],
        [_param("uint256")],
    ),
] + ERC721_ABI[1:]

_SIGNATURE = _param("bytes", "signature")
_PROOF = _param("bytes32[]", "proof")
_LIEN_ID = _param("uint256", "lienId")

KETTLE_ABI = [
    _function("nonces", [_param("address", "user")], [_param("uint256")]),
    _function(
        "cancelledOrFulfilled",
        [_param("address", "user"), _param("uint256", "salt")],
        [_param("uint256")],
    ),
    _function("amountTaken", [_param("bytes32", "offerHash")], [_param("uint256")]),
    _function(
        "currentDebtAmount",
        [LIEN],
        [
            _param("uint256", "debt"),
            _param("uint256", "feeInterest"),
            _param("uint256", "lenderInterest"),
        ],
    ),
    _function("hashLoanOffer", [LOAN_OFFER], [_param("bytes32")]),
    _function("hashBorrowOffer", [BORROW_OFFER], [_param("bytes32")]),
    _function("hashMarketOffer", [MARKET_OFFER], [_param("bytes32")]),
    _function(
        "borrow",
        [
            LOAN_OFFER,
            _param("uint256", "amount"),
            _param("uint256", "tokenId"),
            _param("address", "borrower"),
            _SIGNATURE,
            _PROOF,
        ],
        [_param("uint256", "lienId")],
        mutability="nonpayable",
    ),
    _function(
        "loan",
        [BORROW_OFFER, _SIGNATURE],
        [_param("uint256", "lienId")],
        mutability="nonpayable",
    ),
    _function(
        "marketOrder",
        [_param("uint256", "tokenId"), MARKET_OFFER, _SIGNATURE, _PROOF],
        mutability="nonpayable",
    ),
    _function(
        "buyInLien",
        [_LIEN_ID, LIEN, MARKET_OFFER, _SIGNATURE, _PROOF],
        mutability="nonpayable",
    ),
    _function(
        "sellInLien",
        [_LIEN_ID, LIEN, MARKET_OFFER, _SIGNATURE, _PROOF],
        mutability="nonpayable",
    ),
    _function(
        "refinance",
        [_LIEN_ID, _param("uint256", "amount"), LIEN, LOAN_OFFER, _SIGNATURE, _PROOF],
        mutability="nonpayable",
    ),
    _function("repay", [_LIEN_ID, LIEN], mutability="nonpayable"),
    _function("claim", [_LIEN_ID, LIEN], mutability="nonpayable"),
    _function("cancelOffer", [_param("uint256", "salt")], mutability="nonpayable"),
    _function("cancelOffers", [_param("uint256[]", "salts")], mutability="nonpayable"),
    _function("incrementNonce", mutability="nonpayable"),
]

MULTICALL3_ABI = [
    _function(
        "aggregate3",
        [
            _struct(
                "calls",
                [
                    _param("address", "target"),
                    _param("bool", "allowFailure"),
                    _param("bytes", "callData"),
                ],
                array=True,
            )
        ],
        [
            _struct(
                "returnData",
                [_param("bool", "success"), _param("bytes", "returnData")],
                array=True,
            )
        ],
        mutability="payable",
    ),
]


def _checksummed(param: ABIParam, value: Any) -> Any:
    # web3 only accepts checksummed addresses
    abi_type = param["type"]
    if abi_type.endswith("[]"):
        item = {**param, "type": abi_type[:-2]}
        return [_checksummed(item, v) for v in value]
    if abi_type == "tuple":
        return tuple(_checksummed(c, v) for c, v in zip(param["components"], value))
    if abi_type == "address":
        return to_checksum_address(value)
    return value


class ContractFunction:
    """One function of a web3 contract ABI.

    Args:
        abi: Contract ABI the function belongs to
        name: Function name; must not be overloaded within ``abi``
    """

    def __init__(self, abi: List[ABIParam], name: str):
        matches = [e for e in abi if e.get("type") == "function" and e["name"] == name]
        if len(matches) != 1:
            raise ValueError(f"Function ABI not found: {name}")
        self.name = name
        self.abi = matches[0]
        self._contract = _w3.eth.contract(abi=abi)
        self.inputs: Tuple[str, ...] = tuple(collapse_if_tuple(p) for p in self.abi["inputs"])
        self.outputs: Tuple[str, ...] = tuple(collapse_if_tuple(p) for p in self.abi["outputs"])

    def __repr__(self) -> str:
        return f"ContractFunction({self.signature})"

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, *args: Any) -> bytes:
        if len(args) != len(self.inputs):
            raise ValueError(
                f"{self.name} expects {len(self.inputs)} arguments, got {len(args)}"
            )
        normalized = [
            _checksummed(param, arg) for param, arg in zip(self.abi["inputs"], args)
        ]
        return to_bytes(hexstr=self._contract.encode_abi(self.name, args=normalized))

    def decode_output(self, data: bytes) -> Tuple[Any, ...]:
        if not self.outputs:
            return ()
        return tuple(_w3.codec.decode(list(self.outputs), data))


class ERC20:
    balance_of = ContractFunction(ERC20_ABI, "balanceOf")
    allowance = ContractFunction(ERC20_ABI, "allowance")
    approve = ContractFunction(ERC20_ABI, "approve")


class ERC721:
    owner_of = ContractFunction(ERC721_ABI, "ownerOf")
    is_approved_for_all = ContractFunction(ERC721_ABI, "isApprovedForAll")
    set_approval_for_all = ContractFunction(ERC721_ABI, "setApprovalForAll")


class ERC1155:
    balance_of = ContractFunction(ERC1155_ABI, "balanceOf")
    is_approved_for_all = ERC721.is_approved_for_all
    set_approval_for_all = ERC721.set_approval_for_all


class KettleABI:
    """Settlement contract functions."""

    nonces = ContractFunction(KETTLE_ABI, "nonces")
    cancelled_or_fulfilled = ContractFunction(KETTLE_ABI, "cancelledOrFulfilled")
    amount_taken = ContractFunction(KETTLE_ABI, "amountTaken")
    current_debt_amount = ContractFunction(KETTLE_ABI, "currentDebtAmount")
    hash_loan_offer = ContractFunction(KETTLE_ABI, "hashLoanOffer")
    hash_borrow_offer = ContractFunction(KETTLE_ABI, "hashBorrowOffer")
    hash_market_offer = ContractFunction(KETTLE_ABI, "hashMarketOffer")

    borrow = ContractFunction(KETTLE_ABI, "borrow")
    loan = ContractFunction(KETTLE_ABI, "loan")
    market_order = ContractFunction(KETTLE_ABI, "marketOrder")
    buy_in_lien = ContractFunction(KETTLE_ABI, "buyInLien")
    sell_in_lien = ContractFunction(KETTLE_ABI, "sellInLien")
    refinance = ContractFunction(KETTLE_ABI, "refinance")
    repay = ContractFunction(KETTLE_ABI, "repay")
    claim = ContractFunction(KETTLE_ABI, "claim")
    cancel_offer = ContractFunction(KETTLE_ABI, "cancelOffer")
    cancel_offers = ContractFunction(KETTLE_ABI, "cancelOffers")
    increment_nonce = ContractFunction(KETTLE_ABI, "incrementNonce")


class Multicall3ABI:
    aggregate3 = ContractFunction(MULTICALL3_ABI, "aggregate3")


def to_bytes32(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def to_signature_bytes(signature: str) -> bytes:
    return bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)


def collateral_tuple(offer: Offer) -> tuple:
    c = offer.collateral
    return (c.collection, int(c.criteria), int(c.item_type), c.identifier, c.size)


def fee_tuple(offer: Offer) -> tuple:
    return (offer.fee.recipient, offer.fee.rate)


def offer_tuple(offer: Offer) -> tuple:
    """Flatten an offer into the settlement contract's struct layout."""
    tail = (offer.expiration, offer.salt, offer.nonce)
    if isinstance(offer, LoanOffer):
        t = offer.terms
        terms = (
            t.currency,
            t.total_amount,
            t.max_amount,
            t.min_amount,
            t.rate,
            t.default_rate,
            t.duration,
            t.grace_period,
        )
        return (offer.lender, collateral_tuple(offer), terms, fee_tuple(offer)) + tail
    if isinstance(offer, BorrowOffer):
        t = offer.terms
        terms = (t.currency, t.amount, t.rate, t.default_rate, t.duration, t.grace_period)
        return (offer.borrower, collateral_tuple(offer), terms, fee_tuple(offer)) + tail
    if isinstance(offer, MarketOffer):
        t = offer.terms
        terms = (
            t.currency,
            t.amount,
            t.with_loan,
            t.borrow_amount,
            to_bytes32(t.loan_offer_hash),
        )
        return (
            int(offer.side),
            offer.maker,
            collateral_tuple(offer),
            terms,
            fee_tuple(offer),
        ) + tail
    raise TypeError(f"Unknown offer type: {type(offer).__name__}")


def lien_tuple(lien: Lien) -> tuple:
    """Flatten a lien into the settlement contract's struct layout."""
    return (
        lien.recipient,
        lien.borrower,
        lien.currency,
        lien.collection,
        int(lien.item_type),
        lien.token_id,
        lien.size,
        lien.principal,
        lien.rate,
        lien.default_rate,
        lien.fee,
        lien.duration,
        lien.grace_period,
        lien.start_time,
    )
