"""Offer and Lien Types for the Kettle protocol.

Offers are immutable values. Every monetary and time field is a plain ``int``
checked on construction; addresses are normalized to checksum form.
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any, ClassVar, Dict, Optional, Union

from eth_utils import is_address, to_checksum_address

from .utils import BYTES_ZERO, parse_bool, parse_uint, require_uint


class OfferType(IntEnum):
    LOAN_OFFER = 0
    BORROWER_OFFER = 1
    MARKET_OFFER = 2


class Criteria(IntEnum):
    SIMPLE = 0
    PROOF = 1


class Side(IntEnum):
    BID = 0
    ASK = 1


class ItemType(IntEnum):
    ERC721 = 0
    ERC1155 = 1


def _checksum(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Invalid {field_name} address: {value!r}")
    return to_checksum_address(value)


def _bytes32_hex(value: Any, field_name: str) -> str:
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    if not isinstance(value, str):
        raise ValueError(f"Invalid {field_name}: {value!r}. Must be bytes32")
    text = value.lower()
    if not text.startswith("0x"):
        text = "0x" + text
    if len(text) != 66:
        raise ValueError(f"Invalid {field_name}: {value!r}. Must be bytes32")
    try:
        int(text, 16)
    except ValueError:
        raise ValueError(f"Invalid {field_name}: {value!r}. Must be bytes32") from None
    return text


def _set(obj: Any, name: str, value: Any) -> None:
    object.__setattr__(obj, name, value)


def _check_uints(obj: Any, *names: str) -> None:
    for name in names:
        require_uint(getattr(obj, name), name)


@dataclass(frozen=True)
class Collateral:
    """The NFT an offer is made against."""

    collection: str
    """ERC-721 or ERC-1155 contract address."""

    criteria: Criteria
    """SIMPLE matches ``identifier`` exactly; PROOF checks a Merkle root on-chain."""

    item_type: ItemType

    identifier: int
    """Token ID (SIMPLE) or Merkle root (PROOF)."""

    size: int
    """Number of tokens; always 1 for ERC-721."""

    def __post_init__(self):
        _set(self, "collection", _checksum(self.collection, "collection"))
        _set(self, "criteria", Criteria(self.criteria))
        _set(self, "item_type", ItemType(self.item_type))
        _check_uints(self, "identifier", "size")

    def to_message(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "criteria": int(self.criteria),
            "itemType": int(self.item_type),
            "identifier": self.identifier,
            "size": self.size,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "Collateral":
        return cls(
            collection=data["collection"],
            criteria=Criteria(parse_uint(data["criteria"], "criteria")),
            item_type=ItemType(parse_uint(data["itemType"], "itemType")),
            identifier=parse_uint(data["identifier"], "identifier"),
            size=parse_uint(data["size"], "size"),
        )


@dataclass(frozen=True)
class FeeTerms:
    """Protocol fee paid to ``recipient``."""

    recipient: str

    rate: int
    """Fee rate in basis points (denominator 10 000)."""

    def __post_init__(self):
        _set(self, "recipient", _checksum(self.recipient, "recipient"))
        _check_uints(self, "rate")

    def to_message(self) -> Dict[str, Any]:
        return {"recipient": self.recipient, "rate": self.rate}

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "FeeTerms":
        return cls(recipient=data["recipient"], rate=parse_uint(data["rate"], "rate"))


@dataclass(frozen=True)
class LoanOfferTerms:
    currency: str
    total_amount: int
    max_amount: int
    min_amount: int
    rate: int
    default_rate: int
    duration: int
    grace_period: int

    def __post_init__(self):
        _set(self, "currency", _checksum(self.currency, "currency"))
        _check_uints(
            self,
            "total_amount",
            "max_amount",
            "min_amount",
            "rate",
            "default_rate",
            "duration",
            "grace_period",
        )
        if not self.min_amount <= self.max_amount <= self.total_amount:
            raise ValueError(
                "Invalid loan amounts: require min_amount <= max_amount <= total_amount "
                f"(got {self.min_amount}, {self.max_amount}, {self.total_amount})"
            )

    def to_message(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "totalAmount": self.total_amount,
            "maxAmount": self.max_amount,
            "minAmount": self.min_amount,
            "rate": self.rate,
            "defaultRate": self.default_rate,
            "duration": self.duration,
            "gracePeriod": self.grace_period,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "LoanOfferTerms":
        return cls(
            currency=data["currency"],
            total_amount=parse_uint(data["totalAmount"], "totalAmount"),
            max_amount=parse_uint(data["maxAmount"], "maxAmount"),
            min_amount=parse_uint(data["minAmount"], "minAmount"),
            rate=parse_uint(data["rate"], "rate"),
            default_rate=parse_uint(data["defaultRate"], "defaultRate"),
            duration=parse_uint(data["duration"], "duration"),
            grace_period=parse_uint(data["gracePeriod"], "gracePeriod"),
        )


@dataclass(frozen=True)
class BorrowOfferTerms:
    currency: str
    amount: int
    rate: int
    default_rate: int
    duration: int
    grace_period: int

    def __post_init__(self):
        _set(self, "currency", _checksum(self.currency, "currency"))
        _check_uints(self, "amount", "rate", "default_rate", "duration", "grace_period")

    def to_message(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "amount": self.amount,
            "rate": self.rate,
            "defaultRate": self.default_rate,
            "duration": self.duration,
            "gracePeriod": self.grace_period,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "BorrowOfferTerms":
        return cls(
            currency=data["currency"],
            amount=parse_uint(data["amount"], "amount"),
            rate=parse_uint(data["rate"], "rate"),
            default_rate=parse_uint(data["defaultRate"], "defaultRate"),
            duration=parse_uint(data["duration"], "duration"),
            grace_period=parse_uint(data["gracePeriod"], "gracePeriod"),
        )


@dataclass(frozen=True)
class MarketOfferTerms:
    currency: str
    amount: int
    with_loan: bool = False
    borrow_amount: int = 0
    loan_offer_hash: str = BYTES_ZERO

    def __post_init__(self):
        _set(self, "currency", _checksum(self.currency, "currency"))
        if not isinstance(self.with_loan, bool):
            raise ValueError(f"Invalid with_loan: {self.with_loan!r}. Must be a bool")
        _check_uints(self, "amount", "borrow_amount")
        _set(self, "loan_offer_hash", _bytes32_hex(self.loan_offer_hash, "loan_offer_hash"))

    def to_message(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "amount": self.amount,
            "withLoan": self.with_loan,
            "borrowAmount": self.borrow_amount,
            "loanOfferHash": self.loan_offer_hash,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "MarketOfferTerms":
        return cls(
            currency=data["currency"],
            amount=parse_uint(data["amount"], "amount"),
            with_loan=parse_bool(data.get("withLoan", False), "withLoan"),
            borrow_amount=parse_uint(data.get("borrowAmount", 0), "borrowAmount"),
            loan_offer_hash=data.get("loanOfferHash", BYTES_ZERO),
        )


class _OfferMixin:
    """Behavior shared by the three offer kinds."""

    offer_type: ClassVar[OfferType]
    primary_type: ClassVar[str]

    def _check_common(self) -> None:
        _check_uints(self, "expiration", "salt", "nonce")

    def is_expired(self, now: int) -> bool:
        return self.expiration < now


@dataclass(frozen=True)
class LoanOffer(_OfferMixin):
    """Lender's signed offer to lend against a collateral."""

    lender: str
    collateral: Collateral
    terms: LoanOfferTerms
    fee: FeeTerms
    expiration: int
    """Unix timestamp (seconds) after which the offer is expired."""

    salt: int
    """Random value identifying the offer for cancellation."""

    nonce: int
    """Lender's on-chain nonce when the offer was signed."""

    offer_type: ClassVar[OfferType] = OfferType.LOAN_OFFER
    primary_type: ClassVar[str] = "LoanOffer"

    def __post_init__(self):
        _set(self, "lender", _checksum(self.lender, "lender"))
        if not isinstance(self.terms, LoanOfferTerms):
            raise ValueError("LoanOffer requires LoanOfferTerms")
        self._check_common()

    @property
    def maker(self) -> str:
        return self.lender

    def to_message(self) -> Dict[str, Any]:
        return {
            "lender": self.lender,
            "collateral": self.collateral.to_message(),
            "terms": self.terms.to_message(),
            "fee": self.fee.to_message(),
            "expiration": self.expiration,
            "salt": self.salt,
            "nonce": self.nonce,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "LoanOffer":
        return cls(
            lender=data["lender"],
            collateral=Collateral.from_message(data["collateral"]),
            terms=LoanOfferTerms.from_message(data["terms"]),
            fee=FeeTerms.from_message(data["fee"]),
            expiration=parse_uint(data["expiration"], "expiration"),
            salt=parse_uint(data["salt"], "salt"),
            nonce=parse_uint(data["nonce"], "nonce"),
        )


@dataclass(frozen=True)
class BorrowOffer(_OfferMixin):
    """Borrower's signed request for a loan against collateral they hold."""

    borrower: str
    collateral: Collateral
    terms: BorrowOfferTerms
    fee: FeeTerms
    expiration: int
    salt: int
    nonce: int

    offer_type: ClassVar[OfferType] = OfferType.BORROWER_OFFER
    primary_type: ClassVar[str] = "BorrowOffer"

    def __post_init__(self):
        _set(self, "borrower", _checksum(self.borrower, "borrower"))
        if not isinstance(self.terms, BorrowOfferTerms):
            raise ValueError("BorrowOffer requires BorrowOfferTerms")
        self._check_common()

    @property
    def maker(self) -> str:
        return self.borrower

    def to_message(self) -> Dict[str, Any]:
        return {
            "borrower": self.borrower,
            "collateral": self.collateral.to_message(),
            "terms": self.terms.to_message(),
            "fee": self.fee.to_message(),
            "expiration": self.expiration,
            "salt": self.salt,
            "nonce": self.nonce,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "BorrowOffer":
        return cls(
            borrower=data["borrower"],
            collateral=Collateral.from_message(data["collateral"]),
            terms=BorrowOfferTerms.from_message(data["terms"]),
            fee=FeeTerms.from_message(data["fee"]),
            expiration=parse_uint(data["expiration"], "expiration"),
            salt=parse_uint(data["salt"], "salt"),
            nonce=parse_uint(data["nonce"], "nonce"),
        )


@dataclass(frozen=True)
class MarketOffer(_OfferMixin):
    """Signed bid (buy) or ask (sell) for a collateral.

    Ask offers never carry a loan: ``with_loan``, ``borrow_amount`` and
    ``loan_offer_hash`` are cleared on construction.
    """

    side: Side
    maker: str
    collateral: Collateral
    terms: MarketOfferTerms
    fee: FeeTerms
    expiration: int
    salt: int
    nonce: int

    offer_type: ClassVar[OfferType] = OfferType.MARKET_OFFER
    primary_type: ClassVar[str] = "MarketOffer"

    def __post_init__(self):
        _set(self, "side", Side(self.side))
        _set(self, "maker", _checksum(self.maker, "maker"))
        if not isinstance(self.terms, MarketOfferTerms):
            raise ValueError("MarketOffer requires MarketOfferTerms")
        if self.side == Side.ASK and (
            self.terms.with_loan
            or self.terms.borrow_amount
            or self.terms.loan_offer_hash != BYTES_ZERO
        ):
            _set(
                self,
                "terms",
                replace(self.terms, with_loan=False, borrow_amount=0, loan_offer_hash=BYTES_ZERO),
            )
        self._check_common()

    def to_message(self) -> Dict[str, Any]:
        return {
            "side": int(self.side),
            "maker": self.maker,
            "collateral": self.collateral.to_message(),
            "terms": self.terms.to_message(),
            "fee": self.fee.to_message(),
            "expiration": self.expiration,
            "salt": self.salt,
            "nonce": self.nonce,
        }

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "MarketOffer":
        return cls(
            side=Side(parse_uint(data["side"], "side")),
            maker=data["maker"],
            collateral=Collateral.from_message(data["collateral"]),
            terms=MarketOfferTerms.from_message(data["terms"]),
            fee=FeeTerms.from_message(data["fee"]),
            expiration=parse_uint(data["expiration"], "expiration"),
            salt=parse_uint(data["salt"], "salt"),
            nonce=parse_uint(data["nonce"], "nonce"),
        )


Offer = Union[LoanOffer, BorrowOffer, MarketOffer]

OFFER_CLASSES = {
    OfferType.LOAN_OFFER: LoanOffer,
    OfferType.BORROWER_OFFER: BorrowOffer,
    OfferType.MARKET_OFFER: MarketOffer,
}


@dataclass(frozen=True)
class Lien:
    """On-chain record of an active loan, fetched from the settlement contract."""

    recipient: str
    """Fee recipient."""

    borrower: str
    currency: str
    collection: str
    item_type: ItemType
    token_id: int
    size: int
    principal: int
    rate: int
    default_rate: int
    fee: int
    """Protocol fee rate in basis points."""

    duration: int
    grace_period: int
    start_time: int

    lender: Optional[str] = None
    """Current lender; known off-chain only (not part of the on-chain struct)."""

    def __post_init__(self):
        for name in ("recipient", "borrower", "currency", "collection"):
            _set(self, name, _checksum(getattr(self, name), name))
        if self.lender is not None:
            _set(self, "lender", _checksum(self.lender, "lender"))
        _set(self, "item_type", ItemType(self.item_type))
        _check_uints(
            self,
            "token_id",
            "size",
            "principal",
            "rate",
            "default_rate",
            "fee",
            "duration",
            "grace_period",
            "start_time",
        )

    @property
    def end_time(self) -> int:
        """Maturity: after this the default rate applies."""
        return self.start_time + self.duration

    @property
    def default_time(self) -> int:
        """End of the grace period: after this the lien can be claimed."""
        return self.start_time + self.duration + self.grace_period

    def to_message(self) -> Dict[str, Any]:
        data = {
            "recipient": self.recipient,
            "borrower": self.borrower,
            "currency": self.currency,
            "collection": self.collection,
            "itemType": int(self.item_type),
            "tokenId": self.token_id,
            "size": self.size,
            "principal": self.principal,
            "rate": self.rate,
            "defaultRate": self.default_rate,
            "fee": self.fee,
            "duration": self.duration,
            "gracePeriod": self.grace_period,
            "startTime": self.start_time,
        }
        if self.lender is not None:
            data["lender"] = self.lender
        return data

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "Lien":
        uints = {
            "token_id": "tokenId",
            "size": "size",
            "principal": "principal",
            "rate": "rate",
            "default_rate": "defaultRate",
            "fee": "fee",
            "duration": "duration",
            "grace_period": "gracePeriod",
            "start_time": "startTime",
        }
        return cls(
            recipient=data["recipient"],
            borrower=data["borrower"],
            currency=data["currency"],
            collection=data["collection"],
            item_type=ItemType(parse_uint(data["itemType"], "itemType")),
            lender=data.get("lender"),
            **{attr: parse_uint(data[key], key) for attr, key in uints.items()},
        )


@dataclass(frozen=True)
class OfferWithSignature:
    """An offer bundled with its maker's EIP-712 signature."""

    offer: Offer
    signature: str

    @property
    def offer_type(self) -> OfferType:
        return self.offer.offer_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": int(self.offer_type),
            "offer": self.offer.to_message(),
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfferWithSignature":
        offer_cls = OFFER_CLASSES[OfferType(parse_uint(data["type"], "type"))]
        return cls(offer=offer_cls.from_message(data["offer"]), signature=data["signature"])


# EIP-712 types for offers
COLLATERAL_TYPE = [
    {"name": "collection", "type": "address"},
    {"name": "criteria", "type": "uint8"},
    {"name": "itemType", "type": "uint8"},
    {"name": "identifier", "type": "uint256"},
    {"name": "size", "type": "uint256"},
]

FEE_TERMS_TYPE = [
    {"name": "recipient", "type": "address"},
    {"name": "rate", "type": "uint256"},
]

LOAN_OFFER_TERMS_TYPE = [
    {"name": "currency", "type": "address"},
    {"name": "totalAmount", "type": "uint256"},
    {"name": "maxAmount", "type": "uint256"},
    {"name": "minAmount", "type": "uint256"},
    {"name": "rate", "type": "uint256"},
    {"name": "defaultRate", "type": "uint256"},
    {"name": "duration", "type": "uint256"},
    {"name": "gracePeriod", "type": "uint256"},
]

BORROW_OFFER_TERMS_TYPE = [
    {"name": "currency", "type": "address"},
    {"name": "amount", "type": "uint256"},
    {"name": "rate", "type": "uint256"},
    {"name": "defaultRate", "type": "uint256"},
    {"name": "duration", "type": "uint256"},
    {"name": "gracePeriod", "type": "uint256"},
]

MARKET_OFFER_TERMS_TYPE = [
    {"name": "currency", "type": "address"},
    {"name": "amount", "type": "uint256"},
    {"name": "withLoan", "type": "bool"},
    {"name": "borrowAmount", "type": "uint256"},
    {"name": "loanOfferHash", "type": "bytes32"},
]

LOAN_OFFER_TYPES = {
    "LoanOffer": [
        {"name": "lender", "type": "address"},
        {"name": "collateral", "type": "Collateral"},
        {"name": "terms", "type": "LoanOfferTerms"},
        {"name": "fee", "type": "FeeTerms"},
        {"name": "expiration", "type": "uint256"},
        {"name": "salt", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
    ],
    "Collateral": COLLATERAL_TYPE,
    "LoanOfferTerms": LOAN_OFFER_TERMS_TYPE,
    "FeeTerms": FEE_TERMS_TYPE,
}

BORROW_OFFER_TYPES = {
    "BorrowOffer": [
        {"name": "borrower", "type": "address"},
        {"name": "collateral", "type": "Collateral"},
        {"name": "terms", "type": "BorrowOfferTerms"},
        {"name": "fee", "type": "FeeTerms"},
        {"name": "expiration", "type": "uint256"},
        {"name": "salt", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
    ],
    "Collateral": COLLATERAL_TYPE,
    "BorrowOfferTerms": BORROW_OFFER_TERMS_TYPE,
    "FeeTerms": FEE_TERMS_TYPE,
}

MARKET_OFFER_TYPES = {
    "MarketOffer": [
        {"name": "side", "type": "uint8"},
        {"name": "maker", "type": "address"},
        {"name": "collateral", "type": "Collateral"},
        {"name": "terms", "type": "MarketOfferTerms"},
        {"name": "fee", "type": "FeeTerms"},
        {"name": "expiration", "type": "uint256"},
        {"name": "salt", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
    ],
    "Collateral": COLLATERAL_TYPE,
    "MarketOfferTerms": MARKET_OFFER_TERMS_TYPE,
    "FeeTerms": FEE_TERMS_TYPE,
}

OFFER_TYPES = {
    OfferType.LOAN_OFFER: LOAN_OFFER_TYPES,
    OfferType.BORROWER_OFFER: BORROW_OFFER_TYPES,
    OfferType.MARKET_OFFER: MARKET_OFFER_TYPES,
}
