"""Kettle Offers Module.

Offer types, construction, and EIP-712 hashing and signing for the Kettle
settlement contract.

Key components:
- Loan, borrow and market (bid/ask) offers plus the on-chain Lien record
- Offer construction with random salts and the maker's nonce
- EIP-712 hashing, signing and local signature verification

Example usage:
    ```python
    from kettle_sdk.offers import (
        Side,
        create_eip712_domain,
        create_market_offer,
        sign_offer,
    )

    domain = create_eip712_domain("0x...", chain_id=1)

    ask = create_market_offer(
        Side.ASK,
        maker="0x...",
        params={
            "collection": "0x...",
            "identifier": 1234,
            "currency": "0x...",
            "amount": 10**18,
            "fee": 250,  # 2.5%
            "recipient": "0x...",
            "expiration": int(time.time()) + 86400,
        },
        nonce=0,
    )

    signature = sign_offer("0x...", ask, domain)
    ```
"""

from .types import (
    OfferType,
    Criteria,
    Side,
    ItemType,
    Collateral,
    FeeTerms,
    LoanOfferTerms,
    BorrowOfferTerms,
    MarketOfferTerms,
    LoanOffer,
    BorrowOffer,
    MarketOffer,
    Offer,
    Lien,
    OfferWithSignature,
    OFFER_TYPES,
)
from .formatting import (
    CreateLoanOfferInput,
    CreateBorrowOfferInput,
    CreateMarketOfferInput,
    create_loan_offer,
    create_borrow_offer,
    create_market_offer,
)
from .signing import (
    KETTLE_CONTRACT_NAME,
    KETTLE_CONTRACT_VERSION,
    EIP712Domain,
    TypedDataSigner,
    create_eip712_domain,
    get_offer_payload,
    hash_offer,
    offer_message_to_sign,
    sign_offer,
    sign_offer_with_signer,
    verify_offer_signature,
)
from .utils import (
    ZERO_ADDRESS,
    BYTES_ZERO,
    MAX_UINT256,
    calculate_market_fee,
    calculate_net_market_amount,
    equal_addresses,
    format_bps,
    format_units,
    generate_random_salt,
    get_epoch,
    parse_uint,
)

__all__ = [
    # Types
    "OfferType",
    "Criteria",
    "Side",
    "ItemType",
    "Collateral",
    "FeeTerms",
    "LoanOfferTerms",
    "BorrowOfferTerms",
    "MarketOfferTerms",
    "LoanOffer",
    "BorrowOffer",
    "MarketOffer",
    "Offer",
    "Lien",
    "OfferWithSignature",
    "OFFER_TYPES",
    # Construction
    "CreateLoanOfferInput",
    "CreateBorrowOfferInput",
    "CreateMarketOfferInput",
    "create_loan_offer",
    "create_borrow_offer",
    "create_market_offer",
    # Signing
    "KETTLE_CONTRACT_NAME",
    "KETTLE_CONTRACT_VERSION",
    "EIP712Domain",
    "TypedDataSigner",
    "create_eip712_domain",
    "get_offer_payload",
    "hash_offer",
    "offer_message_to_sign",
    "sign_offer",
    "sign_offer_with_signer",
    "verify_offer_signature",
    # Utils
    "ZERO_ADDRESS",
    "BYTES_ZERO",
    "MAX_UINT256",
    "calculate_market_fee",
    "calculate_net_market_amount",
    "equal_addresses",
    "format_bps",
    "format_units",
    "generate_random_salt",
    "get_epoch",
    "parse_uint",
]
