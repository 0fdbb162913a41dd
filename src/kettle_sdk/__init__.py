"""Kettle SDK.

Off-chain toolkit for the Kettle NFT lending and marketplace protocol.
"""

from .actions import (
    Action,
    ActionState,
    ActionType,
    ApprovalAction,
    CancelOfferAction,
    ClaimAction,
    CreateOfferAction,
    IncrementNonceAction,
    RepayAction,
    TakeOfferAction,
    action_plan_state,
)
from .chain import ChainProvider, RpcClient
from .client import KettleClient
from .config import KettleConfig, ResolvedKettleConfig, config_from_env, resolve_config
from .errors import (
    ContractCallReverted,
    KettleError,
    OfferValidationError,
    SignerRequiredError,
    TransactionFailedError,
    TransactionRejectedError,
    TransactionUnconfirmedError,
    TransportError,
)
from .lending import DebtAmount, SettlementPreview
from .offers import (
    BorrowOffer,
    Collateral,
    Criteria,
    FeeTerms,
    ItemType,
    Lien,
    LoanOffer,
    MarketOffer,
    OfferType,
    OfferWithSignature,
    Side,
)
from .signers import KettleSigner, LocalAccountSigner
from .validation import OfferVerdict

__version__ = "0.1.0"

__all__ = [
    # Client
    "KettleClient",
    "KettleConfig",
    "ResolvedKettleConfig",
    "config_from_env",
    "resolve_config",
    # Chain
    "ChainProvider",
    "RpcClient",
    "KettleSigner",
    "LocalAccountSigner",
    # Offers
    "BorrowOffer",
    "Collateral",
    "Criteria",
    "FeeTerms",
    "ItemType",
    "Lien",
    "LoanOffer",
    "MarketOffer",
    "OfferType",
    "OfferWithSignature",
    "Side",
    # Lending
    "DebtAmount",
    "SettlementPreview",
    "OfferVerdict",
    # Actions
    "Action",
    "ActionState",
    "ActionType",
    "ApprovalAction",
    "CancelOfferAction",
    "ClaimAction",
    "CreateOfferAction",
    "IncrementNonceAction",
    "RepayAction",
    "TakeOfferAction",
    "action_plan_state",
    # Errors
    "ContractCallReverted",
    "KettleError",
    "OfferValidationError",
    "SignerRequiredError",
    "TransactionFailedError",
    "TransactionRejectedError",
    "TransactionUnconfirmedError",
    "TransportError",
]
