"""Steps returned by the client for each user intent.

Every intent yields an ordered list: approval steps first, the terminal
action last. Building a step changes nothing; ``execute()`` submits it.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Sequence

from .chain.contracts import TxRequest
from .chain.rpc import ChainProvider
from .errors import (
    TransactionFailedError,
    TransactionRejectedError,
    TransactionUnconfirmedError,
    TransportError,
)
from .offers.signing import EIP712Domain, sign_offer_with_signer
from .offers.types import Offer, OfferType, OfferWithSignature
from .signers import KettleSigner

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    APPROVAL = "approval"
    CREATE = "create"
    TAKE = "take"
    REPAY = "repay"
    CLAIM = "claim"
    CANCEL = "cancel"
    INCREMENT_NONCE = "incrementNonce"


class ActionState(str, Enum):
    NEEDS_APPROVAL = "needs_approval"
    READY = "ready"
    EXECUTED = "executed"


class Action:
    """Base class for all steps."""

    type: ClassVar[ActionType]

    def __init__(self):
        self.executed = False

    async def execute(self) -> Any:
        raise NotImplementedError


class TransactionAction(Action):
    """A step that submits one transaction through the signer."""

    def __init__(self, signer: KettleSigner, tx: TxRequest):
        super().__init__()
        self.signer = signer
        self.tx = tx
        self.tx_hash: Optional[str] = None

    async def execute(self) -> str:
        """Submit the transaction.

        Returns:
            Transaction hash
        """
        self.tx_hash = await self.signer.send_transaction(self.tx)
        self.executed = True
        logger.debug("%s action submitted: %s", self.type.value, self.tx_hash)
        return self.tx_hash

    def __repr__(self) -> str:
        return f"{type(self).__name__}(to={self.tx['to']}, executed={self.executed})"


class ApprovalAction(TransactionAction):
    """ERC-20 ``approve`` or collection ``setApprovalForAll`` for the operator."""

    type = ActionType.APPROVAL

    def __init__(self, signer: KettleSigner, tx: TxRequest, token: str, operator: str):
        super().__init__(signer, tx)
        self.token = token
        self.operator = operator


class TakeOfferAction(TransactionAction):
    type = ActionType.TAKE


class RepayAction(TransactionAction):
    type = ActionType.REPAY


class ClaimAction(TransactionAction):
    type = ActionType.CLAIM


class IncrementNonceAction(TransactionAction):
    type = ActionType.INCREMENT_NONCE


class CancelOfferAction(TransactionAction):
    """Cancels one or more offer salts and waits for the transaction to be mined."""

    type = ActionType.CANCEL

    def __init__(
        self,
        signer: KettleSigner,
        tx: TxRequest,
        provider: ChainProvider,
        salts: Sequence[int],
        timeout: float,
    ):
        super().__init__(signer, tx)
        self.provider = provider
        self.salts = list(salts)
        self.timeout = timeout

    async def execute(self) -> Dict[str, Any]:
        """Submit the cancellation and wait for its receipt.

        Returns:
            Transaction receipt

        Raises:
            TransactionRejectedError: If the user rejected the transaction
            TransactionFailedError: If submission failed or the transaction reverted
            TransactionUnconfirmedError: If no receipt arrived within ``timeout``
        """
        try:
            tx_hash = await super().execute()
        except TransactionRejectedError:
            raise
        except Exception as e:
            logger.warning("Cancel transaction failed: %s", e)
            raise TransactionFailedError() from e

        try:
            receipt = await self.provider.wait_for_transaction_receipt(tx_hash, self.timeout)
        except (TimeoutError, asyncio.TimeoutError, TransportError) as e:
            raise TransactionUnconfirmedError(tx_hash) from e

        if receipt.get("status") in (0, "0x0"):
            raise TransactionFailedError()
        return receipt


class CreateOfferAction(Action):
    """Signs a new offer. Carries the typed-data payload for external wallets."""

    type = ActionType.CREATE

    def __init__(
        self,
        signer: KettleSigner,
        offer: Offer,
        domain: EIP712Domain,
        payload: Dict[str, Any],
    ):
        super().__init__()
        self.signer = signer
        self.offer = offer
        self.domain = domain
        self.payload = payload
        self.result: Optional[OfferWithSignature] = None

    @property
    def offer_type(self) -> OfferType:
        return self.offer.offer_type

    async def execute(self) -> OfferWithSignature:
        """Sign the offer.

        Returns:
            The offer with its maker's signature
        """
        signature = await sign_offer_with_signer(self.signer, self.offer, self.domain)
        self.result = OfferWithSignature(offer=self.offer, signature=signature)
        self.executed = True
        return self.result

    def __repr__(self) -> str:
        return f"CreateOfferAction(offer_type={self.offer_type.name}, executed={self.executed})"


def action_plan_state(actions: Sequence[Action]) -> ActionState:
    """State of an ordered plan.

    Returns:
        EXECUTED once the terminal action has run, NEEDS_APPROVAL while an
        approval step is pending, READY otherwise
    """
    if not actions:
        raise ValueError("Empty action plan")
    if actions[-1].executed:
        return ActionState.EXECUTED
    if any(isinstance(a, ApprovalAction) and not a.executed for a in actions):
        return ActionState.NEEDS_APPROVAL
    return ActionState.READY
