"""Batched contract reads through Multicall3 ``aggregate3``.

Every call carries a typed reference key so a decoded result can be matched
back to the offer or maker that asked for it. Keys are built once and shared
between request building and result lookup; addresses inside keys are
lower-cased on construction.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from ..errors import TransportError
from .abi import ContractFunction, Multicall3ABI
from .rpc import ChainProvider

logger = logging.getLogger(__name__)

MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"
DEFAULT_CHUNK_SIZE = 240


def _lower(obj: Any, name: str) -> None:
    object.__setattr__(obj, name, getattr(obj, name).lower())


@dataclass(frozen=True)
class MakerRef:
    """Per-maker fact: balance, allowance, approval, nonce."""

    maker: str

    def __post_init__(self):
        _lower(self, "maker")


@dataclass(frozen=True)
class SaltRef:
    """Salt-scoped fact: cancellation flag."""

    maker: str
    salt: int

    def __post_init__(self):
        _lower(self, "maker")


@dataclass(frozen=True)
class TokenRef:
    """Token-scoped fact: ERC-721 owner."""

    identifier: int


@dataclass(frozen=True)
class HolderTokenRef:
    """Holder and token scoped fact: ERC-1155 balance."""

    maker: str
    identifier: int

    def __post_init__(self):
        _lower(self, "maker")


@dataclass(frozen=True)
class OfferHashRef:
    """Offer-scoped fact: amount taken."""

    offer_hash: str

    def __post_init__(self):
        _lower(self, "offer_hash")


@dataclass(frozen=True)
class CollateralId:
    """A specific token of a collection, used to look up lien debt."""

    collection: str
    identifier: int

    def __post_init__(self):
        _lower(self, "collection")

    def __str__(self) -> str:
        return f"{self.collection}/{self.identifier}"


Ref = Union[MakerRef, SaltRef, TokenRef, HolderTokenRef, OfferHashRef, CollateralId]


@dataclass(frozen=True)
class CallKey:
    method: str
    ref: Ref


@dataclass(frozen=True)
class ContractCall:
    """One read in a batch."""

    target: str
    key: CallKey
    function: ContractFunction
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "target", to_checksum_address(self.target))

    @property
    def calldata(self) -> bytes:
        return self.function.encode_call(*self.args)


@dataclass(frozen=True)
class CallResult:
    success: bool
    value: Any = None
    """Decoded return value; a tuple when the function has several outputs."""


@dataclass
class MulticallResults:
    """Decoded batch results, looked up by target contract and key."""

    results: Dict[Tuple[str, CallKey], CallResult] = field(default_factory=dict)

    def get(self, target: str, key: CallKey) -> Optional[CallResult]:
        return self.results.get((target.lower(), key))

    def __len__(self) -> int:
        return len(self.results)


class MulticallBatch:
    """Collects calls for one round trip.

    Within a target contract every key must identify exactly one call:
    adding an identical call twice is a no-op, adding a different call under
    an existing key raises ``ValueError``.
    """

    def __init__(self):
        self._calls: Dict[Tuple[str, CallKey], ContractCall] = {}

    def add(
        self, target: str, key: CallKey, function: ContractFunction, *args: Any
    ) -> None:
        call = ContractCall(target, key, function, tuple(args))
        slot = (call.target.lower(), key)
        existing = self._calls.get(slot)
        if existing is not None:
            if existing != call:
                raise ValueError(f"Conflicting calls for key {key} on {call.target}")
            return
        self._calls[slot] = call

    @property
    def calls(self) -> List[ContractCall]:
        return list(self._calls.values())

    def __len__(self) -> int:
        return len(self._calls)


def _decode(call: ContractCall, success: bool, data: bytes) -> CallResult:
    if not success:
        return CallResult(success=False)
    try:
        decoded = call.function.decode_output(data)
    except (DecodingError, ValueError, TypeError):
        # e.g. empty return data from a non-contract address
        return CallResult(success=False)
    if len(decoded) == 1:
        return CallResult(success=True, value=decoded[0])
    return CallResult(success=True, value=decoded)


class Multicall:
    """Executes a ``MulticallBatch`` against Multicall3.

    Args:
        provider: Chain provider used for ``eth_call``
        address: Multicall3 deployment (default: canonical address)
        chunk_size: Maximum calls per ``aggregate3`` request
    """

    def __init__(
        self,
        provider: ChainProvider,
        address: str = MULTICALL3_ADDRESS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size <= 0:
            raise ValueError(f"Invalid chunk_size: {chunk_size}. Must be positive")
        self.provider = provider
        self.address = to_checksum_address(address)
        self.chunk_size = chunk_size

    async def _execute_chunk(self, calls: List[ContractCall]) -> List[CallResult]:
        payload = [(call.target, True, call.calldata) for call in calls]
        data = await self.provider.call(
            self.address, Multicall3ABI.aggregate3.encode_call(payload)
        )
        try:
            (returned,) = Multicall3ABI.aggregate3.decode_output(data)
        except (DecodingError, ValueError) as e:
            raise TransportError(f"Malformed multicall response: {e}") from e
        if len(returned) != len(calls):
            raise TransportError(
                f"Multicall returned {len(returned)} results for {len(calls)} calls"
            )
        return [
            _decode(call, success, return_data)
            for call, (success, return_data) in zip(calls, returned)
        ]

    async def execute(self, batch: MulticallBatch) -> MulticallResults:
        """Run every call in ``batch``.

        A failed chunk leaves its keys missing from the results. If every
        chunk fails the error is raised.

        Raises:
            TransportError: If no chunk could be executed
        """
        calls = batch.calls
        results = MulticallResults()
        if not calls:
            return results

        chunks = [
            calls[i : i + self.chunk_size] for i in range(0, len(calls), self.chunk_size)
        ]
        logger.debug("Executing %d calls in %d multicall chunk(s)", len(calls), len(chunks))

        outcomes = await asyncio.gather(
            *(self._execute_chunk(chunk) for chunk in chunks), return_exceptions=True
        )

        errors = []
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, TransportError):
                logger.warning("Multicall chunk of %d calls failed: %s", len(chunk), outcome)
                errors.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            for call, result in zip(chunk, outcome):
                results.results[(call.target.lower(), call.key)] = result

        if len(errors) == len(chunks):
            raise errors[0]
        return results
