"""Chain access: JSON-RPC transport, contract ABIs and batched reads."""

from .abi import ERC20, ERC721, ERC1155, ContractFunction, KettleABI, Multicall3ABI
from .contracts import SettlementContract, TxRequest
from .multicall import (
    MULTICALL3_ADDRESS,
    CallKey,
    CallResult,
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
from .rpc import ChainProvider, RpcClient

__all__ = [
    # Transport
    "ChainProvider",
    "RpcClient",
    # ABI
    "ContractFunction",
    "ERC20",
    "ERC721",
    "ERC1155",
    "KettleABI",
    "Multicall3ABI",
    # Contracts
    "SettlementContract",
    "TxRequest",
    # Multicall
    "MULTICALL3_ADDRESS",
    "CallKey",
    "CallResult",
    "CollateralId",
    "HolderTokenRef",
    "MakerRef",
    "Multicall",
    "MulticallBatch",
    "MulticallResults",
    "OfferHashRef",
    "SaltRef",
    "TokenRef",
]
