"""Client configuration."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional, TypedDict

from eth_utils import is_address, to_checksum_address

from .chain.multicall import DEFAULT_CHUNK_SIZE, MULTICALL3_ADDRESS

DEFAULT_CONFIRMATION_TIMEOUT = 30.0


class KettleConfig(TypedDict, total=False):
    """Configuration for KettleClient."""

    contract_address: str
    """Kettle settlement contract address (required)."""

    rpc_url: str
    """JSON-RPC endpoint, used by ``RpcClient``."""

    chain_id: int
    """Chain ID; read from the node when omitted."""

    multicall_address: str
    """Multicall3 deployment (default: canonical address)."""

    multicall_chunk_size: int
    """Maximum calls per multicall request (default: 240)."""

    confirmation_timeout: float
    """Seconds to wait for a cancellation to be mined (default: 30)."""


@dataclass
class ResolvedKettleConfig:
    """Resolved configuration with defaults applied."""

    contract_address: str
    rpc_url: Optional[str] = None
    chain_id: Optional[int] = None
    multicall_address: str = MULTICALL3_ADDRESS
    multicall_chunk_size: int = DEFAULT_CHUNK_SIZE
    confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT


def resolve_config(config: KettleConfig) -> ResolvedKettleConfig:
    """Apply defaults and validate a KettleConfig.

    Raises:
        ValueError: If an address is missing or invalid, or a numeric
            setting is out of range
    """
    contract_address = config.get("contract_address")
    if not contract_address or not is_address(contract_address):
        raise ValueError(f"Invalid contract address: {contract_address}")

    multicall_address = config.get("multicall_address", MULTICALL3_ADDRESS)
    if not is_address(multicall_address):
        raise ValueError(f"Invalid multicall address: {multicall_address}")

    chunk_size = config.get("multicall_chunk_size", DEFAULT_CHUNK_SIZE)
    if chunk_size <= 0:
        raise ValueError(f"Invalid multicall_chunk_size: {chunk_size}. Must be positive")

    timeout = config.get("confirmation_timeout", DEFAULT_CONFIRMATION_TIMEOUT)
    if timeout <= 0:
        raise ValueError(f"Invalid confirmation_timeout: {timeout}. Must be positive")

    return ResolvedKettleConfig(
        contract_address=to_checksum_address(contract_address),
        rpc_url=config.get("rpc_url"),
        chain_id=config.get("chain_id"),
        multicall_address=to_checksum_address(multicall_address),
        multicall_chunk_size=chunk_size,
        confirmation_timeout=timeout,
    )


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> KettleConfig:
    """Build a KettleConfig from ``KETTLE_*`` environment variables.

    Reads ``KETTLE_CONTRACT_ADDRESS``, ``KETTLE_RPC_URL``, ``KETTLE_CHAIN_ID``,
    ``KETTLE_MULTICALL_ADDRESS``, ``KETTLE_MULTICALL_CHUNK_SIZE`` and
    ``KETTLE_CONFIRMATION_TIMEOUT``. Unset variables are left out.
    """
    env = os.environ if environ is None else environ
    config: KettleConfig = {}

    if env.get("KETTLE_CONTRACT_ADDRESS"):
        config["contract_address"] = env["KETTLE_CONTRACT_ADDRESS"]
    if env.get("KETTLE_RPC_URL"):
        config["rpc_url"] = env["KETTLE_RPC_URL"]
    if env.get("KETTLE_CHAIN_ID"):
        config["chain_id"] = int(env["KETTLE_CHAIN_ID"])
    if env.get("KETTLE_MULTICALL_ADDRESS"):
        config["multicall_address"] = env["KETTLE_MULTICALL_ADDRESS"]
    if env.get("KETTLE_MULTICALL_CHUNK_SIZE"):
        config["multicall_chunk_size"] = int(env["KETTLE_MULTICALL_CHUNK_SIZE"])
    if env.get("KETTLE_CONFIRMATION_TIMEOUT"):
        config["confirmation_timeout"] = float(env["KETTLE_CONFIRMATION_TIMEOUT"])

    return config
