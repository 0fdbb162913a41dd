"""Async chain access for EVM nodes through web3."""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

from aiohttp import ClientError
from eth_utils import to_checksum_address, to_hex
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    Web3Exception,
    Web3RPCError,
)

from ..errors import ContractCallReverted, TransportError

logger = logging.getLogger(__name__)


class ChainProvider(Protocol):
    """Read access to a chain, as used by validators and the client."""

    async def call(self, to: str, data: bytes) -> bytes:
        """Execute an ``eth_call`` and return the raw return data.

        Raises:
            ContractCallReverted: If the call reverts
            TransportError: If the request fails
        """
        ...

    async def chain_id(self) -> int:
        ...

    async def wait_for_transaction_receipt(
        self, tx_hash: str, timeout: float
    ) -> Dict[str, Any]:
        """Wait until ``tx_hash`` is mined.

        Raises:
            TimeoutError: If no receipt is available within ``timeout`` seconds
        """
        ...


def _rpc_error_code(error: Web3RPCError) -> Optional[int]:
    payload = (error.rpc_response or {}).get("error")
    if isinstance(payload, dict):
        return payload.get("code")
    return None


class RpcClient:
    """``ChainProvider`` backed by ``web3.AsyncWeb3``.

    Args:
        rpc_url: HTTP JSON-RPC endpoint
        w3: Preconfigured ``AsyncWeb3``; built from ``rpc_url`` when omitted
        poll_interval: Seconds between receipt polls

    Example:
        ```python
        async with RpcClient("https://rpc.example.org") as rpc:
            chain_id = await rpc.chain_id()
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        w3: Optional[AsyncWeb3] = None,
        poll_interval: float = 1.0,
    ):
        if not rpc_url:
            raise ValueError("rpc_url is required")
        self.rpc_url = rpc_url
        self.poll_interval = poll_interval
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._chain_id: Optional[int] = None

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def call(self, to: str, data: bytes) -> bytes:
        try:
            result = await self.w3.eth.call(
                {"to": to_checksum_address(to), "data": to_hex(data)}
            )
        except ContractLogicError as e:
            raise ContractCallReverted(f"Call reverted: {e}", code=3) from e
        except Web3RPCError as e:
            raise TransportError(f"eth_call failed: {e}", code=_rpc_error_code(e)) from e
        except (Web3Exception, ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"eth_call failed: {e}") from e
        return bytes(result)

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.w3.eth.chain_id
        return self._chain_id

    async def get_transaction_count(self, address: str) -> int:
        return await self.w3.eth.get_transaction_count(
            to_checksum_address(address), "pending"
        )

    async def gas_price(self) -> int:
        return await self.w3.eth.gas_price

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        try:
            return await self.w3.eth.estimate_gas(tx)
        except ContractLogicError as e:
            raise ContractCallReverted(f"Gas estimation reverted: {e}", code=3) from e

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        tx_hash = to_hex(await self.w3.eth.send_raw_transaction(raw_tx))
        logger.debug("Submitted transaction %s", tx_hash)
        return tx_hash

    async def wait_for_transaction_receipt(
        self, tx_hash: str, timeout: float
    ) -> Dict[str, Any]:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self.poll_interval
            )
        except TimeExhausted as e:
            raise TimeoutError(f"Transaction {tx_hash} not mined after {timeout}s") from e
        return dict(receipt)
