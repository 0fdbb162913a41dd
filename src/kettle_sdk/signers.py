"""Signers: typed-data signing plus transaction submission."""

import logging
from typing import Any, Dict, List, Protocol

from eth_account import Account
from eth_utils import to_checksum_address, to_hex

from .chain.contracts import TxRequest
from .chain.rpc import RpcClient
from .offers.signing import TypedDataSigner

logger = logging.getLogger(__name__)


class KettleSigner(TypedDataSigner, Protocol):
    """A TypedDataSigner that can also send transactions.

    Wallet integrations should raise ``TransactionRejectedError`` when the
    user declines a transaction.
    """

    async def send_transaction(self, tx: TxRequest) -> str:
        """Submit a transaction.

        Args:
            tx: Dict with ``to`` and ``data``

        Returns:
            Transaction hash as hex string
        """
        ...


def _coerce_value(types: Dict[str, List[Dict[str, str]]], type_name: str, value: Any) -> Any:
    if type_name in types:
        return _coerce_struct(types, type_name, value)
    if type_name.startswith(("uint", "int")) and isinstance(value, str):
        return int(value, 0)
    return value


def _coerce_struct(
    types: Dict[str, List[Dict[str, str]]], type_name: str, data: Dict[str, Any]
) -> Dict[str, Any]:
    # Wallet payloads carry uint256 values as decimal strings
    return {
        field["name"]: _coerce_value(types, field["type"], data[field["name"]])
        for field in types[type_name]
    }


class LocalAccountSigner:
    """Signer backed by a private key held in memory.

    Example:
        ```python
        rpc = RpcClient("https://rpc.example.org")
        signer = LocalAccountSigner(os.environ["PRIVATE_KEY"], rpc)
        ```
    """

    def __init__(self, private_key: str, rpc: RpcClient):
        self._account = Account.from_key(private_key)
        self.rpc = rpc

    @property
    def address(self) -> str:
        return self._account.address

    async def get_address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, params: Dict[str, Any]) -> str:
        types = {k: v for k, v in params["types"].items() if k != "EIP712Domain"}
        message = _coerce_struct(types, params["primaryType"], params["message"])
        signed = self._account.sign_typed_data(
            domain_data=params["domain"],
            message_types=types,
            message_data=message,
        )
        return to_hex(signed.signature)

    async def send_transaction(self, tx: TxRequest) -> str:
        request = {
            "from": self._account.address,
            "to": to_checksum_address(tx["to"]),
            "data": tx["data"],
            "value": tx.get("value", 0),
        }
        request["gas"] = tx.get("gas") or await self.rpc.estimate_gas(dict(request))
        request["gasPrice"] = tx.get("gasPrice") or await self.rpc.gas_price()
        request["nonce"] = await self.rpc.get_transaction_count(self._account.address)
        request["chainId"] = await self.rpc.chain_id()
        del request["from"]

        signed = self._account.sign_transaction(request)
        tx_hash = await self.rpc.send_raw_transaction(signed.raw_transaction)
        logger.info("Sent transaction %s to %s", tx_hash, request["to"])
        return tx_hash
