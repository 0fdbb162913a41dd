"""Offer Hashing and Signing for the Kettle protocol.

Provides EIP-712 functions that work with various wallet types:
- eth_account.Account (direct signing)
- Any async TypedDataSigner (browser wallets, custodial signers, etc.)
"""

from typing import Any, Dict, Protocol, TypedDict

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import is_address, keccak, to_checksum_address, to_hex

from .types import OFFER_TYPES, Offer


KETTLE_CONTRACT_NAME = "Kettle"
KETTLE_CONTRACT_VERSION = "3"

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


class EIP712Domain(TypedDict):
    """EIP-712 domain separator."""

    name: str
    version: str
    chainId: int
    verifyingContract: str


def create_eip712_domain(contract_address: str, chain_id: int) -> EIP712Domain:
    """Create EIP-712 domain for the Kettle settlement contract.

    Args:
        contract_address: Address of the settlement contract
        chain_id: Chain ID the contract is deployed on

    Returns:
        EIP-712 domain dictionary

    Raises:
        ValueError: If contract address is invalid
    """
    if not is_address(contract_address):
        raise ValueError(f"Invalid contract address: {contract_address}")

    return {
        "name": KETTLE_CONTRACT_NAME,
        "version": KETTLE_CONTRACT_VERSION,
        "chainId": chain_id,
        "verifyingContract": to_checksum_address(contract_address),
    }


def get_offer_payload(offer: Offer, domain: EIP712Domain) -> Dict[str, Any]:
    """Build the full EIP-712 typed-data payload for an offer.

    The payload is what external wallets expect for ``eth_signTypedData_v4``.
    """
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_TYPE,
            **OFFER_TYPES[offer.offer_type],
        },
        "primaryType": offer.primary_type,
        "domain": dict(domain),
        "message": offer.to_message(),
    }


def _signable_message(offer: Offer, domain: EIP712Domain) -> SignableMessage:
    return encode_typed_data(full_message=get_offer_payload(offer, domain))


def hash_offer(offer: Offer, domain: EIP712Domain) -> bytes:
    """EIP-712 struct hash of an offer.

    This is the offer's identity (the settlement contract's ``hash*Offer``);
    it covers every field including salt and nonce but not the domain.
    """
    return bytes(_signable_message(offer, domain).body)


def offer_message_to_sign(offer: Offer, domain: EIP712Domain) -> bytes:
    """Domain-bound digest a maker signs for an offer."""
    signable = _signable_message(offer, domain)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def sign_offer(private_key: str, offer: Offer, domain: EIP712Domain) -> str:
    """Sign an offer with EIP-712 using a private key.

    Use this when you have direct access to a private key.

    Args:
        private_key: Private key (hex string with or without 0x prefix)
        offer: Offer to sign
        domain: EIP-712 domain of the settlement contract

    Returns:
        Signature as 0x-prefixed hex string
    """
    types = OFFER_TYPES[offer.offer_type]

    account = Account.from_key(private_key)
    signed_message = account.sign_typed_data(
        domain_data=dict(domain),
        message_types=types,
        message_data=offer.to_message(),
    )

    return to_hex(signed_message.signature)


class TypedDataSigner(Protocol):
    """Protocol for signers that can sign EIP-712 typed data."""

    async def get_address(self) -> str:
        """Get the signer's address."""
        ...

    async def sign_typed_data(self, params: Dict[str, Any]) -> str:
        """Sign EIP-712 typed data.

        Args:
            params: Dict with domain, types, primaryType, and message

        Returns:
            Signature as hex string
        """
        ...


def _json_safe(value: Any) -> Any:
    # uint256 values do not fit JSON numbers; wallets accept decimal strings
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


async def sign_offer_with_signer(
    signer: TypedDataSigner,
    offer: Offer,
    domain: EIP712Domain,
) -> str:
    """Sign an offer with EIP-712 using any compatible signer.

    Args:
        signer: Signer that implements TypedDataSigner protocol
        offer: Offer to sign
        domain: EIP-712 domain of the settlement contract

    Returns:
        Signature as hex string
    """
    return await signer.sign_typed_data(
        {
            "domain": dict(domain),
            "types": OFFER_TYPES[offer.offer_type],
            "primaryType": offer.primary_type,
            "message": _json_safe(offer.to_message()),
        }
    )


def verify_offer_signature(
    offer: Offer,
    signature: str,
    domain: EIP712Domain,
    expected_maker: str,
) -> bool:
    """Verify an offer signature locally (for EOA signatures).

    Never raises: a malformed signature is reported as invalid.

    Args:
        offer: Signed offer
        signature: EIP-712 signature (hex string)
        domain: EIP-712 domain of the settlement contract
        expected_maker: Expected signer address

    Returns:
        True if signature is valid and from expected maker
    """
    try:
        signable_message = _signable_message(offer, domain)
        recovered = Account.recover_message(
            signable_message,
            signature=bytes.fromhex(
                signature[2:] if signature.startswith("0x") else signature
            ),
        )
        return recovered.lower() == expected_maker.lower()
    except Exception:
        return False
