"""Point reads of token balances, allowances and approvals for one account."""

import logging

from eth_abi.exceptions import DecodingError

from ..chain.contracts import (
    erc20_allowance,
    erc20_balance_of,
    erc721_owner_of,
    erc1155_balance_of,
    is_approved_for_all,
)
from ..chain.rpc import ChainProvider
from ..errors import TransportError
from ..offers.types import Collateral, ItemType
from ..offers.utils import equal_addresses

logger = logging.getLogger(__name__)


async def currency_balance(
    provider: ChainProvider, owner: str, currency: str, required: int
) -> bool:
    """Check that ``owner`` holds at least ``required`` of an ERC-20."""
    balance = await erc20_balance_of(provider, currency, owner)
    return balance >= required


async def currency_allowance(
    provider: ChainProvider, owner: str, currency: str, spender: str
) -> int:
    return await erc20_allowance(provider, currency, owner, spender)


async def collateral_balance(
    provider: ChainProvider, owner: str, collateral: Collateral
) -> bool:
    """Check that ``owner`` holds the collateral.

    ERC-721: ``ownerOf(identifier) == owner``. ERC-1155:
    ``balanceOf(owner, identifier) >= size``. A failed read (e.g. an unminted
    token reverting ``ownerOf``) counts as not held.
    """
    try:
        if collateral.item_type == ItemType.ERC721:
            current_owner = await erc721_owner_of(
                provider, collateral.collection, collateral.identifier
            )
            return equal_addresses(current_owner, owner)

        balance = await erc1155_balance_of(
            provider, collateral.collection, owner, collateral.identifier
        )
        return balance >= collateral.size
    except (TransportError, DecodingError) as e:
        logger.debug(
            "Collateral read failed for %s #%d: %s",
            collateral.collection,
            collateral.identifier,
            e,
        )
        return False


async def collateral_approved_for_all(
    provider: ChainProvider, owner: str, collection: str, operator: str
) -> bool:
    return await is_approved_for_all(provider, collection, owner, operator)
