"""Shared fixtures."""

import pytest

from kettle_sdk import KettleClient
from kettle_sdk.offers import create_eip712_domain

from .fakes import (
    BORROWER_KEY,
    BUYER_KEY,
    CHAIN_ID,
    CONTRACT,
    LENDER_KEY,
    NOW,
    FakeChain,
    FakeSigner,
)


@pytest.fixture
def chain():
    return FakeChain(now=NOW)


@pytest.fixture
def domain():
    return create_eip712_domain(CONTRACT, CHAIN_ID)


@pytest.fixture
def client(chain):
    """Read-only client with a fixed clock."""
    return KettleClient(chain, {"contract_address": CONTRACT, "chain_id": CHAIN_ID}, clock=lambda: NOW)


@pytest.fixture
def lender(chain):
    return FakeSigner(LENDER_KEY, chain)


@pytest.fixture
def borrower(chain):
    return FakeSigner(BORROWER_KEY, chain)


@pytest.fixture
def buyer(chain):
    return FakeSigner(BUYER_KEY, chain)
