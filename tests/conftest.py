"""
conftest.py - Shared pytest fixtures for alignment vault tests

Provides common fixtures used across unit, functional and conformance tests:
- Bare ledgers and hosts
- A seeded pool manager
- Vaults (fresh, and after one conversion of alice=10 / bob=5)
"""

import pytest
from decimal import Decimal

from alignment_vault import (
    Ledger, Host, StaticCostRate,
    native_asset, wrapped_asset, token_asset,
)

from tests.world import build_world, fund, ETH, ALIGN, E18, START


@pytest.fixture
def ledger():
    """Ledger with ETH, WETH and ALIGN registered; no wallets funded."""
    ledger = Ledger("test", initial_time=START, verbose=False)
    ledger.register_asset(native_asset())
    ledger.register_asset(wrapped_asset())
    ledger.register_asset(token_asset(ALIGN, "Alignment Token"))
    return ledger


@pytest.fixture
def test_ledger():
    """Ledger in test mode (set_balance enabled)."""
    ledger = Ledger("test", initial_time=START, verbose=False, test_mode=True)
    ledger.register_asset(native_asset())
    ledger.register_asset(token_asset(ALIGN, "Alignment Token"))
    return ledger


@pytest.fixture
def host(ledger):
    return Host(ledger, StaticCostRate(Decimal("10")))


@pytest.fixture
def world():
    """Seeded ETH/ALIGN pool with a fresh vault on top."""
    return build_world()


@pytest.fixture
def vault(world):
    return world.vault


@pytest.fixture
def converted_world(world):
    """alice=10 ETH, bob=5 ETH converted once by keeper."""
    world.vault.receive_contribution("alice", 10 * E18)
    world.vault.receive_contribution("bob", 5 * E18)
    world.vault.convert_and_add_liquidity(caller="keeper")
    return world


@pytest.fixture
def funded_alice(ledger):
    fund(ledger, "alice", ETH, 100 * E18)
    return ledger
