"""
test_wrapped_pool.py - Functional tests for a vault whose pool trades WETH

The vault only ever holds the native asset: wrapping happens on the way
into the pool and unwrapping on the way out.
"""

import pytest

from alignment_vault import WRAPPED_ESCROW_WALLET
from tests.world import build_world, swap, vault_solvency_gap, ETH, WETH, ALIGN, E18


@pytest.fixture
def weth_world():
    world = build_world(pool_base=WETH)
    world.vault.receive_contribution("alice", 10 * E18)
    world.vault.receive_contribution("bob", 5 * E18)
    world.vault.convert_and_add_liquidity(caller="keeper")
    return world


def _escrow_backs_wrapped(world):
    ledger = world.ledger
    return ledger.get_balance(WRAPPED_ESCROW_WALLET, ETH) == ledger.circulating_supply(WETH)


class TestWrappedConversion:

    def test_pool_orientation(self, weth_world):
        assert weth_world.key.currency0 == ALIGN
        assert weth_world.key.currency1 == WETH
        assert weth_world.config.pool_base_currency == WETH
        assert not weth_world.config.base_is_currency0

    def test_conversion_deploys(self, weth_world):
        vault = weth_world.vault
        record = vault.record(0)
        assert record.swap_amount_in == 15 * E18 // 2
        assert record.liquidity_delta > 0
        assert vault.position.liquidity == record.liquidity_delta

    def test_vault_holds_no_wrapped(self, weth_world):
        assert weth_world.ledger.get_balance(weth_world.vault.wallet_id, WETH) == 0
        assert _escrow_backs_wrapped(weth_world)
        assert vault_solvency_gap(weth_world) == (0, 0)


class TestWrappedFees:

    def test_harvest_unwraps_base_fees(self, weth_world):
        manager, key, vault = weth_world.manager, weth_world.key, weth_world.vault
        swap(manager, "trader", key, False, 10 * E18)
        swap(manager, "trader", key, True, 10_000 * E18)

        base, target = vault.harvest_fees()

        assert base > 0 and target > 0
        assert weth_world.ledger.get_balance(vault.wallet_id, WETH) == 0
        assert vault.fee_account(0).accumulated_fees == base
        assert _escrow_backs_wrapped(weth_world)
        assert vault_solvency_gap(weth_world) == (0, 0)

    def test_claim_pays_native(self, weth_world):
        vault, ledger = weth_world.vault, weth_world.ledger
        vault.record_accumulated_fees("dao", 0, 30, target_amount=30 * E18)
        result = vault.claim_benefactor_fees("alice")
        assert result.base_fees == 20
        assert result.base_from_target > 0
        assert ledger.get_balance("alice", ETH) == 990 * E18 + result.total_paid
        assert ledger.get_balance("alice", WETH) == 0
        assert _escrow_backs_wrapped(weth_world)

    def test_second_conversion(self, weth_world):
        vault = weth_world.vault
        vault.receive_contribution("carol", 4 * E18)
        vault.convert_and_add_liquidity(caller="keeper")
        assert vault.record_count == 2
        assert weth_world.ledger.get_balance(vault.wallet_id, WETH) == 0
        assert vault_solvency_gap(weth_world) == (0, 0)
