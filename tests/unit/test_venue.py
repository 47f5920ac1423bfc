"""
test_venue.py - Unit tests for the reference pool manager

Tests:
- Pool initialization and validation
- Two-phase settlement: unlock, settle/take, unsettled deltas, nesting
- Swaps: output, price movement, quote parity
- Liquidity: add/remove, fee accrual, donations
"""

import pytest
from decimal import Decimal

from alignment_vault import (
    PoolKey, full_range_ticks, price_to_sqrt_price_x96,
    VenueError, PoolNotInitialized, ManagerLocked, AlreadyUnlocked,
    CurrencyNotSettled, InsufficientBalance,
)
from tests.world import (
    ETH, ALIGN, E18, fund, settle_all, seed_liquidity, swap, donate,
)


@pytest.fixture
def manager(world):
    return world.manager


@pytest.fixture
def key(world):
    return world.key


class TestInitialize:

    def test_initialize_returns_tick(self, world):
        key = PoolKey(ETH, ALIGN, 500, 10)
        tick = world.manager.initialize(key, price_to_sqrt_price_x96(Decimal("1")))
        assert tick == 0
        assert world.manager.is_initialized(key)
        assert world.manager.liquidity(key) == 0

    def test_double_initialize_rejected(self, manager, key):
        with pytest.raises(VenueError, match="already initialized"):
            manager.initialize(key, price_to_sqrt_price_x96(Decimal("1")))

    def test_unsorted_key_rejected(self, manager):
        with pytest.raises(VenueError, match="not sorted"):
            manager.initialize(PoolKey(ALIGN, ETH, 500, 10), price_to_sqrt_price_x96(Decimal("1")))

    def test_unknown_pool(self, manager):
        with pytest.raises(PoolNotInitialized):
            manager.slot0(PoolKey(ETH, "OTHER", 3000, 60))

    def test_seeded_pool_state(self, manager, key):
        assert manager.slot0(key).tick == 69081
        assert manager.slot0(key).lp_fee == 3000
        assert manager.liquidity(key) > 0


class TestUnlock:

    def test_unsettled_delta_reverts(self, world, manager, key):
        before = world.ledger.snapshot()['balances']
        slot = manager.slot0(key)

        def leave_owing(session):
            session.swap(key, True, E18)

        with pytest.raises(CurrencyNotSettled):
            manager.unlock(leave_owing, locker="trader")
        assert manager.slot0(key) == slot
        assert world.ledger.snapshot()['balances'] == before
        assert not manager.is_unlocked

    def test_nested_unlock_rejected(self, manager, key):
        def nested(session):
            manager.unlock(lambda inner: None, locker="trader")

        with pytest.raises(AlreadyUnlocked):
            manager.unlock(nested, locker="trader")
        assert not manager.is_unlocked

    def test_session_dead_after_unlock(self, manager):
        captured = []
        manager.unlock(captured.append, locker="trader")
        with pytest.raises(ManagerLocked):
            captured[0].settle(ETH, 1)

    def test_continuation_result_returned(self, manager):
        assert manager.unlock(lambda session: 42, locker="trader") == 42

    def test_raising_continuation_reverts(self, world, manager, key):
        slot = manager.slot0(key)

        def fail(session):
            session.swap(key, True, E18)
            settle_all(session, key)
            raise RuntimeError("abort")

        trader_eth = world.ledger.get_balance("trader", ETH)
        with pytest.raises(RuntimeError):
            manager.unlock(fail, locker="trader")
        assert manager.slot0(key) == slot
        assert world.ledger.get_balance("trader", ETH) == trader_eth

    def test_settle_requires_funds(self, manager, key):
        def overpay(session):
            session.settle(ETH, 10**30)

        with pytest.raises(InsufficientBalance):
            manager.unlock(overpay, locker="trader")

    def test_settle_and_take_must_be_positive(self, manager):
        def zero(session):
            session.settle(ETH, 0)

        with pytest.raises(VenueError):
            manager.unlock(zero, locker="trader")


class TestSwap:

    def test_zero_for_one_moves_price_down(self, world, manager, key):
        before = manager.slot0(key).sqrt_price_x96
        delta = swap(manager, "trader", key, True, E18)
        assert delta.amount0 == -E18
        assert delta.amount1 > 0
        assert manager.slot0(key).sqrt_price_x96 < before
        assert world.ledger.get_balance("trader", ALIGN) == 1_000_000 * E18 + delta.amount1

    def test_one_for_zero_moves_price_up(self, manager, key):
        before = manager.slot0(key).sqrt_price_x96
        delta = swap(manager, "trader", key, False, 1000 * E18)
        assert delta.amount1 == -1000 * E18
        assert delta.amount0 > 0
        assert manager.slot0(key).sqrt_price_x96 > before

    def test_output_roughly_at_price(self, manager, key):
        delta = swap(manager, "trader", key, True, E18 // 1000)
        # 0.001 ETH at ~1000 ALIGN/ETH less the 0.3% fee
        assert delta.amount1 / E18 == pytest.approx(0.997, rel=1e-3)

    def test_quote_matches_execution(self, manager, key):
        quote = manager.quote_swap(key, True, 3 * E18)
        delta = swap(manager, "trader", key, True, 3 * E18)
        assert quote.amount_out == delta.amount1
        assert quote.amount_in == 3 * E18
        assert quote.sqrt_price_after == manager.slot0(key).sqrt_price_x96

    def test_quote_has_no_side_effects(self, manager, key):
        slot = manager.slot0(key)
        manager.quote_swap(key, False, 5000 * E18)
        assert manager.slot0(key) == slot

    def test_zero_amount_rejected(self, manager, key):
        with pytest.raises(VenueError):
            swap(manager, "trader", key, True, 0)

    def test_reserves_are_ledger_balances(self, world, manager, key):
        reserves_before = world.ledger.get_balance(manager.wallet_id, ETH)
        swap(manager, "trader", key, True, E18)
        assert world.ledger.get_balance(manager.wallet_id, ETH) == reserves_before + E18


class TestLiquidity:

    def test_remove_returns_principal(self, world, manager, key):
        lower, upper = full_range_ticks(60)
        fund(world.ledger, "lp2", ETH, 10 * E18)
        fund(world.ledger, "lp2", ALIGN, 10_000 * E18)
        liquidity = seed_liquidity(manager, key, "lp2", 10 * E18, 10_000 * E18, salt="x")

        def remove(session):
            session.modify_liquidity(key, lower, upper, -liquidity, "x")
            settle_all(session, key)

        manager.unlock(remove, locker="lp2")
        # Rounding favours the pool by at most a unit per side
        assert 10 * E18 - 1 <= world.ledger.get_balance("lp2", ETH) <= 10 * E18
        assert manager.get_position(key, "lp2", lower, upper, "x").liquidity == 0

    def test_fees_accrue_to_in_range_position(self, world, manager, key):
        lower, upper = full_range_ticks(60)
        swap(manager, "trader", key, True, 10 * E18)

        def poke(session):
            _, fees = session.modify_liquidity(key, lower, upper, 0, "lp")
            settle_all(session, key)
            return fees

        fees = manager.unlock(poke, locker="lp")
        # The seeding LP is the only liquidity: 0.3% of 10 ETH, up to rounding
        assert abs(fees.amount0 - 30 * E18 // 1000) <= 10
        assert fees.amount1 == 0

    def test_poke_empty_position_rejected(self, manager, key):
        lower, upper = full_range_ticks(60)

        def poke(session):
            session.modify_liquidity(key, lower, upper, 0, "nobody")

        with pytest.raises(VenueError):
            manager.unlock(poke, locker="trader")

    def test_misaligned_range_rejected(self, manager, key):
        def add(session):
            session.modify_liquidity(key, -61, 60, 10**18)

        with pytest.raises(VenueError, match="spacing"):
            manager.unlock(add, locker="trader")

    def test_concentrated_range_ticks_cleared_on_removal(self, world, manager, key):
        tick = manager.slot0(key).tick
        lower, upper = (tick // 60 - 10) * 60, (tick // 60 + 10) * 60
        seed_liquidity(manager, key, "lp", 10 * E18, 10_000 * E18, lower, upper, salt="narrow")
        pool = manager.pools[key.pool_id]
        assert lower in pool.initialized_ticks and upper in pool.initialized_ticks
        liquidity = manager.get_position(key, "lp", lower, upper, "narrow").liquidity

        def remove(session):
            session.modify_liquidity(key, lower, upper, -liquidity, "narrow")
            settle_all(session, key)

        manager.unlock(remove, locker="lp")
        pool = manager.pools[key.pool_id]
        assert lower not in pool.initialized_ticks and upper not in pool.initialized_ticks

    def test_swap_across_narrow_range(self, world, manager, key):
        tick = manager.slot0(key).tick
        lower, upper = (tick // 60 - 2) * 60, (tick // 60 + 2) * 60
        in_range_before = manager.liquidity(key)
        seed_liquidity(manager, key, "lp", 50 * E18, 50_000 * E18, lower, upper, salt="narrow")
        assert manager.liquidity(key) > in_range_before
        swap(manager, "trader", key, True, 200 * E18)
        assert manager.slot0(key).tick < lower
        assert manager.liquidity(key) == in_range_before


class TestDonate:

    def test_donation_paid_to_lp(self, world, manager, key):
        lower, upper = full_range_ticks(60)
        donate(manager, "trader", key, E18, 0)

        def poke(session):
            _, fees = session.modify_liquidity(key, lower, upper, 0, "lp")
            settle_all(session, key)
            return fees

        fees = manager.unlock(poke, locker="lp")
        assert E18 - 10 <= fees.amount0 <= E18

    def test_donation_needs_liquidity(self, world):
        key = PoolKey(ETH, ALIGN, 500, 10)
        world.manager.initialize(key, price_to_sqrt_price_x96(Decimal("1000")))
        with pytest.raises(VenueError, match="no in-range liquidity"):
            donate(world.manager, "trader", key, E18, 0)
