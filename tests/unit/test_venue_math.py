"""
test_venue_math.py - Unit tests for concentrated-liquidity math

Tests:
- Tick <-> sqrt price conversion and its bounds
- Amount deltas and rounding direction
- Swap step accounting
- Position sizing never over-commits the supplied amounts
"""

import pytest
from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from alignment_vault import (
    MIN_TICK, MAX_TICK, Q96, MIN_SQRT_RATIO, MAX_SQRT_RATIO,
    tick_to_sqrt_price_x96, sqrt_price_x96_to_tick,
    price_to_sqrt_price_x96, sqrt_price_x96_to_price,
    full_range_ticks, compute_swap_step,
    get_amount0_delta, get_amount1_delta,
    get_liquidity_for_amounts, get_amounts_for_liquidity,
)


class TestTickConversion:

    def test_tick_zero_is_unit_price(self):
        assert tick_to_sqrt_price_x96(0) == Q96
        assert sqrt_price_x96_to_tick(Q96) == 0

    def test_monotonic(self):
        assert tick_to_sqrt_price_x96(-1) < tick_to_sqrt_price_x96(0) < tick_to_sqrt_price_x96(1)

    def test_bounds(self):
        assert MIN_SQRT_RATIO == tick_to_sqrt_price_x96(MIN_TICK)
        assert MAX_SQRT_RATIO == tick_to_sqrt_price_x96(MAX_TICK)
        with pytest.raises(ValueError):
            tick_to_sqrt_price_x96(MAX_TICK + 1)
        with pytest.raises(ValueError):
            sqrt_price_x96_to_tick(MIN_SQRT_RATIO - 1)

    @given(st.integers(min_value=MIN_TICK, max_value=MAX_TICK - 1))
    @settings(max_examples=60, deadline=None)
    def test_tick_roundtrip(self, tick):
        assert sqrt_price_x96_to_tick(tick_to_sqrt_price_x96(tick)) == tick

    @given(st.integers(min_value=MIN_TICK, max_value=MAX_TICK - 1))
    @settings(max_examples=30, deadline=None)
    def test_between_ticks_rounds_down(self, tick):
        low = tick_to_sqrt_price_x96(tick)
        high = tick_to_sqrt_price_x96(tick + 1)
        if high - low > 1:
            assert sqrt_price_x96_to_tick(low + (high - low) // 2) == tick

    def test_price_roundtrip(self):
        sqrt_price = price_to_sqrt_price_x96(Decimal("1000"))
        price = sqrt_price_x96_to_price(sqrt_price)
        assert abs(price - Decimal("1000")) < Decimal("1e-20")

    def test_price_must_be_positive(self):
        with pytest.raises(ValueError):
            price_to_sqrt_price_x96(Decimal("0"))

    def test_price_1000_tick(self):
        # ln(1000) / ln(1.0001) ~= 69081.007
        assert sqrt_price_x96_to_tick(price_to_sqrt_price_x96(Decimal("1000"))) == 69081


class TestFullRange:

    def test_spacing_60(self):
        assert full_range_ticks(60) == (-887220, 887220)

    def test_spacing_1(self):
        assert full_range_ticks(1) == (MIN_TICK, MAX_TICK)

    def test_spacing_must_be_positive(self):
        with pytest.raises(ValueError):
            full_range_ticks(0)


class TestAmountDeltas:

    def test_zero_liquidity_or_empty_range(self):
        a, b = tick_to_sqrt_price_x96(-60), tick_to_sqrt_price_x96(60)
        assert get_amount0_delta(a, b, 0) == 0
        assert get_amount1_delta(a, a, 10**18) == 0

    def test_argument_order_irrelevant(self):
        a, b = tick_to_sqrt_price_x96(-600), tick_to_sqrt_price_x96(600)
        assert get_amount0_delta(a, b, 10**20) == get_amount0_delta(b, a, 10**20)
        assert get_amount1_delta(a, b, 10**20) == get_amount1_delta(b, a, 10**20)

    @given(
        st.integers(min_value=-100_000, max_value=100_000),
        st.integers(min_value=1, max_value=100_000),
        st.integers(min_value=1, max_value=10**30),
    )
    @settings(max_examples=60, deadline=None)
    def test_round_up_exceeds_round_down_by_at_most_one(self, tick, width, liquidity):
        a = tick_to_sqrt_price_x96(tick)
        b = tick_to_sqrt_price_x96(min(MAX_TICK, tick + width))
        for fn in (get_amount0_delta, get_amount1_delta):
            down = fn(a, b, liquidity, False)
            up = fn(a, b, liquidity, True)
            assert 0 <= up - down <= 1


class TestSwapStep:

    def test_partial_step_consumes_everything(self):
        current = tick_to_sqrt_price_x96(0)
        target = tick_to_sqrt_price_x96(-60_000)
        next_price, amount_in, amount_out, fee = compute_swap_step(current, target, 10**24, 10**18, 3000)
        assert next_price < current
        assert next_price > target
        assert amount_in + fee == 10**18
        assert amount_out > 0

    def test_step_reaching_target(self):
        current = tick_to_sqrt_price_x96(0)
        target = tick_to_sqrt_price_x96(10)
        next_price, amount_in, amount_out, fee = compute_swap_step(current, target, 10**18, 10**24, 3000)
        assert next_price == target
        assert amount_in + fee <= 10**24
        assert fee > 0

    def test_invalid_fee(self):
        with pytest.raises(ValueError):
            compute_swap_step(Q96, Q96 - 1, 1, 1, 1_000_000)

    @given(
        st.integers(min_value=1, max_value=10**24),
        st.integers(min_value=10**15, max_value=10**26),
        st.sampled_from([100, 500, 3000, 10000]),
        st.booleans(),
    )
    @settings(max_examples=60, deadline=None)
    def test_never_spends_more_than_remaining(self, remaining, liquidity, fee, zero_for_one):
        current = tick_to_sqrt_price_x96(0)
        target = tick_to_sqrt_price_x96(-887220 if zero_for_one else 887220)
        _, amount_in, amount_out, fee_amount = compute_swap_step(current, target, liquidity, remaining, fee)
        assert amount_in >= 0
        assert fee_amount >= 0
        assert amount_in + fee_amount <= remaining
        assert amount_out >= 0


class TestPositionSizing:

    def test_below_range_only_currency0(self):
        price = tick_to_sqrt_price_x96(-1000)
        a, b = tick_to_sqrt_price_x96(-600), tick_to_sqrt_price_x96(600)
        amount0, amount1 = get_amounts_for_liquidity(price, a, b, 10**20)
        assert amount0 > 0
        assert amount1 == 0

    def test_above_range_only_currency1(self):
        price = tick_to_sqrt_price_x96(1000)
        a, b = tick_to_sqrt_price_x96(-600), tick_to_sqrt_price_x96(600)
        amount0, amount1 = get_amounts_for_liquidity(price, a, b, 10**20)
        assert amount0 == 0
        assert amount1 > 0

    @given(
        st.integers(min_value=-10_000, max_value=10_000),
        st.integers(min_value=0, max_value=10**24),
        st.integers(min_value=0, max_value=10**24),
    )
    @settings(max_examples=60, deadline=None)
    def test_sized_liquidity_fits_amounts(self, tick, amount0, amount1):
        price = tick_to_sqrt_price_x96(tick)
        a, b = tick_to_sqrt_price_x96(-6000), tick_to_sqrt_price_x96(6000)
        liquidity = get_liquidity_for_amounts(price, a, b, amount0, amount1)
        owed0, owed1 = get_amounts_for_liquidity(price, a, b, liquidity)
        assert owed0 <= amount0
        assert owed1 <= amount1
