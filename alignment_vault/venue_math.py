"""
venue_math.py - Concentrated-liquidity math for the reference venue

Prices are square roots in Q64.96 fixed point. All amount math is exact
integer arithmetic with explicit rounding direction: amounts a caller pays
round up, amounts a caller receives round down.

Functions:
- tick_to_sqrt_price_x96 / sqrt_price_x96_to_tick: tick <-> price conversion
- get_amount0_delta / get_amount1_delta: token amounts between two prices
- get_next_sqrt_price_from_input: price after an exact-input trade
- compute_swap_step: one step of the swap loop within a single tick range
- get_liquidity_for_amounts / get_amounts_for_liquidity: position sizing
- full_range_ticks: widest usable range for a tick spacing
"""

from decimal import Decimal, localcontext
from functools import lru_cache
from typing import Tuple

import numpy as np

from .core import MAX_LP_FEE


MIN_TICK = -887272
MAX_TICK = 887272
Q96 = 2 ** 96
Q128 = 2 ** 128

_TICK_BASE = Decimal("1.0001")


# ============================================================================
# TICK <-> PRICE
# ============================================================================

@lru_cache(maxsize=65536)
def tick_to_sqrt_price_x96(tick: int) -> int:
    """
    sqrt(1.0001^tick) in Q64.96, rounded down.

    Raises:
        ValueError: If tick is outside [MIN_TICK, MAX_TICK]
    """
    if tick < MIN_TICK or tick > MAX_TICK:
        raise ValueError(f"Tick {tick} out of bounds [{MIN_TICK}, {MAX_TICK}]")
    with localcontext() as ctx:
        ctx.prec = 80
        sqrt_price = (_TICK_BASE ** tick).sqrt()
        return int(sqrt_price * Q96)


MIN_SQRT_RATIO = tick_to_sqrt_price_x96(MIN_TICK)
MAX_SQRT_RATIO = tick_to_sqrt_price_x96(MAX_TICK)


def sqrt_price_x96_to_tick(sqrt_price_x96: int) -> int:
    """
    Greatest tick whose sqrt price is <= sqrt_price_x96.

    A float estimate is corrected against the exact tick prices.
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 > MAX_SQRT_RATIO:
        raise ValueError(f"sqrt_price_x96 {sqrt_price_x96} out of bounds")
    estimate = int(np.floor(2.0 * np.log(sqrt_price_x96 / Q96) / np.log(1.0001)))
    tick = max(MIN_TICK, min(MAX_TICK, estimate))
    while tick > MIN_TICK and tick_to_sqrt_price_x96(tick) > sqrt_price_x96:
        tick -= 1
    while tick < MAX_TICK and tick_to_sqrt_price_x96(tick + 1) <= sqrt_price_x96:
        tick += 1
    return tick


def price_to_sqrt_price_x96(price: Decimal) -> int:
    """Q64.96 square root of a currency1-per-currency0 price."""
    price = Decimal(price)
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    with localcontext() as ctx:
        ctx.prec = 80
        return int(price.sqrt() * Q96)


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> Decimal:
    """Currency1-per-currency0 price of a Q64.96 square root."""
    ratio = Decimal(sqrt_price_x96) / Decimal(Q96)
    return ratio * ratio


def full_range_ticks(tick_spacing: int) -> Tuple[int, int]:
    """Widest (lower, upper) range whose bounds are multiples of tick_spacing."""
    if tick_spacing <= 0:
        raise ValueError(f"tick_spacing must be positive, got {tick_spacing}")
    upper = (MAX_TICK // tick_spacing) * tick_spacing
    return -upper, upper


# ============================================================================
# SAFE MATH
# ============================================================================

def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator)"""
    if denominator == 0:
        raise ValueError("Division by zero")
    return (a * b) // denominator


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    """ceil(a * b / denominator)"""
    if denominator == 0:
        raise ValueError("Division by zero")
    return -((-(a * b)) // denominator)


# ============================================================================
# AMOUNT DELTAS
# ============================================================================

def get_amount0_delta(
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    liquidity: int,
    round_up: bool = False
) -> int:
    """Amount of currency0 between two prices for a given liquidity."""
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96
    if liquidity == 0 or sqrt_price_a_x96 == sqrt_price_b_x96:
        return 0

    numerator1 = liquidity << 96
    numerator2 = sqrt_price_b_x96 - sqrt_price_a_x96

    if round_up:
        return mul_div_rounding_up(
            mul_div_rounding_up(numerator1, numerator2, sqrt_price_b_x96), 1, sqrt_price_a_x96
        )
    return mul_div(numerator1, numerator2, sqrt_price_b_x96) // sqrt_price_a_x96


def get_amount1_delta(
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    liquidity: int,
    round_up: bool = False
) -> int:
    """Amount of currency1 between two prices for a given liquidity."""
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96
    if liquidity == 0 or sqrt_price_a_x96 == sqrt_price_b_x96:
        return 0
    if round_up:
        return mul_div_rounding_up(liquidity, sqrt_price_b_x96 - sqrt_price_a_x96, Q96)
    return mul_div(liquidity, sqrt_price_b_x96 - sqrt_price_a_x96, Q96)


def get_next_sqrt_price_from_input(
    sqrt_price_x96: int,
    liquidity: int,
    amount_in: int,
    zero_for_one: bool
) -> int:
    """
    Price after adding amount_in of the input currency.

    Rounds so the resulting price never over-credits the trader.
    """
    if liquidity <= 0:
        raise ValueError("Liquidity must be positive")
    if amount_in == 0:
        return sqrt_price_x96

    if zero_for_one:
        # L * sqrtP / (L + amount * sqrtP), rounded up
        numerator1 = liquidity << 96
        denominator = numerator1 + amount_in * sqrt_price_x96
        return mul_div_rounding_up(numerator1, sqrt_price_x96, denominator)

    # sqrtP + amount / L, rounded down
    return sqrt_price_x96 + mul_div(amount_in, Q96, liquidity)


# ============================================================================
# SWAP STEP
# ============================================================================

def compute_swap_step(
    sqrt_price_current_x96: int,
    sqrt_price_target_x96: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int
) -> Tuple[int, int, int, int]:
    """
    Exact-input swap within a single range of constant liquidity.

    Args:
        sqrt_price_current_x96: Price at the start of the step
        sqrt_price_target_x96: Price the step may not pass (next tick or limit)
        liquidity: Active liquidity over the step
        amount_remaining: Input still to be swapped, fee included
        fee_pips: LP fee in hundredths of a basis point

    Returns:
        (sqrt_price_next_x96, amount_in, amount_out, fee_amount) where
        amount_in excludes the fee
    """
    if amount_remaining < 0:
        raise ValueError("amount_remaining must be non-negative")
    if fee_pips < 0 or fee_pips >= MAX_LP_FEE:
        raise ValueError(f"fee_pips {fee_pips} out of range")

    zero_for_one = sqrt_price_current_x96 >= sqrt_price_target_x96
    amount_remaining_less_fee = mul_div(amount_remaining, MAX_LP_FEE - fee_pips, MAX_LP_FEE)

    if zero_for_one:
        amount_in = get_amount0_delta(sqrt_price_target_x96, sqrt_price_current_x96, liquidity, True)
    else:
        amount_in = get_amount1_delta(sqrt_price_current_x96, sqrt_price_target_x96, liquidity, True)

    if amount_remaining_less_fee >= amount_in:
        sqrt_price_next_x96 = sqrt_price_target_x96
    else:
        sqrt_price_next_x96 = get_next_sqrt_price_from_input(
            sqrt_price_current_x96, liquidity, amount_remaining_less_fee, zero_for_one
        )

    max_reached = sqrt_price_next_x96 == sqrt_price_target_x96

    if zero_for_one:
        if not max_reached:
            amount_in = get_amount0_delta(sqrt_price_next_x96, sqrt_price_current_x96, liquidity, True)
        amount_out = get_amount1_delta(sqrt_price_next_x96, sqrt_price_current_x96, liquidity, False)
    else:
        if not max_reached:
            amount_in = get_amount1_delta(sqrt_price_current_x96, sqrt_price_next_x96, liquidity, True)
        amount_out = get_amount0_delta(sqrt_price_current_x96, sqrt_price_next_x96, liquidity, False)

    if max_reached:
        fee_amount = mul_div_rounding_up(amount_in, fee_pips, MAX_LP_FEE - fee_pips)
    else:
        # Whatever is left after the input lands is the fee
        fee_amount = amount_remaining - amount_in

    return sqrt_price_next_x96, amount_in, amount_out, fee_amount


# ============================================================================
# POSITION SIZING
# ============================================================================

def get_liquidity_for_amount0(sqrt_price_a_x96: int, sqrt_price_b_x96: int, amount0: int) -> int:
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96
    intermediate = mul_div(sqrt_price_a_x96, sqrt_price_b_x96, Q96)
    return mul_div(amount0, intermediate, sqrt_price_b_x96 - sqrt_price_a_x96)


def get_liquidity_for_amount1(sqrt_price_a_x96: int, sqrt_price_b_x96: int, amount1: int) -> int:
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96
    return mul_div(amount1, Q96, sqrt_price_b_x96 - sqrt_price_a_x96)


def get_liquidity_for_amounts(
    sqrt_price_x96: int,
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    amount0: int,
    amount1: int
) -> int:
    """
    Maximum liquidity the given amounts can back over [a, b] at the current price.

    Below the range only currency0 counts, above it only currency1, inside
    it the scarcer side binds.
    """
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96

    if sqrt_price_x96 <= sqrt_price_a_x96:
        return get_liquidity_for_amount0(sqrt_price_a_x96, sqrt_price_b_x96, amount0)
    if sqrt_price_x96 < sqrt_price_b_x96:
        liquidity0 = get_liquidity_for_amount0(sqrt_price_x96, sqrt_price_b_x96, amount0)
        liquidity1 = get_liquidity_for_amount1(sqrt_price_a_x96, sqrt_price_x96, amount1)
        return min(liquidity0, liquidity1)
    return get_liquidity_for_amount1(sqrt_price_a_x96, sqrt_price_b_x96, amount1)


def get_amounts_for_liquidity(
    sqrt_price_x96: int,
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    liquidity: int,
    round_up: bool = False
) -> Tuple[int, int]:
    """(amount0, amount1) backing `liquidity` over [a, b] at the current price."""
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96

    if sqrt_price_x96 <= sqrt_price_a_x96:
        return get_amount0_delta(sqrt_price_a_x96, sqrt_price_b_x96, liquidity, round_up), 0
    if sqrt_price_x96 < sqrt_price_b_x96:
        return (
            get_amount0_delta(sqrt_price_x96, sqrt_price_b_x96, liquidity, round_up),
            get_amount1_delta(sqrt_price_a_x96, sqrt_price_x96, liquidity, round_up),
        )
    return 0, get_amount1_delta(sqrt_price_a_x96, sqrt_price_b_x96, liquidity, round_up)
