"""
allocation.py - Swap proportion for a liquidity deployment

Before deploying, part of the base amount is swapped into the target asset.
The right proportion leaves the least capital undeployed: after the swap,
the base and target on hand should stand in the same ratio the range
requires at the current price.

With f the fraction of the fresh base amount swapped:

    base(f)   = idle_base + (1 - f) * total
    target(f) = idle_target + quote(f * total)
    g(f)      = base(f) * need_target - target(f) * need_base

g is decreasing in f, so its root on [0, 1] is the balanced split. Quotes
come from the router, so price impact and venue fees are part of g.
"""

from decimal import Decimal, ROUND_FLOOR
from typing import Callable

from scipy.optimize import brentq


EVEN_SPLIT = Decimal("0.5")

# Fraction resolution of the root search.
FRACTION_TOLERANCE = 1e-9


def swap_amount(total: int, fraction: Decimal) -> int:
    """Base amount to swap for a fraction of `total`, rounded down."""
    if not Decimal(0) <= fraction <= Decimal(1):
        raise ValueError(f"fraction must be in [0, 1], got {fraction}")
    return int((Decimal(total) * fraction).to_integral_value(rounding=ROUND_FLOOR))


def optimal_swap_fraction(
    total: int,
    quote: Callable[[int], int],
    need_base: int,
    need_target: int,
    idle_base: int = 0,
    idle_target: int = 0,
) -> Decimal:
    """
    Fraction of `total` to swap so base and target match the range's ratio.

    Args:
        total: Fresh base amount being converted
        quote: Target received for a base input (must be non-decreasing)
        need_base: Base required per reference unit of liquidity
        need_target: Target required per reference unit of liquidity
        idle_base: Base carried over from earlier deployments
        idle_target: Target carried over from earlier deployments

    Returns:
        Fraction in [0, 1]
    """
    if total <= 0:
        raise ValueError(f"total must be positive, got {total}")
    if need_base < 0 or need_target < 0 or need_base + need_target == 0:
        raise ValueError("range requirements must be non-negative and not both zero")

    # Only one side is needed: swap none or all of it
    if need_target == 0:
        return Decimal(0)
    if need_base == 0:
        return Decimal(1)

    def imbalance(fraction: float) -> float:
        amount = int(total * fraction)
        base_after = idle_base + total - amount
        target_after = idle_target + quote(amount)
        return float(base_after) * need_target - float(target_after) * need_base

    low, high = imbalance(0.0), imbalance(1.0)
    if low <= 0:
        return Decimal(0)
    if high >= 0:
        return Decimal(1)

    root = brentq(imbalance, 0.0, 1.0, xtol=FRACTION_TOLERANCE)
    fraction = Decimal(repr(root)).quantize(Decimal("1e-12"), rounding=ROUND_FLOOR)
    return max(Decimal(0), min(Decimal(1), fraction))
