"""
adapter.py - Liquidity Position Adapter

Speaks the venue's two-phase settlement protocol on the vault's behalf.
Every operation opens one unlock, performs its venue actions, then settles
each negative delta and takes each positive one before returning.

The vault only ever holds the native base asset. When the configured pool
trades the wrapped form instead, the adapter wraps right before paying and
unwraps right after taking.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Tuple

from .core import (
    PoolKey, BalanceDelta, VenueConfig,
    SlippageExceeded,
)
from .host import Host
from .ledger import WRAPPED_ESCROW_WALLET, compute_wrap, compute_unwrap
from .venue import PoolManager, UnlockSession, Slot0
from .venue_math import (
    tick_to_sqrt_price_x96, sqrt_price_x96_to_price, full_range_ticks,
    get_liquidity_for_amounts, get_amounts_for_liquidity,
)


@dataclass(frozen=True, slots=True)
class DeploymentResult:
    """
    Outcome of one liquidity deployment, in base/target orientation.

    Attributes:
        liquidity_delta: Liquidity units added
        base_used: Base asset settled into the position
        target_used: Target asset settled into the position
        fees_base: Base-asset fees collected from the existing position
        fees_target: Target-asset fees collected from the existing position
    """
    liquidity_delta: int
    base_used: int
    target_used: int
    fees_base: int = 0
    fees_target: int = 0


class LiquidityPositionAdapter:
    """
    Two-phase settlement client for the vault's single position.

    Args:
        host: Host environment (ledger, clock)
        manager: The venue
        wallet_id: Vault wallet paying and receiving every settlement
        config_source: Returns the current VenueConfig
        salt: Position discriminator
    """

    def __init__(
        self,
        host: Host,
        manager: PoolManager,
        wallet_id: str,
        config_source: Callable[[], VenueConfig],
        salt: str = "alignment",
        verbose: Optional[bool] = None,
    ):
        self.host = host
        self.manager = manager
        self.wallet_id = wallet_id
        self.config_source = config_source
        self.salt = salt
        self.verbose = host.verbose if verbose is None else verbose
        host.ledger.ensure_wallet(WRAPPED_ESCROW_WALLET)

    @property
    def config(self) -> VenueConfig:
        return self.config_source()

    @property
    def pool_key(self) -> PoolKey:
        return self.config.pool_key

    # ========================================================================
    # READ-ONLY HELPERS
    # ========================================================================

    def slot0(self) -> Slot0:
        return self.manager.slot0(self.pool_key)

    def full_range(self) -> Tuple[int, int]:
        """Widest usable range for the configured tick spacing."""
        return full_range_ticks(self.pool_key.tick_spacing)

    def price_in_range(self, tick_lower: int, tick_upper: int) -> bool:
        tick = self.slot0().tick
        return tick_lower <= tick < tick_upper

    def base_per_target(self) -> Decimal:
        """Base units one target unit is worth at the current pool price."""
        price = sqrt_price_x96_to_price(self.slot0().sqrt_price_x96)
        return 1 / price if self.config.base_is_currency0 else price

    def pool_currency(self, asset: str) -> str:
        """The pool's name for an asset the vault holds."""
        config = self.config
        if asset == config.native_currency:
            return config.pool_base_currency
        return asset

    def orient(self, delta: BalanceDelta) -> Tuple[int, int]:
        """(base, target) view of a pool-ordered delta."""
        if self.config.base_is_currency0:
            return delta.amount0, delta.amount1
        return delta.amount1, delta.amount0

    def needed_amounts(self, tick_lower: int, tick_upper: int, liquidity: int) -> Tuple[int, int]:
        """(base, target) that `liquidity` over the range requires at the current price."""
        amount0, amount1 = get_amounts_for_liquidity(
            self.slot0().sqrt_price_x96,
            tick_to_sqrt_price_x96(tick_lower),
            tick_to_sqrt_price_x96(tick_upper),
            liquidity,
            round_up=True,
        )
        return self.orient(BalanceDelta(amount0, amount1))

    def liquidity_for_amounts(self, tick_lower: int, tick_upper: int, base_amount: int, target_amount: int) -> int:
        """
        Largest liquidity whose owed amounts fit within the desired amounts.
        """
        if self.config.base_is_currency0:
            amount0, amount1 = base_amount, target_amount
        else:
            amount0, amount1 = target_amount, base_amount
        sqrt_price = self.slot0().sqrt_price_x96
        sqrt_lower = tick_to_sqrt_price_x96(tick_lower)
        sqrt_upper = tick_to_sqrt_price_x96(tick_upper)
        liquidity = get_liquidity_for_amounts(sqrt_price, sqrt_lower, sqrt_upper, amount0, amount1)

        # Rounding up the owed side can overshoot by a unit
        step = 1
        while liquidity > 0:
            owed0, owed1 = get_amounts_for_liquidity(sqrt_price, sqrt_lower, sqrt_upper, liquidity, round_up=True)
            if owed0 <= amount0 and owed1 <= amount1:
                break
            liquidity = max(0, liquidity - step)
            step *= 2
        return liquidity

    def quote_swap(self, asset_in: str, amount_in: int) -> int:
        """Output of swapping `amount_in` of `asset_in` through the pool; no state changes."""
        key = self.pool_key
        currency_in = self.pool_currency(asset_in)
        if amount_in <= 0 or currency_in not in (key.currency0, key.currency1):
            return 0
        if not self.manager.is_initialized(key):
            return 0
        zero_for_one = currency_in == key.currency0
        return self.manager.quote_swap(key, zero_for_one, amount_in, swapper=self.wallet_id).amount_out

    # ========================================================================
    # VENUE OPERATIONS (each one unlock)
    # ========================================================================

    def swap(self, asset_in: str, amount_in: int, min_out: int = 0) -> int:
        """
        Exact-input swap through the pool.

        Returns:
            Amount of the other pool asset received

        Raises:
            SlippageExceeded: If the output is below min_out (nothing persists)
        """
        key = self.pool_key
        currency_in = self.pool_currency(asset_in)
        if currency_in not in (key.currency0, key.currency1):
            raise ValueError(f"{asset_in} is not traded by pool {key}")
        zero_for_one = currency_in == key.currency0

        def run(session: UnlockSession) -> int:
            delta = session.swap(key, zero_for_one, amount_in)
            amount_out = delta.amount1 if zero_for_one else delta.amount0
            if amount_out < min_out:
                raise SlippageExceeded(f"Swap output {amount_out} below minimum {min_out}")
            self._settle_all(session, key)
            return amount_out

        return self.manager.unlock(run, locker=self.wallet_id)

    def add_liquidity(self, tick_lower: int, tick_upper: int, base_amount: int, target_amount: int) -> DeploymentResult:
        """
        Deploy as much of the given amounts as the range accepts.

        Fees owed to an existing position in the same range are collected in
        the same unlock and reported separately from the principal.
        """
        liquidity = self.liquidity_for_amounts(tick_lower, tick_upper, base_amount, target_amount)
        if liquidity == 0:
            return DeploymentResult(0, 0, 0)
        key = self.pool_key

        def run(session: UnlockSession) -> Tuple[BalanceDelta, BalanceDelta]:
            caller_delta, fees = session.modify_liquidity(key, tick_lower, tick_upper, liquidity, self.salt)
            self._settle_all(session, key)
            return caller_delta, fees

        caller_delta, fees = self.manager.unlock(run, locker=self.wallet_id)
        principal_base, principal_target = self.orient(caller_delta + (-fees))
        fees_base, fees_target = self.orient(fees)
        result = DeploymentResult(
            liquidity_delta=liquidity,
            base_used=-principal_base,
            target_used=-principal_target,
            fees_base=fees_base,
            fees_target=fees_target,
        )
        if self.verbose:
            print(f"✓ DEPLOYED: L+{liquidity} base={result.base_used} target={result.target_used}")
        return result

    def harvest(self, tick_lower: int, tick_upper: int) -> Tuple[int, int]:
        """
        Collect the position's accrued fees.

        Returns:
            Non-negative (base_fees, target_fees); (0, 0) when no position exists
        """
        key = self.pool_key
        position = self.manager.get_position(key, self.wallet_id, tick_lower, tick_upper, self.salt)
        if position.liquidity == 0:
            return 0, 0

        def run(session: UnlockSession) -> BalanceDelta:
            _, fees = session.modify_liquidity(key, tick_lower, tick_upper, 0, self.salt)
            self._settle_all(session, key)
            return fees

        fees = self.manager.unlock(run, locker=self.wallet_id)
        return self.orient(fees)

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    def _settle_all(self, session: UnlockSession, key: PoolKey) -> None:
        for currency in (key.currency0, key.currency1):
            owed = session.delta(currency)
            if owed < 0:
                self._pay(session, currency, -owed)
            elif owed > 0:
                self._receive(session, currency, owed)

    def _pay(self, session: UnlockSession, currency: str, amount: int) -> None:
        config = self.config
        if currency == config.wrapped_currency:
            ledger = self.host.ledger
            ledger.execute(
                compute_wrap(ledger, self.wallet_id, amount, config.native_currency, config.wrapped_currency),
                strict=True,
            )
        session.settle(currency, amount)

    def _receive(self, session: UnlockSession, currency: str, amount: int) -> None:
        config = self.config
        session.take(currency, self.wallet_id, amount)
        if currency == config.wrapped_currency:
            ledger = self.host.ledger
            ledger.execute(
                compute_unwrap(ledger, self.wallet_id, amount, config.native_currency, config.wrapped_currency),
                strict=True,
            )
