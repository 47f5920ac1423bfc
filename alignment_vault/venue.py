"""
venue.py - Reference singleton liquidity venue

A simulated pool manager with the two-phase settlement contract:

    manager.unlock(continuation, locker)
        -> continuation(session)
            session.swap(...) / session.modify_liquidity(...) / session.donate(...)
            session.settle(currency, amount) / session.take(currency, to, amount)
        <- every currency delta must be zero, otherwise CurrencyNotSettled

Pool reserves are real host-ledger balances held in the manager's wallet.
Every unlock runs inside Host.atomic(), so a continuation that raises or
leaves a delta unsettled reverts every pool and ledger change it made.

Classes:
- PoolManager: pool state, unlock, quoting
- UnlockSession: the settlement capability handed to a continuation
- TaxHook: optional swap tax forwarded to an alignment vault
"""

from __future__ import annotations
from bisect import bisect_left, bisect_right, insort
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
import copy

from .core import (
    PoolKey, BalanceDelta, TransactionOrigin, OriginType,
    NATIVE_CURRENCY, MAX_LP_FEE, MAX_TICK_SPACING, sort_currencies,
    VenueError, PoolNotInitialized, ManagerLocked, AlreadyUnlocked, CurrencyNotSettled,
)
from .host import Host
from .venue_math import (
    MIN_TICK, MAX_TICK, Q128, MIN_SQRT_RATIO, MAX_SQRT_RATIO,
    tick_to_sqrt_price_x96, sqrt_price_x96_to_tick,
    compute_swap_step, get_amount0_delta, get_amount1_delta, mul_div,
)


# ============================================================================
# POOL STATE
# ============================================================================

@dataclass
class TickInfo:
    liquidity_gross: int = 0
    liquidity_net: int = 0
    fee_growth_outside0_x128: int = 0
    fee_growth_outside1_x128: int = 0


@dataclass
class PositionInfo:
    liquidity: int = 0
    fee_growth_inside0_last_x128: int = 0
    fee_growth_inside1_last_x128: int = 0


PositionKey = Tuple[str, int, int, str]


@dataclass
class PoolState:
    """Mutable state of one pool."""
    key: PoolKey
    sqrt_price_x96: int
    tick: int
    liquidity: int = 0
    fee_growth_global0_x128: int = 0
    fee_growth_global1_x128: int = 0
    ticks: Dict[int, TickInfo] = field(default_factory=dict)
    initialized_ticks: List[int] = field(default_factory=list)
    positions: Dict[PositionKey, PositionInfo] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Slot0:
    sqrt_price_x96: int
    tick: int
    lp_fee: int


@dataclass(frozen=True, slots=True)
class SwapQuote:
    """
    Result of a swap simulation.

    Attributes:
        amount_in: Input consumed, tax included
        amount_out: Output produced
        tax: Portion of the input taken by the pool's hook
        sqrt_price_after: Pool price after the swap
    """
    amount_in: int
    amount_out: int
    tax: int
    sqrt_price_after: int


# ============================================================================
# POOL MATH ON STATE
# ============================================================================

def _next_initialized_tick(pool: PoolState, tick: int, zero_for_one: bool) -> Tuple[int, bool]:
    """Next initialized tick at or below (zero_for_one) or strictly above `tick`."""
    ticks = pool.initialized_ticks
    if zero_for_one:
        idx = bisect_right(ticks, tick)
        if idx == 0:
            return MIN_TICK, False
        return ticks[idx - 1], True
    idx = bisect_right(ticks, tick)
    if idx == len(ticks):
        return MAX_TICK, False
    return ticks[idx], True


def _fee_growth_inside(pool: PoolState, tick_lower: int, tick_upper: int) -> Tuple[int, int]:
    lower = pool.ticks[tick_lower]
    upper = pool.ticks[tick_upper]
    g0, g1 = pool.fee_growth_global0_x128, pool.fee_growth_global1_x128

    if pool.tick >= tick_lower:
        below0, below1 = lower.fee_growth_outside0_x128, lower.fee_growth_outside1_x128
    else:
        below0, below1 = g0 - lower.fee_growth_outside0_x128, g1 - lower.fee_growth_outside1_x128

    if pool.tick < tick_upper:
        above0, above1 = upper.fee_growth_outside0_x128, upper.fee_growth_outside1_x128
    else:
        above0, above1 = g0 - upper.fee_growth_outside0_x128, g1 - upper.fee_growth_outside1_x128

    return g0 - below0 - above0, g1 - below1 - above1


def _update_tick(pool: PoolState, tick: int, liquidity_delta: int, upper: bool) -> None:
    info = pool.ticks.get(tick)
    if info is None:
        info = TickInfo()
        # Growth below an initialized tick is assumed to have happened below it
        if tick <= pool.tick:
            info.fee_growth_outside0_x128 = pool.fee_growth_global0_x128
            info.fee_growth_outside1_x128 = pool.fee_growth_global1_x128
        pool.ticks[tick] = info
        insort(pool.initialized_ticks, tick)

    info.liquidity_gross += liquidity_delta
    info.liquidity_net += -liquidity_delta if upper else liquidity_delta


def _clear_tick_if_empty(pool: PoolState, tick: int) -> None:
    info = pool.ticks.get(tick)
    if info is not None and info.liquidity_gross == 0:
        del pool.ticks[tick]
        pool.initialized_ticks.pop(bisect_left(pool.initialized_ticks, tick))


def _cross_tick(pool: PoolState, tick: int, fee_growth0: int, fee_growth1: int) -> int:
    info = pool.ticks[tick]
    info.fee_growth_outside0_x128 = fee_growth0 - info.fee_growth_outside0_x128
    info.fee_growth_outside1_x128 = fee_growth1 - info.fee_growth_outside1_x128
    return info.liquidity_net


def _run_swap(pool: PoolState, zero_for_one: bool, amount_in: int, sqrt_price_limit_x96: int) -> Tuple[int, int]:
    """
    Exact-input swap against `pool`, mutating it.

    Returns:
        (amount_consumed, amount_out)
    """
    if zero_for_one:
        if not (MIN_SQRT_RATIO < sqrt_price_limit_x96 < pool.sqrt_price_x96):
            raise VenueError(f"Price limit {sqrt_price_limit_x96} invalid for zero_for_one swap")
    else:
        if not (pool.sqrt_price_x96 < sqrt_price_limit_x96 < MAX_SQRT_RATIO):
            raise VenueError(f"Price limit {sqrt_price_limit_x96} invalid for one_for_zero swap")

    remaining = amount_in
    amount_out = 0
    sqrt_price = pool.sqrt_price_x96
    tick = pool.tick
    liquidity = pool.liquidity
    fee_growth_global = pool.fee_growth_global0_x128 if zero_for_one else pool.fee_growth_global1_x128

    while remaining > 0 and sqrt_price != sqrt_price_limit_x96:
        tick_next, initialized = _next_initialized_tick(pool, tick, zero_for_one)
        tick_next = max(MIN_TICK, min(MAX_TICK, tick_next))
        sqrt_price_next_tick = tick_to_sqrt_price_x96(tick_next)

        if zero_for_one:
            sqrt_price_target = max(sqrt_price_next_tick, sqrt_price_limit_x96)
        else:
            sqrt_price_target = min(sqrt_price_next_tick, sqrt_price_limit_x96)

        step_start = sqrt_price
        sqrt_price, step_in, step_out, step_fee = compute_swap_step(
            sqrt_price, sqrt_price_target, liquidity, remaining, pool.key.fee
        )
        remaining -= step_in + step_fee
        amount_out += step_out
        if liquidity > 0:
            fee_growth_global += mul_div(step_fee, Q128, liquidity)

        if sqrt_price == sqrt_price_next_tick:
            if initialized:
                if zero_for_one:
                    net = _cross_tick(pool, tick_next, fee_growth_global, pool.fee_growth_global1_x128)
                    liquidity -= net
                else:
                    net = _cross_tick(pool, tick_next, pool.fee_growth_global0_x128, fee_growth_global)
                    liquidity += net
            tick = tick_next - 1 if zero_for_one else tick_next
        elif sqrt_price != step_start:
            tick = sqrt_price_x96_to_tick(sqrt_price)

    pool.sqrt_price_x96 = sqrt_price
    pool.tick = tick
    pool.liquidity = liquidity
    if zero_for_one:
        pool.fee_growth_global0_x128 = fee_growth_global
    else:
        pool.fee_growth_global1_x128 = fee_growth_global

    return amount_in - remaining, amount_out


def _default_price_limit(zero_for_one: bool) -> int:
    return MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1


# ============================================================================
# UNLOCK SESSION
# ============================================================================

class UnlockSession:
    """
    Settlement capability valid only while its unlock is open.

    Currency deltas are from the locker's perspective: negative means the
    locker owes the venue, positive means the venue owes the locker.
    """

    def __init__(self, manager: 'PoolManager', locker: str):
        self.manager = manager
        self.locker = locker
        self.deltas: Dict[str, int] = {}
        self.hook_credits: List[Tuple['TaxHook', str, int]] = []
        self._active = True

    def _check_active(self) -> None:
        if not self._active:
            raise ManagerLocked("Session used outside its unlock")

    def _account(self, key: PoolKey, delta: BalanceDelta) -> None:
        self.deltas[key.currency0] = self.deltas.get(key.currency0, 0) + delta.amount0
        self.deltas[key.currency1] = self.deltas.get(key.currency1, 0) + delta.amount1

    def delta(self, currency: str) -> int:
        """Outstanding delta of a currency."""
        self._check_active()
        return self.deltas.get(currency, 0)

    def nonzero_deltas(self) -> Dict[str, int]:
        return {c: d for c, d in sorted(self.deltas.items()) if d != 0}

    def swap(
        self,
        key: PoolKey,
        zero_for_one: bool,
        amount_in: int,
        sqrt_price_limit: Optional[int] = None,
    ) -> BalanceDelta:
        """
        Exact-input swap. Returns the delta it added to the session.
        """
        self._check_active()
        if amount_in <= 0:
            raise VenueError(f"amount_in must be positive, got {amount_in}")
        pool = self.manager._pool_for_update(key)
        hook = self.manager.hooks.get(key.pool_id)
        tax = hook.compute_tax(self.locker, key, zero_for_one, amount_in) if hook else 0

        limit = sqrt_price_limit if sqrt_price_limit is not None else _default_price_limit(zero_for_one)
        consumed, amount_out = _run_swap(pool, zero_for_one, amount_in - tax, limit)
        paid = consumed + tax

        if zero_for_one:
            delta = BalanceDelta(-paid, amount_out)
        else:
            delta = BalanceDelta(amount_out, -paid)
        self._account(key, delta)
        if tax > 0:
            input_currency = key.currency0 if zero_for_one else key.currency1
            self.hook_credits.append((hook, input_currency, tax))

        if self.manager.verbose:
            print(f"✓ SWAP {key.pool_id}: in={paid} out={amount_out} tax={tax} by {self.locker}")
        return delta

    def modify_liquidity(
        self,
        key: PoolKey,
        tick_lower: int,
        tick_upper: int,
        liquidity_delta: int,
        salt: str = "",
    ) -> Tuple[BalanceDelta, BalanceDelta]:
        """
        Add (positive), remove (negative) or poke (zero) liquidity.

        Fees owed to the position are always collected.

        Returns:
            (caller_delta, fees_accrued): caller_delta includes the fees
        """
        self._check_active()
        pool = self.manager._pool_for_update(key)
        spacing = key.tick_spacing
        if tick_lower >= tick_upper:
            raise VenueError(f"tick_lower {tick_lower} must be below tick_upper {tick_upper}")
        if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
            raise VenueError(f"Range [{tick_lower}, {tick_upper}] out of bounds")
        if tick_lower % spacing or tick_upper % spacing:
            raise VenueError(f"Range [{tick_lower}, {tick_upper}] not aligned to spacing {spacing}")

        position_key = (self.locker, tick_lower, tick_upper, salt)
        position = pool.positions.get(position_key)
        if position is None:
            if liquidity_delta <= 0:
                raise VenueError(f"No position {position_key} to modify")
            position = PositionInfo()
            pool.positions[position_key] = position
        if position.liquidity + liquidity_delta < 0:
            raise VenueError(f"Cannot remove {-liquidity_delta} from position holding {position.liquidity}")
        if liquidity_delta == 0 and position.liquidity == 0:
            raise VenueError(f"Cannot poke empty position {position_key}")

        if liquidity_delta != 0:
            _update_tick(pool, tick_lower, liquidity_delta, upper=False)
            _update_tick(pool, tick_upper, liquidity_delta, upper=True)

        fees0, fees1 = 0, 0
        if position.liquidity > 0 or liquidity_delta > 0:
            inside0, inside1 = _fee_growth_inside(pool, tick_lower, tick_upper)
            if position.liquidity > 0:
                fees0 = mul_div(inside0 - position.fee_growth_inside0_last_x128, position.liquidity, Q128)
                fees1 = mul_div(inside1 - position.fee_growth_inside1_last_x128, position.liquidity, Q128)
            position.fee_growth_inside0_last_x128 = inside0
            position.fee_growth_inside1_last_x128 = inside1
        position.liquidity += liquidity_delta
        if position.liquidity == 0:
            del pool.positions[position_key]
        if liquidity_delta < 0:
            _clear_tick_if_empty(pool, tick_lower)
            _clear_tick_if_empty(pool, tick_upper)

        amount0, amount1 = 0, 0
        if liquidity_delta != 0:
            round_up = liquidity_delta > 0
            magnitude = abs(liquidity_delta)
            sqrt_lower = tick_to_sqrt_price_x96(tick_lower)
            sqrt_upper = tick_to_sqrt_price_x96(tick_upper)
            if pool.tick < tick_lower:
                amount0 = get_amount0_delta(sqrt_lower, sqrt_upper, magnitude, round_up)
            elif pool.tick < tick_upper:
                amount0 = get_amount0_delta(pool.sqrt_price_x96, sqrt_upper, magnitude, round_up)
                amount1 = get_amount1_delta(sqrt_lower, pool.sqrt_price_x96, magnitude, round_up)
                pool.liquidity += liquidity_delta
            else:
                amount1 = get_amount1_delta(sqrt_lower, sqrt_upper, magnitude, round_up)

        if liquidity_delta > 0:
            principal = BalanceDelta(-amount0, -amount1)
        else:
            principal = BalanceDelta(amount0, amount1)
        fees = BalanceDelta(fees0, fees1)
        caller_delta = principal + fees
        self._account(key, caller_delta)

        if self.manager.verbose:
            print(f"✓ MODIFY {key.pool_id} [{tick_lower}, {tick_upper}] {liquidity_delta:+d}: "
                  f"principal=({principal.amount0}, {principal.amount1}) fees=({fees0}, {fees1})")
        return caller_delta, fees

    def donate(self, key: PoolKey, amount0: int, amount1: int) -> BalanceDelta:
        """Pay amounts directly to in-range liquidity as fees."""
        self._check_active()
        pool = self.manager._pool_for_update(key)
        if amount0 < 0 or amount1 < 0:
            raise VenueError("Donation amounts must be non-negative")
        if pool.liquidity == 0:
            raise VenueError("Cannot donate to a pool with no in-range liquidity")
        pool.fee_growth_global0_x128 += mul_div(amount0, Q128, pool.liquidity)
        pool.fee_growth_global1_x128 += mul_div(amount1, Q128, pool.liquidity)
        delta = BalanceDelta(-amount0, -amount1)
        self._account(key, delta)
        return delta

    def settle(self, currency: str, amount: int) -> None:
        """Pay `amount` of currency from the locker to the venue."""
        self._check_active()
        if amount <= 0:
            raise VenueError(f"settle amount must be positive, got {amount}")
        self.manager.host.ledger.transfer(
            self.locker, self.manager.wallet_id, currency, amount,
            TransactionOrigin(OriginType.SETTLEMENT, self.locker, "SETTLE"),
        )
        self.deltas[currency] = self.deltas.get(currency, 0) + amount

    def take(self, currency: str, to: str, amount: int) -> None:
        """Withdraw `amount` of currency owed to the locker, sending it to `to`."""
        self._check_active()
        if amount <= 0:
            raise VenueError(f"take amount must be positive, got {amount}")
        self.deltas[currency] = self.deltas.get(currency, 0) - amount
        self.manager.host.ledger.transfer(
            self.manager.wallet_id, to, currency, amount,
            TransactionOrigin(OriginType.SETTLEMENT, self.locker, "TAKE"),
        )


# ============================================================================
# POOL MANAGER
# ============================================================================

class PoolManager:
    """
    Singleton venue holding every pool's state and reserves.

    Example:
        manager = PoolManager(host)
        key = PoolKey("ETH", "ALIGN", 3000, 60)
        manager.initialize(key, price_to_sqrt_price_x96(Decimal("1000")))

        def add(session):
            session.modify_liquidity(key, -887220, 887220, 10**18, "lp")
            for currency, owed in session.nonzero_deltas().items():
                session.settle(currency, -owed)

        manager.unlock(add, locker="lp")
    """

    def __init__(self, host: Host, wallet_id: str = "pool_manager", verbose: Optional[bool] = None):
        self.host = host
        self.wallet_id = host.ledger.ensure_wallet(wallet_id)
        self.verbose = host.verbose if verbose is None else verbose
        self.pools: Dict[str, PoolState] = {}
        self.hooks: Dict[str, 'TaxHook'] = {}
        self._session: Optional[UnlockSession] = None

    def snapshot(self) -> Dict[str, PoolState]:
        """Deep copy of every pool, for inspection."""
        return copy.deepcopy(self.pools)

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    def _pool(self, key: PoolKey) -> PoolState:
        pool = self.pools.get(key.pool_id)
        if pool is None:
            raise PoolNotInitialized(f"Pool {key} not initialized")
        return pool

    def _pool_for_update(self, key: PoolKey) -> PoolState:
        """The pool, with its current state saved in the host journal."""
        pool = self._pool(key)
        saved = copy.deepcopy(pool)
        self.host.journal.record(lambda: self.pools.__setitem__(key.pool_id, saved))
        return pool

    def is_initialized(self, key: PoolKey) -> bool:
        return key.pool_id in self.pools

    def initialize(self, key: PoolKey, sqrt_price_x96: int, hook: Optional['TaxHook'] = None) -> int:
        """
        Create a pool at a starting price.

        Returns:
            The pool's starting tick
        """
        if sort_currencies(key.currency0, key.currency1) != (key.currency0, key.currency1):
            raise VenueError(f"Pool {key} currencies are not sorted")
        if key.currency0 == key.currency1:
            raise VenueError("Pool currencies must differ")
        if key.fee < 0 or key.fee >= MAX_LP_FEE:
            raise VenueError(f"Fee {key.fee} out of range")
        if key.tick_spacing < 1 or key.tick_spacing > MAX_TICK_SPACING:
            raise VenueError(f"Tick spacing {key.tick_spacing} out of range")
        if key.pool_id in self.pools:
            raise VenueError(f"Pool {key} already initialized")
        if not (MIN_SQRT_RATIO <= sqrt_price_x96 < MAX_SQRT_RATIO):
            raise VenueError(f"sqrt_price_x96 {sqrt_price_x96} out of bounds")

        tick = sqrt_price_x96_to_tick(sqrt_price_x96)
        self.pools[key.pool_id] = PoolState(key=key, sqrt_price_x96=sqrt_price_x96, tick=tick)
        if hook is not None:
            self.hooks[key.pool_id] = hook
        self.host.journal.record(lambda: self._forget(key.pool_id))
        if self.verbose:
            print(f"📝 Initialized pool {key} at tick {tick}")
        return tick

    def _forget(self, pool_id: str) -> None:
        del self.pools[pool_id]
        self.hooks.pop(pool_id, None)

    def slot0(self, key: PoolKey) -> Slot0:
        pool = self._pool(key)
        return Slot0(pool.sqrt_price_x96, pool.tick, key.fee)

    def liquidity(self, key: PoolKey) -> int:
        """In-range liquidity of a pool."""
        return self._pool(key).liquidity

    def get_position(self, key: PoolKey, owner: str, tick_lower: int, tick_upper: int, salt: str = "") -> PositionInfo:
        """Copy of a position (empty if it does not exist)."""
        position = self._pool(key).positions.get((owner, tick_lower, tick_upper, salt))
        return copy.copy(position) if position is not None else PositionInfo()

    def quote_swap(
        self,
        key: PoolKey,
        zero_for_one: bool,
        amount_in: int,
        swapper: Optional[str] = None,
        sqrt_price_limit: Optional[int] = None,
    ) -> SwapQuote:
        """Simulate an exact-input swap without touching pool state."""
        pool = copy.deepcopy(self._pool(key))
        if amount_in <= 0:
            return SwapQuote(0, 0, 0, pool.sqrt_price_x96)
        hook = self.hooks.get(key.pool_id)
        tax = hook.compute_tax(swapper, key, zero_for_one, amount_in) if hook else 0
        limit = sqrt_price_limit if sqrt_price_limit is not None else _default_price_limit(zero_for_one)
        consumed, amount_out = _run_swap(pool, zero_for_one, amount_in - tax, limit)
        return SwapQuote(consumed + tax, amount_out, tax, pool.sqrt_price_x96)

    # ------------------------------------------------------------------
    # Two-phase settlement
    # ------------------------------------------------------------------

    @property
    def is_unlocked(self) -> bool:
        return self._session is not None

    def unlock(self, continuation: Callable[[UnlockSession], Any], locker: str) -> Any:
        """
        Open a settlement window for `locker` and run `continuation` in it.

        Raises:
            AlreadyUnlocked: If a window is already open
            CurrencyNotSettled: If any delta is nonzero when the continuation returns
        """
        if self._session is not None:
            raise AlreadyUnlocked("Pool manager is already unlocked")
        session = UnlockSession(self, locker)
        self._session = session
        try:
            with self.host.atomic():
                result = continuation(session)
                outstanding = session.nonzero_deltas()
                if outstanding:
                    if self.verbose:
                        print(f"✗ UNSETTLED: {outstanding}")
                    raise CurrencyNotSettled(f"Unsettled deltas for {locker}: {outstanding}")
                session._active = False
                self._pay_hooks(session)
        finally:
            session._active = False
            self._session = None
        return result

    def _pay_hooks(self, session: UnlockSession) -> None:
        for hook, currency, amount in session.hook_credits:
            self.host.ledger.transfer(
                self.wallet_id, hook.wallet_id, currency, amount,
                TransactionOrigin(OriginType.SETTLEMENT, hook.wallet_id, "HOOK_TAX"),
            )
            hook.forward(amount)


# ============================================================================
# TAX HOOK
# ============================================================================

class TaxHook:
    """
    Swap tax on the native currency, forwarded to an alignment vault.

    Only swaps paying in `tax_currency` are taxed. Swappers in the exempt
    set pay nothing; the vault is exempt from the moment it is attached.
    """

    def __init__(
        self,
        host: Host,
        vault,
        tax_rate_bps: int,
        benefactor: str,
        wallet_id: str = "tax_hook",
        tax_currency: str = NATIVE_CURRENCY,
        exempt: Optional[Set[str]] = None,
    ):
        if tax_rate_bps < 0 or tax_rate_bps >= 10_000:
            raise ValueError(f"tax_rate_bps must be in [0, 10000), got {tax_rate_bps}")
        self.host = host
        self.vault = vault
        self.tax_rate_bps = tax_rate_bps
        self.benefactor = benefactor
        self.wallet_id = host.ledger.ensure_wallet(wallet_id)
        self.tax_currency = tax_currency
        self.exempt: Set[str] = set(exempt or ())
        self.exempt.add(vault.wallet_id)
        self.held = 0
        host.attach(self)

    def snapshot(self) -> int:
        return self.held

    def restore(self, saved: int) -> None:
        self.held = saved

    def exempt_swapper(self, wallet_id: str) -> None:
        self.exempt.add(wallet_id)

    def compute_tax(self, swapper: Optional[str], key: PoolKey, zero_for_one: bool, amount_in: int) -> int:
        input_currency = key.currency0 if zero_for_one else key.currency1
        if swapper in self.exempt or input_currency != self.tax_currency:
            return 0
        return amount_in * self.tax_rate_bps // 10_000

    def forward(self, amount: int) -> None:
        """
        Contribute collected tax to the vault on behalf of the benefactor.

        While the vault is paused the tax is held in the hook's wallet and
        goes out with the next forward (or flush) after it unpauses.
        """
        self.held += amount
        if self.vault.paused:
            return
        self.flush()

    def flush(self) -> int:
        """Forward every held amount. Returns the amount contributed."""
        amount, self.held = self.held, 0
        if amount > 0:
            self.vault.receive_contribution(self.benefactor, amount, payer=self.wallet_id)
        return amount
