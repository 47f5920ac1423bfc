"""
world.py - Test helper for building a complete host environment

Builds a ledger with the native, wrapped and target assets, a pool manager
with an initialized and seeded pool, and an alignment vault on top of it.
Plain functions (not fixtures) so property-based tests can build a fresh
world per example.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from alignment_vault import (
    Ledger, Host, PoolManager, AlignmentVault, UnlockSession,
    PoolKey, VenueConfig, RewardConfig, BalanceDelta,
    Move, build_transaction, SYSTEM_WALLET, WRAPPED_ESCROW_WALLET,
    compute_wrap, sort_currencies,
    native_asset, wrapped_asset, token_asset,
    StaticCostRate,
    price_to_sqrt_price_x96, full_range_ticks, tick_to_sqrt_price_x96,
    get_liquidity_for_amounts,
)


ETH = "ETH"
WETH = "WETH"
ALIGN = "ALIGN"
E18 = 10 ** 18
START = datetime(2025, 1, 1)

BENEFACTORS = ("alice", "bob", "carol", "dave")


def fund(ledger: Ledger, wallet: str, asset: str, amount: int) -> None:
    """
    Issue `amount` of `asset` to `wallet` from the system wallet.

    The wrapped asset is issued by wrapping freshly issued native value, so
    the escrow always backs the wrapped supply.
    """
    ledger.ensure_wallet(wallet)
    if asset == WETH:
        fund(ledger, wallet, ETH, amount)
        ledger.ensure_wallet(WRAPPED_ESCROW_WALLET)
        ledger.execute(compute_wrap(ledger, wallet, amount), strict=True)
        return
    tx = build_transaction(ledger, [Move(amount, asset, SYSTEM_WALLET, wallet, f"genesis_{wallet}")])
    ledger.execute(tx, strict=True)


def settle_all(session: UnlockSession, key: PoolKey) -> None:
    """Zero both pool currencies for a locker that holds plain balances."""
    for currency in (key.currency0, key.currency1):
        owed = session.delta(currency)
        if owed < 0:
            session.settle(currency, -owed)
        elif owed > 0:
            session.take(currency, session.locker, owed)


def seed_liquidity(
    manager: PoolManager,
    key: PoolKey,
    lp: str,
    amount0: int,
    amount1: int,
    tick_lower: Optional[int] = None,
    tick_upper: Optional[int] = None,
    salt: str = "lp",
) -> int:
    """Add an LP position backed by (at most) the given amounts; returns its liquidity."""
    if tick_lower is None or tick_upper is None:
        tick_lower, tick_upper = full_range_ticks(key.tick_spacing)
    liquidity = get_liquidity_for_amounts(
        manager.slot0(key).sqrt_price_x96,
        tick_to_sqrt_price_x96(tick_lower),
        tick_to_sqrt_price_x96(tick_upper),
        amount0,
        amount1,
    )

    def add(session: UnlockSession) -> None:
        session.modify_liquidity(key, tick_lower, tick_upper, liquidity, salt)
        settle_all(session, key)

    manager.unlock(add, locker=lp)
    return liquidity


def swap(manager: PoolManager, trader: str, key: PoolKey, zero_for_one: bool, amount_in: int) -> BalanceDelta:
    """Exact-input swap for a trader holding plain balances."""
    def run(session: UnlockSession) -> BalanceDelta:
        delta = session.swap(key, zero_for_one, amount_in)
        settle_all(session, key)
        return delta

    return manager.unlock(run, locker=trader)


def donate(manager: PoolManager, donor: str, key: PoolKey, amount0: int, amount1: int) -> None:
    """Pay fees straight to the pool's in-range liquidity."""
    def run(session: UnlockSession) -> None:
        session.donate(key, amount0, amount1)
        settle_all(session, key)

    manager.unlock(run, locker=donor)


@dataclass
class World:
    ledger: Ledger
    host: Host
    manager: PoolManager
    key: PoolKey
    config: VenueConfig
    vault: AlignmentVault


def build_world(
    reward_config: Optional[RewardConfig] = None,
    cost_rate: Decimal = Decimal("10"),
    price: Decimal = Decimal("1000"),
    pool_base: str = ETH,
    vault_extra: int = 0,
) -> World:
    """
    A funded environment with a seeded ETH/ALIGN (or WETH/ALIGN) pool.

    Every benefactor, "keeper", "trader" and "dao" holds 1,000 ETH;
    "trader" and "dao" also hold 1,000,000 ALIGN. The LP seeds
    100 ETH / 100,000 ALIGN at `price` (ALIGN per base unit).
    """
    ledger = Ledger("chain", initial_time=START, verbose=False)
    ledger.register_asset(native_asset())
    ledger.register_asset(wrapped_asset())
    ledger.register_asset(token_asset(ALIGN, "Alignment Token"))
    host = Host(ledger, StaticCostRate(cost_rate))

    manager = PoolManager(host)
    currency0, currency1 = sort_currencies(pool_base, ALIGN)
    key = PoolKey(currency0, currency1, 3000, 60)
    base_is_currency0 = currency0 == pool_base
    pool_price = price if base_is_currency0 else Decimal(1) / price
    manager.initialize(key, price_to_sqrt_price_x96(pool_price))

    fund(ledger, "lp", pool_base, 1_000 * E18)
    fund(ledger, "lp", ALIGN, 10_000_000 * E18)
    if base_is_currency0:
        seed_liquidity(manager, key, "lp", 100 * E18, 100_000 * E18)
    else:
        seed_liquidity(manager, key, "lp", 100_000 * E18, 100 * E18)

    config = VenueConfig(key, ALIGN)
    vault = AlignmentVault(host, manager, config, owner="dao", reward_config=reward_config)

    for name in BENEFACTORS + ("keeper", "trader", "dao"):
        fund(ledger, name, ETH, 1_000 * E18)
    for name in ("trader", "dao"):
        fund(ledger, name, ALIGN, 1_000_000 * E18)
        if pool_base == WETH:
            fund(ledger, name, WETH, 100 * E18)
    if vault_extra:
        fund(ledger, vault.wallet_id, ETH, vault_extra)

    return World(ledger, host, manager, key, config, vault)


def vault_solvency_gap(world: World) -> tuple:
    """
    (native, target) holdings of the vault beyond everything it owes.

    Both are zero when the vault holds exactly its pending contributions,
    carried leftovers and unclaimed fees.
    """
    vault = world.vault
    unclaimed_base, unclaimed_target = vault.records.total_unclaimed()
    native = world.ledger.get_balance(vault.wallet_id, ETH)
    target = world.ledger.get_balance(vault.wallet_id, ALIGN)
    return (
        native - vault.pending_total - vault.idle_base - unclaimed_base,
        target - vault.idle_target - unclaimed_target,
    )


def state_fingerprint(world: World) -> tuple:
    """Everything a failed entry point must leave untouched."""
    vault = world.vault
    balances = {
        wallet: {asset: qty for asset, qty in held.items() if qty}
        for wallet, held in world.ledger.snapshot()['balances'].items()
    }
    return (
        balances,
        vault.snapshot(),
        vault.events,
        tuple(vault.reward_failures),
        len(world.ledger.transaction_log),
        vault.contributions.snapshot(),
        vault.records.snapshot(),
        vault.conversion.snapshot(),
        world.manager.snapshot(),
    )
