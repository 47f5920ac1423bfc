#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Alignment Vault Step by Step

This is a walkthrough of how benefactor value becomes shared liquidity and
how that liquidity's fees find their way back. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation   - The host ledger, the pool, an empty vault
  4-6:   Conversion   - Contributions, the frozen record, a second conversion
  7-9:   Fees         - Harvesting, claiming, watermarks
  10-11: Safety       - Failed entry points, reward isolation, conservation

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from alignment_vault import (
    Ledger, Host, PoolManager, AlignmentVault, UnlockSession,
    PoolKey, VenueConfig, RewardConfig,
    Move, build_transaction, SYSTEM_WALLET,
    native_asset, wrapped_asset, token_asset,
    StaticCostRate,
    price_to_sqrt_price_x96, full_range_ticks, tick_to_sqrt_price_x96,
    get_liquidity_for_amounts,
    SlippageExceeded,
)


E18 = 10 ** 18


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Pool
    align_per_eth: Decimal = Decimal("1000")
    seed_eth: int = 100 * E18
    seed_align: int = 100_000 * E18

    # Benefactors
    alice_contribution: int = 10 * E18
    bob_contribution: int = 5 * E18
    carol_contribution: int = 3 * E18

    # Caller incentive
    reward: RewardConfig = RewardConfig(base_reward=10**15, per_benefactor_units=10**12, max_reward=10**16)
    cost_rate: Decimal = Decimal("25")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def eth(amount: int) -> str:
    return f"{Decimal(amount) / Decimal(E18):.6f}"


def issue(ledger: Ledger, wallet: str, asset: str, amount: int):
    ledger.ensure_wallet(wallet)
    ledger.execute(build_transaction(ledger, [Move(amount, asset, SYSTEM_WALLET, wallet, "genesis")]), strict=True)


def settle(session: UnlockSession, key: PoolKey):
    for currency in (key.currency0, key.currency1):
        owed = session.delta(currency)
        if owed < 0:
            session.settle(currency, -owed)
        elif owed > 0:
            session.take(currency, session.locker, owed)


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_host():
    step_header(1, "The Host Ledger",
        "Every asset the vault touches lives in one double-entry ledger.")

    print("""
    The Host bundles three things:

    1. LEDGER     - integer balances (wei) of ETH, WETH and ALIGN
    2. CLOCK      - the ledger's logical time
    3. COST RATE  - the execution cost rate used to size caller rewards

    Host.atomic() undoes every change a block made if the block raises.
    Each mutation leaves an undo entry in the host journal, so undoing a
    claim costs the same however long the vault's history is.
    """)

    ledger = Ledger("chain", initial_time=CONFIG.start_time, verbose=False)
    ledger.register_asset(native_asset())
    ledger.register_asset(wrapped_asset())
    ledger.register_asset(token_asset("ALIGN", "Alignment Token"))
    host = Host(ledger, StaticCostRate(CONFIG.cost_rate))

    for name in ("alice", "bob", "carol", "keeper", "trader", "dao"):
        issue(ledger, name, "ETH", 1_000 * E18)
    issue(ledger, "trader", "ALIGN", 1_000_000 * E18)

    section_header("Initial State")
    print(f"Assets:        {ledger.list_assets()}")
    print(f"Wallets:       {sorted(ledger.list_wallets())}")
    print(f"ETH issued:    {eth(ledger.circulating_supply('ETH'))}")
    print(f"Cost rate:     {host.cost_rate()}")
    return host


def step_02_pool(host: Host):
    step_header(2, "The Liquidity Venue",
        "A concentrated-liquidity pool settles through unlock/settle/take.")

    manager = PoolManager(host)
    key = PoolKey("ETH", "ALIGN", 3000, 60)
    tick = manager.initialize(key, price_to_sqrt_price_x96(CONFIG.align_per_eth))
    print(f">>> manager.initialize({key}, price={CONFIG.align_per_eth})  -> tick {tick}")

    issue(host.ledger, "lp", "ETH", CONFIG.seed_eth)
    issue(host.ledger, "lp", "ALIGN", CONFIG.seed_align)
    lower, upper = full_range_ticks(key.tick_spacing)
    liquidity = get_liquidity_for_amounts(
        manager.slot0(key).sqrt_price_x96,
        tick_to_sqrt_price_x96(lower),
        tick_to_sqrt_price_x96(upper),
        CONFIG.seed_eth,
        CONFIG.seed_align,
    )

    def add(session):
        session.modify_liquidity(key, lower, upper, liquidity, "lp")
        settle(session, key)

    manager.unlock(add, locker="lp")

    section_header("Key Insight")
    print("""
    Inside unlock() every operation only records a currency delta. The
    continuation must settle (pay) or take (receive) each one before it
    returns, or the whole window is reverted with CurrencyNotSettled.
    """)
    print(f"Pool reserves: {eth(host.ledger.get_balance(manager.wallet_id, 'ETH'))} ETH")
    return manager, key


def step_03_vault(host: Host, manager: PoolManager, key: PoolKey):
    step_header(3, "An Empty Vault",
        "The vault is owned by a DAO and points at one pool.")

    vault = AlignmentVault(host, manager, VenueConfig(key, "ALIGN"), owner="dao",
                           reward_config=CONFIG.reward)
    print(f">>> {vault!r}")
    print(f"Records:        {vault.record_count}")
    print(f"Pending total:  {vault.pending_total}")
    print(f"Position:       {vault.position}")
    return vault


# ============================================================================
# PHASE 2: CONVERSION (Steps 4-6)
# ============================================================================

def step_04_contributions(vault: AlignmentVault):
    step_header(4, "Contributions",
        "Contributions wait in a pending ledger until the next conversion.")

    vault.receive_contribution("alice", CONFIG.alice_contribution)
    vault.receive_contribution("bob", CONFIG.bob_contribution)
    print(f"alice pending:  {eth(vault.pending_contribution('alice'))} ETH")
    print(f"bob pending:    {eth(vault.pending_contribution('bob'))} ETH")
    print(f"pending total:  {eth(vault.pending_total)} ETH")


def step_05_first_conversion(vault: AlignmentVault):
    step_header(5, "The First Conversion",
        "One call swaps, deploys, and freezes who owns the new liquidity.")

    result = vault.convert_and_add_liquidity(caller="keeper")
    record = result.record
    print(f"Record #{record.index}")
    print(f"  total converted:  {eth(record.total_converted)} ETH")
    print(f"  swapped:          {eth(record.swap_amount_in)} ETH -> {eth(record.swap_amount_out)} ALIGN")
    print(f"  liquidity added:  {record.liquidity_delta}")
    for name, ratio in record.ratios.items():
        print(f"  {name:6} ratio:     {ratio:.6f}")
    print(f"Reward to keeper:   paid={result.reward.paid} amount={result.reward.amount} "
          f"error={result.reward.error}")

    section_header("Key Insight")
    print("""
    Without an existing position the vault swaps exactly half. The record's
    shares are integers, so the ratios sum to exactly one and never move.
    The reward fails here: every wei the vault holds is reserved.
    """)


def step_06_second_conversion(vault: AlignmentVault, host: Host):
    step_header(6, "A Second Conversion",
        "New benefactors get a new record; old records keep their shares.")

    host.advance_time(host.now + timedelta(days=1))
    vault.receive_contribution("carol", CONFIG.carol_contribution)
    record = vault.convert_and_add_liquidity(caller="keeper").record
    print(f"Record #{record.index}: shares={record.shares}")
    print(f"Swap fraction:     {Decimal(record.swap_amount_in) / Decimal(record.total_converted):.4f}")
    print(f"Record #0 fees from the vault's own swap: {vault.fee_account(0).accumulated_fees} wei")
    print(f"Position liquidity: {vault.position.liquidity}")


# ============================================================================
# PHASE 3: FEES (Steps 7-9)
# ============================================================================

def step_07_harvest(vault: AlignmentVault, manager: PoolManager, key: PoolKey):
    step_header(7, "Harvesting Trading Fees",
        "Fees collected from the position are split across records by liquidity.")

    def trade(zero_for_one, amount):
        def run(session):
            session.swap(key, zero_for_one, amount)
            settle(session, key)
        manager.unlock(run, locker="trader")

    trade(True, 20 * E18)
    trade(False, 20_000 * E18)
    base, target = vault.harvest_fees()
    print(f"Harvested: {base} wei ETH, {target} wei ALIGN")
    for index in range(vault.record_count):
        account = vault.fee_account(index)
        print(f"  record #{index}: {account.accumulated_fees} ETH / {account.accumulated_target_fees} ALIGN")


def step_08_claims(vault: AlignmentVault):
    step_header(8, "Claiming",
        "A claim walks only the records the benefactor took part in.")

    for name in ("alice", "bob", "carol"):
        preview = vault.preview_claimable(name)
        result = vault.claim_benefactor_fees(name)
        print(f"{name:6} records={list(result.records)} base={result.base_fees} "
              f"target={result.target_fees} -> paid {result.total_paid} wei "
              f"(previewed {preview.estimated_total})")


def step_09_watermarks(vault: AlignmentVault):
    step_header(9, "Watermarks",
        "Claiming again without new fees pays nothing.")

    again = vault.claim_benefactor_fees("alice")
    print(f"alice second claim: {again.total_paid} wei")
    watermark = vault.watermark("alice", 0)
    print(f"alice watermark on record #0: paid={watermark.paid} paid_target={watermark.paid_target}")


# ============================================================================
# PHASE 4: SAFETY (Steps 10-11)
# ============================================================================

def step_10_failed_entry_points(vault: AlignmentVault, host: Host):
    step_header(10, "All-or-Nothing",
        "A conversion that fails its slippage bound leaves no trace.")

    vault.receive_contribution("bob", 2 * E18)
    before = host.ledger.get_balance(vault.wallet_id, "ETH")
    try:
        vault.convert_and_add_liquidity(caller="keeper", min_out=10**30)
    except SlippageExceeded as exc:
        print(f"Rejected: {exc}")
    print(f"Pending still:   {eth(vault.pending_total)} ETH")
    print(f"Vault ETH:       {eth(before)} -> {eth(host.ledger.get_balance(vault.wallet_id, 'ETH'))}")
    print(f"Records:         {vault.record_count}")


def step_11_conservation(vault: AlignmentVault, host: Host):
    step_header(11, "Conservation",
        "Every asset still sums to zero and the vault holds exactly what it owes.")

    check = host.ledger.verify_double_entry()
    print(f"Double entry valid: {check['valid']}")
    unclaimed_base, unclaimed_target = vault.records.total_unclaimed()
    owed = vault.pending_total + vault.idle_base + unclaimed_base
    print(f"Vault ETH:   {vault.native_balance()}  owed: {owed}")
    print(f"Vault ALIGN: {host.ledger.get_balance(vault.wallet_id, 'ALIGN')}  "
          f"owed: {vault.idle_target + unclaimed_target}")
    print(f"Reward failures recorded: {len(vault.reward_failures)}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       ALIGNMENT VAULT - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    host = step_01_host()
    wait_for_enter()
    manager, key = step_02_pool(host)
    wait_for_enter()
    vault = step_03_vault(host, manager, key)
    wait_for_enter()

    step_04_contributions(vault)
    wait_for_enter()
    step_05_first_conversion(vault)
    wait_for_enter()
    step_06_second_conversion(vault, host)
    wait_for_enter()

    step_07_harvest(vault, manager, key)
    wait_for_enter()
    step_08_claims(vault)
    wait_for_enter()
    step_09_watermarks(vault)
    wait_for_enter()

    step_10_failed_entry_points(vault, host)
    wait_for_enter()
    step_11_conservation(vault, host)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - Run tests: pytest tests/
      - See tests/conformance/ for the invariants stated as properties
    """)


if __name__ == "__main__":
    main()
