"""
conversion.py - Conversion Engine

Turns the pending contributions into liquidity and freezes who owns it.

One conversion:
    1. validate the venue configuration, require a nonzero pending total
    2. snapshot pending contributions; the snapshot is the frozen share table
    3. choose the swap proportion (even split without an in-range position)
    4. swap that part of the base amount into the target through the router
    5. deploy base + target (plus carried leftovers) through the adapter,
       booking fees the existing position collected against existing records
    6. attribute the deployment to the capital that funded it
    7. append the ConversionRecord
    8. clear the pending ledger

Capital a deployment leaves unused stays assigned to the record that brought
it in. When a later conversion deploys it, the liquidity it buys is added to
that record's fee weight; the new record's liquidity_delta covers only the
liquidity its own capital bought.

The caller is responsible for running convert() inside Host.atomic(); any
raise in between leaves nothing behind.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from .core import (
    ConversionRecord, LiquidityPosition, VenueConfig,
    NothingToConvert, SlippageExceeded,
)
from .adapter import LiquidityPositionAdapter
from .allocation import EVEN_SPLIT, optimal_swap_fraction, swap_amount
from .contributions import ContributionLedger
from .fees import FeeAccrualEngine, attribute_deployment
from .host import Host
from .records import ConversionRecordStore
from .router import BestExecutionRouter


# Liquidity used to measure the range's base/target requirement.
REFERENCE_LIQUIDITY = 10 ** 24


class ConversionEngine:
    """
    Owns the vault's liquidity position and the capital carried between
    deployments.

    Attributes:
        position: The vault's position, None before the first conversion
        carried: {record index: (base, target)} that record's capital left
            undeployed, waiting for a later deployment
    """

    def __init__(
        self,
        host: Host,
        contributions: ContributionLedger,
        store: ConversionRecordStore,
        fees: FeeAccrualEngine,
        adapter: LiquidityPositionAdapter,
        router: BestExecutionRouter,
        config_source: Callable[[], VenueConfig],
        verbose: Optional[bool] = None,
    ):
        self.host = host
        self.contributions = contributions
        self.store = store
        self.fees = fees
        self.adapter = adapter
        self.router = router
        self.config_source = config_source
        self.verbose = host.verbose if verbose is None else verbose
        self.position: Optional[LiquidityPosition] = None
        self.carried: Dict[int, Tuple[int, int]] = {}

    @property
    def idle_base(self) -> int:
        """Base asset left undeployed by earlier conversions."""
        return sum(base for base, _ in self.carried.values())

    @property
    def idle_target(self) -> int:
        """Target asset left undeployed by earlier conversions."""
        return sum(target for _, target in self.carried.values())

    def snapshot(self) -> Dict[str, Any]:
        return {'position': self.position, 'carried': dict(self.carried)}

    def restore(self, saved: Dict[str, Any]) -> None:
        self.position = saved['position']
        self.carried = dict(saved['carried'])

    # ------------------------------------------------------------------
    # Swap proportion
    # ------------------------------------------------------------------

    def range_for_deployment(self) -> Tuple[int, int]:
        """Existing range if a position exists, otherwise the full usable range."""
        if self.position is not None:
            return self.position.tick_lower, self.position.tick_upper
        return self.adapter.full_range()

    def swap_fraction(self, config: VenueConfig, total: int) -> Decimal:
        """
        Fraction of `total` to swap into the target asset.

        Even split without a position or with the price outside its range.
        """
        if self.position is None:
            return EVEN_SPLIT
        tick_lower, tick_upper = self.position.tick_lower, self.position.tick_upper
        if not self.adapter.price_in_range(tick_lower, tick_upper):
            return EVEN_SPLIT
        need_base, need_target = self.adapter.needed_amounts(tick_lower, tick_upper, REFERENCE_LIQUIDITY)
        return optimal_swap_fraction(
            total=total,
            quote=lambda amount: self.router.quote(config.native_currency, amount),
            need_base=need_base,
            need_target=need_target,
            idle_base=self.idle_base,
            idle_target=self.idle_target,
        )

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def convert(self, min_out: int = 0, min_liquidity: int = 0) -> ConversionRecord:
        """
        Run one conversion.

        Raises:
            InvalidConfiguration: Malformed venue configuration (before any movement)
            NothingToConvert: Pending total is zero
            SlippageExceeded: Swap output below min_out, or the liquidity the
                new contributions bought below min_liquidity (or zero)
        """
        config = self.config_source()
        config.validate()
        if self.contributions.pending_total == 0:
            raise NothingToConvert("No pending contributions to convert")

        saved = self.snapshot()
        self.host.journal.record(lambda: self.restore(saved))

        shares = self.contributions.snapshot_pending()
        total = self.contributions.pending_total

        fraction = self.swap_fraction(config, total)
        amount_in = swap_amount(total, fraction)
        amount_out = 0
        if amount_in > 0:
            amount_out = self.router.execute(config.native_currency, amount_in, min_out)

        index = len(self.store)
        holdings = [(i, base, target) for i, (base, target) in sorted(self.carried.items())]
        holdings.append((index, total - amount_in, amount_out))
        tick_lower, tick_upper = self.range_for_deployment()

        deployment = self.adapter.add_liquidity(
            tick_lower, tick_upper,
            sum(base for _, base, _ in holdings),
            sum(target for _, _, target in holdings),
        )
        parts = attribute_deployment(
            holdings,
            deployment.base_used,
            deployment.target_used,
            deployment.liquidity_delta,
            self.adapter.base_per_target(),
        )
        own = parts[index]
        if own.liquidity == 0 or own.liquidity < min_liquidity:
            raise SlippageExceeded(
                f"Liquidity {own.liquidity} below minimum {max(min_liquidity, 1)}"
            )

        # Fees the existing position collected belong to the existing records
        self.fees.allocate(deployment.fees_base, deployment.fees_target)
        for i, part in parts.items():
            if i != index and part.liquidity:
                self.store.add_fee_weight(i, part.liquidity)

        self.carried = {
            i: (part.base_left, part.target_left)
            for i, part in parts.items()
            if part.base_left or part.target_left
        }
        previous = self.position.liquidity if self.position is not None else 0
        self.position = LiquidityPosition(
            pool_id=config.pool_key.pool_id,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            liquidity=previous + deployment.liquidity_delta,
            salt=self.adapter.salt,
        )

        record = self.store.append(
            timestamp=self.host.now,
            shares=shares,
            total_converted=total,
            liquidity_delta=own.liquidity,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            swap_amount_in=amount_in,
            swap_amount_out=amount_out,
            base_deployed=own.base_used,
            target_deployed=own.target_used,
        )
        self.contributions.clear()

        if self.verbose:
            print(f"✓ CONVERSION #{record.index}: {total} converted, "
                  f"{record.benefactor_count} benefactors, L+{record.liquidity_delta}")
        return record

    def harvest(self) -> Tuple[int, int, Dict[int, Tuple[int, int]]]:
        """
        Collect the position's fees and record them against every record.

        Returns:
            (base_fees, target_fees, allocation by record index)
        """
        if self.position is None:
            return 0, 0, {}
        base_fees, target_fees = self.adapter.harvest(self.position.tick_lower, self.position.tick_upper)
        allocation = self.fees.allocate(base_fees, target_fees)
        return base_fees, target_fees, allocation
