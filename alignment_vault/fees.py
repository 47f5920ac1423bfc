"""
fees.py - Fee Accrual & Claim Engine

Fee accumulators per conversion record, allocation of harvested fees
across records, and benefactor claims computed from frozen shares and
claim watermarks.

For a benefactor b and record r:

    entitlement(b, r) = share(b, r) * accumulated_fees(r) // total_converted(r)
    owed(b, r)        = entitlement(b, r) - watermark(b, r)

The same holds independently for the target-asset component. Claiming
raises the watermark to the entitlement, so a second claim with no new
fees owes nothing.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .core import ClaimWatermark, FeeAccount
from .records import ConversionRecordStore


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def compute_entitlement(share: int, total_converted: int, accumulated: int) -> int:
    """Cumulative amount a share is entitled to, rounded down."""
    if total_converted <= 0:
        raise ValueError(f"total_converted must be positive, got {total_converted}")
    if share < 0 or share > total_converted:
        raise ValueError(f"share {share} outside [0, {total_converted}]")
    return share * accumulated // total_converted


def allocate_fees(amount: int, weights: Sequence[Tuple[int, int]]) -> Dict[int, int]:
    """
    Split `amount` across (key, weight) pairs pro-rata, summing exactly.

    Floors first, then hands the remaining units to the largest fractional
    remainders (ties to the lower key).

    Returns:
        {key: allocated amount} for every key with a positive allocation
    """
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    if amount == 0:
        return {}
    total_weight = sum(w for _, w in weights)
    if total_weight <= 0 or any(w < 0 for _, w in weights):
        raise ValueError("weights must be non-negative with a positive sum")

    allocation = {key: amount * weight // total_weight for key, weight in weights}
    leftover = amount - sum(allocation.values())
    by_remainder = sorted(weights, key=lambda kw: (-(amount * kw[1] % total_weight), kw[0]))
    for key, _ in by_remainder[:leftover]:
        allocation[key] += 1
    return {key: value for key, value in allocation.items() if value > 0}


@dataclass(frozen=True, slots=True)
class DeploymentShare:
    """One capital source's part of a deployment."""
    base_used: int
    target_used: int
    base_left: int
    target_left: int
    liquidity: int


def attribute_deployment(
    holdings: Sequence[Tuple[int, int, int]],
    base_used: int,
    target_used: int,
    liquidity: int,
    base_per_target: Decimal,
) -> Dict[int, DeploymentShare]:
    """
    Attribute one deployment across the capital sources that funded it.

    Each asset's used amount is split pro-rata to what each source held of
    that asset. The liquidity is then split pro-rata to the value each
    source actually put in, valued in base at `base_per_target`.

    Args:
        holdings: (key, base held, target held) per source
        base_used: Base asset the deployment consumed
        target_used: Target asset the deployment consumed
        liquidity: Liquidity the deployment bought
        base_per_target: Pool price of one target unit in base units

    Returns:
        {key: DeploymentShare} for every source; used and liquidity parts
        sum exactly to the totals
    """
    if base_per_target <= 0:
        raise ValueError(f"base_per_target must be positive, got {base_per_target}")
    if base_used > sum(b for _, b, _ in holdings) or target_used > sum(t for _, _, t in holdings):
        raise ValueError("deployment uses more than the sources hold")

    base_split = allocate_fees(base_used, [(key, b) for key, b, _ in holdings])
    target_split = allocate_fees(target_used, [(key, t) for key, _, t in holdings])

    numerator, denominator = base_per_target.as_integer_ratio()
    values = [
        (key, base_split.get(key, 0) * denominator + target_split.get(key, 0) * numerator)
        for key, _, _ in holdings
    ]
    liquidity_split = allocate_fees(liquidity, values) if liquidity else {}

    return {
        key: DeploymentShare(
            base_used=base_split.get(key, 0),
            target_used=target_split.get(key, 0),
            base_left=base - base_split.get(key, 0),
            target_left=target - target_split.get(key, 0),
            liquidity=liquidity_split.get(key, 0),
        )
        for key, base, target in holdings
    }


@dataclass(frozen=True, slots=True)
class ClaimLine:
    """What one record owes one benefactor."""
    record_index: int
    owed: int
    owed_target: int
    entitlement: int
    entitlement_target: int


@dataclass(frozen=True, slots=True)
class ClaimComputation:
    """Every nonzero ClaimLine of one benefactor, in record order."""
    benefactor: str
    lines: Tuple[ClaimLine, ...]

    @property
    def total_base(self) -> int:
        return sum(line.owed for line in self.lines)

    @property
    def total_target(self) -> int:
        return sum(line.owed_target for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines


def compute_claim(store: ConversionRecordStore, benefactor: str) -> ClaimComputation:
    """
    Owed amounts across the benefactor's participation list only.

    Does not mutate the store. A benefactor with no participation gets an
    empty computation.
    """
    lines: List[ClaimLine] = []
    for index in store.participations(benefactor):
        record = store.records[index]
        account = store.accounts[index]
        share = record.share_of(benefactor)
        watermark = store.watermark(benefactor, index)

        entitlement = compute_entitlement(share, record.total_converted, account.accumulated_fees)
        entitlement_target = compute_entitlement(share, record.total_converted, account.accumulated_target_fees)
        owed = max(0, entitlement - watermark.paid)
        owed_target = max(0, entitlement_target - watermark.paid_target)
        if owed or owed_target:
            lines.append(ClaimLine(index, owed, owed_target, entitlement, entitlement_target))
    return ClaimComputation(benefactor, tuple(lines))


# ============================================================================
# ENGINE
# ============================================================================

class FeeAccrualEngine:
    """Mutating side of fee accounting over a ConversionRecordStore."""

    def __init__(
        self,
        store: ConversionRecordStore,
        verbose: bool = False,
        listener: Optional[Callable[[int, int, int], None]] = None,
    ):
        self.store = store
        self.verbose = verbose
        # Called with (record_index, amount, target_amount) after every recording
        self.listener = listener

    def record_accumulated_fees(self, record_index: int, amount: int, target_amount: int = 0) -> FeeAccount:
        """
        Increase a record's fee accumulators.

        Raises:
            UnknownRecord: If the record does not exist
            ValueError: If either amount is negative or not an int
        """
        for name, value in (('amount', amount), ('target_amount', target_amount)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be int, got {type(value)}")
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        account = self.store.credit_fees(record_index, amount, target_amount)
        if self.listener is not None:
            self.listener(record_index, amount, target_amount)
        if self.verbose:
            print(f"✓ FEES RECORDED: record {record_index} +{amount} base +{target_amount} target")
        return account

    def allocate(self, base_amount: int, target_amount: int) -> Dict[int, Tuple[int, int]]:
        """
        Record harvested fees against every record, weighted by the liquidity
        each record owns in the position.

        Returns:
            {record_index: (base, target)} for every record that received fees
        """
        if base_amount == 0 and target_amount == 0:
            return {}
        weights = list(enumerate(self.store.fee_weights))
        base_split = allocate_fees(base_amount, weights)
        target_split = allocate_fees(target_amount, weights)
        allocation: Dict[int, Tuple[int, int]] = {}
        for index in sorted(set(base_split) | set(target_split)):
            base, target = base_split.get(index, 0), target_split.get(index, 0)
            self.record_accumulated_fees(index, base, target)
            allocation[index] = (base, target)
        return allocation

    def compute_claim(self, benefactor: str) -> ClaimComputation:
        return compute_claim(self.store, benefactor)

    def apply_claim(self, computation: ClaimComputation) -> None:
        """Raise watermarks to the computed entitlements and book the payout."""
        for line in computation.lines:
            self.store.set_watermark(ClaimWatermark(
                benefactor=computation.benefactor,
                record_index=line.record_index,
                paid=line.entitlement,
                paid_target=line.entitlement_target,
            ))
            self.store.book_claim(line.record_index, line.owed, line.owed_target)
