"""
rewards.py - Reward/Incentive Subsystem

Pays whoever triggers a conversion. The reward runs after the conversion
has committed, inside its own atomic scope, and every failure is absorbed:
a recipient that refuses payment, a vault without enough free balance, or
a recursive call back into the vault never undoes the conversion.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Callable, Optional

from .core import (
    RewardConfig, TransactionOrigin, OriginType,
    InsufficientBalance,
)
from .host import Host


def compute_reward(config: RewardConfig, benefactor_count: int, cost_rate: Decimal) -> int:
    """
    reward = min(base_reward + per_benefactor_units * benefactor_count * cost_rate, max_reward)

    The variable part is rounded down to a whole unit.
    """
    if benefactor_count < 0:
        raise ValueError(f"benefactor_count must be non-negative, got {benefactor_count}")
    if Decimal(cost_rate) < 0:
        raise ValueError(f"cost_rate must be non-negative, got {cost_rate}")
    variable = Decimal(config.per_benefactor_units) * benefactor_count * Decimal(cost_rate)
    uncapped = config.base_reward + int(variable.to_integral_value(rounding=ROUND_FLOOR))
    return min(uncapped, config.max_reward)


@dataclass(frozen=True, slots=True)
class RewardOutcome:
    """
    Result of one reward attempt.

    Attributes:
        recipient: Caller the reward was intended for
        amount: Reward computed for the conversion
        paid: True if the transfer went through
        error: Description of the absorbed failure, if any
    """
    recipient: str
    amount: int
    paid: bool
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RewardFailure:
    """Audit entry for an absorbed reward failure."""
    timestamp: datetime
    record_index: int
    recipient: str
    amount: int
    error: str


class RewardSubsystem:
    """
    Failure-isolated reward payment from the vault's free balance.

    Args:
        host: Host environment
        wallet_id: Vault wallet the reward is paid from
        asset_symbol: Asset the reward is paid in
        free_balance: Returns the vault balance not reserved for anything else
    """

    def __init__(
        self,
        host: Host,
        wallet_id: str,
        asset_symbol: str,
        free_balance: Callable[[], int],
        verbose: Optional[bool] = None,
    ):
        self.host = host
        self.wallet_id = wallet_id
        self.asset_symbol = asset_symbol
        self.free_balance = free_balance
        self.verbose = host.verbose if verbose is None else verbose

    def compute(self, config: RewardConfig, benefactor_count: int) -> int:
        return compute_reward(config, benefactor_count, self.host.cost_rate())

    def attempt_payment(self, recipient: str, amount: int, record_index: int) -> RewardOutcome:
        """
        Try to pay `amount` to `recipient`; never raises for payment failures.
        """
        if amount <= 0:
            return RewardOutcome(recipient, 0, paid=False)

        try:
            with self.host.atomic():
                available = self.free_balance()
                if available < amount:
                    raise InsufficientBalance(
                        f"Reward {amount} exceeds free balance {available}"
                    )
                self.host.ledger.transfer(
                    self.wallet_id, recipient, self.asset_symbol, amount,
                    TransactionOrigin(OriginType.REWARD, self.wallet_id, f"record_{record_index}"),
                )
        except Exception as exc:
            if self.verbose:
                print(f"⚠️  REWARD FAILED: {amount} to {recipient}: {exc!r}")
            return RewardOutcome(recipient, amount, paid=False, error=repr(exc))

        if self.verbose:
            print(f"✓ REWARD PAID: {amount} to {recipient}")
        return RewardOutcome(recipient, amount, paid=True)
