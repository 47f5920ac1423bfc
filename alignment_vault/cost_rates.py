"""
cost_rates.py - Execution cost rates for caller rewards

The reward paid to whoever triggers a conversion scales with the host's
current execution cost rate (base-asset units per unit of work).

Classes:
- CostRateSource: Protocol defining the cost-rate interface
- StaticCostRate: Time-independent rate
- TimeSeriesCostRate: Time-varying rates with historical data
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple, Protocol, runtime_checkable
from bisect import bisect_right


@runtime_checkable
class CostRateSource(Protocol):
    """
    Protocol for cost-rate sources.

    A cost-rate source reports the price of one unit of work, denominated
    in the smallest unit of the native base asset, at a given time.
    """

    def get_rate(self, timestamp: datetime) -> Decimal:
        """Get the cost rate in effect at a specific timestamp."""
        ...


class StaticCostRate:
    """Cost-rate source with a constant rate (time-independent)."""

    def __init__(self, rate: Decimal = Decimal("0")):
        if Decimal(rate) < 0:
            raise ValueError(f"cost rate must be non-negative, got {rate}")
        self.rate = Decimal(rate)

    def get_rate(self, timestamp: datetime) -> Decimal:
        """Get static rate (timestamp is ignored)."""
        return self.rate

    def update_rate(self, rate: Decimal):
        """Replace the rate."""
        if Decimal(rate) < 0:
            raise ValueError(f"cost rate must be non-negative, got {rate}")
        self.rate = Decimal(rate)

    def __repr__(self):
        return f"StaticCostRate({self.rate})"


class TimeSeriesCostRate:
    """
    Cost-rate source with time-varying rates.

    Uses the most recent observation at or before the requested timestamp.
    Before the first observation the default rate applies.
    """

    def __init__(
        self,
        observations: Optional[List[Tuple[datetime, Decimal]]] = None,
        default: Decimal = Decimal("0"),
    ):
        """
        Initialize the source.

        Args:
            observations: Optional list of (timestamp, rate) tuples
            default: Rate reported before the first observation

        Example:
            rates = TimeSeriesCostRate([(t0, Decimal("20")), (t1, Decimal("35"))])
            rates.get_rate(t0 + timedelta(minutes=5))   # Decimal("20")
        """
        self.default = Decimal(default)
        self.history: List[Tuple[datetime, Decimal]] = []
        for timestamp, rate in observations or []:
            self.add_rate(timestamp, rate)

    def add_rate(self, timestamp: datetime, rate: Decimal):
        """Add a rate observation."""
        rate = Decimal(rate)
        if rate < 0:
            raise ValueError(f"cost rate must be non-negative, got {rate}")
        self.history.append((timestamp, rate))
        self.history.sort(key=lambda x: x[0])

    def get_rate(self, timestamp: datetime) -> Decimal:
        """
        Get the rate at or before the specified timestamp.

        Uses binary search for efficient O(log n) lookup.
        """
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return self.default
        return self.history[idx - 1][1]

    def __repr__(self):
        return f"TimeSeriesCostRate({len(self.history)} observations, default={self.default})"
