"""
test_cost_rates.py - Unit tests for execution cost-rate sources
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from alignment_vault import CostRateSource, StaticCostRate, TimeSeriesCostRate


T0 = datetime(2025, 1, 1)


class TestStaticCostRate:

    def test_rate_ignores_time(self):
        source = StaticCostRate(Decimal("12.5"))
        assert source.get_rate(T0) == Decimal("12.5")
        assert source.get_rate(T0 + timedelta(days=365)) == Decimal("12.5")

    def test_default_is_zero(self):
        assert StaticCostRate().get_rate(T0) == Decimal("0")

    def test_update_rate(self):
        source = StaticCostRate(Decimal("1"))
        source.update_rate(Decimal("3"))
        assert source.get_rate(T0) == Decimal("3")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            StaticCostRate(Decimal("-1"))
        with pytest.raises(ValueError, match="non-negative"):
            StaticCostRate().update_rate(Decimal("-0.1"))

    def test_implements_protocol(self):
        assert isinstance(StaticCostRate(), CostRateSource)


class TestTimeSeriesCostRate:

    def test_default_before_first_observation(self):
        source = TimeSeriesCostRate([(T0, Decimal("20"))], default=Decimal("5"))
        assert source.get_rate(T0 - timedelta(seconds=1)) == Decimal("5")

    def test_most_recent_observation_applies(self):
        source = TimeSeriesCostRate([
            (T0 + timedelta(hours=2), Decimal("35")),
            (T0, Decimal("20")),
        ])
        assert source.get_rate(T0) == Decimal("20")
        assert source.get_rate(T0 + timedelta(hours=1)) == Decimal("20")
        assert source.get_rate(T0 + timedelta(hours=2)) == Decimal("35")
        assert source.get_rate(T0 + timedelta(days=3)) == Decimal("35")

    def test_add_rate_keeps_history_sorted(self):
        source = TimeSeriesCostRate()
        source.add_rate(T0 + timedelta(hours=1), Decimal("2"))
        source.add_rate(T0, Decimal("1"))
        assert [ts for ts, _ in source.history] == [T0, T0 + timedelta(hours=1)]

    def test_negative_observation_rejected(self):
        with pytest.raises(ValueError):
            TimeSeriesCostRate([(T0, Decimal("-1"))])

    def test_implements_protocol(self):
        assert isinstance(TimeSeriesCostRate(), CostRateSource)
