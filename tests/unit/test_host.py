"""
test_host.py - Unit tests for the transactional Host
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from alignment_vault import (
    Host, Participant, TimeSeriesCostRate,
    TransactionOrigin, OriginType, non_reentrant, ReentrantCall, UndoLog,
)
from tests.world import ETH, E18, START


ORIGIN = TransactionOrigin(OriginType.EXTERNAL, "test")


class Counter:
    """Minimal participant."""

    def __init__(self):
        self.value = 0

    def snapshot(self):
        return self.value

    def restore(self, saved):
        self.value = saved


class Guarded:
    def __init__(self):
        self._entered = False
        self.calls = 0

    @non_reentrant
    def outer(self, recurse):
        self.calls += 1
        if recurse:
            self.outer(False)
        return self.calls

    @non_reentrant
    def fail(self):
        raise RuntimeError("boom")


class TestAtomic:

    def test_commit_keeps_changes(self, host, funded_alice):
        host.ledger.register_wallet("bob")
        with host.atomic():
            host.ledger.transfer("alice", "bob", ETH, E18, ORIGIN)
        assert host.ledger.get_balance("bob", ETH) == E18

    def test_raise_restores_ledger_and_participants(self, host, funded_alice):
        counter = Counter()
        host.attach(counter)
        host.ledger.register_wallet("bob")
        with pytest.raises(RuntimeError):
            with host.atomic():
                counter.value = 5
                host.ledger.transfer("alice", "bob", ETH, E18, ORIGIN)
                raise RuntimeError("abort")
        assert counter.value == 0
        assert host.ledger.get_balance("bob", ETH) == 0
        assert host.ledger.get_balance("alice", ETH) == 100 * E18

    def test_nested_inner_failure_restores_inner_only(self, host):
        counter = Counter()
        host.attach(counter)
        with host.atomic():
            counter.value = 1
            with pytest.raises(ValueError):
                with host.atomic():
                    assert host.depth == 2
                    counter.value = 2
                    raise ValueError("inner")
            assert counter.value == 1
        assert counter.value == 1
        assert host.depth == 0

    def test_outer_failure_restores_committed_inner(self, host):
        counter = Counter()
        host.attach(counter)
        with pytest.raises(KeyError):
            with host.atomic():
                with host.atomic():
                    counter.value = 7
                raise KeyError("outer")
        assert counter.value == 0

    def test_raise_runs_journaled_undo(self, host, funded_alice):
        values = {"x": 1}
        log_length = len(host.ledger.transaction_log)
        with pytest.raises(RuntimeError):
            with host.atomic():
                values["x"] = 2
                host.journal.record(lambda: values.__setitem__("x", 1))
                host.ledger.register_wallet("bob")
                host.ledger.transfer("alice", "bob", ETH, E18, ORIGIN)
                raise RuntimeError("abort")
        assert values == {"x": 1}
        assert len(host.ledger.transaction_log) == log_length
        assert "bob" not in host.ledger.registered_wallets
        assert host.journal.pending == 0

    def test_nested_inner_failure_keeps_outer_journal(self, host):
        values = []
        with host.atomic():
            values.append(1)
            host.journal.record(values.pop)
            with pytest.raises(ValueError):
                with host.atomic():
                    values.append(2)
                    host.journal.record(values.pop)
                    raise ValueError("inner")
            assert values == [1]
            assert host.journal.pending == 1
        assert values == [1]
        assert host.journal.pending == 0

    def test_attach_requires_protocol(self, host):
        with pytest.raises(TypeError):
            host.attach(object())

    def test_attach_twice_is_noop(self, host):
        counter = Counter()
        host.attach(counter)
        host.attach(counter)
        assert sum(1 for p in host._participants if p is counter) == 1
        assert isinstance(counter, Participant)


class TestUndoLog:

    def test_rollback_runs_newest_first(self):
        log = UndoLog()
        order = []
        mark = log.open()
        log.record(lambda: order.append("first"))
        log.record(lambda: order.append("second"))
        log.rollback(mark)
        log.close()
        assert order == ["second", "first"]

    def test_rollback_stops_at_mark(self):
        log = UndoLog()
        order = []
        log.open()
        log.record(lambda: order.append("outer"))
        inner = log.open()
        log.record(lambda: order.append("inner"))
        log.rollback(inner)
        log.close()
        assert order == ["inner"]
        assert log.pending == 1
        log.close()
        assert log.pending == 0
        assert not log.active

    def test_nothing_recorded_outside_a_scope(self):
        log = UndoLog()
        log.record(lambda: None)
        assert log.pending == 0

    def test_unmatched_close(self):
        with pytest.raises(RuntimeError):
            UndoLog().close()


class TestClockAndRates:

    def test_now_follows_ledger(self, host):
        host.advance_time(START + timedelta(hours=3))
        assert host.now == START + timedelta(hours=3)
        assert host.ledger.current_time == host.now

    def test_cost_rate_at_current_time(self, ledger):
        rates = TimeSeriesCostRate([(START + timedelta(hours=1), Decimal("30"))], default=Decimal("10"))
        host = Host(ledger, rates)
        assert host.cost_rate() == Decimal("10")
        host.advance_time(START + timedelta(hours=2))
        assert host.cost_rate() == Decimal("30")

    def test_default_cost_rate_is_zero(self, ledger):
        assert Host(ledger).cost_rate() == Decimal("0")

    def test_verbose_follows_ledger(self, host):
        assert host.verbose is False


class TestNonReentrant:

    def test_plain_call(self):
        assert Guarded().outer(False) == 1

    def test_recursive_call_rejected(self):
        guarded = Guarded()
        with pytest.raises(ReentrantCall):
            guarded.outer(True)
        assert guarded._entered is False

    def test_flag_cleared_after_exception(self):
        guarded = Guarded()
        with pytest.raises(RuntimeError):
            guarded.fail()
        assert guarded.outer(False) == 1
