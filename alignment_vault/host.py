"""
host.py - Transactional host environment

The Host bundles the ledger, the logical clock and the execution cost-rate
source, and provides the transactional scope every public entry point runs
in. Host.atomic() restores everything a failed block changed.

Components take part in one of two ways:
    journaled      record an undo action in host.journal (the ledger's
                   UndoLog) for every mutation; rollback cost follows what
                   the block changed
    participants   small state holders attached with host.attach(), which
                   implement snapshot() -> Any and restore(saved) -> None
                   and are captured whole on every scope entry
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from functools import wraps
from typing import Any, Iterator, List, Optional, Protocol, runtime_checkable

from .core import ReentrantCall, UndoLog
from .cost_rates import CostRateSource, StaticCostRate
from .ledger import Ledger


@runtime_checkable
class Participant(Protocol):
    """State holder that can be captured and reinstated by Host.atomic()."""

    def snapshot(self) -> Any:
        ...

    def restore(self, saved: Any) -> None:
        ...


class Host:
    """
    Execution environment shared by the vault and its collaborators.

    Example:
        host = Host(Ledger("chain"), cost_rates=StaticCostRate(Decimal("20")))
        host.attach(tax_hook)
        with host.atomic():
            ...  # any raise restores the ledger and the tax hook
    """

    def __init__(self, ledger: Ledger, cost_rates: Optional[CostRateSource] = None):
        self.ledger = ledger
        self.cost_rates = cost_rates or StaticCostRate()
        self.journal: UndoLog = ledger.journal
        self._participants: List[Participant] = []
        self._depth = 0

    @property
    def now(self) -> datetime:
        return self.ledger.current_time

    @property
    def verbose(self) -> bool:
        return self.ledger.verbose

    @property
    def depth(self) -> int:
        """Number of atomic scopes currently open."""
        return self._depth

    def cost_rate(self) -> Decimal:
        """Execution cost rate in effect at the current time."""
        return self.cost_rates.get_rate(self.now)

    def advance_time(self, new_time: datetime) -> None:
        self.ledger.advance_time(new_time)

    def attach(self, participant: Participant) -> None:
        """Register a participant; attaching twice is a no-op."""
        if not isinstance(participant, Participant):
            raise TypeError(f"{participant!r} does not implement snapshot()/restore()")
        if any(p is participant for p in self._participants):
            return
        self._participants.append(participant)

    @contextmanager
    def atomic(self) -> Iterator[Host]:
        """
        All-or-nothing scope over journaled state and attached participants.

        Scopes nest: an inner scope that raises restores the state at its
        own entry, and the exception continues to the outer scope.
        """
        mark = self.journal.open()
        saved = [(p, p.snapshot()) for p in self._participants]
        self._depth += 1
        try:
            yield self
        except BaseException:
            self.journal.rollback(mark)
            for participant, state in reversed(saved):
                participant.restore(state)
            raise
        finally:
            self._depth -= 1
            self.journal.close()


def non_reentrant(method):
    """
    Reject nested entry into any guarded method of the same object.

    The guarded object must define an ``_entered`` attribute. The flag is
    not part of any snapshot, so a restore never leaves it set.
    """
    @wraps(method)
    def guarded(self, *args, **kwargs):
        if self._entered:
            raise ReentrantCall(f"{method.__name__} called while another entry point is executing")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False
    return guarded
