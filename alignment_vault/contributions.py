"""
contributions.py - Contribution Ledger

Pending (not yet converted) value per benefactor, the running pending
total, and each benefactor's lifetime total. Pure bookkeeping: moving the
asset itself is the vault's job.
"""

from __future__ import annotations
from typing import Dict, Optional, Tuple, Any

from .core import InvalidContribution, UndoLog


class ContributionLedger:
    """
    Pending contributions awaiting the next conversion.

    Invariant: pending_total == sum(pending.values()), and every stored
    pending amount is positive.

    Every mutation is journaled in `journal`, so an enclosing scope can undo
    it at the cost of the entries it touched.
    """

    def __init__(self, journal: Optional[UndoLog] = None):
        self.journal = journal if journal is not None else UndoLog()
        self.pending: Dict[str, int] = {}
        self.pending_total: int = 0
        self.lifetime: Dict[str, int] = {}

    def accrue(self, benefactor: str, amount: int) -> int:
        """
        Add a contribution.

        Returns:
            The benefactor's new pending amount

        Raises:
            InvalidContribution: If amount is not a positive int or benefactor is empty
        """
        if not benefactor or not str(benefactor).strip():
            raise InvalidContribution("Benefactor cannot be empty")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidContribution(f"Contribution must be int, got {type(amount)}")
        if amount <= 0:
            raise InvalidContribution(f"Contribution must be positive, got {amount}")
        previous = (self.pending.get(benefactor), self.lifetime.get(benefactor), self.pending_total)
        self.journal.record(lambda: self._reinstate(benefactor, *previous))
        self.pending[benefactor] = self.pending.get(benefactor, 0) + amount
        self.pending_total += amount
        self.lifetime[benefactor] = self.lifetime.get(benefactor, 0) + amount
        return self.pending[benefactor]

    def _reinstate(self, benefactor: str, pending: Optional[int], lifetime: Optional[int], total: int) -> None:
        for table, value in ((self.pending, pending), (self.lifetime, lifetime)):
            if value is None:
                table.pop(benefactor, None)
            else:
                table[benefactor] = value
        self.pending_total = total

    def pending_of(self, benefactor: str) -> int:
        return self.pending.get(benefactor, 0)

    def total_contributed(self, benefactor: str) -> int:
        return self.lifetime.get(benefactor, 0)

    @property
    def benefactors(self) -> Tuple[str, ...]:
        """Every benefactor that has ever contributed, sorted."""
        return tuple(sorted(self.lifetime))

    def snapshot_pending(self) -> Tuple[Tuple[str, int], ...]:
        """Sorted (benefactor, amount) pairs of every nonzero pending contribution."""
        return tuple(sorted((b, a) for b, a in self.pending.items() if a > 0))

    def clear(self) -> None:
        """Zero every pending contribution and the pending total."""
        pending, total = self.pending, self.pending_total
        self.journal.record(lambda: self._restore_pending(pending, total))
        self.pending = {}
        self.pending_total = 0

    def _restore_pending(self, pending: Dict[str, int], total: int) -> None:
        self.pending = pending
        self.pending_total = total

    # Whole-state capture

    def snapshot(self) -> Dict[str, Any]:
        return {
            'pending': dict(self.pending),
            'pending_total': self.pending_total,
            'lifetime': dict(self.lifetime),
        }

    def restore(self, saved: Dict[str, Any]) -> None:
        self.pending = dict(saved['pending'])
        self.pending_total = saved['pending_total']
        self.lifetime = dict(saved['lifetime'])
