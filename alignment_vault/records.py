"""
records.py - Conversion record store

Append-only conversion records with their fee accounts, fee weights,
per-benefactor participation lists and claim watermarks.

A benefactor's participation list holds the indices of exactly the records
they hold a share in, so a claim walks only those records.

A record's fee weight is the liquidity its capital owns in the shared
position. It starts at the record's own liquidity_delta and grows when
capital the record left undeployed is deployed by a later conversion.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Any
import copy

from .core import (
    ConversionRecord, FeeAccount, ClaimWatermark,
    UnknownRecord, UndoLog,
)


class ConversionRecordStore:
    """
    Owns every ConversionRecord, FeeAccount, fee weight and ClaimWatermark.

    Mutations are journaled in `journal`; undoing a claim touches only the
    accounts and watermarks the claim changed.
    """

    def __init__(self, journal: Optional[UndoLog] = None):
        self.journal = journal if journal is not None else UndoLog()
        self.records: List[ConversionRecord] = []
        self.accounts: List[FeeAccount] = []
        self.fee_weights: List[int] = []
        self.participation: Dict[str, List[int]] = {}
        self.watermarks: Dict[Tuple[str, int], ClaimWatermark] = {}

    def __len__(self) -> int:
        return len(self.records)

    def append(
        self,
        timestamp: datetime,
        shares: Tuple[Tuple[str, int], ...],
        total_converted: int,
        liquidity_delta: int,
        tick_lower: int,
        tick_upper: int,
        swap_amount_in: int = 0,
        swap_amount_out: int = 0,
        base_deployed: int = 0,
        target_deployed: int = 0,
    ) -> ConversionRecord:
        """Create the next record and register every participant."""
        record = ConversionRecord(
            index=len(self.records),
            timestamp=timestamp,
            total_converted=total_converted,
            liquidity_delta=liquidity_delta,
            shares=tuple(sorted(shares)),
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            swap_amount_in=swap_amount_in,
            swap_amount_out=swap_amount_out,
            base_deployed=base_deployed,
            target_deployed=target_deployed,
        )
        self.records.append(record)
        self.accounts.append(FeeAccount())
        self.fee_weights.append(liquidity_delta)
        for benefactor, _ in record.shares:
            self.participation.setdefault(benefactor, []).append(record.index)
        self.journal.record(self._drop_last)
        return record

    def _drop_last(self) -> None:
        record = self.records.pop()
        self.accounts.pop()
        self.fee_weights.pop()
        for benefactor, _ in record.shares:
            indices = self.participation[benefactor]
            indices.pop()
            if not indices:
                del self.participation[benefactor]

    def get(self, index: int) -> ConversionRecord:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self.records):
            raise UnknownRecord(f"No conversion record {index}")
        return self.records[index]

    def account(self, index: int) -> FeeAccount:
        self.get(index)
        return self.accounts[index]

    def participations(self, benefactor: str) -> Tuple[int, ...]:
        return tuple(self.participation.get(benefactor, ()))

    def watermark(self, benefactor: str, index: int) -> ClaimWatermark:
        """
        Current watermark; a zero watermark if none was created yet.

        Raises:
            UnknownRecord: If the record does not exist
        """
        self.get(index)
        return self.watermarks.get((benefactor, index), ClaimWatermark(benefactor, index))

    def fee_weight(self, index: int) -> int:
        self.get(index)
        return self.fee_weights[index]

    # ------------------------------------------------------------------
    # Journaled mutation
    # ------------------------------------------------------------------

    def _save_account(self, index: int) -> FeeAccount:
        saved = copy.copy(self.accounts[index])
        self.journal.record(lambda: self.accounts.__setitem__(index, saved))
        return self.accounts[index]

    def credit_fees(self, index: int, amount: int, target_amount: int) -> FeeAccount:
        """Increase a record's fee accumulators."""
        self.get(index)
        account = self._save_account(index)
        account.accumulated_fees += amount
        account.accumulated_target_fees += target_amount
        return account

    def book_claim(self, index: int, amount: int, target_amount: int) -> None:
        """Add a payout to a record's claimed totals."""
        account = self._save_account(index)
        account.claimed += amount
        account.claimed_target += target_amount

    def add_fee_weight(self, index: int, liquidity: int) -> None:
        """Credit a record with liquidity bought by capital it carried over."""
        self.get(index)
        previous = self.fee_weights[index]
        self.journal.record(lambda: self.fee_weights.__setitem__(index, previous))
        self.fee_weights[index] = previous + liquidity

    def set_watermark(self, watermark: ClaimWatermark) -> None:
        key = (watermark.benefactor, watermark.record_index)
        current = self.watermarks.get(key)
        floor = current or ClaimWatermark(*key)
        if watermark.paid < floor.paid or watermark.paid_target < floor.paid_target:
            raise ValueError(f"Watermark for {watermark.benefactor}/{watermark.record_index} cannot decrease")
        if current is None:
            self.journal.record(lambda: self.watermarks.pop(key, None))
        else:
            self.journal.record(lambda: self.watermarks.__setitem__(key, current))
        self.watermarks[key] = watermark

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def total_unclaimed(self) -> Tuple[int, int]:
        """(base, target) fees recorded but not yet paid out, over all records."""
        return (
            sum(account.unclaimed for account in self.accounts),
            sum(account.unclaimed_target for account in self.accounts),
        )

    def total_liquidity(self) -> int:
        """Liquidity of the shared position, summed over the records owning it."""
        return sum(self.fee_weights)

    # Whole-state capture

    def snapshot(self) -> Dict[str, Any]:
        return {
            'records': list(self.records),
            'accounts': copy.deepcopy(self.accounts),
            'fee_weights': list(self.fee_weights),
            'participation': {b: list(ix) for b, ix in self.participation.items()},
            'watermarks': dict(self.watermarks),
        }

    def restore(self, saved: Dict[str, Any]) -> None:
        self.records = list(saved['records'])
        self.accounts = copy.deepcopy(saved['accounts'])
        self.fee_weights = list(saved['fee_weights'])
        self.participation = {b: list(ix) for b, ix in saved['participation'].items()}
        self.watermarks = dict(saved['watermarks'])
