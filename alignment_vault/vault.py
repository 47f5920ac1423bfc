"""
vault.py - AlignmentVault facade

Public entry points of the alignment vault. Every mutating entry point is
guarded against re-entry and runs inside Host.atomic(), so it either
completes or leaves no trace. The single exception is the caller reward of
a conversion, which is attempted after the conversion has committed and
whose failure is absorbed.

Example:
    host = Host(Ledger("chain", verbose=False))
    manager = PoolManager(host)
    vault = AlignmentVault(host, manager, venue_config, owner="dao")

    vault.receive_contribution("alice", 10 * 10**18)
    vault.receive_contribution("bob", 5 * 10**18)
    result = vault.convert_and_add_liquidity(caller="keeper")
    ...
    vault.harvest_fees()
    vault.claim_benefactor_fees("alice")
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
import copy

from .core import (
    ConversionRecord, LiquidityPosition, ClaimWatermark, FeeAccount,
    RewardConfig, VenueConfig, VaultEvent, EventType,
    TransactionOrigin, OriginType,
    InvalidConfiguration, VaultPaused, Unauthorized,
)
from .adapter import LiquidityPositionAdapter
from .contributions import ContributionLedger
from .conversion import ConversionEngine
from .fees import FeeAccrualEngine, ClaimComputation
from .host import Host, non_reentrant
from .records import ConversionRecordStore
from .rewards import RewardSubsystem, RewardOutcome, RewardFailure
from .router import BestExecutionRouter, PoolManagerRoute, Route
from .venue import PoolManager


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """
    Outcome of one conversion.

    Attributes:
        record: The frozen record the conversion appended
        reward: What happened to the caller reward
    """
    record: ConversionRecord
    reward: RewardOutcome


@dataclass(frozen=True, slots=True)
class ClaimResult:
    """
    Payout of one claim.

    Attributes:
        benefactor: Who was paid
        base_fees: Base-asset fees owed
        target_fees: Target-asset fees owed
        base_from_target: Base received converting target_fees
        target_paid_in_kind: Target fees paid directly (no route could convert them)
        records: Indices of the records that owed something
    """
    benefactor: str
    base_fees: int
    target_fees: int
    base_from_target: int
    target_paid_in_kind: int
    records: Tuple[int, ...]

    @property
    def total_paid(self) -> int:
        """Base asset transferred to the benefactor."""
        return self.base_fees + self.base_from_target


@dataclass(frozen=True, slots=True)
class ClaimPreview:
    """
    What a claim would pay right now.

    Attributes:
        benefactor: Whose fees were computed
        base_fees: Base-asset fees owed
        target_fees: Target-asset fees owed
        estimated_base_from_target: Best current quote for selling target_fees
    """
    benefactor: str
    base_fees: int
    target_fees: int
    estimated_base_from_target: int

    @property
    def estimated_total(self) -> int:
        return self.base_fees + self.estimated_base_from_target


class AlignmentVault:
    """
    Conversion-indexed benefactor accounting over a single liquidity position.

    Args:
        host: Host environment (ledger, clock, cost rates)
        manager: Liquidity venue
        venue_config: Pool and currency configuration
        owner: Identity allowed to call administrative entry points
        wallet_id: Host-ledger wallet holding the vault's assets
        reward_config: Caller incentive parameters (default: no reward)
        routes: Additional routes for the best-execution router
        salt: Position discriminator at the venue
        verbose: Console output (default: the ledger's setting)
    """

    def __init__(
        self,
        host: Host,
        manager: PoolManager,
        venue_config: VenueConfig,
        owner: str,
        wallet_id: str = "alignment_vault",
        reward_config: Optional[RewardConfig] = None,
        routes: Sequence[Route] = (),
        salt: str = "alignment",
        verbose: Optional[bool] = None,
    ):
        self.host = host
        self.manager = manager
        self.wallet_id = host.ledger.ensure_wallet(wallet_id)
        self.verbose = host.verbose if verbose is None else verbose

        self.owner = owner
        self.venue_config = venue_config
        self.reward_config = reward_config or RewardConfig()
        self.paused = False
        self._events: List[VaultEvent] = []
        self.reward_failures: List[RewardFailure] = []
        self._entered = False

        self.contributions = ContributionLedger(host.journal)
        self.records = ConversionRecordStore(host.journal)
        self.fees = FeeAccrualEngine(self.records, verbose=self.verbose, listener=self._on_fees_recorded)
        self.adapter = LiquidityPositionAdapter(
            host, manager, self.wallet_id, lambda: self.venue_config, salt=salt, verbose=self.verbose
        )
        self.router = BestExecutionRouter(
            [PoolManagerRoute(self.adapter)] + list(routes), verbose=self.verbose
        )
        self.conversion = ConversionEngine(
            host, self.contributions, self.records, self.fees,
            self.adapter, self.router, lambda: self.venue_config, verbose=self.verbose,
        )
        self.rewards = RewardSubsystem(
            host, self.wallet_id, venue_config.native_currency, self.free_balance, verbose=self.verbose
        )

        host.attach(self)

    # ========================================================================
    # PARTICIPANT PROTOCOL
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        return {
            'owner': self.owner,
            'venue_config': self.venue_config,
            'reward_config': self.reward_config,
            'paused': self.paused,
        }

    def restore(self, saved: Dict[str, Any]) -> None:
        self.owner = saved['owner']
        self.venue_config = saved['venue_config']
        self.reward_config = saved['reward_config']
        self.paused = saved['paused']

    # ========================================================================
    # EVENTS
    # ========================================================================

    def _emit(self, event_type: EventType, **payload) -> VaultEvent:
        event = VaultEvent(
            sequence=len(self._events),
            timestamp=self.host.now,
            event_type=event_type,
            payload=tuple(sorted(payload.items())),
        )
        self._events.append(event)
        self.host.journal.record(self._events.pop)
        return event

    def _on_fees_recorded(self, record_index: int, amount: int, target_amount: int) -> None:
        self._emit(EventType.FEES_RECORDED, record=record_index, amount=amount, target_amount=target_amount)

    @property
    def events(self) -> Tuple[VaultEvent, ...]:
        return tuple(self._events)

    def events_since(self, sequence: int) -> Tuple[VaultEvent, ...]:
        """Events with a sequence number greater than `sequence`."""
        return tuple(e for e in self._events if e.sequence > sequence)

    # ========================================================================
    # READ-ONLY VIEWS
    # ========================================================================

    @property
    def native_currency(self) -> str:
        return self.venue_config.native_currency

    @property
    def target_currency(self) -> str:
        return self.venue_config.target_currency

    @property
    def pending_total(self) -> int:
        return self.contributions.pending_total

    def pending_contribution(self, benefactor: str) -> int:
        return self.contributions.pending_of(benefactor)

    def total_contributed(self, benefactor: str) -> int:
        return self.contributions.total_contributed(benefactor)

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def conversion_records(self) -> Tuple[ConversionRecord, ...]:
        return tuple(self.records.records)

    def record(self, index: int) -> ConversionRecord:
        return self.records.get(index)

    def fee_account(self, index: int) -> FeeAccount:
        """Copy of a record's fee accumulators."""
        return copy.copy(self.records.account(index))

    def participations(self, benefactor: str) -> Tuple[int, ...]:
        return self.records.participations(benefactor)

    def watermark(self, benefactor: str, index: int) -> ClaimWatermark:
        return self.records.watermark(benefactor, index)

    @property
    def position(self) -> Optional[LiquidityPosition]:
        return self.conversion.position

    @property
    def idle_base(self) -> int:
        return self.conversion.idle_base

    @property
    def idle_target(self) -> int:
        return self.conversion.idle_target

    def native_balance(self) -> int:
        return self.host.ledger.get_balance(self.wallet_id, self.native_currency)

    def free_balance(self) -> int:
        """
        Native balance not reserved for pending contributions, carried
        leftovers or unclaimed fees.
        """
        unclaimed_base, _ = self.records.total_unclaimed()
        return (
            self.native_balance()
            - self.contributions.pending_total
            - self.conversion.idle_base
            - unclaimed_base
        )

    def preview_claimable(self, benefactor: str) -> ClaimPreview:
        """What a claim would pay right now; nothing is mutated."""
        computation = self.fees.compute_claim(benefactor)
        estimate = 0
        if computation.total_target > 0:
            estimate = self.router.quote(self.target_currency, computation.total_target)
        return ClaimPreview(benefactor, computation.total_base, computation.total_target, estimate)

    # ========================================================================
    # CONTRIBUTIONS
    # ========================================================================

    @non_reentrant
    def receive_contribution(self, benefactor: str, amount: int, payer: Optional[str] = None) -> int:
        """
        Accept `amount` of the native asset on behalf of `benefactor`.

        Args:
            benefactor: Identity credited with the contribution
            amount: Positive amount in smallest units
            payer: Wallet the asset is taken from (default: the benefactor)

        Returns:
            The benefactor's new pending contribution

        Raises:
            VaultPaused, InvalidContribution, InsufficientBalance
        """
        if self.paused:
            raise VaultPaused("Contributions are paused")
        with self.host.atomic():
            pending = self.contributions.accrue(benefactor, amount)
            self.host.ledger.transfer(
                payer or benefactor, self.wallet_id, self.native_currency, amount,
                TransactionOrigin(OriginType.CONTRIBUTION, benefactor, "CONTRIBUTION"),
            )
            self._emit(
                EventType.CONTRIBUTION_RECEIVED,
                benefactor=benefactor, amount=amount, payer=payer or benefactor, pending=pending,
            )
        if self.verbose:
            print(f"✓ CONTRIBUTION: {benefactor} +{amount} (pending {pending})")
        return pending

    # ========================================================================
    # CONVERSION
    # ========================================================================

    @non_reentrant
    def convert_and_add_liquidity(self, caller: str, min_out: int = 0, min_liquidity: int = 0) -> ConversionResult:
        """
        Convert every pending contribution into liquidity; callable by anyone.

        The caller reward is attempted after the conversion commits and its
        failure never undoes the conversion.

        Raises:
            VaultPaused, InvalidConfiguration, NothingToConvert, SlippageExceeded
        """
        if self.paused:
            raise VaultPaused("Conversions are paused")
        with self.host.atomic():
            record = self.conversion.convert(min_out=min_out, min_liquidity=min_liquidity)
            self._emit(
                EventType.CONVERSION_COMPLETED,
                record=record.index,
                caller=caller,
                total_converted=record.total_converted,
                liquidity_delta=record.liquidity_delta,
                benefactors=record.benefactor_count,
                swap_amount_in=record.swap_amount_in,
                swap_amount_out=record.swap_amount_out,
            )

        amount = self.rewards.compute(self.reward_config, record.benefactor_count)
        outcome = self.rewards.attempt_payment(caller, amount, record.index)
        if outcome.paid:
            self._emit(EventType.REWARD_PAID, record=record.index, recipient=caller, amount=amount)
        elif outcome.error is not None:
            self.reward_failures.append(RewardFailure(
                timestamp=self.host.now,
                record_index=record.index,
                recipient=caller,
                amount=amount,
                error=outcome.error,
            ))
            self.host.journal.record(self.reward_failures.pop)
            self._emit(
                EventType.REWARD_FAILED,
                record=record.index, recipient=caller, amount=amount, error=outcome.error,
            )
        return ConversionResult(record, outcome)

    # ========================================================================
    # FEES
    # ========================================================================

    @non_reentrant
    def harvest_fees(self) -> Tuple[int, int]:
        """
        Collect the position's fees and record them against every record.

        Permissionless; allowed while paused.

        Returns:
            (base_fees, target_fees) collected
        """
        with self.host.atomic():
            base_fees, target_fees, allocation = self.conversion.harvest()
            if base_fees or target_fees:
                self._emit(
                    EventType.FEES_HARVESTED,
                    base=base_fees, target=target_fees, records=tuple(sorted(allocation)),
                )
        return base_fees, target_fees

    @non_reentrant
    def record_accumulated_fees(self, caller: str, record_index: int, amount: int, target_amount: int = 0) -> FeeAccount:
        """
        Deposit fees earned outside the venue position against one record.

        Owner only. The amounts are taken from the caller's wallet so every
        recorded fee is backed by vault holdings.
        """
        self._require_owner(caller)
        with self.host.atomic():
            account = self.fees.record_accumulated_fees(record_index, amount, target_amount)
            self.host.ledger.transfer(
                caller, self.wallet_id, self.native_currency, amount,
                TransactionOrigin(OriginType.EXTERNAL, caller, "FEE_DEPOSIT"),
            )
            self.host.ledger.transfer(
                caller, self.wallet_id, self.target_currency, target_amount,
                TransactionOrigin(OriginType.EXTERNAL, caller, "FEE_DEPOSIT"),
            )
        return copy.copy(account)

    @non_reentrant
    def claim_benefactor_fees(self, benefactor: str, min_out: int = 0) -> ClaimResult:
        """
        Pay a benefactor every fee owed across the records they participated in.

        Target-asset fees are converted to the base asset through the router
        first (min_out bounds that conversion). When no route can convert
        them they are paid in kind. Claims are allowed while paused.

        A benefactor with nothing owed receives zero without failing.
        """
        with self.host.atomic():
            computation = self.fees.compute_claim(benefactor)
            if computation.is_empty:
                return ClaimResult(benefactor, 0, 0, 0, 0, ())
            self.fees.apply_claim(computation)
            result = self._pay_claim(computation, min_out)
            self._emit(
                EventType.FEES_CLAIMED,
                benefactor=benefactor,
                base_fees=result.base_fees,
                target_fees=result.target_fees,
                base_from_target=result.base_from_target,
                target_paid_in_kind=result.target_paid_in_kind,
                records=result.records,
            )
        if self.verbose:
            print(f"✓ CLAIM: {benefactor} paid {result.total_paid} from records {list(result.records)}")
        return result

    def _pay_claim(self, computation: ClaimComputation, min_out: int) -> ClaimResult:
        ledger = self.host.ledger
        origin = TransactionOrigin(OriginType.CLAIM, computation.benefactor, "CLAIM")
        target_fees = computation.total_target
        base_from_target = 0
        paid_in_kind = 0
        if target_fees > 0:
            if self.router.quote(self.target_currency, target_fees) > 0:
                base_from_target = self.router.execute(self.target_currency, target_fees, min_out)
            else:
                paid_in_kind = target_fees
                ledger.transfer(self.wallet_id, computation.benefactor, self.target_currency, paid_in_kind, origin)

        total = computation.total_base + base_from_target
        ledger.transfer(self.wallet_id, computation.benefactor, self.native_currency, total, origin)
        return ClaimResult(
            benefactor=computation.benefactor,
            base_fees=computation.total_base,
            target_fees=target_fees,
            base_from_target=base_from_target,
            target_paid_in_kind=paid_in_kind,
            records=tuple(line.record_index for line in computation.lines),
        )

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the vault owner")

    @non_reentrant
    def set_reward_config(self, caller: str, config: RewardConfig) -> None:
        self._require_owner(caller)
        self.reward_config = config
        self._emit(
            EventType.CONFIG_UPDATED,
            kind="reward",
            base_reward=config.base_reward,
            per_benefactor_units=config.per_benefactor_units,
            max_reward=config.max_reward,
        )

    @non_reentrant
    def set_venue_config(self, caller: str, config: VenueConfig) -> None:
        """
        Replace the venue configuration. Only before the first position exists.

        Raises:
            Unauthorized, InvalidConfiguration
        """
        self._require_owner(caller)
        config.validate()
        if self.conversion.position is not None:
            raise InvalidConfiguration("Venue configuration is fixed once liquidity is deployed")
        if config.native_currency != self.venue_config.native_currency:
            raise InvalidConfiguration("The native currency of a vault cannot change")
        self.venue_config = config
        self._emit(EventType.CONFIG_UPDATED, kind="venue", pool=config.pool_key.pool_id,
                   target=config.target_currency)

    @non_reentrant
    def add_route(self, caller: str, route: Route) -> None:
        self._require_owner(caller)
        self.router.add_route(route)
        self._emit(EventType.CONFIG_UPDATED, kind="route", route=route.name)

    @non_reentrant
    def pause(self, caller: str) -> None:
        self._require_owner(caller)
        if not self.paused:
            self.paused = True
            self._emit(EventType.PAUSED, caller=caller)

    @non_reentrant
    def unpause(self, caller: str) -> None:
        self._require_owner(caller)
        if self.paused:
            self.paused = False
            self._emit(EventType.UNPAUSED, caller=caller)

    @non_reentrant
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._require_owner(caller)
        if not new_owner or not new_owner.strip():
            raise ValueError("New owner cannot be empty")
        previous, self.owner = self.owner, new_owner
        self._emit(EventType.OWNERSHIP_TRANSFERRED, previous=previous, new_owner=new_owner)

    def __repr__(self):
        return (f"AlignmentVault({self.wallet_id}, records={len(self.records)}, "
                f"pending={self.contributions.pending_total}, paused={self.paused})")
