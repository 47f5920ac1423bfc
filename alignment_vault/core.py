"""
Core types and pure helpers for the alignment vault.

This module provides the foundational data structures shared by every layer:
1. Protocols: LedgerView for read-only access to host-ledger balances
2. Immutable data structures: Move, PendingTransaction, Transaction, Asset
3. Venue and vault records: PoolKey, BalanceDelta, VenueConfig, RewardConfig,
   LiquidityPosition, ConversionRecord, FeeAccount, ClaimWatermark, VaultEvent
4. Exceptions: LedgerError, VaultError, VenueError and their domain subtypes
5. UndoLog: scoped rollback journal shared by every stateful component
6. Asset factories: native_asset, wrapped_asset, token_asset

Amounts are integers in an asset's smallest unit. Ratios and prices are
Decimals under the deterministic context configured below.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from enum import Enum
import hashlib
from typing import (
    Callable, Dict, List, Set, Optional, Any, Protocol,
    Tuple, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Ratios and prices require deterministic Decimal arithmetic.
# The global context is configured once at module load time.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_VAULT_DECIMAL_CONTEXT = getcontext()
_VAULT_DECIMAL_CONTEXT.prec = 50
_VAULT_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption (wrapped-asset minting).
# The system wallet is exempt from balance validation.
SYSTEM_WALLET = "system"

# Asset type constants (strings, not enum, matching the host ledger convention).
ASSET_TYPE_NATIVE = "NATIVE"
ASSET_TYPE_WRAPPED = "WRAPPED"
ASSET_TYPE_TOKEN = "TOKEN"

# Default symbols for the base asset pair.
NATIVE_CURRENCY = "ETH"
WRAPPED_NATIVE_CURRENCY = "WETH"

# Venue fee tiers (hundredths of a basis point) and the tick spacing each one
# is deployed with.
SUPPORTED_FEE_TIERS: Dict[int, int] = {
    100: 1,
    500: 10,
    3000: 60,
    10000: 200,
}
MAX_LP_FEE = 1_000_000
MAX_TICK_SPACING = 32767

# Tolerance for sum-of-ratios checks.
RATIO_TOLERANCE = Decimal("1e-40")


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific asset.
Positions = Dict[str, int]

# Mapping from asset symbol to quantity held in a single wallet.
BalanceMap = Dict[str, int]


def currency_sort_key(currency: str) -> Tuple[int, str]:
    """
    Ordering used by the venue for pool currencies.

    The native currency always sorts first (it has the zero address on chain),
    every other currency sorts lexically.
    """
    if currency == NATIVE_CURRENCY:
        return (0, "")
    return (1, currency)


def sort_currencies(a: str, b: str) -> Tuple[str, str]:
    """Return the two currencies in venue order."""
    if currency_sort_key(a) <= currency_sort_key(b):
        return a, b
    return b, a


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to host-ledger state.

    Functions accepting a LedgerView parameter declare their read-only intent.
    The Ledger class implements this protocol but also provides mutation
    methods. For testing, FakeView provides a truly immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, asset_symbol: str) -> int:
        """
        Return the balance of a specific asset in a wallet.

        Returns 0 if the wallet holds nothing of the asset.
        """
        ...

    def get_positions(self, asset_symbol: str) -> Positions:
        """Return all non-zero balances of an asset across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a host-ledger transaction execution attempt.

    APPLIED: Transaction was validated and applied.
    REJECTED: Transaction failed validation (unregistered wallet or asset,
              insufficient balance, or a receive hook refused the transfer).
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """
    Classification of where a host-ledger transaction originated.

    Used for audit trails and reconciliation of vault flows.
    """
    CONTRIBUTION = "contribution"         # Benefactor value entering the vault
    SETTLEMENT = "settlement"             # Venue settle/take during an unlock
    WRAP = "wrap"                         # Native <-> wrapped conversion
    SWAP = "swap"                         # Route execution outside the venue
    CLAIM = "claim"                       # Fee payout to a benefactor
    REWARD = "reward"                     # Caller incentive payment
    SYSTEM = "system"                     # Issuance, initial setup
    EXTERNAL = "external"                 # Anything else


class EventType(Enum):
    """Kinds of state-change notifications emitted for external indexers."""
    CONTRIBUTION_RECEIVED = "contribution_received"
    CONVERSION_COMPLETED = "conversion_completed"
    FEES_HARVESTED = "fees_harvested"
    FEES_RECORDED = "fees_recorded"
    FEES_CLAIMED = "fees_claimed"
    REWARD_PAID = "reward_paid"
    REWARD_FAILED = "reward_failed"
    PAUSED = "paused"
    UNPAUSED = "unpaused"
    CONFIG_UPDATED = "config_updated"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all alignment-vault errors."""
    pass


class LedgerError(VaultError):
    """Base exception for host-ledger errors."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a move would take a wallet below the asset's minimum balance."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class AssetNotRegistered(LedgerError):
    """Raised when operating on an asset that has not been registered."""
    pass


class TransferRefused(LedgerError):
    """Raised when a destination wallet's receive hook refuses a transfer."""
    pass


class InvalidConfiguration(VaultError):
    """Raised when venue or reward parameters are malformed."""
    pass


class SlippageExceeded(VaultError):
    """Raised when realized output or liquidity is below the caller's minimum."""
    pass


class InvalidContribution(VaultError):
    """Raised for zero or negative contributions."""
    pass


class NothingToConvert(VaultError):
    """Raised when a conversion is triggered with an empty pending ledger."""
    pass


class UnknownRecord(VaultError):
    """Raised when a conversion record index does not exist."""
    pass


class VaultPaused(VaultError):
    """Raised when a pausable entry point is called while paused."""
    pass


class Unauthorized(VaultError):
    """Raised when a non-owner calls an administrative entry point."""
    pass


class ReentrantCall(VaultError):
    """Raised when a guarded entry point is entered while already executing."""
    pass


class VenueError(VaultError):
    """Base exception for errors raised by the liquidity venue."""
    pass


class PoolNotInitialized(VenueError):
    """Raised when operating on a pool that was never initialized."""
    pass


class ManagerLocked(VenueError):
    """Raised when a settlement primitive is used outside an unlock window."""
    pass


class AlreadyUnlocked(VenueError):
    """Raised when unlock is requested while a session is already open."""
    pass


class CurrencyNotSettled(VenueError):
    """Raised when an unlock callback returns with a nonzero currency delta."""
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the specific source (component, caller, ...)
        event_type: Specific event within the source (e.g., "SETTLE", "TAKE")
    """
    origin_type: OriginType
    source_id: str
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of an asset between two wallets.

    Attributes:
        quantity: The amount to transfer in smallest units (positive int).
        asset_symbol: The symbol of the asset being transferred.
        source: The wallet ID debited.
        dest: The wallet ID credited.
        contract_id: Identifier of the component generating this move.
    """
    quantity: int
    asset_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.asset_symbol or not self.asset_symbol.strip():
            raise ValueError("Move asset_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.asset_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves."""
        return not self.moves

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: List of moves to include in the transaction
        origin: Transaction origin (defaults to an EXTERNAL origin)

    Returns:
        A PendingTransaction ready for execution
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.EXTERNAL,
            source_id="external",
        )
    return PendingTransaction(
        moves=tuple(moves),
        origin=origin,
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of host-ledger changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")

    def __repr__(self) -> str:
        moves = ", ".join(repr(m) for m in self.moves)
        return f"Transaction({self.exec_id}, {self.origin}, [{moves}])"


@dataclass(frozen=True, slots=True)
class Asset:
    """
    Definition of an asset held on the host ledger.

    Attributes:
        symbol: Short identifier (e.g., "ETH", "ALIGN").
        name: Human-readable name.
        asset_type: NATIVE, WRAPPED or TOKEN.
        decimals: Number of decimals of one whole unit (display only).
        min_balance: Minimum allowed balance in any non-system wallet.
    """
    symbol: str
    name: str
    asset_type: str
    decimals: int = 18
    min_balance: int = 0

    def to_decimal(self, amount: int) -> Decimal:
        """Express a smallest-unit amount in whole units."""
        return Decimal(amount) / (Decimal(10) ** self.decimals)


def native_asset(symbol: str = NATIVE_CURRENCY, name: str = "Ether") -> Asset:
    """Create the native base asset."""
    return Asset(symbol=symbol, name=name, asset_type=ASSET_TYPE_NATIVE)


def wrapped_asset(symbol: str = WRAPPED_NATIVE_CURRENCY, name: str = "Wrapped Ether") -> Asset:
    """Create the wrapped form of the native base asset."""
    return Asset(symbol=symbol, name=name, asset_type=ASSET_TYPE_WRAPPED)


def token_asset(symbol: str, name: str, decimals: int = 18) -> Asset:
    """Create a fungible token asset (e.g., the alignment target)."""
    return Asset(symbol=symbol, name=name, asset_type=ASSET_TYPE_TOKEN, decimals=decimals)


# ============================================================================
# VENUE TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolKey:
    """
    Identity of a pool on the shared liquidity venue.

    Attributes:
        currency0: Lower-sorting currency
        currency1: Higher-sorting currency
        fee: LP fee in hundredths of a basis point (3000 = 0.30%)
        tick_spacing: Granularity of usable range bounds
    """
    currency0: str
    currency1: str
    fee: int
    tick_spacing: int

    def __post_init__(self):
        if not self.currency0 or not self.currency1:
            raise ValueError("PoolKey currencies cannot be empty")

    @property
    def pool_id(self) -> str:
        """Deterministic identifier derived from the key's content."""
        content = f"{self.currency0}|{self.currency1}|{self.fee}|{self.tick_spacing}"
        return hashlib.sha256(content.encode()).hexdigest()[:16]

    def __repr__(self) -> str:
        return f"PoolKey({self.currency0}/{self.currency1}, fee={self.fee}, spacing={self.tick_spacing})"


@dataclass(frozen=True, slots=True)
class BalanceDelta:
    """
    Net currency movement from the caller's perspective.

    Positive: the venue owes the caller. Negative: the caller owes the venue.
    """
    amount0: int = 0
    amount1: int = 0

    def __add__(self, other: 'BalanceDelta') -> 'BalanceDelta':
        return BalanceDelta(self.amount0 + other.amount0, self.amount1 + other.amount1)

    def __neg__(self) -> 'BalanceDelta':
        return BalanceDelta(-self.amount0, -self.amount1)


# ============================================================================
# VAULT CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class VenueConfig:
    """
    Venue and position-key configuration consumed by the vault.

    Construction never fails on a malformed pairing; validate() is called
    before any asset movement so a bad configuration aborts the operation
    that would have used it.

    Attributes:
        pool_key: The pool liquidity is deployed into
        target_currency: The asset the pool pairs against the base asset
        native_currency: The native base asset held by the vault
        wrapped_currency: The wrapped form of the base asset
    """
    pool_key: PoolKey
    target_currency: str
    native_currency: str = NATIVE_CURRENCY
    wrapped_currency: str = WRAPPED_NATIVE_CURRENCY

    @property
    def pool_base_currency(self) -> str:
        """The base-asset currency as it appears in the pool key."""
        key = self.pool_key
        if self.native_currency in (key.currency0, key.currency1):
            return self.native_currency
        return self.wrapped_currency

    @property
    def base_is_currency0(self) -> bool:
        return self.pool_key.currency0 == self.pool_base_currency

    def validate(self) -> None:
        """
        Check pairing, ordering, fee tier and tick spacing.

        Raises:
            InvalidConfiguration: If any parameter is malformed
        """
        key = self.pool_key
        if self.target_currency in (self.native_currency, self.wrapped_currency):
            raise InvalidConfiguration(
                f"Target currency {self.target_currency} cannot be the base asset"
            )
        pair = {key.currency0, key.currency1}
        base_options = {self.native_currency, self.wrapped_currency}
        if self.target_currency not in pair or len(pair & base_options) != 1:
            raise InvalidConfiguration(
                f"Pool {key} does not pair the base asset with {self.target_currency}"
            )
        if sort_currencies(key.currency0, key.currency1) != (key.currency0, key.currency1):
            raise InvalidConfiguration(f"Pool {key} currencies are not sorted")
        if key.fee not in SUPPORTED_FEE_TIERS:
            raise InvalidConfiguration(f"Unsupported fee tier {key.fee}")
        if SUPPORTED_FEE_TIERS[key.fee] != key.tick_spacing:
            raise InvalidConfiguration(
                f"Tick spacing {key.tick_spacing} does not match fee tier {key.fee}"
            )


@dataclass(frozen=True, slots=True)
class RewardConfig:
    """
    Caller incentive parameters.

    reward = min(base_reward + per_benefactor_units * benefactor_count * cost_rate, max_reward)

    Attributes:
        base_reward: Flat amount paid per conversion (base asset units)
        per_benefactor_units: Work units charged per frozen benefactor
        max_reward: Hard cap on the reward
    """
    base_reward: int = 0
    per_benefactor_units: int = 0
    max_reward: int = 0

    def __post_init__(self):
        for name in ('base_reward', 'per_benefactor_units', 'max_reward'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be int, got {type(value)}")
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")


# ============================================================================
# VAULT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LiquidityPosition:
    """
    The vault's holding at the venue.

    Attributes:
        pool_id: Pool the position lives in
        tick_lower: Lower range bound
        tick_upper: Upper range bound
        liquidity: Current liquidity units
        salt: Position discriminator within the pool
    """
    pool_id: str
    tick_lower: int
    tick_upper: int
    liquidity: int
    salt: str = "alignment"

    def __post_init__(self):
        if self.tick_lower >= self.tick_upper:
            raise ValueError("tick_lower must be below tick_upper")
        if self.liquidity < 0:
            raise ValueError("liquidity cannot be negative")


@dataclass(frozen=True, slots=True)
class ConversionRecord:
    """
    Immutable snapshot created by one conversion event.

    Ratios are stored as integer shares of the converted total so that every
    entitlement can be computed exactly: share * fees // total_converted.

    Attributes:
        index: Monotonic record index (0-based)
        timestamp: Host time of the conversion
        total_converted: Pending total frozen by this conversion
        liquidity_delta: Liquidity bought by this conversion's own capital
        shares: Sorted (benefactor, contribution) pairs
        tick_lower: Range lower bound the liquidity was deployed into
        tick_upper: Range upper bound the liquidity was deployed into
        swap_amount_in: Base amount swapped into the target asset
        swap_amount_out: Target amount received from the swap
        base_deployed: Base amount of this conversion settled into the position
        target_deployed: Target amount of this conversion settled into the position
    """
    index: int
    timestamp: datetime
    total_converted: int
    liquidity_delta: int
    shares: Tuple[Tuple[str, int], ...]
    tick_lower: int
    tick_upper: int
    swap_amount_in: int = 0
    swap_amount_out: int = 0
    base_deployed: int = 0
    target_deployed: int = 0

    def __post_init__(self):
        if self.total_converted <= 0:
            raise ValueError("total_converted must be positive")
        if sum(amount for _, amount in self.shares) != self.total_converted:
            raise ValueError("shares must sum to total_converted")

    @property
    def benefactor_count(self) -> int:
        return len(self.shares)

    def share_of(self, benefactor: str) -> int:
        """Frozen contribution of a benefactor (0 if absent)."""
        for name, amount in self.shares:
            if name == benefactor:
                return amount
        return 0

    def ratio(self, benefactor: str) -> Decimal:
        """Frozen ownership ratio of a benefactor."""
        return Decimal(self.share_of(benefactor)) / Decimal(self.total_converted)

    @property
    def ratios(self) -> Dict[str, Decimal]:
        total = Decimal(self.total_converted)
        return {name: Decimal(amount) / total for name, amount in self.shares}


@dataclass(slots=True)
class FeeAccount:
    """
    Mutable fee accumulators of one conversion record.

    The accumulators only ever increase; claimed totals never exceed them.
    """
    accumulated_fees: int = 0
    accumulated_target_fees: int = 0
    claimed: int = 0
    claimed_target: int = 0

    @property
    def unclaimed(self) -> int:
        return self.accumulated_fees - self.claimed

    @property
    def unclaimed_target(self) -> int:
        return self.accumulated_target_fees - self.claimed_target


@dataclass(frozen=True, slots=True)
class ClaimWatermark:
    """
    Cumulative amounts already paid to one benefactor from one record.

    Attributes:
        benefactor: Benefactor identity
        record_index: Conversion record index
        paid: Cumulative base-asset fees paid
        paid_target: Cumulative target-asset fees paid (before conversion)
    """
    benefactor: str
    record_index: int
    paid: int = 0
    paid_target: int = 0


@dataclass(frozen=True, slots=True)
class VaultEvent:
    """
    State-change notification for external indexers.

    Attributes:
        sequence: Monotonic sequence within the vault
        timestamp: Host time of emission
        event_type: Kind of notification
        payload: Frozen (key, value) pairs
    """
    sequence: int
    timestamp: datetime
    event_type: EventType
    payload: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def payload_dict(self) -> Dict[str, Any]:
        """Get payload as a dictionary for convenience."""
        return dict(self.payload)

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.payload)
        return f"VaultEvent(#{self.sequence} {self.event_type.value}: {fields})"


# ============================================================================
# UNDO LOG
# ============================================================================

UndoAction = Callable[[], None]


class UndoLog:
    """
    Journal of undo actions for scoped rollback.

    Stateful components record how to reverse each mutation as they make
    it, so rolling a scope back costs time proportional to what the scope
    changed rather than to the size of the state.

    Actions are recorded only while a scope is open. Closing the outermost
    scope discards them.

    Example:
        log = UndoLog()
        mark = log.open()
        try:
            balances["alice"] = 5
            log.record(lambda: balances.pop("alice"))
            raise RuntimeError("abort")
        except RuntimeError:
            log.rollback(mark)
        finally:
            log.close()
    """

    def __init__(self):
        self._actions: List[UndoAction] = []
        self._open = 0

    @property
    def active(self) -> bool:
        return self._open > 0

    @property
    def pending(self) -> int:
        """Number of undo actions recorded by the open scopes."""
        return len(self._actions)

    def open(self) -> int:
        """Enter a scope; returns the mark to roll back to."""
        self._open += 1
        return len(self._actions)

    def close(self) -> None:
        if self._open == 0:
            raise RuntimeError("UndoLog.close() without a matching open()")
        self._open -= 1
        if self._open == 0:
            self._actions.clear()

    def record(self, undo: UndoAction) -> None:
        if self._open:
            self._actions.append(undo)

    def rollback(self, mark: int) -> None:
        """Run every action recorded after `mark`, newest first."""
        while len(self._actions) > mark:
            self._actions.pop()()
