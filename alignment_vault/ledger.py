"""
ledger.py - Host Ledger of Asset Balances

The Ledger class is the hosting ledger every vault operation runs against.
It owns wallet balances for the native base asset, its wrapped form and the
target asset, and it is the only module that mutates balances.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves succeed or all fail)
    - Runs wallet receive hooks; a refusing hook undoes the whole transaction
    - Journals every mutation in its UndoLog so Host.atomic() can revert an
      invocation at the cost of what it changed
    - Provides snapshot()/restore() for whole-state capture and cloning
    - Always validates and always logs - no exceptions
"""

from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Set, Optional, Tuple, Any
import copy

from .core import (
    # Types
    Move, Transaction, Asset,
    PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult, LedgerView, UndoLog,
    Positions, BalanceMap,
    build_transaction,
    # Constants
    SYSTEM_WALLET, NATIVE_CURRENCY, WRAPPED_NATIVE_CURRENCY,
    # Exceptions
    LedgerError, InsufficientBalance, TransferRefused,
    AssetNotRegistered, WalletNotRegistered,
)


# Wallet holding the native asset backing the wrapped supply.
WRAPPED_ESCROW_WALLET = "wrapped_escrow"

# Hook signature: (ledger, move) -> None. Raising refuses the transfer.
ReceiveHook = Callable[['Ledger', Move], None]


class Ledger:
    """
    Double-entry ledger of asset balances with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to
    pure functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against registration
          and minimum balances. No shortcuts.
        - Always logs: every applied transaction is recorded in the audit trail.

    Thread Safety:
        Not thread-safe. Serialization is the Host's job.

    Example:
        ledger = Ledger("chain")
        ledger.register_asset(native_asset())
        ledger.register_wallet("alice")

        funding = build_transaction(ledger, [
            Move(10**18, "ETH", SYSTEM_WALLET, "alice", "genesis")
        ])
        ledger.execute(funding)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Enable console output (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.assets: Dict[str, Asset] = {}
        self.registered_wallets: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # Inverted index mapping asset -> {wallet -> quantity} for O(1) position lookups
        self._positions_by_asset: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._receive_hooks: Dict[str, ReceiveHook] = {}
        self.journal = UndoLog()

        # Auto-register the system wallet (used for issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, asset_symbol: str) -> int:
        """
        Get the balance of a specific asset in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            AssetNotRegistered: If asset is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        return self.balances[wallet_id].get(asset_symbol, 0)

    def get_positions(self, asset_symbol: str) -> Positions:
        """Get all non-zero balances of an asset across all wallets."""
        return dict(self._positions_by_asset.get(asset_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_assets(self) -> List[str]:
        """List all registered asset symbols."""
        return sorted(self.assets.keys())

    def get_asset(self, symbol: str) -> Asset:
        """Return the Asset object for a given symbol."""
        if symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {symbol} not registered")
        return self.assets[symbol]

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return dict(self.balances[wallet_id])

    def total_supply(self, asset_symbol: str) -> int:
        """
        Total supply of an asset across all wallets, system wallet included.

        Because every move debits one wallet and credits another, this is
        zero for every asset at all times.
        """
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        return sum(self.balances[w].get(asset_symbol, 0) for w in sorted(self.registered_wallets))

    def circulating_supply(self, asset_symbol: str) -> int:
        """Supply held outside the system wallet (i.e. issued amount)."""
        return -self.balances[SYSTEM_WALLET].get(asset_symbol, 0)

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that conservation holds for all assets.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every asset sums to zero
            - 'supplies': Dict[str, int] - circulating supply per asset
            - 'discrepancies': List[Dict] - assets whose balances do not net out
        """
        supplies = {}
        discrepancies = []
        for asset_symbol in self.assets:
            supplies[asset_symbol] = self.circulating_supply(asset_symbol)
            total = self.total_supply(asset_symbol)
            if total != 0:
                discrepancies.append({'asset': asset_symbol, 'net': total})
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str, on_receive: Optional[ReceiveHook] = None) -> str:
        """
        Register a new wallet.

        Args:
            wallet_id: Unique identifier for the wallet
            on_receive: Optional hook run after the wallet is credited

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        self.journal.record(lambda: self._unregister(wallet_id))
        if on_receive is not None:
            self._receive_hooks[wallet_id] = on_receive
        return wallet_id

    def _unregister(self, wallet_id: str) -> None:
        self.registered_wallets.discard(wallet_id)
        self.balances.pop(wallet_id, None)
        self._receive_hooks.pop(wallet_id, None)

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register a wallet if it is not registered yet."""
        if wallet_id not in self.registered_wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    def set_receive_hook(self, wallet_id: str, hook: Optional[ReceiveHook]) -> None:
        """Install (or clear, with None) a wallet's receive hook."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if hook is None:
            self._receive_hooks.pop(wallet_id, None)
        else:
            self._receive_hooks[wallet_id] = hook

    def register_asset(self, asset: Asset) -> None:
        """
        Register a new asset.

        Raises:
            ValueError: If asset symbol is already registered
        """
        if asset.symbol in self.assets:
            raise ValueError(f"Asset {asset.symbol} already registered")
        self.assets[asset.symbol] = asset
        if self.verbose:
            print(f"📝 Registered: {asset.symbol} ({asset.name}) [{asset.asset_type}]")

    def set_balance(self, wallet_id: str, asset_symbol: str, quantity: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This bypasses double-entry accounting and is only available
        in test mode. The difference is booked against the system wallet so
        conservation still holds.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        delta = quantity - self.balances[wallet_id].get(asset_symbol, 0)
        self._write_balance(wallet_id, asset_symbol, quantity)
        system_balance = self.balances[SYSTEM_WALLET].get(asset_symbol, 0) - delta
        self._write_balance(SYSTEM_WALLET, asset_symbol, system_balance)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}
        """
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction, strict: bool = False) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves succeed together or all fail together. Receive hooks of
        credited wallets run after the moves are applied; if any hook raises,
        every effect of this transaction (including nested transactions the
        hook executed) is undone.

        Args:
            pending: PendingTransaction to execute
            strict: Raise the matching LedgerError instead of returning REJECTED

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed or a hook refused
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        error = self._validate_pending(pending)
        if error is not None:
            if self.verbose:
                print(f"✗ REJECTED: {error}")
            if strict:
                raise error
            return ExecuteResult.REJECTED

        mark = self.journal.open()
        try:
            sequence = self._next_sequence
            self._next_sequence += 1
            tx = Transaction(
                moves=pending.moves,
                origin=pending.origin,
                timestamp=pending.timestamp,
                exec_id=self._generate_exec_id(sequence),
                ledger_name=self.name,
                execution_time=self._current_time,
                sequence_number=sequence,
            )
            self.transaction_log.append(tx)
            self.journal.record(lambda: self._unlog(sequence))
            self._execute_moves(tx.moves)

            try:
                self._run_receive_hooks(tx.moves)
            except Exception as exc:
                self.journal.rollback(mark)
                if self.verbose:
                    print(f"✗ REJECTED: receive hook refused transfer ({exc!r})")
                if strict:
                    raise TransferRefused(f"Receive hook refused transfer: {exc!r}") from exc
                return ExecuteResult.REJECTED
        finally:
            self.journal.close()

        if self.verbose:
            print(f"✓ APPLIED: {tx!r}")
        return ExecuteResult.APPLIED

    def transfer(
        self,
        source: str,
        dest: str,
        asset_symbol: str,
        quantity: int,
        origin: TransactionOrigin,
        contract_id: Optional[str] = None,
    ) -> None:
        """
        Strictly execute a single move; zero quantities are a no-op.

        Raises:
            InsufficientBalance, WalletNotRegistered, AssetNotRegistered,
            TransferRefused: as for execute(strict=True)
        """
        if quantity == 0:
            return
        move = Move(quantity, asset_symbol, source, dest, contract_id or origin.source_id)
        self.execute(build_transaction(self, [move], origin), strict=True)

    def _validate_pending(self, pending: PendingTransaction) -> Optional[LedgerError]:
        """
        Validate pending transaction against all constraints.

        Checks performed:
        1. Timestamp validation (transaction must not be from the future)
        2. Asset and wallet registration
        3. Minimum balance validation (system wallet exempt)

        Returns:
            None if valid, otherwise the LedgerError describing the failure
        """
        if pending.timestamp > self._current_time:
            return LedgerError("future timestamp")

        for move in pending.moves:
            if move.asset_symbol not in self.assets:
                return AssetNotRegistered(f"asset not registered: {move.asset_symbol}")
            if not self.is_registered(move.source):
                return WalletNotRegistered(f"wallet not registered: {move.source}")
            if not self.is_registered(move.dest):
                return WalletNotRegistered(f"wallet not registered: {move.dest}")

        net: Dict[Tuple[str, str], int] = {}
        for move in pending.moves:
            key_src = (move.source, move.asset_symbol)
            key_dst = (move.dest, move.asset_symbol)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        for (wallet, asset_sym), delta in sorted(net.items()):
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances[wallet].get(asset_sym, 0) + delta
            minimum = self.assets[asset_sym].min_balance
            if proposed < minimum:
                return InsufficientBalance(
                    f"{wallet} {asset_sym}: {proposed} < min {minimum}"
                )
        return None

    def _run_receive_hooks(self, moves) -> None:
        for move in moves:
            hook = self._receive_hooks.get(move.dest)
            if hook is not None:
                hook(self, move)

    def _update_position_index(self, wallet_id: str, asset_symbol: str, quantity: int) -> None:
        """Keep the inverted index compact: zero balances are dropped."""
        if quantity != 0:
            self._positions_by_asset[asset_symbol][wallet_id] = quantity
        else:
            self._positions_by_asset[asset_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply all moves to wallet balances and update the position index."""
        for move in moves:
            held = self.balances[move.source].get(move.asset_symbol, 0)
            self._write_balance(move.source, move.asset_symbol, held - move.quantity)
            held = self.balances[move.dest].get(move.asset_symbol, 0)
            self._write_balance(move.dest, move.asset_symbol, held + move.quantity)

    def _write_balance(self, wallet_id: str, asset_symbol: str, quantity: int) -> None:
        """Set one balance, journaling the previous value."""
        wallet = self.balances[wallet_id]
        if asset_symbol in wallet:
            previous = wallet[asset_symbol]
            self.journal.record(lambda: self._set_balance_entry(wallet_id, asset_symbol, previous))
        else:
            self.journal.record(lambda: self._drop_balance_entry(wallet_id, asset_symbol))
        self._set_balance_entry(wallet_id, asset_symbol, quantity)

    def _set_balance_entry(self, wallet_id: str, asset_symbol: str, quantity: int) -> None:
        self.balances[wallet_id][asset_symbol] = quantity
        self._update_position_index(wallet_id, asset_symbol, quantity)

    def _drop_balance_entry(self, wallet_id: str, asset_symbol: str) -> None:
        self.balances[wallet_id].pop(asset_symbol, None)
        self._update_position_index(wallet_id, asset_symbol, 0)

    def _unlog(self, sequence: int) -> None:
        self.transaction_log.pop()
        self._next_sequence = sequence

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """
        Capture every piece of mutable ledger state except the clock and hooks.

        The returned object is independent of the ledger: later mutations do
        not affect it.
        """
        return {
            'balances': {w: dict(b) for w, b in self.balances.items()},
            'registered_wallets': set(self.registered_wallets),
            'positions': {a: dict(p) for a, p in self._positions_by_asset.items()},
            'transaction_log': list(self.transaction_log),
            'next_sequence': self._next_sequence,
        }

    def restore(self, saved: Dict[str, Any]) -> None:
        """Reinstate state captured by snapshot()."""
        self.balances = {
            w: defaultdict(int, b) for w, b in saved['balances'].items()
        }
        self.registered_wallets = set(saved['registered_wallets'])
        self._positions_by_asset = defaultdict(dict)
        for asset_symbol, positions in saved['positions'].items():
            self._positions_by_asset[asset_symbol] = dict(positions)
        self.transaction_log = list(saved['transaction_log'])
        self._next_sequence = saved['next_sequence']

    def clone(self) -> Ledger:
        """
        Create a fully independent copy of this ledger.

        Receive hooks are shared by reference (they are configuration).
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.assets = dict(self.assets)
        cloned._receive_hooks = dict(self._receive_hooks)
        cloned.journal = UndoLog()
        cloned.restore(copy.deepcopy(self.snapshot()))
        return cloned


# ============================================================================
# WRAPPED NATIVE ASSET
# ============================================================================

def compute_wrap(
    view: LedgerView,
    wallet: str,
    amount: int,
    native: str = NATIVE_CURRENCY,
    wrapped: str = WRAPPED_NATIVE_CURRENCY,
) -> PendingTransaction:
    """
    Wrap native value: lock it in escrow and issue the wrapped asset 1:1.

    Returns:
        PendingTransaction with the escrow deposit and the issuance move
    """
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
    moves = [
        Move(amount, native, wallet, WRAPPED_ESCROW_WALLET, f"wrap_{wallet}_deposit"),
        Move(amount, wrapped, SYSTEM_WALLET, wallet, f"wrap_{wallet}_issue"),
    ]
    return build_transaction(view, moves, TransactionOrigin(OriginType.WRAP, wallet, "WRAP"))


def compute_unwrap(
    view: LedgerView,
    wallet: str,
    amount: int,
    native: str = NATIVE_CURRENCY,
    wrapped: str = WRAPPED_NATIVE_CURRENCY,
) -> PendingTransaction:
    """
    Unwrap: redeem the wrapped asset and release native value from escrow.

    Returns:
        PendingTransaction with the redemption move and the escrow release
    """
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
    moves = [
        Move(amount, wrapped, wallet, SYSTEM_WALLET, f"unwrap_{wallet}_redeem"),
        Move(amount, native, WRAPPED_ESCROW_WALLET, wallet, f"unwrap_{wallet}_release"),
    ]
    return build_transaction(view, moves, TransactionOrigin(OriginType.WRAP, wallet, "UNWRAP"))
