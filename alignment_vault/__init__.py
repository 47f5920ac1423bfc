"""
alignment_vault - Conversion-indexed benefactor accounting

Pools contributions from many benefactors, periodically converts them into a
shared liquidity position, and pays the position's trading fees back in
proportion to each benefactor's frozen share of every conversion they took
part in.

Usage:
    from decimal import Decimal
    from alignment_vault import (
        Ledger, Host, PoolManager, AlignmentVault, PoolKey, VenueConfig,
        native_asset, token_asset, price_to_sqrt_price_x96,
        Move, build_transaction, SYSTEM_WALLET,
    )

    ledger = Ledger("chain", verbose=False)
    ledger.register_asset(native_asset())
    ledger.register_asset(token_asset("ALIGN", "Alignment Token"))
    host = Host(ledger)

    manager = PoolManager(host)
    key = PoolKey("ETH", "ALIGN", 3000, 60)
    manager.initialize(key, price_to_sqrt_price_x96(Decimal("1000")))

    vault = AlignmentVault(host, manager, VenueConfig(key, "ALIGN"), owner="dao")
    vault.receive_contribution("alice", 10**18)
    vault.convert_and_add_liquidity(caller="keeper")
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    EventType,
    ExecuteResult,
    build_transaction,
    Asset,
    native_asset,
    wrapped_asset,
    token_asset,
    PoolKey,
    BalanceDelta,
    VenueConfig,
    RewardConfig,
    LiquidityPosition,
    ConversionRecord,
    FeeAccount,
    ClaimWatermark,
    VaultEvent,
    currency_sort_key,
    sort_currencies,
    UndoLog,
    SYSTEM_WALLET,
    NATIVE_CURRENCY,
    WRAPPED_NATIVE_CURRENCY,
    SUPPORTED_FEE_TIERS,
    ASSET_TYPE_NATIVE,
    ASSET_TYPE_WRAPPED,
    ASSET_TYPE_TOKEN,
    RATIO_TOLERANCE,
    # Exceptions
    VaultError,
    LedgerError,
    InsufficientBalance,
    WalletNotRegistered,
    AssetNotRegistered,
    TransferRefused,
    InvalidConfiguration,
    SlippageExceeded,
    InvalidContribution,
    NothingToConvert,
    UnknownRecord,
    VaultPaused,
    Unauthorized,
    ReentrantCall,
    VenueError,
    PoolNotInitialized,
    ManagerLocked,
    AlreadyUnlocked,
    CurrencyNotSettled,
)

# Host ledger and environment
from .ledger import Ledger, WRAPPED_ESCROW_WALLET, compute_wrap, compute_unwrap
from .host import Host, Participant, non_reentrant
from .cost_rates import CostRateSource, StaticCostRate, TimeSeriesCostRate

# Venue
from .venue_math import (
    MIN_TICK, MAX_TICK, Q96, Q128, MIN_SQRT_RATIO, MAX_SQRT_RATIO,
    tick_to_sqrt_price_x96, sqrt_price_x96_to_tick,
    price_to_sqrt_price_x96, sqrt_price_x96_to_price,
    full_range_ticks, compute_swap_step,
    get_amount0_delta, get_amount1_delta,
    get_liquidity_for_amounts, get_amounts_for_liquidity,
)
from .venue import PoolManager, UnlockSession, TaxHook, Slot0, SwapQuote, PositionInfo
from .adapter import LiquidityPositionAdapter, DeploymentResult
from .router import Route, PoolManagerRoute, ConstantProductRoute, BestExecutionRouter

# Vault components
from .contributions import ContributionLedger
from .records import ConversionRecordStore
from .allocation import optimal_swap_fraction, swap_amount, EVEN_SPLIT
from .fees import (
    FeeAccrualEngine, ClaimLine, ClaimComputation,
    compute_entitlement, compute_claim, allocate_fees,
    DeploymentShare, attribute_deployment,
)
from .rewards import RewardSubsystem, RewardOutcome, RewardFailure, compute_reward
from .conversion import ConversionEngine
from .vault import AlignmentVault, ConversionResult, ClaimResult, ClaimPreview


__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'EventType', 'ExecuteResult',
    'build_transaction', 'Asset', 'native_asset', 'wrapped_asset', 'token_asset',
    'PoolKey', 'BalanceDelta', 'VenueConfig', 'RewardConfig',
    'LiquidityPosition', 'ConversionRecord', 'FeeAccount', 'ClaimWatermark', 'VaultEvent',
    'UndoLog',
    'currency_sort_key', 'sort_currencies',
    'SYSTEM_WALLET', 'NATIVE_CURRENCY', 'WRAPPED_NATIVE_CURRENCY', 'SUPPORTED_FEE_TIERS',
    'ASSET_TYPE_NATIVE', 'ASSET_TYPE_WRAPPED', 'ASSET_TYPE_TOKEN', 'RATIO_TOLERANCE',
    # Exceptions
    'VaultError', 'LedgerError', 'InsufficientBalance', 'WalletNotRegistered',
    'AssetNotRegistered', 'TransferRefused', 'InvalidConfiguration', 'SlippageExceeded',
    'InvalidContribution', 'NothingToConvert', 'UnknownRecord', 'VaultPaused',
    'Unauthorized', 'ReentrantCall', 'VenueError', 'PoolNotInitialized',
    'ManagerLocked', 'AlreadyUnlocked', 'CurrencyNotSettled',
    # Host
    'Ledger', 'WRAPPED_ESCROW_WALLET', 'compute_wrap', 'compute_unwrap',
    'Host', 'Participant', 'non_reentrant',
    'CostRateSource', 'StaticCostRate', 'TimeSeriesCostRate',
    # Venue
    'MIN_TICK', 'MAX_TICK', 'Q96', 'Q128', 'MIN_SQRT_RATIO', 'MAX_SQRT_RATIO',
    'tick_to_sqrt_price_x96', 'sqrt_price_x96_to_tick',
    'price_to_sqrt_price_x96', 'sqrt_price_x96_to_price',
    'full_range_ticks', 'compute_swap_step',
    'get_amount0_delta', 'get_amount1_delta',
    'get_liquidity_for_amounts', 'get_amounts_for_liquidity',
    'PoolManager', 'UnlockSession', 'TaxHook', 'Slot0', 'SwapQuote', 'PositionInfo',
    'LiquidityPositionAdapter', 'DeploymentResult',
    'Route', 'PoolManagerRoute', 'ConstantProductRoute', 'BestExecutionRouter',
    # Vault
    'ContributionLedger', 'ConversionRecordStore',
    'optimal_swap_fraction', 'swap_amount', 'EVEN_SPLIT',
    'FeeAccrualEngine', 'ClaimLine', 'ClaimComputation',
    'compute_entitlement', 'compute_claim', 'allocate_fees',
    'DeploymentShare', 'attribute_deployment',
    'RewardSubsystem', 'RewardOutcome', 'RewardFailure', 'compute_reward',
    'ConversionEngine',
    'AlignmentVault', 'ConversionResult', 'ClaimResult', 'ClaimPreview',
]

__version__ = '1.0.0'
