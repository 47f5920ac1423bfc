"""
router.py - Best-execution price routing

A Route trades one asset for another on behalf of a fixed trader wallet.
The BestExecutionRouter asks every route for a quote and executes on the
one returning the most output.

Classes:
- Route: Protocol for quoting and executing exact-input trades
- PoolManagerRoute: trades through the vault's venue pool
- ConstantProductRoute: x*y=k reserves held in a host-ledger wallet
- BestExecutionRouter: picks the best quoting route
"""

from __future__ import annotations
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .core import (
    Move, TransactionOrigin, OriginType, build_transaction,
    SlippageExceeded,
)
from .adapter import LiquidityPositionAdapter
from .ledger import Ledger


@runtime_checkable
class Route(Protocol):
    """
    Exact-input trading route.

    quote() never changes state. execute() moves assets for the route's
    trader and raises SlippageExceeded when the output is below min_out.
    Routes that do not trade `asset_in` quote zero.
    """
    name: str

    def quote(self, asset_in: str, amount_in: int) -> int:
        ...

    def execute(self, asset_in: str, amount_in: int, min_out: int) -> int:
        ...


class PoolManagerRoute:
    """Route through the vault's own pool on the venue."""

    def __init__(self, adapter: LiquidityPositionAdapter, name: str = "pool_manager"):
        self.adapter = adapter
        self.name = name

    def quote(self, asset_in: str, amount_in: int) -> int:
        return self.adapter.quote_swap(asset_in, amount_in)

    def execute(self, asset_in: str, amount_in: int, min_out: int) -> int:
        return self.adapter.swap(asset_in, amount_in, min_out)

    def __repr__(self):
        return f"PoolManagerRoute({self.name})"


class ConstantProductRoute:
    """
    Constant-product pool whose reserves are a ledger wallet's balances.

    out = in * (1 - fee) * R_out / (R_in + in * (1 - fee))
    """

    def __init__(
        self,
        ledger: Ledger,
        reserve_wallet: str,
        asset_a: str,
        asset_b: str,
        trader: str,
        fee_bps: int = 30,
        name: Optional[str] = None,
    ):
        if not 0 <= fee_bps < 10_000:
            raise ValueError(f"fee_bps must be in [0, 10000), got {fee_bps}")
        if asset_a == asset_b:
            raise ValueError("Route assets must differ")
        self.ledger = ledger
        self.reserve_wallet = ledger.ensure_wallet(reserve_wallet)
        self.assets = (asset_a, asset_b)
        self.trader = trader
        self.fee_bps = fee_bps
        self.name = name or f"cp_{asset_a}_{asset_b}"

    def reserves(self) -> Tuple[int, int]:
        a, b = self.assets
        return (
            self.ledger.get_balance(self.reserve_wallet, a),
            self.ledger.get_balance(self.reserve_wallet, b),
        )

    def _other(self, asset_in: str) -> Optional[str]:
        a, b = self.assets
        if asset_in == a:
            return b
        if asset_in == b:
            return a
        return None

    def quote(self, asset_in: str, amount_in: int) -> int:
        asset_out = self._other(asset_in)
        if asset_out is None or amount_in <= 0:
            return 0
        reserve_in = self.ledger.get_balance(self.reserve_wallet, asset_in)
        reserve_out = self.ledger.get_balance(self.reserve_wallet, asset_out)
        if reserve_in <= 0 or reserve_out <= 0:
            return 0
        amount_in_with_fee = amount_in * (10_000 - self.fee_bps)
        return (amount_in_with_fee * reserve_out) // (reserve_in * 10_000 + amount_in_with_fee)

    def execute(self, asset_in: str, amount_in: int, min_out: int) -> int:
        asset_out = self._other(asset_in)
        if asset_out is None:
            raise ValueError(f"{self.name} does not trade {asset_in}")
        amount_out = self.quote(asset_in, amount_in)
        if amount_out < min_out or amount_out == 0:
            raise SlippageExceeded(f"{self.name}: output {amount_out} below minimum {min_out}")
        moves = [
            Move(amount_in, asset_in, self.trader, self.reserve_wallet, self.name),
            Move(amount_out, asset_out, self.reserve_wallet, self.trader, self.name),
        ]
        origin = TransactionOrigin(OriginType.SWAP, self.name, "SWAP")
        self.ledger.execute(build_transaction(self.ledger, moves, origin), strict=True)
        return amount_out

    def __repr__(self):
        return f"ConstantProductRoute({self.name}, reserves={self.reserves()})"


class BestExecutionRouter:
    """
    Route selection by best quote.

    Ties go to the route registered first.
    """

    def __init__(self, routes: Sequence[Route], verbose: bool = False):
        self.routes: List[Route] = list(routes)
        self.verbose = verbose

    def add_route(self, route: Route) -> None:
        self.routes.append(route)

    def best_quote(self, asset_in: str, amount_in: int) -> Tuple[Optional[Route], int]:
        best_route, best_out = None, 0
        for route in self.routes:
            out = route.quote(asset_in, amount_in)
            if out > best_out:
                best_route, best_out = route, out
        return best_route, best_out

    def quote(self, asset_in: str, amount_in: int) -> int:
        """Best output across all routes (0 if none trades the asset)."""
        return self.best_quote(asset_in, amount_in)[1]

    def execute(self, asset_in: str, amount_in: int, min_out: int = 0) -> int:
        """
        Trade on the best route.

        Raises:
            SlippageExceeded: If no route produces output or the output is below min_out
        """
        if amount_in <= 0:
            return 0
        route, quoted = self.best_quote(asset_in, amount_in)
        if route is None:
            raise SlippageExceeded(f"No route produces output for {amount_in} {asset_in}")
        amount_out = route.execute(asset_in, amount_in, min_out)
        if amount_out < min_out:
            raise SlippageExceeded(f"Route {route.name} returned {amount_out} below minimum {min_out}")
        if self.verbose:
            print(f"✓ ROUTED {amount_in} {asset_in} via {route.name}: out={amount_out} (quoted {quoted})")
        return amount_out
