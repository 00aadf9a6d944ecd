"""
Position, order and execution models.

These dataclasses represent the objects passed between the exchange
clients, the targeting logic and the execution engine.  Keeping them in
a separate module improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import pandas as pd


BUY = 'buy'
SELL = 'sell'
TIME_IN_FORCE = ('IOC', 'GTC')


@dataclass(frozen=True)
class Position:
    """Represents one perpetual position held by an account."""
    coin: str
    size: float  # positive = long, negative = short, 0 = flat
    updated_at: pd.Timestamp
    entry_price: Optional[float] = None
    leverage: Optional[float] = None
    unrealized_pnl: Optional[float] = None
    margin_used: Optional[float] = None
    liquidation_price: Optional[float] = None
    return_on_equity: Optional[float] = None
    cum_funding: Optional[float] = None


@dataclass
class PositionTarget:
    """Desired follower size for one coin and the gap to get there."""
    coin: str
    target_size: float
    current_size: float
    delta: float


@dataclass(frozen=True)
class OrderRequest:
    """Order to be sent to the exchange."""
    coin: str
    side: str  # 'buy' or 'sell'
    size: float  # absolute size, always > 0
    tif: str  # 'IOC' or 'GTC'
    reduce_only: bool
    price: Optional[float] = None  # None = market order

    def sanitized(self) -> dict:
        """Loggable view of the order."""
        return {
            'coin': self.coin,
            'side': self.side,
            'size': self.size,
            'tif': self.tif,
            'reduce_only': self.reduce_only,
        }


@dataclass
class OrderResult:
    """Outcome of a single order submission."""
    success: bool
    order_id: Optional[str] = None
    filled_size: Optional[float] = None
    avg_price: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MarketData:
    """Latest prices for a coin."""
    coin: str
    mark_price: float
    last_price: float
    timestamp: pd.Timestamp

    @property
    def price(self) -> float:
        """Mark price, falling back to the last traded price."""
        return self.mark_price or self.last_price or 0.0


@dataclass(frozen=True)
class AccountInfo:
    """Account-level margin summary."""
    equity: float = 0.0
    total_margin_used: float = 0.0
    total_notional: float = 0.0


@dataclass
class ExecutionRecord:
    """Journal entry for one order handled by the executor."""
    timestamp: pd.Timestamp
    coin: str
    side: str
    size: float
    mark_price: float
    reduce_only: bool
    status: str  # 'executed', 'rejected', 'error' or 'skipped'
    reason: Optional[str] = None
    order_id: Optional[str] = None

    @property
    def notional(self) -> float:
        return self.size * self.mark_price
