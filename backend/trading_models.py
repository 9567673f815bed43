"""
Paper trading ledger records.

Plain dataclasses shared by the balance, position and trade components.
Every record round-trips through to_dict/from_dict, with timestamps kept
as ISO-8601 strings in UTC.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class PositionKey(NamedTuple):
    """Identity of a position: one outcome of one market"""
    market_id: str
    outcome: str


# ============================================================================
# BALANCE
# ============================================================================

@dataclass
class VirtualBalance:
    cash: float
    total_value: float
    initial_balance: float
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "cash": self.cash,
            "total_value": self.total_value,
            "initial_balance": self.initial_balance,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VirtualBalance":
        return cls(
            cash=float(data["cash"]),
            total_value=float(data["total_value"]),
            initial_balance=float(data["initial_balance"]),
            last_updated=_parse_time(data["last_updated"]),
        )


# ============================================================================
# ORDERS
# ============================================================================

@dataclass(frozen=True)
class OrderRequest:
    """A request to buy or sell shares of one outcome at a quoted price"""
    market_id: str
    market_question: str
    token_id: str
    outcome: str  # "YES" / "NO"
    side: OrderSide
    shares: float
    price: float

    def __post_init__(self):
        if not math.isfinite(self.shares) or self.shares <= 0:
            raise ValueError(f"Order shares must be positive, got {self.shares}")
        if not float(self.shares).is_integer():
            raise ValueError(f"Order shares must be whole, got {self.shares}")
        if not math.isfinite(self.price) or self.price < 0 or self.price > 1:
            raise ValueError(f"Order price must be in [0, 1], got {self.price}")
        object.__setattr__(self, "side", OrderSide(self.side))

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.market_id, self.outcome)

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "market_question": self.market_question,
            "token_id": self.token_id,
            "outcome": self.outcome,
            "side": self.side.value,
            "shares": self.shares,
            "price": self.price,
        }


# ============================================================================
# POSITIONS
# ============================================================================

@dataclass
class Position:
    id: str
    market_id: str
    market_question: str
    token_id: str
    outcome: str
    shares: float
    avg_price: float
    current_price: float
    unrealized_pnl: float = 0.0
    opened_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.market_id, self.outcome)

    @property
    def value(self) -> float:
        return self.shares * self.current_price

    @property
    def cost_basis(self) -> float:
        return self.shares * self.avg_price

    def mark(self, price: float) -> None:
        """Reprice the position and recompute unrealized P&L"""
        self.current_price = price
        self.unrealized_pnl = (price - self.avg_price) * self.shares

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "market_id": self.market_id,
            "market_question": self.market_question,
            "token_id": self.token_id,
            "outcome": self.outcome,
            "shares": self.shares,
            "avg_price": self.avg_price,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "opened_at": self.opened_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(
            id=data["id"],
            market_id=data["market_id"],
            market_question=data.get("market_question", ""),
            token_id=data["token_id"],
            outcome=data["outcome"],
            shares=float(data["shares"]),
            avg_price=float(data["avg_price"]),
            current_price=float(data["current_price"]),
            unrealized_pnl=float(data.get("unrealized_pnl", 0.0)),
            opened_at=_parse_time(data["opened_at"]),
        )


@dataclass
class ReduceResult:
    success: bool
    realized_pnl: float = 0.0
    remaining_shares: float = 0.0


# ============================================================================
# TRADES
# ============================================================================

@dataclass(frozen=True)
class Trade:
    """Immutable fill record"""
    id: str
    timestamp: datetime
    market_id: str
    market_question: str
    token_id: str
    outcome: str
    side: OrderSide
    shares: float
    price: float
    total_cost: float  # Gross: cost before fees on buys, proceeds on sells
    fees: float
    realized_pnl: Optional[float] = None  # SELL only

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "market_id": self.market_id,
            "market_question": self.market_question,
            "token_id": self.token_id,
            "outcome": self.outcome,
            "side": self.side.value,
            "shares": self.shares,
            "price": self.price,
            "total_cost": self.total_cost,
            "fees": self.fees,
            "realized_pnl": self.realized_pnl,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Trade":
        realized = data.get("realized_pnl")
        return cls(
            id=data["id"],
            timestamp=_parse_time(data["timestamp"]),
            market_id=data["market_id"],
            market_question=data.get("market_question", ""),
            token_id=data["token_id"],
            outcome=data["outcome"],
            side=OrderSide(data["side"]),
            shares=float(data["shares"]),
            price=float(data["price"]),
            total_cost=float(data["total_cost"]),
            fees=float(data["fees"]),
            realized_pnl=float(realized) if realized is not None else None,
        )


@dataclass
class OrderResult:
    """Result of attempting to execute an order. No partial fills."""
    success: bool
    trade: Optional[Trade] = None
    error: Optional[str] = None
    new_balance: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "trade": self.trade.to_dict() if self.trade else None,
            "error": self.error,
            "new_balance": self.new_balance,
        }


# ============================================================================
# SUMMARY
# ============================================================================

@dataclass
class PortfolioSummary:
    """Read model derived on demand; never stored"""
    cash: float
    positions_value: float
    total_value: float
    total_pnl: float
    total_pnl_percent: float
    position_count: int
    trade_count: int
    win_rate: float  # Percent of profitable SELL trades

    def to_dict(self) -> dict:
        return {
            "cash": round(self.cash, 2),
            "positions_value": round(self.positions_value, 2),
            "total_value": round(self.total_value, 2),
            "total_pnl": round(self.total_pnl, 2),
            "total_pnl_percent": round(self.total_pnl_percent, 2),
            "position_count": self.position_count,
            "trade_count": self.trade_count,
            "win_rate": round(self.win_rate, 1),
        }
