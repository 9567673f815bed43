"""
Open position tracking with weighted-average cost basis.
"""

import json
import logging
import uuid
from typing import Optional

from trading_models import OrderRequest, Position, PositionKey, ReduceResult

logger = logging.getLogger(__name__)


class PositionTracker:
    """
    Owns the open positions, keyed by (market_id, outcome).

    Buys into an existing key re-average the cost basis. Sells never touch
    avg_price; a position whose shares reach zero is removed.
    """

    def __init__(self):
        self._positions: dict[PositionKey, Position] = {}

    def add_position(self, order: OrderRequest, shares: float, price: float) -> Position:
        key = order.key
        existing = self._positions.get(key)

        if existing:
            total_shares = existing.shares + shares
            existing.avg_price = (
                existing.shares * existing.avg_price + shares * price
            ) / total_shares
            existing.shares = total_shares
            existing.mark(price)
            return existing

        position = Position(
            id=str(uuid.uuid4()),
            market_id=order.market_id,
            market_question=order.market_question,
            token_id=order.token_id,
            outcome=order.outcome,
            shares=shares,
            avg_price=price,
            current_price=price,
        )
        self._positions[key] = position
        return position

    def reduce_position(
        self,
        market_id: str,
        outcome: str,
        shares: float,
        sell_price: float,
    ) -> ReduceResult:
        key = PositionKey(market_id, outcome)
        position = self._positions.get(key)

        if not position or position.shares < shares:
            return ReduceResult(success=False)

        realized_pnl = (sell_price - position.avg_price) * shares
        remaining = position.shares - shares

        if remaining <= 0:
            del self._positions[key]
            return ReduceResult(success=True, realized_pnl=realized_pnl, remaining_shares=0.0)

        position.shares = remaining
        position.mark(sell_price)
        return ReduceResult(success=True, realized_pnl=realized_pnl, remaining_shares=remaining)

    def update_prices(self, price_by_token: dict[str, float]) -> int:
        """Reprice positions whose token has a fresh price. Returns count updated."""
        updated = 0
        for position in self._positions.values():
            price = price_by_token.get(position.token_id)
            if price is not None:
                position.mark(price)
                updated += 1
        return updated

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    def get_all_positions(self) -> list[Position]:
        return list(self._positions.values())

    def get_position(self, market_id: str, outcome: str) -> Optional[Position]:
        return self._positions.get(PositionKey(market_id, outcome))

    def has_position(self, market_id: str, outcome: str) -> bool:
        return PositionKey(market_id, outcome) in self._positions

    def get_position_size(self, market_id: str, outcome: str) -> float:
        position = self._positions.get(PositionKey(market_id, outcome))
        return position.shares if position else 0.0

    def get_total_value(self) -> float:
        return sum(p.value for p in self._positions.values())

    def get_total_unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self._positions.values())

    def get_position_count(self) -> int:
        return len(self._positions)

    def clear(self) -> None:
        self._positions.clear()

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def serialize(self) -> str:
        return json.dumps([p.to_dict() for p in self._positions.values()])

    def restore(self, data: str) -> bool:
        """Restore from serialize() output. Leaves state unchanged on bad input."""
        try:
            restored = {}
            for item in json.loads(data):
                position = Position.from_dict(item)
                restored[position.key] = position
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to restore positions: {e}")
            return False
        self._positions = restored
        return True
