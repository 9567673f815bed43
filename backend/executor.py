"""
Executor Module - Applies paper orders to the ledger.

The executor is the single writer of the balance and position state.
Every order fills instantly and completely at its quoted price, or is
rejected without touching anything.

execute() is not idempotent: each call is a new decision and records a
new trade with a fresh id, even when the order content is identical.
"""

import json
import logging
import uuid
from typing import Optional

from balance import BalanceManager
from positions import PositionTracker
from trading_models import OrderRequest, OrderResult, OrderSide, Trade, utc_now

logger = logging.getLogger(__name__)

FEE_RATE = 0.001  # 0.1% on both buys and sells


def _fmt_shares(shares: float) -> str:
    return str(int(shares)) if float(shares).is_integer() else str(shares)


class TradeExecutor:
    """Validates and applies buy/sell orders, keeping the trade history."""

    def __init__(self, balance: BalanceManager, positions: PositionTracker):
        self._balance = balance
        self._positions = positions
        self._trades: list[Trade] = []

    def execute(self, order: OrderRequest) -> OrderResult:
        if order.side == OrderSide.BUY:
            result = self._execute_buy(order)
        else:
            result = self._execute_sell(order)

        if result.success:
            self._balance.update_total_value(self._positions.get_total_value())
            logger.info(
                f"Paper trade executed: {order.side.value} {_fmt_shares(order.shares)} "
                f"{order.outcome} @ {order.price:.4f}"
            )
        else:
            logger.warning(f"Order rejected: {result.error}")
        return result

    def _execute_buy(self, order: OrderRequest) -> OrderResult:
        total_cost = order.shares * order.price
        fees = total_cost * FEE_RATE
        total_with_fees = total_cost + fees

        if not self._balance.can_afford(total_with_fees):
            return OrderResult(
                success=False,
                error=(
                    f"Insufficient funds. Need ${total_with_fees:.2f}, "
                    f"have ${self._balance.get_cash():.2f}"
                ),
            )

        if not self._balance.deduct_cash(total_with_fees):
            return OrderResult(success=False, error="Failed to deduct cash")

        self._positions.add_position(order, order.shares, order.price)
        trade = self._record(order, total_cost, fees, realized_pnl=None)
        return OrderResult(success=True, trade=trade, new_balance=self._balance.get_cash())

    def _execute_sell(self, order: OrderRequest) -> OrderResult:
        held = self._positions.get_position_size(order.market_id, order.outcome)

        if held < order.shares:
            return OrderResult(
                success=False,
                error=(
                    f"Insufficient shares. Have {_fmt_shares(held)}, "
                    f"trying to sell {_fmt_shares(order.shares)}"
                ),
            )

        reduced = self._positions.reduce_position(
            order.market_id, order.outcome, order.shares, order.price
        )
        if not reduced.success:
            return OrderResult(success=False, error="Failed to reduce position")

        proceeds = order.shares * order.price
        fees = proceeds * FEE_RATE
        self._balance.add_cash(proceeds - fees)

        trade = self._record(order, proceeds, fees, realized_pnl=reduced.realized_pnl)
        return OrderResult(success=True, trade=trade, new_balance=self._balance.get_cash())

    def _record(
        self,
        order: OrderRequest,
        total_cost: float,
        fees: float,
        realized_pnl: Optional[float],
    ) -> Trade:
        trade = Trade(
            id=str(uuid.uuid4()),
            timestamp=utc_now(),
            market_id=order.market_id,
            market_question=order.market_question,
            token_id=order.token_id,
            outcome=order.outcome,
            side=order.side,
            shares=order.shares,
            price=order.price,
            total_cost=total_cost,
            fees=fees,
            realized_pnl=realized_pnl,
        )
        self._trades.append(trade)
        return trade

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    def get_history(self) -> list[Trade]:
        return list(self._trades)

    def get_recent_trades(self, count: int = 10) -> list[Trade]:
        """Last `count` trades, newest first"""
        if count <= 0:
            return []
        return list(reversed(self._trades[-count:]))

    def get_trade_count(self) -> int:
        return len(self._trades)

    def _sells(self) -> list[Trade]:
        return [t for t in self._trades if t.side == OrderSide.SELL]

    def get_winning_trades_count(self) -> int:
        return sum(1 for t in self._sells() if (t.realized_pnl or 0) > 0)

    def get_win_rate(self) -> float:
        """Percent of SELL trades with positive realized P&L"""
        sells = self._sells()
        if not sells:
            return 0.0
        return self.get_winning_trades_count() / len(sells) * 100

    def get_total_realized_pnl(self) -> float:
        return sum(t.realized_pnl or 0 for t in self._trades)

    def get_total_fees(self) -> float:
        return sum(t.fees for t in self._trades)

    def clear(self) -> None:
        self._trades.clear()

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def serialize(self) -> str:
        return json.dumps([t.to_dict() for t in self._trades])

    def restore(self, data: str) -> bool:
        """Restore from serialize() output. Leaves history unchanged on bad input."""
        try:
            restored = [Trade.from_dict(item) for item in json.loads(data)]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to restore trade history: {e}")
            return False
        self._trades = restored
        return True
