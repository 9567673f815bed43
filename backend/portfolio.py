"""
Portfolio read model over the paper trading ledger.
"""

import json
import logging

from balance import BalanceManager, DEFAULT_INITIAL_BALANCE
from executor import TradeExecutor
from positions import PositionTracker
from trading_models import PortfolioSummary, Position, Trade

logger = logging.getLogger(__name__)


class PortfolioManager:
    """
    Aggregates balance, positions and trade history.

    The summary is derived fresh on every call. Persistence composes the
    three components into one bundle; each sub-blob restores independently.
    """

    def __init__(self, initial_balance: float = DEFAULT_INITIAL_BALANCE):
        self.balance = BalanceManager(initial_balance)
        self.positions = PositionTracker()
        self.executor = TradeExecutor(self.balance, self.positions)

    def get_trade_executor(self) -> TradeExecutor:
        return self.executor

    def get_summary(self) -> PortfolioSummary:
        cash = self.balance.get_cash()
        positions_value = self.positions.get_total_value()
        total_value = cash + positions_value
        initial = self.balance.get_initial_balance()
        total_pnl = total_value - initial

        return PortfolioSummary(
            cash=cash,
            positions_value=positions_value,
            total_value=total_value,
            total_pnl=total_pnl,
            total_pnl_percent=(total_pnl / initial) * 100 if initial else 0.0,
            position_count=self.positions.get_position_count(),
            trade_count=self.executor.get_trade_count(),
            win_rate=self.executor.get_win_rate(),
        )

    def get_positions(self) -> list[Position]:
        return self.positions.get_all_positions()

    def get_recent_trades(self, count: int = 10) -> list[Trade]:
        return self.executor.get_recent_trades(count)

    def update_prices(self, price_by_token: dict[str, float]) -> None:
        self.positions.update_prices(price_by_token)
        self.balance.update_total_value(self.positions.get_total_value())

    def reset(self) -> None:
        self.balance.reset()
        self.positions.clear()
        self.executor.clear()
        logger.info("Portfolio reset to initial balance")

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def serialize(self) -> str:
        return json.dumps({
            "balance": self.balance.serialize(),
            "positions": self.positions.serialize(),
            "trades": self.executor.serialize(),
        })

    def restore(self, data: str) -> dict[str, bool]:
        """
        Restore from a serialize() bundle.

        Returns which components were restored. A missing or malformed
        sub-field leaves that component at its prior state.
        """
        restored = {"balance": False, "positions": False, "trades": False}
        try:
            bundle = json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Failed to restore portfolio bundle: {e}")
            return restored

        if not isinstance(bundle, dict):
            logger.error("Failed to restore portfolio bundle: not an object")
            return restored

        components = {
            "balance": self.balance,
            "positions": self.positions,
            "trades": self.executor,
        }
        for name, component in components.items():
            blob = bundle.get(name)
            if not isinstance(blob, str):
                logger.warning(f"Portfolio bundle has no usable '{name}' section")
                continue
            restored[name] = component.restore(blob)

        return restored
