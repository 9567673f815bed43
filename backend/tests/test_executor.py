"""
Tests for paper order execution (executor.py).

Tests cover:
- Buy/sell fills with fees
- Weighted-average cost basis across fills
- Rejections leaving the ledger untouched
- Trade history queries and win rate
"""
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from balance import BalanceManager
from executor import FEE_RATE, TradeExecutor
from positions import PositionTracker
from trading_models import OrderSide


@pytest.fixture
def ledger():
    balance = BalanceManager(100000.0)
    positions = PositionTracker()
    return balance, positions, TradeExecutor(balance, positions)


class TestBuySellSequence:
    """The buy, buy, sell, oversell walkthrough."""

    def test_first_buy(self, ledger, order_factory):
        """Test buying 1000 @ 0.40 charges a 0.1% fee."""
        balance, positions, executor = ledger

        result = executor.execute(order_factory(shares=1000, price=0.40))

        assert result.success
        assert result.trade.fees == pytest.approx(0.40)
        assert result.trade.total_cost == pytest.approx(400.0)
        assert result.new_balance == pytest.approx(99599.60)
        position = positions.get_position("m1", "YES")
        assert position.shares == 1000
        assert position.avg_price == pytest.approx(0.40)

    def test_second_buy_averages(self, ledger, order_factory):
        """Test buying 500 more @ 0.50 re-averages to 0.4333."""
        balance, positions, executor = ledger
        executor.execute(order_factory(shares=1000, price=0.40))

        result = executor.execute(order_factory(shares=500, price=0.50))

        assert result.success
        assert balance.get_cash() == pytest.approx(99349.35)
        position = positions.get_position("m1", "YES")
        assert position.shares == 1500
        assert position.avg_price == pytest.approx(0.433333, rel=1e-5)

    def test_partial_sell(self, ledger, order_factory):
        """Test selling 300 @ 0.60 realizes $50 and credits net proceeds."""
        balance, positions, executor = ledger
        executor.execute(order_factory(shares=1000, price=0.40))
        executor.execute(order_factory(shares=500, price=0.50))

        result = executor.execute(order_factory(side=OrderSide.SELL, shares=300, price=0.60))

        assert result.success
        assert result.trade.realized_pnl == pytest.approx(50.0)
        assert result.trade.total_cost == pytest.approx(180.0)
        assert balance.get_cash() == pytest.approx(99349.35 + 179.82)
        position = positions.get_position("m1", "YES")
        assert position.shares == 1200
        assert position.avg_price == pytest.approx(0.433333, rel=1e-5)

    def test_oversell_rejected(self, ledger, order_factory):
        """Test selling 2000 with 1200 held fails and changes nothing."""
        balance, positions, executor = ledger
        executor.execute(order_factory(shares=1000, price=0.40))
        executor.execute(order_factory(shares=500, price=0.50))
        executor.execute(order_factory(side=OrderSide.SELL, shares=300, price=0.60))
        cash_before = balance.get_cash()
        trades_before = executor.get_trade_count()

        result = executor.execute(order_factory(side=OrderSide.SELL, shares=2000, price=0.60))

        assert not result.success
        assert result.error == "Insufficient shares. Have 1200, trying to sell 2000"
        assert result.trade is None
        assert balance.get_cash() == cash_before
        assert positions.get_position_size("m1", "YES") == 1200
        assert executor.get_trade_count() == trades_before


class TestRejections:
    """Tests for orders that must not touch the ledger."""

    def test_insufficient_funds(self, order_factory):
        """Test a buy costing more than cash plus fees is rejected."""
        balance = BalanceManager(100.0)
        positions = PositionTracker()
        executor = TradeExecutor(balance, positions)

        result = executor.execute(order_factory(shares=250, price=0.40))

        assert not result.success
        assert result.error == "Insufficient funds. Need $100.10, have $100.00"
        assert balance.get_cash() == 100.0
        assert positions.get_position_count() == 0
        assert executor.get_trade_count() == 0

    def test_nan_price_never_reaches_cash(self, ledger, order_factory):
        balance, positions, executor = ledger
        executor.execute(order_factory(shares=100, price=0.50))
        cash_before = balance.get_cash()

        with pytest.raises(ValueError):
            executor.execute(order_factory(side=OrderSide.SELL, shares=50, price=float("nan")))

        assert balance.get_cash() == cash_before
        assert positions.get_position_size("m1", "YES") == 100

    def test_sell_without_position(self, ledger, order_factory):
        balance, positions, executor = ledger

        result = executor.execute(order_factory(side=OrderSide.SELL, shares=10, price=0.5))

        assert not result.success
        assert result.error == "Insufficient shares. Have 0, trying to sell 10"
        assert balance.get_cash() == 100000.0


class TestLedgerProperties:
    """Properties that hold over any sequence of fills."""

    def test_value_conservation(self, ledger, order_factory):
        """Test cash plus position cost never gains more than realized P&L minus fees."""
        balance, positions, executor = ledger
        executor.execute(order_factory(market_id="a", shares=1000, price=0.40))
        executor.execute(order_factory(market_id="b", outcome="NO", shares=200, price=0.75))
        executor.execute(order_factory(market_id="a", side=OrderSide.SELL, shares=400, price=0.55))
        executor.execute(order_factory(market_id="b", outcome="NO", side=OrderSide.SELL, shares=200, price=0.70))

        cost_basis = sum(p.cost_basis for p in positions.get_all_positions())
        expected = 100000.0 + executor.get_total_realized_pnl() - executor.get_total_fees()
        assert balance.get_cash() + cost_basis == pytest.approx(expected)

    def test_not_idempotent(self, ledger, order_factory):
        """Test submitting the same order twice fills twice with distinct ids."""
        balance, positions, executor = ledger
        order = order_factory(shares=100, price=0.50)

        first = executor.execute(order)
        second = executor.execute(order)

        assert first.trade.id != second.trade.id
        assert positions.get_position_size("m1", "YES") == 200
        assert executor.get_trade_count() == 2

    def test_split_fills_close_exactly(self, ledger, order_factory):
        """Test buying in pieces and selling in pieces leaves no residue."""
        balance, positions, executor = ledger
        executor.execute(order_factory(shares=1, price=0.30))
        executor.execute(order_factory(shares=2, price=0.30))
        assert executor.execute(order_factory(side=OrderSide.SELL, shares=3, price=0.30)).success
        assert positions.get_position_count() == 0

        executor.execute(order_factory(shares=3, price=0.30))
        assert executor.execute(order_factory(side=OrderSide.SELL, shares=1, price=0.30)).success
        assert executor.execute(order_factory(side=OrderSide.SELL, shares=2, price=0.30)).success
        assert positions.get_position_count() == 0

    def test_total_value_refreshed_after_fill(self, ledger, order_factory):
        balance, positions, executor = ledger
        executor.execute(order_factory(shares=1000, price=0.40))
        assert balance.get_balance().total_value == pytest.approx(99599.60 + 400.0)

    def test_fee_rate(self):
        assert FEE_RATE == 0.001


class TestTradeHistory:
    """Tests for trade history queries."""

    def test_recent_trades_newest_first(self, ledger, order_factory):
        balance, positions, executor = ledger
        for market_id in ("a", "b", "c"):
            executor.execute(order_factory(market_id=market_id, shares=10, price=0.5))

        recent = executor.get_recent_trades(2)

        assert [t.market_id for t in recent] == ["c", "b"]
        assert executor.get_recent_trades(0) == []

    def test_win_rate_counts_sells_only(self, ledger, order_factory):
        """Test win rate is the percent of sells with positive realized P&L."""
        balance, positions, executor = ledger
        assert executor.get_win_rate() == 0.0

        executor.execute(order_factory(market_id="a", shares=100, price=0.40))
        executor.execute(order_factory(market_id="b", shares=100, price=0.40))
        executor.execute(order_factory(market_id="c", shares=100, price=0.40))
        executor.execute(order_factory(market_id="a", side=OrderSide.SELL, shares=100, price=0.50))
        executor.execute(order_factory(market_id="b", side=OrderSide.SELL, shares=100, price=0.30))

        assert executor.get_winning_trades_count() == 1
        assert executor.get_win_rate() == pytest.approx(50.0)

    def test_history_round_trip(self, ledger, order_factory):
        balance, positions, executor = ledger
        executor.execute(order_factory(shares=100, price=0.40))
        executor.execute(order_factory(side=OrderSide.SELL, shares=50, price=0.60))

        restored = TradeExecutor(BalanceManager(), PositionTracker())
        assert restored.restore(executor.serialize()) is True
        assert [t.id for t in restored.get_history()] == [t.id for t in executor.get_history()]
        assert restored.get_history()[1].realized_pnl == pytest.approx(10.0)
        assert restored.get_history()[0].realized_pnl is None
