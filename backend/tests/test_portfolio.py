"""
Tests for the portfolio read model (portfolio.py) and its file store (state_store.py).
"""
import json
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from portfolio import PortfolioManager
from state_store import PortfolioStateStore, STATE_FILENAME
from trading_models import OrderSide


class TestPortfolioSummary:
    """Tests for the derived summary."""

    def test_fresh_summary(self, portfolio):
        summary = portfolio.get_summary()
        assert summary.cash == 100000.0
        assert summary.positions_value == 0.0
        assert summary.total_pnl == 0.0
        assert summary.position_count == 0
        assert summary.trade_count == 0
        assert summary.win_rate == 0.0

    def test_summary_reflects_marks(self, portfolio, order_factory):
        """Test the summary picks up repriced positions without a refresh call."""
        portfolio.get_trade_executor().execute(order_factory(shares=1000, price=0.40))
        portfolio.positions.update_prices({"m1-yes": 0.50})

        summary = portfolio.get_summary()
        assert summary.positions_value == pytest.approx(500.0)
        assert summary.total_value == pytest.approx(99599.60 + 500.0)
        assert summary.total_pnl == pytest.approx(99.60)
        assert summary.total_pnl_percent == pytest.approx(0.0996)

    def test_summary_to_dict_rounds(self, portfolio, order_factory):
        portfolio.get_trade_executor().execute(order_factory(shares=3, price=0.333))
        data = portfolio.get_summary().to_dict()
        assert data["cash"] == round(data["cash"], 2)
        assert data["trade_count"] == 1

    def test_update_prices_refreshes_total_value(self, portfolio, order_factory):
        portfolio.get_trade_executor().execute(order_factory(shares=1000, price=0.40))
        portfolio.update_prices({"m1-yes": 0.60})
        assert portfolio.balance.get_balance().total_value == pytest.approx(99599.60 + 600.0)

    def test_reset(self, portfolio, order_factory):
        """Test reset clears positions and history and restores cash."""
        portfolio.get_trade_executor().execute(order_factory(shares=1000, price=0.40))
        portfolio.reset()

        summary = portfolio.get_summary()
        assert summary.cash == 100000.0
        assert summary.position_count == 0
        assert summary.trade_count == 0


class TestPortfolioPersistence:
    """Tests for the serialized bundle."""

    def test_round_trip(self, portfolio, order_factory):
        executor = portfolio.get_trade_executor()
        executor.execute(order_factory(shares=1000, price=0.40))
        executor.execute(order_factory(side=OrderSide.SELL, shares=400, price=0.50))

        restored = PortfolioManager(1.0)
        result = restored.restore(portfolio.serialize())

        assert result == {"balance": True, "positions": True, "trades": True}
        assert restored.get_summary().to_dict() == portfolio.get_summary().to_dict()
        assert restored.balance.get_initial_balance() == 100000.0

    def test_missing_section_keeps_prior_state(self, portfolio, order_factory):
        """Test a bundle without trades restores the rest and leaves history alone."""
        source = PortfolioManager(5000.0)
        source.get_trade_executor().execute(order_factory(shares=100, price=0.50))
        bundle = json.loads(source.serialize())
        del bundle["trades"]

        portfolio.get_trade_executor().execute(order_factory(market_id="x", shares=10, price=0.5))
        result = portfolio.restore(json.dumps(bundle))

        assert result == {"balance": True, "positions": True, "trades": False}
        assert portfolio.get_summary().trade_count == 1
        assert portfolio.get_recent_trades(1)[0].market_id == "x"

    def test_malformed_bundle(self, portfolio):
        assert portfolio.restore("][") == {"balance": False, "positions": False, "trades": False}
        assert portfolio.restore("[1, 2]") == {"balance": False, "positions": False, "trades": False}
        assert portfolio.get_summary().cash == 100000.0


class TestPortfolioStateStore:
    """Tests for the JSON file store."""

    def test_save_and_load(self, tmp_path, portfolio, order_factory):
        portfolio.get_trade_executor().execute(order_factory(shares=100, price=0.40))
        store = PortfolioStateStore(str(tmp_path))

        assert store.save(portfolio) is True
        assert os.path.exists(tmp_path / STATE_FILENAME)
        assert not os.path.exists(tmp_path / f"{STATE_FILENAME}.tmp")

        fresh = PortfolioManager()
        assert store.load(fresh) is True
        assert fresh.get_summary().position_count == 1
        assert fresh.get_summary().cash == pytest.approx(portfolio.get_summary().cash)

    def test_load_missing_file(self, tmp_path, portfolio):
        assert PortfolioStateStore(str(tmp_path)).load(portfolio) is False

    def test_load_corrupt_file(self, tmp_path, portfolio):
        (tmp_path / STATE_FILENAME).write_text("garbage")
        assert PortfolioStateStore(str(tmp_path)).load(portfolio) is False
        assert portfolio.get_summary().cash == 100000.0

    def test_save_creates_data_dir(self, tmp_path, portfolio):
        store = PortfolioStateStore(str(tmp_path / "nested" / "dir"))
        assert store.save(portfolio) is True
        assert os.path.exists(store.path)
