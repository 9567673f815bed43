"""
Tests for position tracking (positions.py).
"""
import json
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from positions import PositionTracker
from trading_models import OrderSide


class TestAddPosition:
    """Tests for opening and averaging into positions."""

    def test_new_position(self, order_factory):
        """Test a first buy opens a position at the fill price."""
        tracker = PositionTracker()
        order = order_factory(shares=1000, price=0.40)
        position = tracker.add_position(order, 1000, 0.40)

        assert position.shares == 1000
        assert position.avg_price == pytest.approx(0.40)
        assert position.current_price == pytest.approx(0.40)
        assert position.unrealized_pnl == pytest.approx(0.0)
        assert tracker.get_position_count() == 1

    def test_weighted_average(self, order_factory):
        """Test a second buy re-averages the cost basis by shares."""
        tracker = PositionTracker()
        tracker.add_position(order_factory(shares=1000, price=0.40), 1000, 0.40)
        position = tracker.add_position(order_factory(shares=500, price=0.50), 500, 0.50)

        assert position.shares == 1500
        assert position.avg_price == pytest.approx(650 / 1500)
        assert tracker.get_position_count() == 1

    def test_outcomes_are_separate_keys(self, order_factory):
        """Test YES and NO of one market are tracked independently."""
        tracker = PositionTracker()
        tracker.add_position(order_factory(outcome="YES"), 100, 0.4)
        tracker.add_position(order_factory(outcome="NO"), 50, 0.6)

        assert tracker.get_position_count() == 2
        assert tracker.get_position_size("m1", "YES") == 100
        assert tracker.get_position_size("m1", "NO") == 50
        assert tracker.get_position_size("m2", "YES") == 0.0


class TestReducePosition:
    """Tests for selling out of positions."""

    def test_partial_reduce_keeps_avg_price(self, order_factory):
        """Test selling part of a position realizes P&L and keeps avg_price."""
        tracker = PositionTracker()
        tracker.add_position(order_factory(shares=1000), 1000, 0.40)

        result = tracker.reduce_position("m1", "YES", 300, 0.60)

        assert result.success
        assert result.realized_pnl == pytest.approx(60.0)
        assert result.remaining_shares == 700
        position = tracker.get_position("m1", "YES")
        assert position.avg_price == pytest.approx(0.40)
        assert position.current_price == pytest.approx(0.60)

    def test_full_reduce_removes(self, order_factory):
        """Test a position sold to zero disappears."""
        tracker = PositionTracker()
        tracker.add_position(order_factory(shares=100), 100, 0.50)

        result = tracker.reduce_position("m1", "YES", 100, 0.30)

        assert result.success
        assert result.realized_pnl == pytest.approx(-20.0)
        assert result.remaining_shares == 0.0
        assert not tracker.has_position("m1", "YES")

    def test_reduce_more_than_held_fails(self, order_factory):
        tracker = PositionTracker()
        tracker.add_position(order_factory(shares=100), 100, 0.50)

        result = tracker.reduce_position("m1", "YES", 101, 0.50)

        assert not result.success
        assert tracker.get_position_size("m1", "YES") == 100

    def test_reduce_missing_position_fails(self):
        assert not PositionTracker().reduce_position("nope", "YES", 1, 0.5).success


class TestPriceUpdates:
    """Tests for repricing and aggregates."""

    def test_update_prices_matching_tokens_only(self, order_factory):
        """Test only positions with a fresh token price are repriced."""
        tracker = PositionTracker()
        tracker.add_position(order_factory(market_id="a"), 100, 0.40)
        tracker.add_position(order_factory(market_id="b"), 100, 0.40)

        updated = tracker.update_prices({"a-yes": 0.50, "zzz": 0.9})

        assert updated == 1
        assert tracker.get_position("a", "YES").unrealized_pnl == pytest.approx(10.0)
        assert tracker.get_position("b", "YES").current_price == pytest.approx(0.40)

    def test_totals(self, order_factory):
        tracker = PositionTracker()
        tracker.add_position(order_factory(market_id="a"), 100, 0.40)
        tracker.add_position(order_factory(market_id="b"), 200, 0.25)
        tracker.update_prices({"a-yes": 0.50, "b-yes": 0.20})

        assert tracker.get_total_value() == pytest.approx(50.0 + 40.0)
        assert tracker.get_total_unrealized_pnl() == pytest.approx(10.0 - 10.0)

    def test_clear(self, order_factory):
        tracker = PositionTracker()
        tracker.add_position(order_factory(), 100, 0.40)
        tracker.clear()
        assert tracker.get_all_positions() == []


class TestPositionPersistence:
    """Tests for serialize/restore."""

    def test_round_trip(self, order_factory):
        tracker = PositionTracker()
        tracker.add_position(order_factory(market_id="a"), 100, 0.40)
        tracker.add_position(order_factory(market_id="b", outcome="NO"), 50, 0.70)

        restored = PositionTracker()
        assert restored.restore(tracker.serialize()) is True
        assert restored.get_position_count() == 2
        position = restored.get_position("b", "NO")
        assert position.shares == 50
        assert position.avg_price == pytest.approx(0.70)

    def test_restore_malformed_keeps_state(self, order_factory):
        tracker = PositionTracker()
        tracker.add_position(order_factory(), 100, 0.40)

        assert tracker.restore("{broken") is False
        assert tracker.restore(json.dumps([{"id": "x"}])) is False
        assert tracker.get_position_count() == 1


class TestOrderValidation:
    """Tests for OrderRequest construction."""

    def test_non_positive_shares_rejected(self, order_factory):
        with pytest.raises(ValueError):
            order_factory(shares=0)

    def test_price_out_of_range_rejected(self, order_factory):
        with pytest.raises(ValueError):
            order_factory(price=1.5)
        with pytest.raises(ValueError):
            order_factory(price=-0.1)

    def test_fractional_shares_rejected(self, order_factory):
        """Test whole shares only, so repeated fills never leave float residue."""
        with pytest.raises(ValueError):
            order_factory(shares=0.1)
        with pytest.raises(ValueError):
            order_factory(shares=2.5)
        assert order_factory(shares=3.0).shares == 3.0

    def test_non_finite_values_rejected(self, order_factory):
        for bad in (float("nan"), float("inf"), float("-inf")):
            with pytest.raises(ValueError):
                order_factory(price=bad)
            with pytest.raises(ValueError):
                order_factory(shares=bad)

    def test_side_coerced_from_string(self, order_factory):
        assert order_factory(side="SELL").side == OrderSide.SELL
