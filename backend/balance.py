"""
Virtual cash balance for paper trading.
"""

import json
import logging
import math

from trading_models import VirtualBalance, utc_now

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_BALANCE = 100000.0


class BalanceManager:
    """
    Owns the cash balance and the derived total value.

    Deductions are all-or-nothing: a deduction larger than the available
    cash is refused and leaves the balance untouched.
    """

    def __init__(self, initial_balance: float = DEFAULT_INITIAL_BALANCE):
        if initial_balance < 0:
            raise ValueError(f"Initial balance must be >= 0, got {initial_balance}")
        self._balance = VirtualBalance(
            cash=initial_balance,
            total_value=initial_balance,
            initial_balance=initial_balance,
        )

    def get_balance(self) -> VirtualBalance:
        """Return a copy of the balance record"""
        return VirtualBalance.from_dict(self._balance.to_dict())

    def get_cash(self) -> float:
        return self._balance.cash

    def get_initial_balance(self) -> float:
        return self._balance.initial_balance

    def can_afford(self, amount: float) -> bool:
        return self._balance.cash >= amount

    def deduct_cash(self, amount: float) -> bool:
        if not math.isfinite(amount) or amount < 0:
            raise ValueError(f"Cannot deduct a negative amount: {amount}")
        if amount > self._balance.cash:
            return False
        self._balance.cash -= amount
        self._balance.last_updated = utc_now()
        return True

    def add_cash(self, amount: float) -> None:
        if not math.isfinite(amount) or amount < 0:
            raise ValueError(f"Cannot add a negative amount: {amount}")
        self._balance.cash += amount
        self._balance.last_updated = utc_now()

    def update_total_value(self, positions_value: float) -> None:
        self._balance.total_value = self._balance.cash + positions_value
        self._balance.last_updated = utc_now()

    def get_pnl(self) -> tuple[float, float]:
        """Return (absolute P&L, percent P&L) against the initial balance"""
        initial = self._balance.initial_balance
        pnl = self._balance.total_value - initial
        percent = (pnl / initial) * 100 if initial else 0.0
        return pnl, percent

    def reset(self) -> None:
        initial = self._balance.initial_balance
        self._balance.cash = initial
        self._balance.total_value = initial
        self._balance.last_updated = utc_now()

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def serialize(self) -> str:
        return json.dumps(self._balance.to_dict())

    def restore(self, data: str) -> bool:
        """Restore from serialize() output. Leaves state unchanged on bad input."""
        try:
            restored = VirtualBalance.from_dict(json.loads(data))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to restore balance: {e}")
            return False
        if restored.cash < 0:
            logger.error(f"Failed to restore balance: negative cash {restored.cash}")
            return False
        self._balance = restored
        return True
