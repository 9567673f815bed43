"""
Signal Strategies Package

All strategies inherit from strategy_base.Strategy and ONLY produce analyses.
Execution is handled by the TradeExecutor.
"""

from .baseline import RandomStrategy
from .reversion import ContrarianStrategy, ValueStrategy
from .trend import BalancedStrategy, MomentumStrategy

__all__ = [
    "BalancedStrategy",
    "ContrarianStrategy",
    "MomentumStrategy",
    "RandomStrategy",
    "ValueStrategy",
]
