"""
Route modules for the Polymarket Paper Trading Agent API.

This package organizes API endpoints into logical groups:
- portfolio: Paper account summary, positions, trades
- control: Agent status, logs, configuration, start/stop
- markets: Cached market and event snapshots
- advisor: Local LLM models, thoughts and on-demand analysis
"""

from .portfolio import router as portfolio_router
from .control import router as control_router
from .markets import router as markets_router
from .advisor import router as advisor_router

__all__ = [
    "portfolio_router",
    "control_router",
    "markets_router",
    "advisor_router",
]
