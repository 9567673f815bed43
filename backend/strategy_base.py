"""
Strategy Base Classes

Provides a standardized interface for all signal strategies.
Strategies ONLY produce analyses - they never execute trades directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from market_client import EnrichedMarket

MIN_SUGGESTED_SIZE = 10.0
MAX_SUGGESTED_SIZE = 500.0
BASE_SIZE = 100.0


class Signal(str, Enum):
    """Recommended action for a market"""
    BUY_YES = "BUY_YES"
    BUY_NO = "BUY_NO"
    HOLD = "HOLD"

    @property
    def is_yes(self) -> bool:
        return "YES" in self.value


@dataclass
class MarketAnalysis:
    """Output from a strategy - pure data, no execution logic."""
    market: EnrichedMarket
    signal: Signal
    confidence: float              # 0.0 - 1.0
    reason: str                    # Human-readable reason
    suggested_size: float          # Dollars

    def quoted_price(self) -> float:
        """Price of the side this signal trades"""
        return self.market.yes_price if self.signal.is_yes else self.market.no_price

    def to_dict(self) -> dict:
        return {
            "market_id": self.market.condition_id,
            "question": self.market.question,
            "signal": self.signal.value,
            "confidence": round(self.confidence, 3),
            "reason": self.reason,
            "suggested_size": round(self.suggested_size, 2),
        }


def calculate_size(strength: float) -> float:
    """Suggested dollars for a signal strength, clamped to [10, 500]"""
    scaled = BASE_SIZE * abs(strength) * 5
    return max(MIN_SUGGESTED_SIZE, min(MAX_SUGGESTED_SIZE, scaled))


class Strategy(ABC):
    """
    Base class for all signal strategies.

    Strategies ONLY produce analyses, never execute.
    Execution is handled by the TradeExecutor.
    """

    name: str = "base"
    description: str = "Base strategy class"

    @abstractmethod
    def analyze(self, market: EnrichedMarket) -> MarketAnalysis:
        """Map one market snapshot to a signal."""
        pass

    def hold(self, market: EnrichedMarket, confidence: float, reason: str) -> MarketAnalysis:
        return MarketAnalysis(
            market=market,
            signal=Signal.HOLD,
            confidence=confidence,
            reason=reason,
            suggested_size=0.0,
        )
