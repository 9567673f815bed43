"""
Random baseline strategy for comparing the others against.
"""

import random
from typing import Optional

from market_client import EnrichedMarket
from strategy_base import MarketAnalysis, Signal, Strategy, calculate_size


class RandomStrategy(Strategy):
    """30% BUY_YES, 30% BUY_NO, 40% HOLD, all at confidence 0.5."""

    name = "random"
    description = "Uniform random baseline"

    def __init__(self, rng: Optional[random.Random] = None):
        # Pass a seeded Random for reproducible runs
        self.rng = rng or random.Random()

    def analyze(self, market: EnrichedMarket) -> MarketAnalysis:
        roll = self.rng.random()

        if roll < 0.3:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_YES,
                confidence=0.5,
                reason="Random YES selection",
                suggested_size=calculate_size(0.2),
            )
        if roll < 0.6:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_NO,
                confidence=0.5,
                reason="Random NO selection",
                suggested_size=calculate_size(0.2),
            )

        return self.hold(market, 0.5, "Random hold decision")
