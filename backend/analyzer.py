"""
Market analyzer - maps market snapshots to trading signals.

Rule-based strategies run synchronously. The LLM strategy is the only
asynchronous path: it delegates to an injected LLMClient and never lets
a transport or parse failure escape as anything but a HOLD.
"""

import logging
import random
from typing import Optional

from config import StrategyType
from llm import LLMClient
from market_client import EnrichedMarket
from strategies import (
    BalancedStrategy,
    ContrarianStrategy,
    MomentumStrategy,
    RandomStrategy,
    ValueStrategy,
)
from strategy_base import MarketAnalysis, Signal, Strategy
from trading_models import Position

logger = logging.getLogger(__name__)

LLM_CANDIDATE_LIMIT = 5  # Bounds advisory-call volume per cycle
LLM_PRICE_FLOOR = 0.1
LLM_PRICE_CEILING = 0.9
LLM_HIGH_CONFIDENCE = 0.6
LLM_LARGE_SIZE = 200.0
LLM_SMALL_SIZE = 100.0


def select_llm_candidates(markets: list[EnrichedMarket], limit: int = LLM_CANDIDATE_LIMIT) -> list[EnrichedMarket]:
    """Most uncertain markets first: YES price in (0.1, 0.9), nearest 0.5"""
    candidates = [m for m in markets if LLM_PRICE_FLOOR < m.yes_price < LLM_PRICE_CEILING]
    candidates.sort(key=lambda m: abs(m.yes_price - 0.5))
    return candidates[:limit]


class MarketAnalyzer:
    def __init__(self, llm_client: Optional[LLMClient] = None, rng: Optional[random.Random] = None):
        self.llm_client = llm_client
        self._strategies: dict[StrategyType, Strategy] = {
            StrategyType.MOMENTUM: MomentumStrategy(),
            StrategyType.CONTRARIAN: ContrarianStrategy(),
            StrategyType.VALUE: ValueStrategy(),
            StrategyType.RANDOM: RandomStrategy(rng),
            StrategyType.BALANCED: BalancedStrategy(),
        }

    def analyze(self, market: EnrichedMarket, strategy: StrategyType) -> MarketAnalysis:
        strategy = StrategyType(strategy)
        if strategy == StrategyType.LLM:
            return MarketAnalysis(
                market=market,
                signal=Signal.HOLD,
                confidence=0.0,
                reason="Use analyze_llm() for LLM strategy",
                suggested_size=0.0,
            )
        return self._strategies[strategy].analyze(market)

    async def analyze_llm(
        self,
        market: EnrichedMarket,
        risk_level: int = 5,
        existing_position: Optional[Position] = None,
        cash_available: Optional[float] = None,
    ) -> MarketAnalysis:
        if self.llm_client is None:
            return MarketAnalysis(
                market=market,
                signal=Signal.HOLD,
                confidence=0.0,
                reason="LLM error: no LLM client configured",
                suggested_size=0.0,
            )

        try:
            response = await self.llm_client.analyze_market(
                market,
                risk_level=risk_level,
                existing_position=existing_position,
                cash_available=cash_available,
            )
        except Exception as e:
            logger.warning(f"LLM analysis failed for {market.condition_id}: {e}")
            return MarketAnalysis(
                market=market,
                signal=Signal.HOLD,
                confidence=0.0,
                reason=f"LLM error: {e}",
                suggested_size=0.0,
            )

        if response.action in (Signal.BUY_YES.value, Signal.BUY_NO.value):
            signal = Signal(response.action)
        else:
            signal = Signal.HOLD

        if response.position_size is not None:
            size = response.position_size
        else:
            size = LLM_LARGE_SIZE if response.confidence > LLM_HIGH_CONFIDENCE else LLM_SMALL_SIZE

        return MarketAnalysis(
            market=market,
            signal=signal,
            confidence=response.confidence,
            reason=f"LLM: {response.reason}",
            suggested_size=size,
        )

    def analyze_markets(self, markets: list[EnrichedMarket], strategy: StrategyType) -> list[MarketAnalysis]:
        return [self.analyze(m, strategy) for m in markets]

    def get_top_opportunities(self, analyses: list[MarketAnalysis], count: int = 5) -> list[MarketAnalysis]:
        """Non-HOLD analyses, highest confidence first"""
        actionable = [a for a in analyses if a.signal != Signal.HOLD]
        actionable.sort(key=lambda a: a.confidence, reverse=True)
        return actionable[:count]
