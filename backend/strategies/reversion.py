"""
Mean-reversion strategies - bet against the market's current lean.
"""

from market_client import EnrichedMarket
from strategy_base import MarketAnalysis, Signal, Strategy, calculate_size


class ContrarianStrategy(Strategy):
    """Fade extreme undervaluation: buy a side priced between 5c and 25c."""

    name = "contrarian"
    description = "Buy heavily discounted outcomes (5c-25c)"

    band_low = 0.05
    band_high = 0.25

    def analyze(self, market: EnrichedMarket) -> MarketAnalysis:
        yes_price = market.yes_price
        no_price = market.no_price

        if self.band_low < yes_price < self.band_high:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_YES,
                confidence=0.6,
                reason=f"Contrarian YES play - undervalued at {yes_price * 100:.1f}%",
                suggested_size=calculate_size(self.band_high - yes_price),
            )
        if self.band_low < no_price < self.band_high:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_NO,
                confidence=0.6,
                reason=f"Contrarian NO play - undervalued at {no_price * 100:.1f}%",
                suggested_size=calculate_size(self.band_high - no_price),
            )

        return self.hold(market, 0.3, "No contrarian opportunity")


class ValueStrategy(Strategy):
    """Near coin-flip markets: buy the cheaper side."""

    name = "value"
    description = "Buy the cheaper side of near 50/50 markets"

    zone = 0.15  # Max distance of YES price from 0.5

    def analyze(self, market: EnrichedMarket) -> MarketAnalysis:
        yes_price = market.yes_price

        if abs(yes_price - 0.5) < self.zone:
            signal = Signal.BUY_YES if yes_price < 0.5 else Signal.BUY_NO
            return MarketAnalysis(
                market=market,
                signal=signal,
                confidence=0.55,
                reason=f"Value play in balanced market ({yes_price * 100:.1f}% YES)",
                suggested_size=calculate_size(0.1),
            )

        return self.hold(market, 0.3, "Market not in value zone")
