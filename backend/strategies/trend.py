"""
Trend-following strategies - back the side the market already favors.

Momentum buys any side priced above 60c. Balanced only follows strong
favorites (above 70c) and otherwise falls back to a narrow contrarian band.
"""

from market_client import EnrichedMarket
from strategy_base import MarketAnalysis, Signal, Strategy, calculate_size


class MomentumStrategy(Strategy):
    """Buy whichever side is priced above the momentum threshold."""

    name = "momentum"
    description = "Follow the favorite when either side trades above 60c"

    threshold = 0.6
    max_confidence = 0.9

    def analyze(self, market: EnrichedMarket) -> MarketAnalysis:
        yes_price = market.yes_price
        no_price = market.no_price

        if yes_price > self.threshold:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_YES,
                confidence=min(yes_price, self.max_confidence),
                reason=f"Strong YES momentum ({yes_price * 100:.1f}%)",
                suggested_size=calculate_size(yes_price - 0.5),
            )
        if no_price > self.threshold:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_NO,
                confidence=min(no_price, self.max_confidence),
                reason=f"Strong NO momentum ({no_price * 100:.1f}%)",
                suggested_size=calculate_size(no_price - 0.5),
            )

        return self.hold(market, 0.3, "No clear momentum signal")


class BalancedStrategy(Strategy):
    """
    Layered strategy: strong favorites first, then deep underdogs.

    A side above 70c is bought at confidence 0.7. Failing that, a side
    priced between 5c and 20c is bought at confidence 0.5.
    """

    name = "balanced"
    description = "Strong favorites first, otherwise a narrow contrarian band"

    strong_threshold = 0.7
    band_low = 0.05
    band_high = 0.2

    def analyze(self, market: EnrichedMarket) -> MarketAnalysis:
        yes_price = market.yes_price
        no_price = market.no_price

        if yes_price > self.strong_threshold:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_YES,
                confidence=0.7,
                reason=f"Balanced: Strong YES probability ({yes_price * 100:.1f}%)",
                suggested_size=calculate_size(yes_price - 0.5),
            )
        if no_price > self.strong_threshold:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_NO,
                confidence=0.7,
                reason=f"Balanced: Strong NO probability ({no_price * 100:.1f}%)",
                suggested_size=calculate_size(no_price - 0.5),
            )

        if self.band_low < yes_price < self.band_high:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_YES,
                confidence=0.5,
                reason=f"Balanced: Contrarian YES at {yes_price * 100:.1f}%",
                suggested_size=calculate_size(0.15),
            )
        if self.band_low < no_price < self.band_high:
            return MarketAnalysis(
                market=market,
                signal=Signal.BUY_NO,
                confidence=0.5,
                reason=f"Balanced: Contrarian NO at {no_price * 100:.1f}%",
                suggested_size=calculate_size(0.15),
            )

        return self.hold(market, 0.4, "Balanced: No clear opportunity")
