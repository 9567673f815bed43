"""
Risk gating, sizing and exit rules.

The risk manager reads portfolio state and never mutates it.
"""

import logging
from dataclasses import dataclass, asdict

from config import AgentConfig, MAX_RISK_LEVEL, MIN_RISK_LEVEL
from strategy_base import MarketAnalysis
from trading_models import PortfolioSummary, Position

logger = logging.getLogger(__name__)

MAX_CASH_FRACTION_PER_TRADE = 0.2  # Estimated order cost vs cash
MAX_CASH_FRACTION_PER_SIZE = 0.1   # Sized amount vs cash

TAKE_PROFIT_PCT = 50.0
STOP_LOSS_PCT = -30.0
NEAR_CERTAIN_PRICE = 0.95
NEAR_WORTHLESS_PRICE = 0.02


@dataclass
class RiskCheck:
    allowed: bool
    reason: str


@dataclass
class ExitCheck:
    should_close: bool
    reason: str


@dataclass
class RiskParams:
    max_positions: int
    position_size: float
    min_confidence: float
    dca_enabled: bool
    rebalance_enabled: bool
    aggressive_mode: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PortfolioRisk:
    concentration: float  # Largest position as % of total value
    largest_position: float
    drawdown: float  # Total P&L when negative, else 0

    def to_dict(self) -> dict:
        return asdict(self)


def get_risk_params(level: int) -> RiskParams:
    """Defaults derived from a 1-10 risk level. Pure lookup."""
    if not MIN_RISK_LEVEL <= level <= MAX_RISK_LEVEL:
        raise ValueError(f"Risk level must be in [{MIN_RISK_LEVEL}, {MAX_RISK_LEVEL}], got {level}")
    return RiskParams(
        max_positions=5 + level * 3,
        position_size=50.0 + level * 50,
        min_confidence=round(0.7 - level * 0.05, 2),
        dca_enabled=level >= 5,
        rebalance_enabled=level >= 7,
        aggressive_mode=level >= 8,
    )


class RiskManager:
    def __init__(self, config: AgentConfig):
        self.config = config

    def update_config(self, config: AgentConfig) -> None:
        self.config = config

    def can_take_new_position(
        self,
        analysis: MarketAnalysis,
        positions: list[Position],
        summary: PortfolioSummary,
    ) -> RiskCheck:
        """Apply the entry checks in order; the first failure wins."""
        if len(positions) >= self.config.max_positions:
            return RiskCheck(False, f"Max positions reached ({self.config.max_positions})")

        market_id = analysis.market.condition_id
        existing = next((p for p in positions if p.market_id == market_id), None)
        if existing and existing.value >= self.config.max_position_size:
            return RiskCheck(False, "Max position size reached for this market")

        if analysis.confidence < self.config.min_confidence:
            return RiskCheck(
                False,
                f"Confidence {analysis.confidence * 100:.1f}% below threshold "
                f"{self.config.min_confidence * 100:.1f}%",
            )

        estimated_cost = analysis.suggested_size * analysis.quoted_price()
        if estimated_cost > summary.cash * MAX_CASH_FRACTION_PER_TRADE:
            return RiskCheck(False, "Trade too large relative to available cash")

        return RiskCheck(True, "Trade passes risk checks")

    def calculate_position_size(self, analysis: MarketAnalysis, summary: PortfolioSummary) -> float:
        """Dollar size; confidence is squared to penalize weak signals"""
        scaled = analysis.suggested_size * analysis.confidence ** 2
        return min(scaled, self.config.max_position_size, summary.cash * MAX_CASH_FRACTION_PER_SIZE)

    def should_close_position(self, position: Position) -> ExitCheck:
        cost_basis = position.cost_basis
        profit_pct = (position.unrealized_pnl / cost_basis) * 100 if cost_basis > 0 else 0.0

        if profit_pct > TAKE_PROFIT_PCT:
            return ExitCheck(True, f"Take profit: +{profit_pct:.1f}%")
        if profit_pct < STOP_LOSS_PCT:
            return ExitCheck(True, f"Stop loss: {profit_pct:.1f}%")
        if position.current_price > NEAR_CERTAIN_PRICE:
            return ExitCheck(True, "Near-certain outcome, taking profit")
        if position.current_price < NEAR_WORTHLESS_PRICE:
            return ExitCheck(True, "Position near worthless, cutting loss")

        return ExitCheck(False, "Position within risk parameters")

    def get_portfolio_risk(self, positions: list[Position], summary: PortfolioSummary) -> PortfolioRisk:
        largest = max((p.value for p in positions), default=0.0)
        concentration = 0.0
        if positions and summary.total_value > 0:
            concentration = largest / summary.total_value * 100
        return PortfolioRisk(
            concentration=concentration,
            largest_position=largest,
            drawdown=min(0.0, summary.total_pnl),
        )
