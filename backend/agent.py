"""
Trading Agent - periodic decision loop over the paper portfolio.

This is the central coordinator that:
1. Refreshes the market snapshot and reprices held positions
2. Closes positions the risk manager flags
3. Analyzes markets with the active strategy
4. Executes at most one new trade per cycle
5. Publishes status, trade and log events on the event bus
"""

import asyncio
import logging
import math
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from analyzer import MarketAnalyzer, select_llm_candidates
from config import AgentConfig, StrategyType
from event_bus import EventBus, LOG_APPENDED, STATUS_CHANGED, TRADE_EXECUTED
from llm import LLMClient
from market_client import EnrichedEvent, EnrichedMarket, PolymarketClient
from portfolio import PortfolioManager
from risk import RiskManager, get_risk_params
from state_store import PortfolioStateStore
from strategy_base import MarketAnalysis
from trading_models import OrderRequest, OrderResult, OrderSide, Position

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 100
MAX_OPPORTUNITIES = 10
MIN_TRADE_SIZE = 10.0  # Dollars
MAX_MARKETS = 500
MAX_EVENTS = 100


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogLevel(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    TRADE = "TRADE"
    THOUGHT = "THOUGHT"


_PY_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.TRADE: logging.INFO,
    LogLevel.THOUGHT: logging.INFO,
}


@dataclass
class AgentLogEntry:
    timestamp: datetime
    level: LogLevel
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "data": self.data,
        }


@dataclass
class AgentStatus:
    is_running: bool
    strategy: StrategyType
    risk_level: int
    last_analysis_time: Optional[datetime] = None
    last_trade_time: Optional[datetime] = None
    markets_analyzed: int = 0
    opportunities_found: int = 0
    trades_executed: int = 0
    selected_model: Optional[str] = None
    cycles_run: int = 0
    cycles_skipped: int = 0  # Timer ticks dropped while a cycle was in flight

    def to_dict(self) -> dict:
        return {
            "is_running": self.is_running,
            "strategy": StrategyType(self.strategy).value,
            "risk_level": self.risk_level,
            "last_analysis_time": self.last_analysis_time.isoformat() if self.last_analysis_time else None,
            "last_trade_time": self.last_trade_time.isoformat() if self.last_trade_time else None,
            "markets_analyzed": self.markets_analyzed,
            "opportunities_found": self.opportunities_found,
            "trades_executed": self.trades_executed,
            "selected_model": self.selected_model,
            "cycles_run": self.cycles_run,
            "cycles_skipped": self.cycles_skipped,
        }


class DecisionAction(str, Enum):
    EXECUTE = "EXECUTE"
    SKIP = "SKIP"


@dataclass
class TradingDecision:
    action: DecisionAction
    reason: str
    analysis: MarketAnalysis
    order: Optional[OrderRequest] = None

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "reason": self.reason,
            "analysis": self.analysis.to_dict(),
            "order": self.order.to_dict() if self.order else None,
        }


class TradingAgent:
    """
    Runs decision cycles against one portfolio.

    States are Stopped and Running. start() runs a cycle immediately and then
    one per trade_interval_ms; a tick that arrives while a cycle is still in
    flight is skipped and counted. stop() only prevents future cycles.
    """

    def __init__(
        self,
        portfolio: PortfolioManager,
        market_client: PolymarketClient,
        config: Optional[AgentConfig] = None,
        event_bus: Optional[EventBus] = None,
        llm_client: Optional[LLMClient] = None,
        analyzer: Optional[MarketAnalyzer] = None,
        state_store: Optional[PortfolioStateStore] = None,
    ):
        self.config = config or AgentConfig()
        self.portfolio = portfolio
        self.client = market_client
        self.event_bus = event_bus or EventBus()
        self.llm_client = llm_client
        self.analyzer = analyzer or MarketAnalyzer(llm_client)
        self.risk_manager = RiskManager(self.config)
        self.state_store = state_store

        self.markets: list[EnrichedMarket] = []
        self.events: list[EnrichedEvent] = []
        self._logs: deque[AgentLogEntry] = deque(maxlen=MAX_LOG_ENTRIES)

        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_tasks: set[asyncio.Task] = set()
        self._cycle_in_progress = False

        self.status = AgentStatus(
            is_running=False,
            strategy=self.config.strategy,
            risk_level=self.config.risk_level,
            selected_model=self._model_name(),
        )

    # =========================================================================
    # LOGS / STATUS
    # =========================================================================

    def _log(self, level: LogLevel, message: str, data: Optional[Any] = None) -> AgentLogEntry:
        entry = AgentLogEntry(timestamp=_utc_now(), level=level, message=message, data=data)
        self._logs.append(entry)
        logger.log(_PY_LEVELS[level], f"[Agent] {message}")
        self.event_bus.publish(LOG_APPENDED, entry)
        return entry

    def _publish_status(self) -> None:
        self.event_bus.publish(STATUS_CHANGED, self.get_status())

    def _model_name(self) -> Optional[str]:
        if self.config.selected_model:
            return self.config.selected_model
        return self.llm_client.model_id if self.llm_client else None

    def get_logs(self, count: int = 20) -> list[AgentLogEntry]:
        if count <= 0:
            return []
        return list(self._logs)[-count:]

    def get_status(self) -> AgentStatus:
        return replace(self.status)

    def get_config(self) -> AgentConfig:
        return replace(self.config)

    @property
    def is_running(self) -> bool:
        return self.status.is_running

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_in_progress

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def update_config(self, updates: dict) -> AgentConfig:
        """Apply a partial update. Raises ValueError and changes nothing if invalid."""
        self.config = self.config.merged(updates)
        self.risk_manager.update_config(self.config)

        self.status.strategy = self.config.strategy
        self.status.risk_level = self.config.risk_level
        self.status.selected_model = self._model_name()
        self._publish_status()

        self._log(LogLevel.INFO, "Configuration updated", updates)
        return self.get_config()

    def set_strategy(self, strategy: StrategyType) -> None:
        strategy = StrategyType(strategy)
        self.config = replace(self.config, strategy=strategy)
        self.risk_manager.update_config(self.config)
        self.status.strategy = strategy
        self._publish_status()

        self._log(LogLevel.INFO, f"Strategy changed to: {strategy.value}")

    def set_risk_level(self, level: int, apply_defaults: bool = False) -> AgentConfig:
        """
        Change the risk level.

        With apply_defaults the level's derived max_positions, min_confidence
        and dca_enabled replace the current values.
        """
        updates: dict = {"risk_level": level}
        if apply_defaults:
            params = get_risk_params(level)
            updates.update({
                "max_positions": params.max_positions,
                "min_confidence": params.min_confidence,
                "dca_enabled": params.dca_enabled,
            })
        return self.update_config(updates)

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def refresh_markets(self) -> list[EnrichedMarket]:
        """Fetch a fresh snapshot. On failure the previous snapshot is kept."""
        self._log(LogLevel.INFO, "Fetching markets from Polymarket...")
        try:
            markets = await self.client.get_enriched_markets(MAX_MARKETS)
        except Exception as e:
            self._log(LogLevel.ERROR, f"Failed to fetch markets: {e}")
            raise

        self.markets = markets
        self._log(LogLevel.INFO, f"Fetched {len(markets)} active markets with prices")
        return self.markets

    async def refresh_events(self) -> list[EnrichedEvent]:
        self._log(LogLevel.INFO, "Fetching multi-outcome events from Polymarket...")
        try:
            events = await self.client.get_enriched_events(MAX_EVENTS)
        except Exception as e:
            self._log(LogLevel.ERROR, f"Failed to fetch events: {e}")
            raise

        self.events = events
        multi = sum(1 for e in events if e.is_multi_outcome and e.outcome_count > 2)
        self._log(LogLevel.INFO, f"Fetched {len(events)} events ({multi} multi-outcome)")
        return self.events

    def get_markets(self) -> list[EnrichedMarket]:
        return self.markets

    def get_events(self) -> list[EnrichedEvent]:
        return self.events

    async def update_position_prices(self) -> int:
        """Reprice held positions from live order books. Returns tokens priced."""
        token_ids = [p.token_id for p in self.portfolio.get_positions()]
        if not token_ids:
            return 0

        prices = await self.client.get_prices(token_ids)
        self.portfolio.update_prices(prices)
        return len(prices)

    # =========================================================================
    # ANALYSIS / DECISIONS
    # =========================================================================

    def _position_in_market(self, market_id: str) -> Optional[Position]:
        return next((p for p in self.portfolio.get_positions() if p.market_id == market_id), None)

    async def analyze_markets(self, refresh_if_empty: bool = True) -> list[MarketAnalysis]:
        if not self.markets and refresh_if_empty:
            await self.refresh_markets()

        strategy = self.config.strategy
        self._log(LogLevel.INFO, f"Analyzing {len(self.markets)} markets with {strategy.value} strategy")

        if strategy == StrategyType.LLM:
            candidates = select_llm_candidates(self.markets)
            self._log(LogLevel.INFO, f"Using LLM to analyze {len(candidates)} promising markets...")

            cash = self.portfolio.get_summary().cash
            analyses = []
            for market in candidates:
                analysis = await self.analyzer.analyze_llm(
                    market,
                    risk_level=self.config.risk_level,
                    existing_position=self._position_in_market(market.condition_id),
                    cash_available=cash,
                )
                self._log(
                    LogLevel.THOUGHT,
                    f"{market.question[:60]}: {analysis.signal.value} "
                    f"({analysis.confidence * 100:.0f}%) {analysis.reason}",
                )
                analyses.append(analysis)
        else:
            analyses = self.analyzer.analyze_markets(self.markets, strategy)

        opportunities = self.analyzer.get_top_opportunities(analyses, MAX_OPPORTUNITIES)

        self.status.last_analysis_time = _utc_now()
        self.status.markets_analyzed = len(self.markets)
        self.status.opportunities_found = len(opportunities)
        self._publish_status()

        self._log(LogLevel.INFO, f"Found {len(opportunities)} trading opportunities")
        return opportunities

    def make_decision(self, analysis: MarketAnalysis) -> TradingDecision:
        positions = self.portfolio.get_positions()
        summary = self.portfolio.get_summary()

        risk_check = self.risk_manager.can_take_new_position(analysis, positions, summary)
        if not risk_check.allowed:
            return TradingDecision(DecisionAction.SKIP, risk_check.reason, analysis)

        size = self.risk_manager.calculate_position_size(analysis, summary)
        if size < MIN_TRADE_SIZE:
            return TradingDecision(DecisionAction.SKIP, "Position size too small", analysis)

        is_yes = analysis.signal.is_yes
        outcome = "YES" if is_yes else "NO"
        token = analysis.market.get_token(outcome)
        if not token:
            return TradingDecision(DecisionAction.SKIP, "Could not find token for outcome", analysis)

        price = analysis.quoted_price()
        if price <= 0:
            return TradingDecision(DecisionAction.SKIP, "No valid price for outcome", analysis)

        shares = math.floor(size / price)
        if shares <= 0:
            return TradingDecision(DecisionAction.SKIP, "Position size too small", analysis)

        order = OrderRequest(
            market_id=analysis.market.condition_id,
            market_question=analysis.market.question,
            token_id=token.token_id,
            outcome=outcome,
            side=OrderSide.BUY,
            shares=shares,
            price=price,
        )
        return TradingDecision(DecisionAction.EXECUTE, analysis.reason, analysis, order)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _on_filled(self, order: OrderRequest, result: OrderResult, reason: str) -> None:
        self.event_bus.publish(TRADE_EXECUTED, {
            "order": order.to_dict(),
            "result": result.to_dict(),
            "reason": reason,
        })
        if self.state_store:
            self.state_store.save(self.portfolio)

    def execute_trade(self, decision: TradingDecision) -> bool:
        if decision.action != DecisionAction.EXECUTE or decision.order is None:
            return False

        order = decision.order
        result = self.portfolio.get_trade_executor().execute(order)

        if not result.success:
            self._log(LogLevel.ERROR, f"Trade failed: {result.error}")
            return False

        self.status.trades_executed += 1
        self.status.last_trade_time = _utc_now()
        self._publish_status()

        self._log(
            LogLevel.TRADE,
            f"{order.side.value} {order.shares:g} {order.outcome} @ ${order.price:.4f}",
            {"order": order.to_dict(), "result": result.to_dict()},
        )
        self._on_filled(order, result, decision.reason)
        return True

    async def check_exits(self) -> int:
        """Evaluate exit rules; with auto_trade, sell flagged positions in full. Returns closes."""
        closed = 0
        for position in self.portfolio.get_positions():
            exit_check = self.risk_manager.should_close_position(position)
            if not exit_check.should_close:
                continue

            self._log(LogLevel.INFO, f"Exit signal for {position.outcome}: {exit_check.reason}")
            if not self.config.auto_trade:
                continue

            order = OrderRequest(
                market_id=position.market_id,
                market_question=position.market_question,
                token_id=position.token_id,
                outcome=position.outcome,
                side=OrderSide.SELL,
                shares=position.shares,
                price=position.current_price,
            )
            result = self.portfolio.get_trade_executor().execute(order)

            if result.success:
                closed += 1
                self._log(LogLevel.TRADE, f"Closed position: {exit_check.reason}", result.to_dict())
                self._on_filled(order, result, exit_check.reason)
            else:
                self._log(LogLevel.ERROR, f"Failed to close position: {result.error}")

        return closed

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def run_cycle(self) -> bool:
        """
        Run one full cycle. Returns False if skipped because another cycle
        is still in flight. Failures are logged, never raised.
        """
        if self._cycle_in_progress:
            self.status.cycles_skipped += 1
            self._log(LogLevel.WARN, "Previous cycle still running, skipping this tick")
            return False

        self._cycle_in_progress = True
        try:
            await self._cycle()
        except Exception as e:
            self._log(LogLevel.ERROR, f"Trading cycle failed: {e}")
        finally:
            self._cycle_in_progress = False
            self.status.cycles_run += 1
        return True

    async def _cycle(self) -> None:
        try:
            await self.refresh_markets()
        except Exception:
            self._log(LogLevel.WARN, f"Keeping previous snapshot of {len(self.markets)} markets")

        try:
            await self.update_position_prices()
        except Exception as e:
            self._log(LogLevel.ERROR, f"Failed to update position prices: {e}")

        try:
            await self.check_exits()
        except Exception as e:
            self._log(LogLevel.ERROR, f"Exit check failed: {e}")

        opportunities = await self.analyze_markets(refresh_if_empty=False)

        for opportunity in opportunities:
            decision = self.make_decision(opportunity)
            if decision.action == DecisionAction.SKIP:
                logger.debug(f"Skipped {opportunity.market.condition_id}: {decision.reason}")
                continue

            if self.config.auto_trade:
                self.execute_trade(decision)
                # One new trade per cycle
                break

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Start periodic cycles. Must be called from within a running event loop."""
        if self.status.is_running:
            self._log(LogLevel.WARN, "Agent is already running")
            return

        loop = asyncio.get_running_loop()
        self.status.is_running = True
        self._publish_status()
        self._log(LogLevel.INFO, f"Agent started with {self.config.strategy.value} strategy")

        self._timer_task = loop.create_task(self._run_timer())

    async def _run_timer(self) -> None:
        while self.status.is_running:
            self._spawn_cycle()
            await asyncio.sleep(self.config.trade_interval_ms / 1000)

    def _spawn_cycle(self) -> None:
        task = asyncio.get_running_loop().create_task(self.run_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    def stop(self) -> None:
        """Disarm the timer. An in-flight cycle finishes on its own."""
        if not self.status.is_running:
            return

        if self._timer_task:
            self._timer_task.cancel()
            self._timer_task = None

        self.status.is_running = False
        self._publish_status()
        self._log(LogLevel.INFO, "Agent stopped")

    def toggle(self) -> bool:
        if self.status.is_running:
            self.stop()
        else:
            self.start()
        return self.status.is_running

    async def wait_for_cycles(self) -> None:
        """Wait for any in-flight cycles to finish"""
        if self._cycle_tasks:
            await asyncio.gather(*list(self._cycle_tasks), return_exceptions=True)
