"""
Pytest fixtures for the test suite.
"""
import pytest
import random
import sys
import os
from unittest.mock import MagicMock, AsyncMock

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import AgentConfig, StrategyType
from event_bus import EventBus
from llm import LLMModel, LLMProvider, ProviderKind
from market_client import EnrichedMarket, Token
from portfolio import PortfolioManager
from trading_models import OrderRequest, OrderSide


def build_market(condition_id="m1", yes_price=0.5, no_price=None, question=None, tokens=True):
    """EnrichedMarket with YES/NO tokens named after the condition id."""
    if no_price is None:
        no_price = round(1 - yes_price, 4)
    return EnrichedMarket(
        condition_id=condition_id,
        question=question or f"Will {condition_id} resolve YES?",
        category="Politics",
        yes_price=yes_price,
        no_price=no_price,
        volume_24h=25000.0,
        tokens=[
            Token(token_id=f"{condition_id}-yes", outcome="Yes"),
            Token(token_id=f"{condition_id}-no", outcome="No"),
        ] if tokens else [],
    )


def build_order(side=OrderSide.BUY, shares=1000, price=0.40, market_id="m1", outcome="YES"):
    return OrderRequest(
        market_id=market_id,
        market_question=f"Will {market_id} resolve YES?",
        token_id=f"{market_id}-{outcome.lower()}",
        outcome=outcome,
        side=side,
        shares=shares,
        price=price,
    )


class FakeProvider(LLMProvider):
    """Provider that answers from a canned list instead of HTTP."""

    kind = ProviderKind.OLLAMA
    name = "Fake"
    default_url = "http://fake-llm"

    def __init__(self, replies=None, available=True, error=None):
        super().__init__()
        self.replies = list(replies or [])
        self.available = available
        self.error = error
        self.prompts = []

    def _parse_models(self, data):
        return [LLMModel(id="fake-model", name="fake-model", provider=self.name)]

    async def is_available(self):
        return self.available

    async def list_models(self):
        return self._parse_models({})

    async def generate(self, model, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.replies.pop(0) if self.replies else ""


@pytest.fixture
def market_factory():
    """Factory for EnrichedMarket test data."""
    return build_market


@pytest.fixture
def order_factory():
    """Factory for OrderRequest test data."""
    return build_order


@pytest.fixture
def portfolio():
    """Fresh paper portfolio with $100k."""
    return PortfolioManager(100000.0)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def sample_markets():
    """A spread of markets covering each strategy's bands."""
    return [
        build_market("fav", yes_price=0.80),        # Strong YES favorite
        build_market("dog", yes_price=0.10),        # Deep YES underdog
        build_market("flip", yes_price=0.45),       # Near coin flip
        build_market("mid", yes_price=0.65),        # Mild favorite
    ]


@pytest.fixture
def mock_market_client(sample_markets):
    """Market client that serves sample_markets without network access."""
    client = MagicMock()
    client.get_enriched_markets = AsyncMock(return_value=sample_markets)
    client.get_enriched_events = AsyncMock(return_value=[])
    client.get_prices = AsyncMock(return_value={})
    client.close = AsyncMock()
    return client


@pytest.fixture
def agent_config():
    """Auto-trading balanced config with a fast timer."""
    return AgentConfig(
        strategy=StrategyType.BALANCED,
        auto_trade=True,
        trade_interval_ms=50,
        min_confidence=0.5,
    )


@pytest.fixture
def agent(portfolio, mock_market_client, agent_config, event_bus):
    from agent import TradingAgent
    return TradingAgent(
        portfolio,
        mock_market_client,
        config=agent_config,
        event_bus=event_bus,
    )


@pytest.fixture
def seeded_rng():
    return random.Random(42)
