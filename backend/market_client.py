"""
Polymarket market data client.

Fetches binary markets and multi-outcome events from the Gamma API and
order books from the CLOB API. All HTTP goes through retry_http_request
so transient failures back off, and outcomes are recorded on the shared
connection monitor.
"""

import asyncio
import json
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Optional

import aiohttp

from config import PolymarketAPI
from retry import HTTP_RETRY_CONFIG, connection_monitor, retry_http_request

logger = logging.getLogger(__name__)

GAMMA_BATCH_SIZE = 100  # API limit per request
PRICE_BATCH_SIZE = 10
PAGE_DELAY_SEC = 0.1
REQUEST_TIMEOUT_SEC = 10


# ============================================================================
# DATA MODELS
# ============================================================================

@dataclass
class Token:
    token_id: str
    outcome: str


@dataclass
class EnrichedMarket:
    """Binary market with current YES/NO prices"""
    condition_id: str
    question: str
    category: str
    yes_price: float
    no_price: float
    volume_24h: float
    tokens: list[Token] = field(default_factory=list)
    slug: str = ""
    end_date_iso: Optional[str] = None
    active: bool = True
    closed: bool = False

    def get_token(self, outcome: str) -> Optional[Token]:
        """Find the token for an outcome name, case-insensitive"""
        wanted = outcome.lower()
        for token in self.tokens:
            if token.outcome.lower() == wanted:
                return token
        return None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OutcomeWithPrice:
    name: str
    token_id: str
    price: float
    volume: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EnrichedEventMarket:
    id: str
    question: str
    condition_id: str
    token_id: str
    price: float
    volume: float
    is_yes_no_market: bool


@dataclass
class EnrichedEvent:
    """Event grouping one or more markets, outcomes ranked by price"""
    id: str
    title: str
    category: str
    end_date: Optional[str]
    is_closed: bool
    is_multi_outcome: bool
    outcome_count: int
    total_volume: float
    outcomes: list[OutcomeWithPrice] = field(default_factory=list)
    markets: list[EnrichedEventMarket] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Spread:
    bid: float
    ask: float
    spread: float

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# PARSING
# ============================================================================

def _json_list(value, default: list) -> list:
    """Gamma encodes list fields as JSON strings"""
    if value is None or value == "":
        return list(default)
    if isinstance(value, list):
        return value
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return list(default)
    return parsed if isinstance(parsed, list) else list(default)


def _to_float(value, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _price_at(prices: list, index: int) -> float:
    if index < len(prices):
        price = _to_float(prices[index])
        if price:
            return price
    return 0.5


def parse_gamma_market(data: dict) -> EnrichedMarket:
    """Convert a Gamma /markets record into an EnrichedMarket"""
    market_id = str(data.get("id", ""))
    outcomes = _json_list(data.get("outcomes"), ["Yes", "No"])
    token_ids = _json_list(data.get("clobTokenIds"), [])
    prices = _json_list(data.get("outcomePrices"), [0.5, 0.5])

    tokens = [
        Token(
            token_id=str(token_ids[i]) if i < len(token_ids) and token_ids[i] else f"{market_id}-{i}",
            outcome=str(outcome),
        )
        for i, outcome in enumerate(outcomes)
    ]

    return EnrichedMarket(
        condition_id=data.get("conditionId", "") or market_id,
        question=data.get("question", ""),
        category=data.get("category") or "Other",
        yes_price=_price_at(prices, 0),
        no_price=_price_at(prices, 1),
        volume_24h=_to_float(data.get("volume")),
        tokens=tokens,
        slug=data.get("slug", "") or "",
        end_date_iso=data.get("endDate"),
        active=bool(data.get("active", True)),
        closed=bool(data.get("closed", False)),
    )


def parse_gamma_event(data: dict) -> EnrichedEvent:
    """Convert a Gamma /events record into an EnrichedEvent"""
    raw_markets = data.get("markets") or []
    is_multi = len(raw_markets) > 1
    outcomes: list[OutcomeWithPrice] = []
    markets: list[EnrichedEventMarket] = []

    for market in raw_markets:
        market_id = str(market.get("id", ""))
        names = _json_list(market.get("outcomes"), ["Yes", "No"])
        prices = _json_list(market.get("outcomePrices"), [0.5, 0.5])
        token_ids = _json_list(market.get("clobTokenIds"), [])

        token_id = str(token_ids[0]) if token_ids else market_id
        price = _price_at(prices, 0)
        volume = _to_float(market.get("volume"))
        question = market.get("question", "")

        if is_multi:
            outcomes.append(OutcomeWithPrice(
                name=question,
                token_id=token_id,
                price=price,
                volume=volume,
            ))

        markets.append(EnrichedEventMarket(
            id=market_id,
            question=question,
            condition_id=market.get("conditionId", ""),
            token_id=token_id,
            price=price,
            volume=volume,
            is_yes_no_market=len(names) == 2 and str(names[0]).lower() == "yes",
        ))

    outcomes.sort(key=lambda o: o.price, reverse=True)

    return EnrichedEvent(
        id=str(data.get("id", "")),
        title=data.get("title", ""),
        category=data.get("category") or "Other",
        end_date=data.get("endDate"),
        is_closed=bool(data.get("closed", False)),
        is_multi_outcome=is_multi,
        outcome_count=len(raw_markets) if is_multi else 2,
        total_volume=_to_float(data.get("volume")),
        outcomes=outcomes,
        markets=markets,
    )


def mid_price(book: dict) -> float:
    """Mid of best bid/ask; 0.5 for an empty book"""
    bids = book.get("bids") or []
    asks = book.get("asks") or []
    best_bid = _to_float(bids[0].get("price")) if bids else 0.0
    best_ask = _to_float(asks[0].get("price"), 1.0) if asks else 1.0

    if best_bid == 0 and best_ask == 1:
        return 0.5
    return (best_bid + best_ask) / 2


# ============================================================================
# CLIENT
# ============================================================================

class MarketDataError(Exception):
    """Raised when the market data source returns an unusable response"""


class PolymarketClient:
    """
    Async client for Polymarket market data.

    Owns one aiohttp session, created lazily and closed with close().
    """

    def __init__(
        self,
        gamma_url: str = PolymarketAPI.GAMMA_API,
        clob_url: str = PolymarketAPI.CLOB_API,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.gamma_url = gamma_url.rstrip("/")
        self.clob_url = clob_url.rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "Mozilla/5.0"},
            )
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, url: str, params: Optional[dict] = None, monitor: str = "polymarket_api"):
        session = await self._get_session()
        try:
            resp = await retry_http_request(
                session, "GET", url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SEC),
                config=HTTP_RETRY_CONFIG,
            )
            async with resp:
                if resp.status != 200:
                    raise MarketDataError(f"GET {url} returned {resp.status}")
                data = await resp.json(content_type=None)
        except Exception:
            connection_monitor.mark_error(monitor)
            raise

        connection_monitor.mark_success(monitor)
        return data

    # -------------------------------------------------------------------------
    # GAMMA
    # -------------------------------------------------------------------------

    async def get_markets_page(self, limit: int = GAMMA_BATCH_SIZE, offset: int = 0, closed: bool = False) -> list[dict]:
        params = {"closed": str(closed).lower(), "limit": limit, "offset": offset}
        data = await self._get_json(f"{self.gamma_url}/markets", params)
        return data if isinstance(data, list) else []

    async def get_events_page(self, limit: int = GAMMA_BATCH_SIZE, offset: int = 0, closed: bool = False) -> list[dict]:
        params = {"closed": str(closed).lower(), "limit": limit, "offset": offset}
        data = await self._get_json(f"{self.gamma_url}/events", params)
        return data if isinstance(data, list) else []

    async def _paginate(self, fetch_page, max_items: int) -> list[dict]:
        items: list[dict] = []
        offset = 0

        while len(items) < max_items:
            page = await fetch_page(limit=GAMMA_BATCH_SIZE, offset=offset)
            if not page:
                break
            items.extend(page)
            offset += GAMMA_BATCH_SIZE

            if len(page) < GAMMA_BATCH_SIZE:
                break
            await asyncio.sleep(PAGE_DELAY_SEC)

        return items[:max_items]

    async def get_enriched_markets(self, max_markets: int = 500) -> list[EnrichedMarket]:
        """Fetch open binary markets with prices, paginating up to max_markets"""
        raw = await self._paginate(self.get_markets_page, max_markets)
        markets = []
        for item in raw:
            try:
                markets.append(parse_gamma_market(item))
            except Exception as e:
                logger.warning(f"Skipping unparseable market {item.get('id')}: {e}")
        logger.info(f"Fetched {len(markets)} markets")
        return markets

    async def get_enriched_events(self, max_events: int = 100) -> list[EnrichedEvent]:
        """Fetch open events, paginating up to max_events"""
        raw = await self._paginate(self.get_events_page, max_events)
        events = []
        for item in raw:
            try:
                events.append(parse_gamma_event(item))
            except Exception as e:
                logger.warning(f"Skipping unparseable event {item.get('id')}: {e}")
        logger.info(f"Fetched {len(events)} events")
        return events

    # -------------------------------------------------------------------------
    # CLOB
    # -------------------------------------------------------------------------

    async def get_order_book(self, token_id: str) -> dict:
        data = await self._get_json(
            f"{self.clob_url}/book", {"token_id": token_id}, monitor="polymarket_clob"
        )
        if not isinstance(data, dict):
            raise MarketDataError(f"Unexpected order book payload for {token_id}")
        return data

    async def get_price(self, token_id: str) -> Optional[float]:
        """Mid price for a token, or None if the book could not be fetched"""
        try:
            book = await self.get_order_book(token_id)
        except Exception as e:
            logger.warning(f"Price fetch failed for {token_id}: {e}")
            return None
        return mid_price(book)

    async def get_prices(self, token_ids: list[str]) -> dict[str, float]:
        """
        Prices for many tokens, fetched in small concurrent batches.

        Tokens whose fetch fails are omitted so their marks stay unchanged.
        """
        prices: dict[str, float] = {}
        unique = list(dict.fromkeys(token_ids))

        for i in range(0, len(unique), PRICE_BATCH_SIZE):
            batch = unique[i:i + PRICE_BATCH_SIZE]
            results = await asyncio.gather(*(self.get_price(t) for t in batch))
            for token_id, price in zip(batch, results):
                if price is not None:
                    prices[token_id] = price

            if i + PRICE_BATCH_SIZE < len(unique):
                await asyncio.sleep(PAGE_DELAY_SEC)

        return prices

    async def get_spread(self, token_id: str) -> Spread:
        book = await self.get_order_book(token_id)
        bids = book.get("bids") or []
        asks = book.get("asks") or []
        bid = _to_float(bids[0].get("price")) if bids else 0.0
        ask = _to_float(asks[0].get("price"), 1.0) if asks else 1.0
        return Spread(bid=bid, ask=ask, spread=ask - bid)
