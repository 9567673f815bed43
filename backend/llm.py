"""
Local LLM advisory client.

Providers wrap the HTTP APIs of local inference servers behind one
interface. The set of backends is closed (ProviderKind) and chosen by
configuration through create_provider(). LLMClient builds trading
prompts on top of whichever provider it was given and parses the JSON
the model replies with.
"""

import asyncio
import json
import logging
import re
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Callable, Optional

import aiohttp

from config import LLMEndpoints
from event_bus import EventBus, THOUGHT_RECORDED
from market_client import EnrichedEvent, EnrichedMarket
from retry import LLM_RETRY_CONFIG, PROBE_RETRY_CONFIG, RetryConfig, retry_http_request
from trading_models import Position

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SEC = 2
GENERATE_TIMEOUT_SEC = 120
MAX_TOKENS = 1000
MAX_THOUGHTS = 100

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class LLMError(Exception):
    """Raised when an inference backend cannot be reached or replies badly"""


class ProviderKind(str, Enum):
    OLLAMA = "ollama"
    LM_STUDIO = "lm_studio"
    GPT4ALL = "gpt4all"
    TEXT_GEN_WEBUI = "text_gen_webui"


@dataclass
class LLMModel:
    id: str
    name: str
    provider: str
    size: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# PROVIDERS
# ============================================================================

class LLMProvider(ABC):
    """Base class for local inference backends."""

    kind: ProviderKind
    name: str = "base"
    default_url: str = ""
    probe_path: str = "/v1/models"

    def __init__(self, base_url: Optional[str] = None, timeout: float = GENERATE_TIMEOUT_SEC):
        self.base_url = (base_url or self.default_url).rstrip("/")
        self.timeout = timeout

    async def _request_json(
        self,
        method: str,
        path: str,
        payload: Optional[dict] = None,
        timeout: Optional[float] = None,
        config: RetryConfig = LLM_RETRY_CONFIG,
    ):
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession() as session:
                resp = await retry_http_request(
                    session, method, url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=timeout or self.timeout),
                    config=config,
                )
                async with resp:
                    if resp.status != 200:
                        raise LLMError(f"{self.name} {path} returned HTTP {resp.status}")
                    return await resp.json(content_type=None)
        except LLMError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            raise LLMError(f"{self.name} request to {path} failed: {e}") from e

    async def is_available(self) -> bool:
        try:
            await self._request_json(
                "GET", self.probe_path, timeout=PROBE_TIMEOUT_SEC, config=PROBE_RETRY_CONFIG
            )
            return True
        except LLMError:
            return False

    async def list_models(self) -> list[LLMModel]:
        try:
            data = await self._request_json("GET", self.probe_path, timeout=PROBE_TIMEOUT_SEC)
            return self._parse_models(data)
        except (LLMError, KeyError, TypeError) as e:
            logger.warning(f"[{self.name}] Could not list models: {e}")
            return []

    @abstractmethod
    def _parse_models(self, data) -> list[LLMModel]:
        pass

    @abstractmethod
    async def generate(self, model: str, prompt: str) -> str:
        """Return the full completion for prompt."""
        pass

    async def stream_generate(self, model: str, prompt: str, on_chunk: Callable[[str], None]) -> str:
        """Stream a completion, calling on_chunk per fragment. Defaults to one chunk."""
        text = await self.generate(model, prompt)
        if text:
            on_chunk(text)
        return text

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "name": self.name, "base_url": self.base_url}


class OllamaProvider(LLMProvider):
    kind = ProviderKind.OLLAMA
    name = "Ollama"
    default_url = LLMEndpoints.OLLAMA
    probe_path = "/api/tags"

    def _parse_models(self, data) -> list[LLMModel]:
        return [
            LLMModel(
                id=m["name"],
                name=m["name"].split(":")[0],
                provider=self.name,
                size=f"{m.get('size', 0) / 1e9:.1f}GB",
            )
            for m in data.get("models", [])
        ]

    async def generate(self, model: str, prompt: str) -> str:
        data = await self._request_json(
            "POST", "/api/generate", {"model": model, "prompt": prompt, "stream": False}
        )
        return data.get("response", "") if isinstance(data, dict) else ""

    async def _stream_lines(self, path: str, payload: dict) -> AsyncIterator[str]:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status != 200:
                        raise LLMError(f"{self.name} {path} returned HTTP {resp.status}")
                    async for raw in resp.content:
                        line = raw.decode("utf-8").strip()
                        if line:
                            yield line
        except LLMError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise LLMError(f"{self.name} stream from {path} failed: {e}") from e

    async def stream_generate(self, model: str, prompt: str, on_chunk: Callable[[str], None]) -> str:
        """Ollama streams newline-delimited JSON objects with a 'response' fragment each"""
        parts = []
        payload = {"model": model, "prompt": prompt, "stream": True}

        async for line in self._stream_lines("/api/generate", payload):
            try:
                fragment = json.loads(line).get("response", "")
            except (json.JSONDecodeError, AttributeError):
                continue
            if fragment:
                parts.append(fragment)
                on_chunk(fragment)

        return "".join(parts)


class OpenAICompatibleProvider(LLMProvider):
    """Servers exposing /v1/models and /v1/chat/completions"""

    temperature: Optional[float] = None

    def _parse_models(self, data) -> list[LLMModel]:
        return [
            LLMModel(id=m["id"], name=m["id"], provider=self.name)
            for m in data.get("data", [])
        ]

    async def generate(self, model: str, prompt: str) -> str:
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": MAX_TOKENS,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        data = await self._request_json("POST", "/v1/chat/completions", payload)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


class LMStudioProvider(OpenAICompatibleProvider):
    kind = ProviderKind.LM_STUDIO
    name = "LM Studio"
    default_url = LLMEndpoints.LM_STUDIO
    temperature = 0.7


class GPT4AllProvider(OpenAICompatibleProvider):
    kind = ProviderKind.GPT4ALL
    name = "GPT4All"
    default_url = LLMEndpoints.GPT4ALL


class TextGenWebUIProvider(LLMProvider):
    """Oobabooga text-generation-webui, plain completions endpoint"""

    kind = ProviderKind.TEXT_GEN_WEBUI
    name = "Text Gen WebUI"
    default_url = LLMEndpoints.TEXT_GEN_WEBUI

    def _parse_models(self, data) -> list[LLMModel]:
        return [
            LLMModel(id=m["id"], name=m["id"], provider=self.name)
            for m in data.get("data", [])
        ]

    async def generate(self, model: str, prompt: str) -> str:
        data = await self._request_json(
            "POST", "/v1/completions", {"prompt": prompt, "max_tokens": MAX_TOKENS}
        )
        try:
            return data["choices"][0]["text"] or ""
        except (KeyError, IndexError, TypeError):
            return ""


PROVIDER_CLASSES: dict[ProviderKind, type[LLMProvider]] = {
    ProviderKind.OLLAMA: OllamaProvider,
    ProviderKind.LM_STUDIO: LMStudioProvider,
    ProviderKind.GPT4ALL: GPT4AllProvider,
    ProviderKind.TEXT_GEN_WEBUI: TextGenWebUIProvider,
}


def create_provider(kind, base_url: Optional[str] = None) -> LLMProvider:
    """Build the provider for a configured backend kind"""
    try:
        kind = ProviderKind(kind)
    except ValueError:
        valid = ", ".join(k.value for k in ProviderKind)
        raise ValueError(f"Unknown LLM provider '{kind}'. Expected one of: {valid}")
    return PROVIDER_CLASSES[kind](base_url)


@dataclass
class ProviderScan:
    provider: LLMProvider
    models: list[LLMModel]

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.to_dict(),
            "models": [m.to_dict() for m in self.models],
        }


async def scan_for_llms(providers: Optional[list[LLMProvider]] = None) -> list[ProviderScan]:
    """Probe every backend concurrently; keep those that answer with models"""
    if providers is None:
        providers = [cls() for cls in PROVIDER_CLASSES.values()]

    async def probe(provider: LLMProvider) -> Optional[ProviderScan]:
        if not await provider.is_available():
            return None
        models = await provider.list_models()
        return ProviderScan(provider, models) if models else None

    results = await asyncio.gather(*(probe(p) for p in providers))
    return [r for r in results if r is not None]


def find_provider_for_model(model_id: str, scans: list[ProviderScan]) -> Optional[LLMProvider]:
    for scan in scans:
        if any(m.id == model_id for m in scan.models):
            return scan.provider
    return None


# ============================================================================
# RESPONSES
# ============================================================================

VALID_ACTIONS = {"BUY_YES", "BUY_NO", "HOLD", "BUY", "DCA", "SELL"}


@dataclass
class LLMResponse:
    action: str
    confidence: float
    reason: str
    outcome: Optional[str] = None
    position_size: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ChainOfThought:
    initial_analysis: str
    counter_arguments: str
    final_verdict: str
    action: str
    confidence: float
    position_size: float
    reasoning: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LLMThought:
    id: str
    timestamp: datetime
    market_question: str
    thinking: str
    decision: str
    confidence: float
    reasoning: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "market_question": self.market_question,
            "thinking": self.thinking,
            "decision": self.decision,
            "confidence": self.confidence,
            "reasoning": list(self.reasoning),
        }


@dataclass
class DCARecommendation:
    should_dca: bool
    amount: float
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LLMAnalysisRequest:
    market: EnrichedMarket
    risk_level: int
    portfolio_value: float
    cash_available: float
    existing_position: Optional[Position] = None


def extract_json(text: str) -> Optional[dict]:
    """Pull the outermost JSON object out of free-form model output"""
    match = JSON_OBJECT_RE.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _clamp_confidence(value, default: float = 0.5) -> float:
    try:
        confidence = float(value) if value is not None else default
    except (TypeError, ValueError):
        confidence = default
    return min(1.0, max(0.0, confidence))


def _positive_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _normalize_action(value) -> str:
    action = str(value or "HOLD").strip().upper()
    return action if action in VALID_ACTIONS else "HOLD"


def parse_llm_response(text: str) -> LLMResponse:
    """Parse a quick-analysis reply. Anything unusable degrades to HOLD at 0."""
    parsed = extract_json(text)
    if parsed is None:
        return LLMResponse(action="HOLD", confidence=0.0, reason="Failed to parse LLM response")

    return LLMResponse(
        action=_normalize_action(parsed.get("action")),
        confidence=_clamp_confidence(parsed.get("confidence")),
        reason=str(parsed.get("reason") or "No reason provided"),
        outcome=parsed.get("outcome"),
        position_size=_positive_float(parsed.get("positionSize", parsed.get("position_size"))),
    )


def parse_chain_of_thought(text: str) -> ChainOfThought:
    parsed = extract_json(text)
    if parsed is None:
        return ChainOfThought(
            initial_analysis=(text or "")[:200],
            counter_arguments="",
            final_verdict="Could not parse response",
            action="HOLD",
            confidence=0.0,
            position_size=0.0,
        )

    reasoning = parsed.get("reasoning")
    return ChainOfThought(
        initial_analysis=str(parsed.get("initialAnalysis") or ""),
        counter_arguments=str(parsed.get("counterArguments") or ""),
        final_verdict=str(parsed.get("finalVerdict") or ""),
        action=_normalize_action(parsed.get("action")),
        confidence=_clamp_confidence(parsed.get("confidence")),
        position_size=_positive_float(parsed.get("positionSize")) or 100.0,
        reasoning=[str(r) for r in reasoning] if isinstance(reasoning, list) else [],
    )


# ============================================================================
# PROMPTS
# ============================================================================

RISK_DESCRIPTIONS = {
    1: "VERY CONSERVATIVE - Only trade with extremely high confidence",
    2: "CONSERVATIVE - Prefer safe, high-probability bets",
    3: "CAUTIOUS - Balance safety with opportunity",
    4: "MODERATE - Take reasonable calculated risks",
    5: "BALANCED - Mix of safe and risky positions",
    6: "AGGRESSIVE - Willing to take bigger risks for bigger rewards",
    7: "VERY AGGRESSIVE - Maximize gains, accept higher losses",
    8: "HIGH RISK - Go big or go home mentality",
    9: "EXTREME RISK - Bet heavily on convictions",
    10: "YOLO MODE - Maximum aggression, swing for the fences",
}

AGGRESSIVE_RISK_LEVEL = 7


def _cents(price: float) -> str:
    return f"{price * 100:.1f}c"


def _position_line(position: Optional[Position]) -> str:
    if not position:
        return "NO EXISTING POSITION"
    return f"EXISTING POSITION: {position.shares:g} {position.outcome} shares @ {_cents(position.avg_price)}"


def build_market_prompt(
    market: EnrichedMarket,
    risk_level: int,
    existing_position: Optional[Position] = None,
    cash_available: Optional[float] = None,
) -> str:
    lines = [
        f"Prediction market trader. Risk level: {risk_level}/10.",
        f"Market: {market.question}",
        f"YES: {_cents(market.yes_price)} | NO: {_cents(market.no_price)}",
        _position_line(existing_position),
    ]
    if cash_available is not None:
        lines.append(f"Cash available: ${cash_available:.2f}")
    lines.append("")
    lines.append("BE AGGRESSIVE - favor action!" if risk_level >= AGGRESSIVE_RISK_LEVEL else "Be calculated.")
    lines.append("")
    lines.append(
        'JSON only: {"action": "BUY_YES"|"BUY_NO"|"HOLD", "confidence": 0-1, '
        '"positionSize": dollars, "reason": "brief"}'
    )
    return "\n".join(lines)


def build_chain_of_thought_prompt(request: LLMAnalysisRequest) -> str:
    market = request.market
    risk_level = request.risk_level
    extra = []
    if risk_level >= AGGRESSIVE_RISK_LEVEL:
        extra.append("REMEMBER: At this risk level, favor ACTION over caution.")
    if request.existing_position:
        extra.append("Consider: Should you DCA (add more to the existing position) or hold?")

    return f"""You are a prediction market trader. Your goal is to maximize profits.

RISK LEVEL: {risk_level}/10 - {RISK_DESCRIPTIONS.get(risk_level, RISK_DESCRIPTIONS[5])}
PORTFOLIO VALUE: ${request.portfolio_value:.2f}
CASH AVAILABLE: ${request.cash_available:.2f}
{_position_line(request.existing_position)}

MARKET: {market.question}
CATEGORY: {market.category}
YES PRICE: {_cents(market.yes_price)}
NO PRICE: {_cents(market.no_price)}
END DATE: {market.end_date_iso or "unknown"}

STEP 1 - INITIAL ANALYSIS:
Analyze this market. What is your initial read? Is it mispriced?

STEP 2 - COUNTER-ARGUMENTS:
Argue AGAINST your initial position. What could go wrong?

STEP 3 - FINAL VERDICT:
Weigh both sides and make a decisive final call.

{chr(10).join(extra)}

Respond in JSON format:
{{
  "initialAnalysis": "your initial take...",
  "counterArguments": "why you might be wrong...",
  "finalVerdict": "your final decision...",
  "action": "BUY_YES" | "BUY_NO" | "HOLD" | "DCA" | "SELL",
  "confidence": 0.0-1.0,
  "positionSize": dollars to risk,
  "reasoning": ["reason 1", "reason 2", "reason 3"]
}}"""


def build_event_prompt(event: EnrichedEvent, risk_level: int, max_outcomes: int = 8) -> str:
    outcomes = "\n".join(
        f"{i + 1}. {o.name}: {o.price * 100:.1f}%"
        for i, o in enumerate(event.outcomes[:max_outcomes])
    )
    ask = "Find the BEST value bet!" if risk_level >= AGGRESSIVE_RISK_LEVEL else "Which outcome is undervalued?"
    return (
        f"Multi-outcome prediction market. Risk: {risk_level}/10.\n"
        f"Event: {event.title}\n\n"
        f"{outcomes}\n\n"
        f"{ask}\n\n"
        'JSON only: {"action": "BUY"|"HOLD", "outcome": "name", "confidence": 0-1, "reason": "brief"}'
    )


def build_dca_prompt(
    market: EnrichedMarket,
    position: Position,
    current_price: float,
    cash_available: float,
    risk_level: int,
) -> str:
    pnl = (current_price - position.avg_price) * position.shares
    pnl_pct = ((current_price / position.avg_price) - 1) * 100 if position.avg_price else 0.0
    return (
        f"DCA (Dollar Cost Average) decision. Risk: {risk_level}/10.\n\n"
        f"Market: {market.question}\n"
        f"Current Position: {position.shares:g} {position.outcome} shares @ {_cents(position.avg_price)}\n"
        f"Current Price: {_cents(current_price)}\n"
        f"Unrealized P&L: ${pnl:.2f} ({pnl_pct:.1f}%)\n"
        f"Cash Available: ${cash_available:.2f}\n\n"
        "Should we add to this position (DCA)?\n\n"
        'JSON: {"shouldDCA": true/false, "amount": dollars, "reason": "brief"}'
    )


# ============================================================================
# CLIENT
# ============================================================================

class LLMClient:
    """
    Trading-oriented wrapper around one LLM provider and model.

    Constructed once and passed to whatever needs advice; there is no
    module-level instance.
    """

    DCA_CASH_FRACTION = 0.2

    def __init__(
        self,
        provider: LLMProvider,
        model_id: str = LLMEndpoints.DEFAULT_MODEL,
        event_bus: Optional[EventBus] = None,
    ):
        self.provider = provider
        self.model_id = model_id
        self.event_bus = event_bus
        self._thoughts: deque[LLMThought] = deque(maxlen=MAX_THOUGHTS)

    def set_model(self, provider: LLMProvider, model_id: str) -> None:
        self.provider = provider
        self.model_id = model_id
        logger.info(f"LLM model set to {model_id} via {provider.name}")

    async def is_available(self) -> bool:
        return await self.provider.is_available()

    async def get_available_models(self) -> list[ProviderScan]:
        return await scan_for_llms()

    def get_thoughts(self, count: int = 50) -> list[LLMThought]:
        return list(self._thoughts)[-count:]

    async def generate(self, prompt: str) -> str:
        return await self.provider.generate(self.model_id, prompt)

    async def analyze_market(
        self,
        market: EnrichedMarket,
        risk_level: int = 5,
        existing_position: Optional[Position] = None,
        cash_available: Optional[float] = None,
    ) -> LLMResponse:
        """
        Quick single-prompt analysis.

        Raises LLMError if the backend cannot be reached; malformed replies
        come back as HOLD at confidence 0.
        """
        prompt = build_market_prompt(market, risk_level, existing_position, cash_available)
        text = await self.generate(prompt)
        return parse_llm_response(text)

    async def analyze_with_chain_of_thought(self, request: LLMAnalysisRequest) -> ChainOfThought:
        """Three-step self-debate. Records the reasoning as an LLMThought."""
        try:
            text = await self.generate(build_chain_of_thought_prompt(request))
        except LLMError as e:
            logger.error(f"Chain-of-thought analysis failed: {e}")
            return ChainOfThought(
                initial_analysis="Error analyzing market",
                counter_arguments="",
                final_verdict="Hold due to error",
                action="HOLD",
                confidence=0.0,
                position_size=0.0,
                reasoning=[f"Error: {e}"],
            )

        result = parse_chain_of_thought(text)
        self._record_thought(LLMThought(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            market_question=request.market.question,
            thinking=f"Initial: {result.initial_analysis}\n\nCounter: {result.counter_arguments}",
            decision=result.final_verdict,
            confidence=result.confidence,
            reasoning=result.reasoning,
        ))
        return result

    def _record_thought(self, thought: LLMThought) -> None:
        self._thoughts.append(thought)
        if self.event_bus:
            self.event_bus.publish(THOUGHT_RECORDED, thought)

    async def analyze_event(self, event: EnrichedEvent, risk_level: int = 5) -> LLMResponse:
        try:
            text = await self.generate(build_event_prompt(event, risk_level))
        except LLMError as e:
            logger.error(f"Event analysis failed: {e}")
            return LLMResponse(action="HOLD", confidence=0.0, reason=f"LLM error: {e}")
        return parse_llm_response(text)

    async def get_dca_recommendation(
        self,
        market: EnrichedMarket,
        position: Position,
        cash_available: float,
        risk_level: int = 5,
    ) -> DCARecommendation:
        """Ask whether to add to a position. Amount is capped at 20% of cash."""
        current_price = market.yes_price if "YES" in position.outcome.upper() else market.no_price
        prompt = build_dca_prompt(market, position, current_price, cash_available, risk_level)

        try:
            text = await self.generate(prompt)
        except LLMError as e:
            logger.error(f"DCA analysis failed: {e}")
            return DCARecommendation(should_dca=False, amount=0.0, reason="Could not analyze")

        parsed = extract_json(text)
        if parsed is None:
            return DCARecommendation(should_dca=False, amount=0.0, reason="Could not analyze")

        amount = _positive_float(parsed.get("amount")) or 0.0
        return DCARecommendation(
            should_dca=bool(parsed.get("shouldDCA", False)),
            amount=min(amount, cash_available * self.DCA_CASH_FRACTION),
            reason=str(parsed.get("reason") or ""),
        )
