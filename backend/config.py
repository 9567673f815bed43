"""
Configuration for the Polymarket Paper Trading Agent
Contains API endpoints, LLM backend defaults, and agent parameters.
"""

import os
from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import Optional

# ============================================================================
# API ENDPOINTS
# ============================================================================

class PolymarketAPI:
    # REST APIs
    GAMMA_API = "https://gamma-api.polymarket.com"
    CLOB_API = "https://clob.polymarket.com"

    # Useful endpoints
    MARKETS = f"{GAMMA_API}/markets"
    EVENTS = f"{GAMMA_API}/events"
    ORDERBOOK = f"{CLOB_API}/book"


class LLMEndpoints:
    """Default base URLs for local inference servers"""

    OLLAMA = "http://localhost:11434"
    LM_STUDIO = "http://localhost:1234"
    GPT4ALL = "http://localhost:4891"
    TEXT_GEN_WEBUI = "http://localhost:5000"

    DEFAULT_MODEL = "llama3.1:8b"


# ============================================================================
# STRATEGIES
# ============================================================================

class StrategyType(str, Enum):
    """Selectable signal strategies"""
    MOMENTUM = "momentum"
    CONTRARIAN = "contrarian"
    VALUE = "value"
    RANDOM = "random"
    BALANCED = "balanced"
    LLM = "llm"


# ============================================================================
# AGENT PARAMETERS
# ============================================================================

MIN_RISK_LEVEL = 1
MAX_RISK_LEVEL = 10


@dataclass
class AgentConfig:
    strategy: StrategyType = StrategyType.BALANCED
    max_position_size: float = 10000.0  # Dollars per market
    max_positions: int = 10
    min_confidence: float = 0.5
    auto_trade: bool = False  # Gates whether EXECUTE decisions reach the executor
    trade_interval_ms: int = 60000
    risk_level: int = 5
    dca_enabled: bool = False
    selected_model: Optional[str] = None

    def __post_init__(self):
        self.strategy = StrategyType(self.strategy)
        self.validate()

    def validate(self) -> None:
        """Raise ValueError for values outside the configuration surface"""
        if self.max_position_size <= 0:
            raise ValueError(f"max_position_size must be > 0, got {self.max_position_size}")
        if self.max_positions < 0:
            raise ValueError(f"max_positions must be >= 0, got {self.max_positions}")
        if not 0 <= self.min_confidence <= 1:
            raise ValueError(f"min_confidence must be in [0, 1], got {self.min_confidence}")
        if self.trade_interval_ms <= 0:
            raise ValueError(f"trade_interval_ms must be > 0, got {self.trade_interval_ms}")
        if not MIN_RISK_LEVEL <= self.risk_level <= MAX_RISK_LEVEL:
            raise ValueError(
                f"risk_level must be in [{MIN_RISK_LEVEL}, {MAX_RISK_LEVEL}], got {self.risk_level}"
            )
        for name in ("auto_trade", "dca_enabled"):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be a boolean, got {getattr(self, name)!r}")

    def to_dict(self) -> dict:
        d = asdict(self)
        d["strategy"] = self.strategy.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "AgentConfig":
        # Ignore unknown keys from older state files
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def merged(self, updates: dict) -> "AgentConfig":
        """Return a new validated config with the given fields replaced"""
        data = self.to_dict()
        data.update(updates)
        return AgentConfig.from_dict(data)


DEFAULT_AGENT_CONFIG = AgentConfig()


# ============================================================================
# ENVIRONMENT
# ============================================================================

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppSettings:
    """Process-level settings read from the environment at startup"""
    initial_balance: float = 100000.0
    data_dir: str = "."
    host: str = "0.0.0.0"
    port: int = 8000
    llm_provider: str = "ollama"
    llm_base_url: Optional[str] = None
    llm_model: str = LLMEndpoints.DEFAULT_MODEL
    agent: AgentConfig = None

    def __post_init__(self):
        if self.agent is None:
            self.agent = AgentConfig()

    @classmethod
    def from_env(cls) -> "AppSettings":
        agent = AgentConfig(
            strategy=os.getenv("AGENT_STRATEGY", DEFAULT_AGENT_CONFIG.strategy.value),
            max_position_size=float(os.getenv("MAX_POSITION_SIZE", DEFAULT_AGENT_CONFIG.max_position_size)),
            max_positions=int(os.getenv("MAX_POSITIONS", DEFAULT_AGENT_CONFIG.max_positions)),
            min_confidence=float(os.getenv("MIN_CONFIDENCE", DEFAULT_AGENT_CONFIG.min_confidence)),
            auto_trade=_env_bool("AUTO_TRADE", DEFAULT_AGENT_CONFIG.auto_trade),
            trade_interval_ms=int(os.getenv("TRADE_INTERVAL_MS", DEFAULT_AGENT_CONFIG.trade_interval_ms)),
            risk_level=int(os.getenv("RISK_LEVEL", DEFAULT_AGENT_CONFIG.risk_level)),
            dca_enabled=_env_bool("DCA_ENABLED", DEFAULT_AGENT_CONFIG.dca_enabled),
            selected_model=os.getenv("OLLAMA_MODEL"),
        )
        return cls(
            initial_balance=float(os.getenv("INITIAL_BALANCE", 100000.0)),
            data_dir=os.getenv("DATA_DIR", "."),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", 8000)),
            llm_provider=os.getenv("LLM_PROVIDER", "ollama").lower(),
            llm_base_url=os.getenv("LLM_BASE_URL"),
            llm_model=os.getenv("OLLAMA_MODEL", LLMEndpoints.DEFAULT_MODEL),
            agent=agent,
        )
