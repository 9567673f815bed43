"""
Tests for app configuration (config.py).
"""
import pytest
from unittest.mock import patch

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import AgentConfig, AppSettings, StrategyType


class TestAgentConfig:
    """Tests for AgentConfig validation and merging."""

    def test_defaults(self):
        config = AgentConfig()
        assert config.strategy == StrategyType.BALANCED
        assert config.auto_trade is False
        assert config.trade_interval_ms == 60000
        assert config.risk_level == 5

    def test_strategy_coerced(self):
        assert AgentConfig(strategy="momentum").strategy == StrategyType.MOMENTUM

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            AgentConfig(strategy="yolo")
        with pytest.raises(ValueError):
            AgentConfig(risk_level=11)
        with pytest.raises(ValueError):
            AgentConfig(min_confidence=1.5)
        with pytest.raises(ValueError):
            AgentConfig(trade_interval_ms=0)

    def test_flags_must_be_booleans(self):
        """Test a string flag such as "false" is refused instead of read as truthy."""
        with pytest.raises(ValueError):
            AgentConfig(auto_trade="false")
        with pytest.raises(ValueError):
            AgentConfig(dca_enabled=1)
        with pytest.raises(ValueError):
            AgentConfig().merged({"auto_trade": "false"})

    def test_merged_returns_new_config(self):
        config = AgentConfig()
        merged = config.merged({"max_positions": 3, "strategy": "value"})
        assert merged.max_positions == 3
        assert merged.strategy == StrategyType.VALUE
        assert config.max_positions == 10

    def test_round_trip_ignores_unknown_keys(self):
        data = AgentConfig(risk_level=7).to_dict()
        data["legacy_field"] = True
        assert AgentConfig.from_dict(data).risk_level == 7


class TestAppSettings:
    def test_from_env(self):
        env = {
            "INITIAL_BALANCE": "2500",
            "AGENT_STRATEGY": "contrarian",
            "AUTO_TRADE": "true",
            "TRADE_INTERVAL_MS": "15000",
            "RISK_LEVEL": "8",
            "MAX_POSITIONS": "4",
            "LLM_PROVIDER": "LM_STUDIO",
            "OLLAMA_MODEL": "mistral:7b",
            "DATA_DIR": "/tmp/agent",
            "PORT": "9000",
        }
        with patch.dict(os.environ, env):
            settings = AppSettings.from_env()

        assert settings.initial_balance == 2500.0
        assert settings.agent.strategy == StrategyType.CONTRARIAN
        assert settings.agent.auto_trade is True
        assert settings.agent.trade_interval_ms == 15000
        assert settings.agent.risk_level == 8
        assert settings.agent.max_positions == 4
        assert settings.agent.selected_model == "mistral:7b"
        assert settings.llm_provider == "lm_studio"
        assert settings.llm_model == "mistral:7b"
        assert settings.data_dir == "/tmp/agent"
        assert settings.port == 9000

    def test_invalid_env_rejected(self):
        with patch.dict(os.environ, {"RISK_LEVEL": "42"}):
            with pytest.raises(ValueError):
                AppSettings.from_env()
