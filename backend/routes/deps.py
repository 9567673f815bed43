"""
Shared dependencies for route modules.

This module provides access to global state and shared utilities.
"""

from fastapi import HTTPException

# =============================================================================
# GLOBAL STATE ACCESSORS
# =============================================================================

# These will be set by server.py at startup
_state = {
    "portfolio": None,
    "agent": None,
    "market_client": None,
    "llm_client": None,
    "state_store": None,
}


def set_state(key: str, value):
    """Set a global state value (called from server.py)"""
    if key not in _state:
        raise KeyError(f"Unknown state key: {key}")
    _state[key] = value


def clear_state():
    """Reset every component to None (used on shutdown and in tests)"""
    for key in _state:
        _state[key] = None


def _require(key: str):
    value = _state[key]
    if value is None:
        raise HTTPException(status_code=503, detail=f"{key.replace('_', ' ').capitalize()} not initialized")
    return value


def get_portfolio():
    return _require("portfolio")


def get_agent():
    return _require("agent")


def get_market_client():
    return _require("market_client")


def get_llm_client():
    return _require("llm_client")


def get_state_store():
    return _state["state_store"]
