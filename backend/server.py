#!/usr/bin/env python3
"""
API server for the Polymarket Paper Trading Agent.
Exposes the portfolio and agent over REST and streams events over WebSocket.
"""

import asyncio
import json
import logging
from typing import Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from agent import TradingAgent
from config import AppSettings
from event_bus import EventBus, LOG_APPENDED, STATUS_CHANGED, THOUGHT_RECORDED, TRADE_EXECUTED
from llm import LLMClient, create_provider
from market_client import PolymarketClient
from portfolio import PortfolioManager
from retry import connection_monitor
from routes import advisor_router, control_router, markets_router, portfolio_router
from routes import deps
from state_store import PortfolioStateStore

logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Polymarket Paper Trading Agent API",
    description="Paper portfolio, strategy agent and local LLM advisor",
    version="1.0.0",
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(portfolio_router)
app.include_router(control_router)
app.include_router(markets_router)
app.include_router(advisor_router)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# WebSocket clients
ws_clients: Set[WebSocket] = set()

BROADCAST_TOPICS = (STATUS_CHANGED, TRADE_EXECUTED, LOG_APPENDED, THOUGHT_RECORDED)


def build_components(settings: AppSettings, event_bus: Optional[EventBus] = None) -> dict:
    """Wire up the portfolio, clients and agent from settings"""
    event_bus = event_bus or EventBus()
    portfolio = PortfolioManager(settings.initial_balance)
    state_store = PortfolioStateStore(settings.data_dir)
    market_client = PolymarketClient()
    llm_client = LLMClient(
        create_provider(settings.llm_provider, settings.llm_base_url),
        model_id=settings.llm_model,
        event_bus=event_bus,
    )
    agent = TradingAgent(
        portfolio,
        market_client,
        config=settings.agent,
        event_bus=event_bus,
        llm_client=llm_client,
        state_store=state_store,
    )
    return {
        "portfolio": portfolio,
        "agent": agent,
        "market_client": market_client,
        "llm_client": llm_client,
        "event_bus": event_bus,
        "state_store": state_store,
    }


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup():
    """Build components, restore saved state, subscribe the broadcaster"""
    settings = AppSettings.from_env()
    components = build_components(settings)
    event_bus = components.pop("event_bus")

    for key, value in components.items():
        deps.set_state(key, value)

    components["state_store"].load(components["portfolio"])

    for topic in BROADCAST_TOPICS:
        event_bus.subscribe(topic, make_broadcaster(topic))

    if settings.agent.auto_trade:
        logger.info("AUTO_TRADE enabled, starting agent")
        components["agent"].start()

    logger.info(
        f"[Server] Started with {settings.agent.strategy.value} strategy, "
        f"LLM provider {settings.llm_provider}"
    )


@app.on_event("shutdown")
async def shutdown():
    """Clean up on shutdown"""
    agent = deps._state.get("agent")
    if agent:
        agent.stop()
        await agent.wait_for_cycles()

    store = deps.get_state_store()
    portfolio = deps._state.get("portfolio")
    if store and portfolio:
        store.save(portfolio)

    client = deps._state.get("market_client")
    if client:
        await client.close()

    deps.clear_state()
    logger.info("[Server] Shutdown complete")


# ============================================================================
# BROADCAST HELPERS
# ============================================================================

def _to_payload(data):
    return data.to_dict() if hasattr(data, "to_dict") else data


def make_broadcaster(topic: str):
    async def handler(data):
        await broadcast({"type": topic, "data": _to_payload(data)})
    return handler


async def broadcast(message: dict):
    """Broadcast message to all connected WebSocket clients"""
    if not ws_clients:
        return

    data = json.dumps(message, default=str)
    disconnected = set()

    for ws in list(ws_clients):
        try:
            await ws.send_text(data)
        except Exception:
            disconnected.add(ws)

    # Clean up disconnected clients
    for ws in disconnected:
        ws_clients.discard(ws)


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    return {"status": "ok", "service": "polymarket-paper-agent"}


@app.get("/health")
async def health():
    """Component and upstream connection health"""
    connections = connection_monitor.get_status()
    initialized = all(deps._state.get(k) is not None for k in ("portfolio", "agent"))

    if not initialized:
        status = "unhealthy"
    elif any(not c["is_healthy"] for c in connections.values()):
        status = "degraded"
    else:
        status = "healthy"

    return {"status": status, "connections": connections}


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """
    WebSocket endpoint for real-time events.

    Clients receive:
    - status_changed: Agent status after any change
    - trade_executed: Fills from entries and exits
    - log_appended: Agent log entries
    - thought_recorded: LLM chain-of-thought records
    """
    await ws.accept()
    ws_clients.add(ws)
    logger.info(f"[WS] Client connected. Total: {len(ws_clients)}")

    try:
        portfolio = deps._state.get("portfolio")
        agent = deps._state.get("agent")
        await ws.send_json({
            "type": "init",
            "summary": portfolio.get_summary().to_dict() if portfolio else None,
            "status": agent.get_status().to_dict() if agent else None,
        })

        # Keep connection alive
        while True:
            try:
                data = await asyncio.wait_for(ws.receive_text(), timeout=30)
                msg = json.loads(data)

                if msg.get("type") == "ping":
                    await ws.send_json({"type": "pong"})

            except asyncio.TimeoutError:
                # Send keepalive ping
                await ws.send_json({"type": "ping"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[WS] Error: {e}")
    finally:
        ws_clients.discard(ws)
        logger.info(f"[WS] Client disconnected. Total: {len(ws_clients)}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the server"""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    settings = AppSettings.from_env()
    uvicorn.run(
        "server:app",
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
