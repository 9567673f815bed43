"""
Agent control endpoints: status, logs, configuration, lifecycle.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from config import StrategyType

from .deps import get_agent, get_portfolio

router = APIRouter(prefix="/api/agent", tags=["agent"])


@router.get("/status")
async def get_status(agent=Depends(get_agent)):
    return agent.get_status().to_dict()


@router.get("/logs")
async def get_logs(limit: int = 20, agent=Depends(get_agent)):
    return {"logs": [entry.to_dict() for entry in agent.get_logs(limit)]}


@router.get("/config")
async def get_config(agent=Depends(get_agent)):
    return agent.get_config().to_dict()


@router.post("/config")
async def update_config(updates: dict, agent=Depends(get_agent)):
    """Partial config update; invalid values are rejected without changes"""
    try:
        config = agent.update_config(updates)
    except (TypeError, ValueError) as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return {"status": "ok", "config": config.to_dict()}


@router.post("/strategy/{strategy}")
async def set_strategy(strategy: str, agent=Depends(get_agent)):
    try:
        agent.set_strategy(StrategyType(strategy))
    except ValueError:
        valid = [s.value for s in StrategyType]
        raise HTTPException(status_code=400, detail=f"Unknown strategy '{strategy}'. Expected one of {valid}")
    return {"strategy": agent.get_config().strategy.value}


@router.post("/risk-level/{level}")
async def set_risk_level(level: int, apply_defaults: bool = False, agent=Depends(get_agent)):
    try:
        config = agent.set_risk_level(level, apply_defaults=apply_defaults)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok", "config": config.to_dict()}


@router.get("/risk")
async def get_portfolio_risk(agent=Depends(get_agent), portfolio=Depends(get_portfolio)):
    """Concentration and drawdown of the current portfolio"""
    risk = agent.risk_manager.get_portfolio_risk(portfolio.get_positions(), portfolio.get_summary())
    return risk.to_dict()


@router.post("/start")
async def start_agent(agent=Depends(get_agent)):
    agent.start()
    return {"is_running": agent.is_running}


@router.post("/stop")
async def stop_agent(agent=Depends(get_agent)):
    agent.stop()
    return {"is_running": agent.is_running}


@router.post("/toggle")
async def toggle_agent(agent=Depends(get_agent)):
    return {"is_running": agent.toggle()}


@router.post("/run-once")
async def run_once(agent=Depends(get_agent)):
    """Run a single cycle now, independent of the timer"""
    ran = await agent.run_cycle()
    return {"ran": ran, "status": agent.get_status().to_dict()}
