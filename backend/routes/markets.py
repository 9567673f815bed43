"""
Market snapshot endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .deps import get_agent, get_market_client

router = APIRouter(prefix="/api", tags=["markets"])


@router.get("/markets")
async def get_markets(limit: int = 100, agent=Depends(get_agent)):
    """Cached binary markets from the last refresh"""
    markets = agent.get_markets()
    return {"count": len(markets), "markets": [m.to_dict() for m in markets[:limit]]}


@router.post("/markets/refresh")
async def refresh_markets(agent=Depends(get_agent)):
    try:
        markets = await agent.refresh_markets()
    except Exception as e:
        return JSONResponse({"error": f"Failed to fetch markets: {e}"}, status_code=502)
    return {"count": len(markets)}


@router.get("/events")
async def get_events(limit: int = 50, multi_only: bool = False, agent=Depends(get_agent)):
    """Cached events; multi_only keeps events with more than two outcomes"""
    events = agent.get_events()
    if multi_only:
        events = [e for e in events if e.is_multi_outcome and e.outcome_count > 2]
    return {"count": len(events), "events": [e.to_dict() for e in events[:limit]]}


@router.post("/events/refresh")
async def refresh_events(agent=Depends(get_agent)):
    try:
        events = await agent.refresh_events()
    except Exception as e:
        return JSONResponse({"error": f"Failed to fetch events: {e}"}, status_code=502)
    return {"count": len(events)}


@router.get("/opportunities")
async def get_opportunities(agent=Depends(get_agent)):
    """Run the active strategy over the cached snapshot without trading"""
    opportunities = await agent.analyze_markets()
    decisions = [agent.make_decision(o) for o in opportunities]
    return {"opportunities": [d.to_dict() for d in decisions]}


@router.get("/spread/{token_id}")
async def get_spread(token_id: str, client=Depends(get_market_client)):
    """Best bid/ask for one outcome token from the live order book"""
    try:
        spread = await client.get_spread(token_id)
    except Exception as e:
        return JSONResponse({"error": f"Failed to fetch order book: {e}"}, status_code=502)
    return spread.to_dict()
