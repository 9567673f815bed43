"""
Local LLM endpoints: model discovery, selection, thoughts and analysis.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from llm import LLMAnalysisRequest, create_provider, find_provider_for_model, scan_for_llms

from .deps import get_agent, get_llm_client, get_portfolio

router = APIRouter(prefix="/api/llm", tags=["llm"])


@router.get("/status")
async def get_llm_status(llm=Depends(get_llm_client)):
    return {
        "available": await llm.is_available(),
        "provider": llm.provider.to_dict(),
        "model": llm.model_id,
    }


@router.get("/models")
async def get_models():
    """Scan local inference servers for available models"""
    scans = await scan_for_llms()
    return {"providers": [s.to_dict() for s in scans]}


@router.post("/model")
async def select_model(body: dict, llm=Depends(get_llm_client), agent=Depends(get_agent)):
    """Select a model by id; the provider is taken from body or found by scanning"""
    model_id = body.get("model")
    if not model_id:
        raise HTTPException(status_code=400, detail="'model' is required")

    provider_kind: Optional[str] = body.get("provider")
    if provider_kind:
        try:
            provider = create_provider(provider_kind, body.get("base_url"))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        provider = find_provider_for_model(model_id, await scan_for_llms())
        if provider is None:
            raise HTTPException(status_code=404, detail=f"No running provider serves model '{model_id}'")

    llm.set_model(provider, model_id)
    agent.update_config({"selected_model": model_id})
    return {"provider": provider.to_dict(), "model": model_id}


@router.get("/thoughts")
async def get_thoughts(limit: int = 50, llm=Depends(get_llm_client)):
    return {"thoughts": [t.to_dict() for t in llm.get_thoughts(limit)]}


def _find_market(agent, market_id: str):
    for market in agent.get_markets():
        if market.condition_id == market_id:
            return market
    raise HTTPException(status_code=404, detail=f"Market '{market_id}' not in current snapshot")


@router.post("/analyze/{market_id}")
async def analyze_market(
    market_id: str,
    llm=Depends(get_llm_client),
    agent=Depends(get_agent),
    portfolio=Depends(get_portfolio),
):
    """Chain-of-thought analysis of one cached market"""
    market = _find_market(agent, market_id)
    summary = portfolio.get_summary()
    existing = next((p for p in portfolio.get_positions() if p.market_id == market_id), None)

    result = await llm.analyze_with_chain_of_thought(LLMAnalysisRequest(
        market=market,
        risk_level=agent.get_config().risk_level,
        portfolio_value=summary.total_value,
        cash_available=summary.cash,
        existing_position=existing,
    ))
    return result.to_dict()


@router.post("/analyze-event/{event_id}")
async def analyze_event(event_id: str, llm=Depends(get_llm_client), agent=Depends(get_agent)):
    event = next((e for e in agent.get_events() if e.id == event_id), None)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Event '{event_id}' not in current snapshot")
    response = await llm.analyze_event(event, agent.get_config().risk_level)
    return response.to_dict()


@router.post("/dca/{market_id}")
async def dca_recommendation(
    market_id: str,
    llm=Depends(get_llm_client),
    agent=Depends(get_agent),
    portfolio=Depends(get_portfolio),
):
    """Ask whether to add to the held position in a market"""
    market = _find_market(agent, market_id)
    position = next((p for p in portfolio.get_positions() if p.market_id == market_id), None)
    if position is None:
        raise HTTPException(status_code=404, detail=f"No open position in market '{market_id}'")

    recommendation = await llm.get_dca_recommendation(
        market, position, portfolio.get_summary().cash, agent.get_config().risk_level
    )
    return recommendation.to_dict()
