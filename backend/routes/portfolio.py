"""
Paper portfolio endpoints.
"""

from fastapi import APIRouter, Depends

from .deps import get_portfolio, get_state_store

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


@router.get("/summary")
async def get_summary(portfolio=Depends(get_portfolio)):
    """Cash, position value, P&L and win rate"""
    return portfolio.get_summary().to_dict()


@router.get("/positions")
async def get_positions(portfolio=Depends(get_portfolio)):
    """Open positions"""
    return {"positions": [p.to_dict() for p in portfolio.get_positions()]}


@router.get("/trades")
async def get_trades(limit: int = 50, portfolio=Depends(get_portfolio)):
    """Most recent trades, newest first"""
    return {"trades": [t.to_dict() for t in portfolio.get_recent_trades(limit)]}


@router.post("/reset")
async def reset_portfolio(portfolio=Depends(get_portfolio)):
    """Reset the paper account to its initial balance"""
    portfolio.reset()
    store = get_state_store()
    if store:
        store.save(portfolio)
    return {"status": "ok", "summary": portfolio.get_summary().to_dict()}
