"""Stats routes."""

from fastapi import APIRouter, HTTPException, Query

from tradeledger.services import stats_service

router = APIRouter()


@router.get("/api/stats")
async def overall_stats():
    return stats_service.get_overall_stats()


@router.get("/api/stats/daily")
async def daily_stats(days: int = Query(30, ge=1)):
    """Trade count and volume per day over the last ``days`` days"""
    return stats_service.get_daily_stats(days)


@router.get("/api/stats/symbol/{symbol}")
async def symbol_stats(symbol: str):
    stats = stats_service.get_symbol_stats(symbol)
    if stats is None:
        raise HTTPException(status_code=404, detail="Symbol not found")
    return stats
