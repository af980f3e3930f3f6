"""Trade routes — ledger browsing, review and expiration flags, split adjustment."""

from typing import Optional

from fastapi import APIRouter, HTTPException

from tradeledger.schemas import SplitRequest, TradeIdList, TradeReviewUpdate
from tradeledger.services import trade_service

router = APIRouter()


@router.get("/api/trades")
async def list_trades(
    symbol: Optional[str] = None,
    asset_type: Optional[str] = None,
    side: Optional[str] = None,
    broker: Optional[str] = None,
    account_id: Optional[int] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    limit: Optional[int] = None,
):
    return trade_service.get_trades(
        symbol=symbol, asset_type=asset_type, side=side, account_id=account_id,
        broker=broker, from_date=from_date, to_date=to_date, limit=limit,
    )


@router.get("/api/trades/symbols")
async def list_symbols():
    return trade_service.get_unique_symbols()


@router.delete("/api/trades")
async def delete_all_trades():
    deleted = trade_service.delete_all_trades()
    return {"success": True, "deleted": deleted}


@router.patch("/api/trades/review")
async def set_review(body: TradeReviewUpdate):
    """Set review status for multiple trades (0=none, 1=reviewing, 2=reviewed)"""
    if not body.trade_ids:
        raise HTTPException(status_code=400, detail="trade_ids is required")
    try:
        updated = trade_service.set_trades_review(body.trade_ids, body.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "updated": updated}


@router.post("/api/trades/expire")
async def expire_trades(body: TradeIdList):
    """Mark trades as expired worthless"""
    if not body.trade_ids:
        raise HTTPException(status_code=400, detail="trade_ids is required")
    updated = trade_service.expire_trades(body.trade_ids)
    return {"success": True, "updated": updated}


@router.post("/api/trades/split")
async def apply_split(body: SplitRequest):
    """Apply a stock split ratio to trades and rebuild their positions"""
    if not body.trade_ids:
        raise HTTPException(status_code=400, detail="trade_ids is required")
    if body.ratio <= 0:
        raise HTTPException(status_code=400, detail="ratio must be a positive number")
    updated = trade_service.apply_stock_split(body.trade_ids, body.ratio)
    return {"success": True, "updated": updated}


@router.get("/api/trades/{trade_id}")
async def get_trade(trade_id: int):
    trade = trade_service.get_trade(trade_id)
    if trade is None:
        raise HTTPException(status_code=404, detail="Trade not found")
    return trade


@router.delete("/api/trades/{trade_id}")
async def delete_trade(trade_id: int):
    if not trade_service.delete_trade(trade_id):
        raise HTTPException(status_code=404, detail="Trade not found")
    return {"success": True}


@router.patch("/api/trades/{trade_id}/review")
async def toggle_review(trade_id: int):
    review = trade_service.toggle_trade_review(trade_id)
    if review is None:
        raise HTTPException(status_code=404, detail="Trade not found")
    return {"success": True, "review": review}
