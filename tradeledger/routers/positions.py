"""Position routes — listing, user basket operations, recompute, why-options."""

from fastapi import APIRouter, HTTPException
from loguru import logger

from tradeledger.schemas import (
    PositionCreate, PositionMerge, PositionUpdate, TradeIdList, WhyOptionCreate, WhyOptionUpdate,
)
from tradeledger.services import position_service

router = APIRouter()


@router.get("/api/positions")
async def list_positions():
    """All positions with their trades and P&L metrics"""
    return position_service.list_positions()


@router.get("/api/positions/grouped-trade-ids")
async def grouped_trade_ids():
    """Ids of trades currently held by a position"""
    return position_service.get_grouped_trade_ids()


# --- Why options (registered before /{position_id}) -------------------------

@router.get("/api/positions/why-options")
async def list_why_options():
    return position_service.list_why_options()


@router.post("/api/positions/why-options", status_code=201)
async def create_why_option(body: WhyOptionCreate):
    try:
        return position_service.create_why_option(body.label, body.note)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except KeyError:
        raise HTTPException(status_code=409, detail="Option already exists")


@router.patch("/api/positions/why-options/{option_id}")
async def update_why_option(option_id: int, body: WhyOptionUpdate):
    try:
        option = position_service.update_why_option(option_id, body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except KeyError:
        raise HTTPException(status_code=409, detail="Option already exists")
    if option is None:
        raise HTTPException(status_code=404, detail="Option not found")
    return option


@router.delete("/api/positions/why-options/{option_id}")
async def delete_why_option(option_id: int):
    if not position_service.delete_why_option(option_id):
        raise HTTPException(status_code=404, detail="Option not found")
    return {"success": True}


# --- Basket operations -------------------------------------------------------

@router.post("/api/positions/merge")
async def merge_positions(body: PositionMerge):
    """Merge two or more positions into one new named position"""
    if len(set(body.position_ids)) < 2:
        raise HTTPException(status_code=400, detail="At least 2 position IDs required")
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="New position name is required")

    result = position_service.merge_positions(body.position_ids, body.name, body.notes)
    if result is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return result


@router.post("/api/positions/recompute")
async def recompute_positions():
    """Discard and rebuild every simple position"""
    result = position_service.recompute_all_positions()
    logger.info(f"Recompute requested: {result}")
    return result


@router.post("/api/positions", status_code=201)
async def create_position(body: PositionCreate):
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Position name is required")
    return position_service.create_position(body.name, body.trade_ids, body.notes, body.why)


@router.get("/api/positions/{position_id}")
async def get_position(position_id: int):
    position = position_service.get_position(position_id)
    if position is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return position


@router.patch("/api/positions/{position_id}")
async def update_position(position_id: int, body: PositionUpdate):
    try:
        result = position_service.update_position(position_id, body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return result


@router.delete("/api/positions/{position_id}")
async def delete_position(position_id: int):
    result = position_service.delete_position(position_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return result


@router.post("/api/positions/{position_id}/trades")
async def add_trades(position_id: int, body: TradeIdList):
    if not body.trade_ids:
        raise HTTPException(status_code=400, detail="trade_ids is required")
    result = position_service.add_trades(position_id, body.trade_ids)
    if result is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return result


@router.delete("/api/positions/{position_id}/trades")
async def remove_trades(position_id: int, body: TradeIdList):
    if not body.trade_ids:
        raise HTTPException(status_code=400, detail="trade_ids is required")
    result = position_service.remove_trades(position_id, body.trade_ids)
    if result is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return result


@router.post("/api/positions/{position_id}/ungroup")
async def ungroup_position(position_id: int):
    """Split a position back into round-trip positions"""
    result = position_service.ungroup_position(position_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return result
