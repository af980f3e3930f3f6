"""Import routes — normalized trade batches, import history, JSON backup."""

from datetime import date
from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger

from tradeledger.schemas import TradeImport
from tradeledger.services import backup_service, import_service, trade_service

router = APIRouter()


@router.post("/api/import/trades")
async def import_trades(body: TradeImport):
    """Import a batch of normalized trades for one broker account"""
    try:
        return trade_service.import_trades(
            body.broker,
            [t.model_dump() for t in body.trades],
            nickname=body.nickname,
            filename=body.filename,
            file_type=body.file_type,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/api/import/history")
async def import_history(limit: int = 20):
    return import_service.get_import_history(limit)


@router.get("/api/import/export")
async def export_backup():
    """Export all data as a JSON backup download"""
    backup = backup_service.export_all_data()
    filename = f"tradeledger-backup-{date.today().isoformat()}.json"
    return JSONResponse(
        content=backup,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/api/import/backup")
async def restore_backup(payload: Dict[str, Any] = Body(...)):
    """Replace all data with a JSON backup"""
    try:
        restored = backup_service.restore_backup(payload)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Rejected backup: {e}")
        raise HTTPException(status_code=400, detail="Invalid backup format")
    return {"success": True, "restored": restored}


@router.delete("/api/import/{import_id}")
async def delete_import(import_id: int):
    result = import_service.delete_import(import_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Import not found")
    return {"success": True, **result}
