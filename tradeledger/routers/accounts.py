"""Account routes."""

from fastapi import APIRouter, HTTPException

from tradeledger.schemas import AccountCreate
from tradeledger.services import account_service

router = APIRouter()


@router.get("/api/accounts")
async def list_accounts():
    return account_service.get_all_accounts()


@router.get("/api/accounts/{account_id}")
async def get_account(account_id: int):
    account = account_service.get_account(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.post("/api/accounts", status_code=201)
async def create_account(body: AccountCreate):
    try:
        return account_service.create_account(body.broker, body.nickname)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/api/accounts/{account_id}")
async def delete_account(account_id: int):
    """Delete an account together with its imports and trades"""
    result = account_service.delete_account(account_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"success": True, **result}
