"""Pydantic request/response models for Trade Ledger API."""

from datetime import date, datetime
from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class TradeIn(BaseModel):
    """A normalized execution as produced by a broker statement parser."""
    symbol: str
    asset_type: Literal['stock', 'option', 'future']
    side: Literal['buy', 'sell']
    quantity: float
    price: float = Field(ge=0)
    total: float = Field(allow_inf_nan=False)
    fees: float = 0.0
    executed_at: datetime
    expiration_date: Optional[date] = None
    broker_trade_id: Optional[str] = None


class TradeImport(BaseModel):
    broker: str
    nickname: Optional[str] = None
    filename: str = 'api'
    file_type: str = 'json'
    trades: List[TradeIn]


class TradeIdList(BaseModel):
    trade_ids: List[int]


class TradeReviewUpdate(BaseModel):
    trade_ids: List[int]
    status: int


class SplitRequest(BaseModel):
    trade_ids: List[int]
    ratio: float


class PositionCreate(BaseModel):
    name: str
    trade_ids: List[int] = []
    notes: Optional[str] = None
    why: Optional[str] = None


class PositionUpdate(BaseModel):
    name: Optional[str] = None
    notes: Optional[str] = None
    why: Optional[str] = None


class PositionMerge(BaseModel):
    position_ids: List[int]
    name: str
    notes: Optional[str] = None


class WhyOptionCreate(BaseModel):
    label: str
    note: Optional[str] = None


class WhyOptionUpdate(BaseModel):
    label: Optional[str] = None
    note: Optional[str] = None


class AccountCreate(BaseModel):
    broker: str
    nickname: Optional[str] = None
