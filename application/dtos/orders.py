"""
Order DTOs (Pydantic v2) for the order endpoints.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class CreateOrderDTO(BaseModel):
    plan_id: int = Field(..., ge=1)
    period: str = Field(..., min_length=1, max_length=32, description="价格周期，如 month_price")
    # 设备令牌也可通过 X-Nonce / nonce 请求头传递，优先使用请求头
    nonce: Optional[str] = None


class CheckoutDTO(BaseModel):
    trade_no: str = Field(..., min_length=1)
    method: int = Field(..., ge=1, description="支付配置ID")


class TradeNoDTO(BaseModel):
    trade_no: str = Field(..., min_length=1)


class OrderResponseDTO(BaseModel):
    id: Optional[int] = None
    trade_no: str
    user_id: int
    plan_id: int
    period: str
    status: int
    total_amount: int
    handling_amount: Optional[int] = None
    payment_id: Optional[int] = None
    callback_no: Optional[str] = None
    paid_at: Optional[str] = None
