"""
订单路由：下单、收银台、取消、列表与状态查询
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from api.dependencies import CurrentUser, get_current_user, get_order_service
from application.dtos.orders import CheckoutDTO, CreateOrderDTO, OrderResponseDTO, TradeNoDTO
from application.dtos.payments import PaymentResult
from application.services.order_service import OrderApplicationService
from core.response import Response, success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=Response[OrderResponseDTO])
async def create_order(
    payload: CreateOrderDTO,
    x_nonce: Optional[str] = Header(default=None, alias="X-Nonce"),
    nonce: Optional[str] = Header(default=None, alias="nonce"),
    current_user: CurrentUser = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    """创建订单；试用套餐需要设备令牌（X-Nonce 请求头，其次 nonce 请求头或请求体字段）"""
    device_token = x_nonce or nonce or payload.nonce
    order = await service.create_order(current_user.id, payload.plan_id, payload.period, device_token)
    return success_response(data=OrderResponseDTO(**order.snapshot()), message="订单创建成功")


@router.post("/checkout", response_model=Response[PaymentResult])
async def checkout(
    payload: CheckoutDTO,
    current_user: CurrentUser = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    result = await service.checkout(current_user.id, payload.trade_no, payload.method)
    return success_response(data=result)


@router.post("/cancel", response_model=Response[bool])
async def cancel_order(
    payload: TradeNoDTO,
    current_user: CurrentUser = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.cancel(current_user.id, payload.trade_no), message="订单已取消")


@router.get("/check", response_model=Response[int])
async def check_order(
    trade_no: str = Query(..., min_length=1),
    current_user: CurrentUser = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    """返回订单状态：0 待支付 / 1 已支付 / 2 已取消"""
    return success_response(data=await service.check(current_user.id, trade_no))


@router.get("/payment-methods", response_model=Response[list])
async def payment_methods(
    current_user: CurrentUser = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.payment_methods())


@router.get("", response_model=Response[list[OrderResponseDTO]])
async def list_orders(
    status: Optional[int] = Query(default=None, ge=0, le=3, description="0 待支付 / 1 已支付 / 2 已取消 / 3 其他"),
    current_user: CurrentUser = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    orders = await service.list_orders(current_user.id, status)
    return success_response(data=[OrderResponseDTO(**o.snapshot()) for o in orders])


@router.get("/detail", response_model=Response[OrderResponseDTO])
async def order_detail(
    trade_no: str = Query(..., min_length=1),
    current_user: CurrentUser = Depends(get_current_user),
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.detail(current_user.id, trade_no)
    return success_response(data=OrderResponseDTO(**order.snapshot()))
