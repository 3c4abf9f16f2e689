"""
管理端支付配置路由：可用支付方式、配置表单与配置列表
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import CurrentUser, get_current_admin, get_payment_service
from application.services.payment_service import PaymentService
from core.response import Response, success_response


router = APIRouter(prefix="/admin/payments", tags=["Admin Payments"])


@router.get("/methods", response_model=Response[list])
async def list_payment_methods(
    admin: CurrentUser = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    """已启用插件提供的支付方式名称"""
    return success_response(data=await service.method_names())


@router.get("/form", response_model=Response[dict])
async def payment_form(
    payment: str = Query(..., min_length=1, description="支付方式名称"),
    id: Optional[int] = Query(default=None, ge=1, description="已存储的配置ID，用于回填当前值"),
    admin: CurrentUser = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return success_response(data=await service.form(payment, id))


@router.get("", response_model=Response[list])
async def list_payment_configs(
    admin: CurrentUser = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return success_response(data=await service.list_configs())
