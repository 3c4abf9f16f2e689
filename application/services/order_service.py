"""
订单应用服务（application/services）- 下单、收银台、取消、列表与详情查询
"""
from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from application.dtos.payments import PaymentRequest, PaymentResult, RESULT_SETTLED_WITHOUT_GATEWAY
from application.services.device_token_service import DeviceTokenService
from application.services.payment_service import PaymentService
from application.services.settlement_service import OrderSettlementService
from core.logging_config import get_logger
from domain.common.exceptions import (
    DeviceTokenRequiredError,
    InvalidPeriodError,
    MethodDisabledError,
    OrderNotFoundError,
    PaymentConfigNotFoundError,
    PendingOrderExistsError,
    PlanNotFoundError,
    TrialAlreadyUsedError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import DeviceTrialBinding, Order, OrderStatus


logger = get_logger(__name__)


def generate_trade_no(now: Optional[datetime] = None) -> str:
    """时间戳 + 微秒 + 5 位随机数"""
    now = now or datetime.now(timezone.utc)
    return f"{now:%Y%m%d%H%M%S}{now.microsecond:06d}{secrets.randbelow(90000) + 10000}"


class OrderApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payments: PaymentService,
        settlement: OrderSettlementService,
        device_tokens: DeviceTokenService,
    ) -> None:
        self._uow_factory = uow_factory
        self._payments = payments
        self._settlement = settlement
        self._device_tokens = device_tokens

    async def create_order(
        self,
        user_id: int,
        plan_id: int,
        period: str,
        device_token: Optional[str] = None,
    ) -> Order:
        """
        创建订单

        业务规则：
        1. 用户存在待支付订单时拒绝
        2. 套餐必须存在且提供该周期的价格
        3. 试用套餐必须携带可解密的设备令牌，且该设备未试用过该套餐
        4. 订单与试用绑定在同一事务内写入
        """
        async with self._uow_factory() as uow:
            if await uow.order_repository.list_pending_by_user(user_id):
                raise PendingOrderExistsError(user_id)

            plan = await uow.plan_repository.get_by_id(plan_id)
            if plan is None:
                raise PlanNotFoundError(plan_id)
            price = plan.price_for(period)
            if price is None:
                raise InvalidPeriodError(plan_id, period)

            device_id = None
            if plan.trial:
                if not device_token:
                    raise DeviceTokenRequiredError()
                device_id = self._device_tokens.decrypt(device_token)
                if await uow.trial_device_repository.get(plan.id, device_id) is not None:
                    raise TrialAlreadyUsedError(plan.id)

            order = await uow.order_repository.create(Order(
                id=None,
                trade_no=generate_trade_no(),
                user_id=user_id,
                plan_id=plan.id,
                period=period,
                total_amount=price,
                device_id=device_id,
            ))
            if device_id is not None:
                await uow.trial_device_repository.create(
                    DeviceTrialBinding(plan_id=plan.id, device_id=device_id, order_id=order.id)
                )

        logger.info("order_created", trade_no=order.trade_no, user_id=user_id, plan_id=plan_id, trial=plan.trial)
        return order

    async def _own_order(self, user_id: int, trade_no: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_trade_no(trade_no)
        if order is None or order.user_id != user_id:
            raise OrderNotFoundError(trade_no)
        return order

    async def list_orders(self, user_id: int, status: Optional[int] = None) -> list[Order]:
        """用户订单列表，按创建时间倒序；status 为空时返回全部"""
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_by_user(
                user_id, OrderStatus(status) if status is not None else None
            )

    async def detail(self, user_id: int, trade_no: str) -> Order:
        """订单详情，仅限订单所属用户；关联套餐必须存在"""
        order = await self._own_order(user_id, trade_no)
        async with self._uow_factory(readonly=True) as uow:
            plan = await uow.plan_repository.get_by_id(order.plan_id)
        if plan is None:
            raise PlanNotFoundError(order.plan_id)
        return order

    async def checkout(self, user_id: int, trade_no: str, config_id: int) -> PaymentResult:
        order = await self._own_order(user_id, trade_no)
        if not order.is_pending:
            raise OrderNotFoundError(trade_no)

        # 免费订单直接结算，不经过网关
        if order.total_amount <= 0:
            await self._settlement.settle(trade_no, trade_no)
            return PaymentResult(type=RESULT_SETTLED_WITHOUT_GATEWAY, data=True)

        async with self._uow_factory() as uow:
            record = await uow.payment_config_repository.get_by_id(config_id)
            if record is None:
                raise PaymentConfigNotFoundError(config_id)
            if not record.enable:
                raise MethodDisabledError(record.method, config_id=config_id)

            order = await uow.order_repository.get_by_trade_no(trade_no, for_update=True)
            if order is None or order.status != OrderStatus.PENDING:
                raise OrderNotFoundError(trade_no)
            order.handling_amount = None
            order.apply_handling_fee(fixed=record.handling_fee_fixed, percent=record.handling_fee_percent)
            order.payment_id = record.id
            order = await uow.order_repository.update(order)

        logger.info(
            "order_checkout",
            trade_no=trade_no,
            method=record.method,
            config_id=record.id,
            total_amount=order.total_amount,
            handling_amount=order.handling_amount,
        )
        request = PaymentRequest(trade_no=trade_no, total_amount=order.payable_amount, user_id=order.user_id)
        return await self._payments.pay(record.method, record.id, request)

    async def cancel(self, user_id: int, trade_no: str) -> bool:
        await self._settlement.cancel(trade_no, user_id=user_id)
        return True

    async def check(self, user_id: int, trade_no: str) -> int:
        order = await self._own_order(user_id, trade_no)
        return int(order.status)

    async def payment_methods(self) -> list[dict[str, Any]]:
        """前台可选的支付方式（启用的配置，按 sort 排序）"""
        async with self._uow_factory(readonly=True) as uow:
            records = await uow.payment_config_repository.list_enabled()
        return [
            {
                "id": r.id,
                "name": r.name,
                "payment": r.method,
                "icon": r.icon,
                "handling_fee_fixed": r.handling_fee_fixed,
                "handling_fee_percent": r.handling_fee_percent,
            }
            for r in records
        ]
