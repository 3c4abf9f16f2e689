"""
订单结算状态机（application/services）

settle 在同一个事务内完成：行锁读取 -> 状态判断 -> CAS 更新 -> 履约；
任一步失败整体回滚，订单保持待支付，调用方可重试。提交成功后才广播事件。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from application.hooks import HookBus, ORDER_CANCELLED, PAYMENT_SETTLED
from application.ports.fulfillment import FulfillmentPort
from core.logging_config import get_logger
from domain.common.exceptions import InvalidTransitionError, OrderNotFoundError, SettlementError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus
from domain.order.events import OrderCancelled, PaymentSettled


logger = get_logger(__name__)


class OrderSettlementService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        fulfillment: FulfillmentPort,
        hooks: HookBus,
    ) -> None:
        self._uow_factory = uow_factory
        self._fulfillment = fulfillment
        self._hooks = hooks

    async def settle(self, trade_no: str, callback_no: Optional[str]) -> bool:
        """
        将订单标记为已支付

        返回 True 表示本次调用完成了 PENDING -> PAID；订单已非待支付时返回 False（幂等成功）。
        """
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_trade_no(trade_no, for_update=True)
            if order is None:
                raise OrderNotFoundError(trade_no)
            if not order.is_pending:
                logger.info("order_settle_noop", trade_no=trade_no, status=int(order.status))
                return False

            now = datetime.now(timezone.utc)
            swapped = await uow.order_repository.compare_and_set_status(
                order.id,
                OrderStatus.PENDING,
                OrderStatus.PAID,
                callback_no=callback_no,
                paid_at=now,
            )
            if not swapped:
                logger.info("order_settle_lost_race", trade_no=trade_no)
                return False
            order.mark_paid(callback_no, now=now)

            try:
                await self._fulfillment.apply(order)
            except Exception as exc:
                logger.error("order_fulfillment_failed", trade_no=trade_no, error=str(exc), exc_info=True)
                raise SettlementError(trade_no, reason=type(exc).__name__) from exc

            await uow.commit()

        logger.info("order_settled", trade_no=trade_no, callback_no=callback_no)
        await self._hooks.emit(PAYMENT_SETTLED, PaymentSettled(trade_no=trade_no, order=order.snapshot(), callback_no=callback_no))
        return True

    async def cancel(self, trade_no: str, *, user_id: Optional[int] = None) -> Order:
        """取消待支付订单；其他状态抛出 InvalidTransitionError。"""
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_trade_no(trade_no, for_update=True)
            if order is None or (user_id is not None and order.user_id != user_id):
                raise OrderNotFoundError(trade_no)
            if not order.is_pending:
                raise InvalidTransitionError(trade_no, order.status, OrderStatus.CANCELLED)

            swapped = await uow.order_repository.compare_and_set_status(
                order.id, OrderStatus.PENDING, OrderStatus.CANCELLED
            )
            if not swapped:
                raise InvalidTransitionError(trade_no, order.status, OrderStatus.CANCELLED)
            order.mark_cancelled()
            await uow.commit()

        logger.info("order_cancelled", trade_no=trade_no)
        await self._hooks.emit(ORDER_CANCELLED, OrderCancelled(trade_no=trade_no, order=order.snapshot()))
        return order
