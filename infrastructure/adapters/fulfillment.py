"""Infrastructure adapter that implements the application FulfillmentPort
by queueing the ``orders.handle`` Celery task.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from application.ports.fulfillment import FulfillmentPort
from core.logging_config import get_logger
from domain.order.entity import Order
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryFulfillmentAdapter(FulfillmentPort):
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None):
        self.dispatcher = dispatcher or TaskDispatcher()

    async def apply(self, order: Order) -> None:
        # 发送失败会向上抛出，结算事务随之回滚；Celery 客户端为阻塞调用，放到线程中执行
        await asyncio.to_thread(self.dispatcher.send_order_handle, order.id, order.trade_no)
        logger.info("order_fulfillment_queued", trade_no=order.trade_no, order_id=order.id)
