"""Order fulfillment tasks"""
from __future__ import annotations

import asyncio

from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool

from ..utils.base_task import BaseTask
from core.logging_config import get_logger
from domain.order.entity import OrderStatus


logger = get_logger(__name__)


async def _load_order(order_id: int):
    from core.config import settings
    from infrastructure.database import build_engine
    from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

    # 每次任务都在新的事件循环中运行，连接不能跨循环复用
    engine = build_engine(settings.database.url, poolclass=NullPool)
    try:
        session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
        async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
            return await uow.order_repository.get_by_id(order_id)
    finally:
        await engine.dispose()


@shared_task(
    name="orders.handle",
    bind=True,
    base=BaseTask,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def handle_paid_order(self, order_id: int, trade_no: str) -> dict:
    """Provision the purchased plan for a paid order.

    Redelivery is harmless: orders that are not PAID are skipped.
    """
    order = asyncio.run(_load_order(order_id))
    if order is None or order.status != OrderStatus.PAID:
        logger.warning("order_handle_skipped", order_id=order_id, trade_no=trade_no, found=order is not None)
        return {"handled": False}

    logger.info(
        "order_handled",
        order_id=order.id,
        trade_no=order.trade_no,
        user_id=order.user_id,
        plan_id=order.plan_id,
        period=order.period,
    )
    return {"handled": True}
