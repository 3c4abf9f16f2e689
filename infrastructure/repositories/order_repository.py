"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import TrialAlreadyUsedError
from domain.order.entity import DeviceTrialBinding, Order, OrderStatus, Plan
from domain.order.repository import OrderRepository, PlanRepository, TrialDeviceRepository
from infrastructure.models.order import OrderModel, PlanModel, PlanTrialDeviceModel


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            trade_no=model.trade_no,
            user_id=model.user_id,
            plan_id=model.plan_id,
            period=model.period,
            total_amount=model.total_amount,
            status=OrderStatus(model.status),
            handling_amount=model.handling_amount,
            balance_amount=model.balance_amount,
            payment_id=model.payment_id,
            callback_no=model.callback_no,
            device_id=model.device_id,
            paid_at=model.paid_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        return OrderModel(
            id=entity.id,
            trade_no=entity.trade_no,
            user_id=entity.user_id,
            plan_id=entity.plan_id,
            period=entity.period,
            total_amount=entity.total_amount,
            status=int(entity.status),
            handling_amount=entity.handling_amount,
            balance_amount=entity.balance_amount,
            payment_id=entity.payment_id,
            callback_no=entity.callback_no,
            device_id=entity.device_id,
            paid_at=entity.paid_at,
        )

    async def create(self, order: Order) -> Order:
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info("order_row_created", order_id=db_order.id, trade_no=db_order.trade_no)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_trade_no(self, trade_no: str, *, for_update: bool = False) -> Optional[Order]:
        stmt = select(OrderModel).where(OrderModel.trade_no == trade_no)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def list_pending_by_user(self, user_id: int) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.user_id == user_id, OrderModel.status == int(OrderStatus.PENDING))
            .order_by(OrderModel.created_at.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> List[Order]:
        stmt = select(OrderModel).where(OrderModel.user_id == user_id)
        if status is not None:
            stmt = stmt.where(OrderModel.status == int(status))
        result = await self.session.execute(stmt.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, order: Order) -> Order:
        """更新金额与支付相关字段；status 只允许通过 compare_and_set_status 修改"""
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order.id))
        db_order = result.scalar_one_or_none()
        if not db_order:
            raise ValueError(f"Order with id {order.id} not found")

        db_order.total_amount = order.total_amount
        db_order.handling_amount = order.handling_amount
        db_order.balance_amount = order.balance_amount
        db_order.payment_id = order.payment_id
        db_order.device_id = order.device_id

        await self.session.flush()
        await self.session.refresh(db_order)
        return self._to_entity(db_order)

    async def compare_and_set_status(
        self,
        order_id: int,
        expected: OrderStatus,
        target: OrderStatus,
        *,
        callback_no: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> bool:
        values = {"status": int(target), "updated_at": datetime.now(timezone.utc)}
        if target == OrderStatus.PAID:
            values["callback_no"] = callback_no
            values["paid_at"] = paid_at or datetime.now(timezone.utc)
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == int(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        swapped = result.rowcount == 1
        logger.info("order_status_cas", order_id=order_id, expected=int(expected), target=int(target), swapped=swapped)
        return swapped


class SQLAlchemyPlanRepository(PlanRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, plan_id: int) -> Optional[Plan]:
        result = await self.session.execute(select(PlanModel).where(PlanModel.id == plan_id))
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return Plan(
            id=model.id,
            name=model.name,
            prices={str(k): int(v) for k, v in (model.prices or {}).items() if v is not None},
            trial=bool(model.trial),
        )


class SQLAlchemyTrialDeviceRepository(TrialDeviceRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model: PlanTrialDeviceModel) -> DeviceTrialBinding:
        return DeviceTrialBinding(
            id=model.id,
            plan_id=model.plan_id,
            device_id=model.device_id,
            order_id=model.order_id,
            created_at=model.created_at,
        )

    async def get(self, plan_id: int, device_id: str) -> Optional[DeviceTrialBinding]:
        result = await self.session.execute(
            select(PlanTrialDeviceModel).where(
                PlanTrialDeviceModel.plan_id == plan_id,
                PlanTrialDeviceModel.device_id == device_id,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def create(self, binding: DeviceTrialBinding) -> DeviceTrialBinding:
        model = PlanTrialDeviceModel(plan_id=binding.plan_id, device_id=binding.device_id, order_id=binding.order_id)
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError:
            # 并发下唯一约束兜底；整个工作单元随异常回滚
            logger.warning("trial_binding_conflict", plan_id=binding.plan_id)
            raise TrialAlreadyUsedError(binding.plan_id)
        await self.session.refresh(model)
        return self._to_entity(model)
