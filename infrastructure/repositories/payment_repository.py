"""
支付配置仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payment.entity import PaymentConfigRecord
from domain.payment.repository import PaymentConfigRepository
from infrastructure.models.payment import PaymentConfigModel


class SQLAlchemyPaymentConfigRepository(PaymentConfigRepository):
    """支付配置仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentConfigModel) -> PaymentConfigRecord:
        """将数据库模型转换为领域实体"""
        return PaymentConfigRecord(
            id=model.id,
            name=model.name,
            method=model.method,
            public_id=model.public_id,
            config=model.config,
            enable=bool(model.enable),
            icon=model.icon,
            notify_domain=model.notify_domain,
            handling_fee_fixed=model.handling_fee_fixed,
            handling_fee_percent=float(model.handling_fee_percent) if model.handling_fee_percent is not None else None,
            sort=model.sort,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _one(self, *criteria) -> Optional[PaymentConfigRecord]:
        result = await self.session.execute(select(PaymentConfigModel).where(*criteria).limit(1))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_id(self, config_id: int) -> Optional[PaymentConfigRecord]:
        return await self._one(PaymentConfigModel.id == config_id)

    async def get_by_public_id(self, public_id: str) -> Optional[PaymentConfigRecord]:
        return await self._one(PaymentConfigModel.public_id == public_id)

    async def first_enabled_by_method(self, method: str) -> Optional[PaymentConfigRecord]:
        result = await self.session.execute(
            select(PaymentConfigModel)
            .where(PaymentConfigModel.method == method, PaymentConfigModel.enable.is_(True))
            .order_by(PaymentConfigModel.id.asc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_all(self) -> List[PaymentConfigRecord]:
        result = await self.session.execute(
            select(PaymentConfigModel).order_by(PaymentConfigModel.sort.asc(), PaymentConfigModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_enabled(self) -> List[PaymentConfigRecord]:
        result = await self.session.execute(
            select(PaymentConfigModel)
            .where(PaymentConfigModel.enable.is_(True))
            .order_by(PaymentConfigModel.sort.asc(), PaymentConfigModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
