"""
订单仓储接口 - 订单、套餐与试用设备绑定的数据访问抽象
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Order, OrderStatus, Plan, DeviceTrialBinding


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_trade_no(self, trade_no: str, *, for_update: bool = False) -> Optional[Order]:
        """根据订单号获取订单；for_update=True 时加行锁"""
        pass

    @abstractmethod
    async def list_pending_by_user(self, user_id: int) -> List[Order]:
        """用户名下待支付的订单"""
        pass

    @abstractmethod
    async def list_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> List[Order]:
        """用户名下的订单（可按状态过滤），按创建时间倒序"""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """持久化金额与支付相关字段（不修改 status）"""
        pass

    @abstractmethod
    async def compare_and_set_status(
        self,
        order_id: int,
        expected: OrderStatus,
        target: OrderStatus,
        *,
        callback_no: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> bool:
        """原子状态迁移：仅当当前状态为 expected 时写入 target，返回是否命中"""
        pass


class PlanRepository(ABC):
    @abstractmethod
    async def get_by_id(self, plan_id: int) -> Optional[Plan]:
        pass


class TrialDeviceRepository(ABC):
    @abstractmethod
    async def get(self, plan_id: int, device_id: str) -> Optional[DeviceTrialBinding]:
        pass

    @abstractmethod
    async def create(self, binding: DeviceTrialBinding) -> DeviceTrialBinding:
        """写入绑定；唯一约束冲突时抛出 TrialAlreadyUsedError"""
        pass
