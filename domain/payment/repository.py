"""
支付配置仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import PaymentConfigRecord


class PaymentConfigRepository(ABC):
    """支付配置仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def get_by_id(self, config_id: int) -> Optional[PaymentConfigRecord]:
        pass

    @abstractmethod
    async def get_by_public_id(self, public_id: str) -> Optional[PaymentConfigRecord]:
        """根据回调 uuid 获取配置"""
        pass

    @abstractmethod
    async def first_enabled_by_method(self, method: str) -> Optional[PaymentConfigRecord]:
        """固定回调路径的网关：取该支付方式第一条启用配置"""
        pass

    @abstractmethod
    async def list_all(self) -> List[PaymentConfigRecord]:
        pass

    @abstractmethod
    async def list_enabled(self) -> List[PaymentConfigRecord]:
        pass
