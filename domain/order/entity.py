"""
订单领域实体 - 订单聚合根、套餐与试用设备绑定
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import IntEnum
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidTransitionError


class OrderStatus(IntEnum):
    """订单状态枚举（与存储中的整数值一致）"""
    PENDING = 0     # 待支付
    PAID = 1        # 已支付
    CANCELLED = 2   # 已取消
    OTHER = 3       # 其他（由外部流程写入，本服务不产生）


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Order:
    """
    订单聚合根 - 管理订单结算生命周期

    业务规则：
    1. trade_no 全局唯一
    2. 状态只能 PENDING -> PAID 或 PENDING -> CANCELLED
    3. PAID -> PAID 为幂等空操作，不会重复入账
    4. 金额均为最小货币单位（分）
    """

    id: Optional[int]
    trade_no: str
    user_id: int
    plan_id: int
    period: str
    total_amount: int
    status: OrderStatus = OrderStatus.PENDING
    handling_amount: Optional[int] = None
    balance_amount: Optional[int] = None
    payment_id: Optional[int] = None
    callback_no: Optional[str] = None
    device_id: Optional[str] = None

    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = OrderStatus(self.status)
        if self.total_amount is None or self.total_amount < 0:
            raise DomainValidationException(
                f"订单金额不能为负数: {self.total_amount}",
                field="total_amount",
            )
        self.paid_at = _ensure_utc(self.paid_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.PAID

    def mark_paid(self, callback_no: Optional[str], *, now: Optional[datetime] = None) -> bool:
        """
        标记已支付

        返回 True 表示发生了状态变化；已支付时返回 False（幂等）。
        """
        if self.status == OrderStatus.PAID:
            return False
        if self.status != OrderStatus.PENDING:
            raise InvalidTransitionError(self.trade_no, self.status, OrderStatus.PAID)
        self.status = OrderStatus.PAID
        self.callback_no = callback_no
        self.paid_at = now or datetime.now(timezone.utc)
        self.updated_at = self.paid_at
        return True

    def mark_cancelled(self) -> None:
        """取消订单，仅允许待支付状态"""
        if self.status != OrderStatus.PENDING:
            raise InvalidTransitionError(self.trade_no, self.status, OrderStatus.CANCELLED)
        self.status = OrderStatus.CANCELLED
        self.updated_at = datetime.now(timezone.utc)

    def apply_handling_fee(self, *, fixed: Optional[int], percent: Optional[float]) -> int:
        """按支付配置计算手续费并写入 handling_amount，返回手续费（分）"""
        if not fixed and not percent:
            return self.handling_amount or 0
        fee = Decimal(self.total_amount) * Decimal(str(percent or 0)) / 100 + Decimal(fixed or 0)
        self.handling_amount = int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return self.handling_amount

    @property
    def payable_amount(self) -> int:
        return self.total_amount + (self.handling_amount or 0)

    def snapshot(self) -> dict:
        """事件载荷使用的只读快照"""
        return {
            "id": self.id,
            "trade_no": self.trade_no,
            "user_id": self.user_id,
            "plan_id": self.plan_id,
            "period": self.period,
            "status": int(self.status),
            "total_amount": self.total_amount,
            "handling_amount": self.handling_amount,
            "payment_id": self.payment_id,
            "callback_no": self.callback_no,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }


@dataclass
class Plan:
    """订阅套餐，prices 按周期映射到分"""

    id: int
    name: str
    prices: dict[str, int] = field(default_factory=dict)
    trial: bool = False

    def price_for(self, period: str) -> Optional[int]:
        price = self.prices.get(period)
        return int(price) if price is not None else None


@dataclass
class DeviceTrialBinding:
    """试用设备绑定，(plan_id, device_id) 唯一"""

    plan_id: int
    device_id: str
    order_id: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
