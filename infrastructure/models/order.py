"""
订单、套餐与试用设备数据库模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, DateTime, JSON, Index, ForeignKey, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class PlanModel(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="套餐名称")
    prices = Column(JSON, nullable=False, default=dict, comment="周期 -> 价格（分）")
    trial = Column(Boolean, nullable=False, default=False, comment="是否为试用套餐")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)


class OrderModel(Base):
    """
    订单数据库模型

    status: 0 待支付 / 1 已支付 / 2 已取消 / 3 其他
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    trade_no = Column(String(64), unique=True, index=True, nullable=False, comment="订单号")
    user_id = Column(Integer, nullable=False, index=True, comment="用户ID")
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, comment="套餐ID")
    period = Column(String(32), nullable=False, comment="购买周期")

    # 金额（分）
    total_amount = Column(Integer, nullable=False, comment="订单金额")
    handling_amount = Column(Integer, nullable=True, comment="手续费")
    balance_amount = Column(Integer, nullable=True, comment="余额抵扣")

    payment_id = Column(Integer, nullable=True, comment="支付配置ID")
    callback_no = Column(String(255), nullable=True, comment="网关流水号")
    device_id = Column(String(255), nullable=True, comment="试用设备ID")

    status = Column(Integer, nullable=False, default=0, index=True, comment="订单状态")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, trade_no='{self.trade_no}', status={self.status})>"


class PlanTrialDeviceModel(Base):
    """试用设备绑定：同一设备对同一套餐仅能试用一次"""
    __tablename__ = "plan_trial_devices"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, comment="套餐ID")
    device_id = Column(String(255), nullable=False, comment="设备ID")
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, comment="订单ID")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        UniqueConstraint("plan_id", "device_id", name="uq_plan_trial_devices_plan_device"),
    )
