"""
支付配置数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, String, DateTime, Text, JSON, Numeric, Index
)
from datetime import datetime, timezone

from .base import Base


class PaymentConfigModel(Base):
    """
    支付配置数据库模型

    config 列既可能保存 JSON 对象，也可能保存历史遗留的 JSON 字符串
    """
    __tablename__ = "payment_configs"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(64), unique=True, index=True, nullable=False, comment="回调地址使用的 uuid")
    name = Column(String(100), nullable=False, comment="显示名称")
    method = Column("payment", String(50), nullable=False, index=True, comment="支付方式（插件描述符名称）")
    icon = Column(String(255), nullable=True, comment="图标")
    config = Column(JSON, nullable=True, comment="网关配置（含密钥，勿记录日志）")
    notify_domain = Column(String(255), nullable=True, comment="自定义回调域名")
    handling_fee_fixed = Column(Integer, nullable=True, comment="固定手续费（分）")
    handling_fee_percent = Column(Numeric(precision=5, scale=2), nullable=True, comment="百分比手续费")
    enable = Column(Boolean, nullable=False, default=False, index=True, comment="是否启用")
    sort = Column(Integer, nullable=True, comment="排序")
    remarks = Column(Text, nullable=True, comment="备注")

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
        Index("ix_payment_configs_method_enable", "payment", "enable"),
    )

    def __repr__(self):
        return f"<PaymentConfigModel(id={self.id}, method='{self.method}', enable={self.enable})>"
