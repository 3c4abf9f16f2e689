"""
支付配置实体 - 网关配置的存储形态
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from domain.common.exceptions import PaymentConfigurationError


@dataclass
class PaymentConfigRecord:
    """
    支付配置记录

    config 在存储中可能是 JSON 对象，也可能是 JSON 字符串，两种都接受。
    """

    id: Optional[int]
    name: str
    method: str  # 与支付方式描述符的 name 对应
    public_id: str  # 回调地址中使用的 uuid
    config: Union[dict, str, None] = field(default_factory=dict)
    enable: bool = False
    icon: Optional[str] = None
    notify_domain: Optional[str] = None
    handling_fee_fixed: Optional[int] = None
    handling_fee_percent: Optional[float] = None
    sort: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def config_dict(self) -> dict[str, Any]:
        """解析 config 字段为字典"""
        raw = self.config
        if raw is None or raw == "":
            return {}
        if isinstance(raw, dict):
            return dict(raw)
        if isinstance(raw, str):
            try:
                parsed = json.loads(raw)
            except ValueError:
                raise PaymentConfigurationError(
                    "Stored payment configuration is not valid JSON", method=self.method
                )
            if isinstance(parsed, dict):
                return parsed
        raise PaymentConfigurationError(
            "Stored payment configuration must be a JSON object", method=self.method
        )
