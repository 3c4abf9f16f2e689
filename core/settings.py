"""
Payment-related settings using pydantic-settings v2 with nested env keys.

This module is isolated so core.config.Settings stays focused on the app.
Environment keys use the ``PAYMENT__`` prefix, e.g.
``PAYMENT__TIMEOUTS__TOTAL=10`` or ``PAYMENT__TANGCHAO__USE_MOCK=true``.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 5.0
    read: float = 15.0
    write: float = 15.0
    total: float = 30.0


class WebhookSettings(BaseModel):
    # Optional IPs/CIDRs allowed to post callbacks, applied before any plugin-level list
    ip_allowlist: list[str] | None = None


class TangchaoSettings(BaseModel):
    gateway: str = "https://api.tangchaoshop.com/payment/gateway"
    mock_gateway: str = "http://localhost:7001/api/v1/guest/tangchao/mock/gateway"
    use_mock: bool = False
    verify_tls: bool = True


class PluginSettings(BaseModel):
    """Plugin-level switches, independent of any stored gateway configuration."""
    enabled: bool = True
    display_name: Optional[str] = None
    icon: Optional[str] = None


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    tangchao: TangchaoSettings = Field(default_factory=TangchaoSettings)

    # keyed by plugin code
    plugins: dict[str, PluginSettings] = Field(default_factory=dict)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    def plugin(self, code: str) -> PluginSettings:
        # 环境变量中的嵌套键会被转为小写，按插件编码忽略大小写匹配
        if code in self.plugins:
            return self.plugins[code]
        lowered = {k.lower(): v for k, v in self.plugins.items()}
        return lowered.get(code.lower()) or PluginSettings()


payment_settings = PaymentSettings()
