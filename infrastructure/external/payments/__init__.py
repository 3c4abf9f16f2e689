"""
Static registry of gateway plugins.

The adapter set is closed: ``build_gateway_registry`` lists every known
adapter class and pairs it with its plugin-level settings. Each plugin
publishes its descriptor on the ``available_payment_methods`` filter when
booted against a HookBus.
"""
from __future__ import annotations

from typing import Optional, Type

import httpx

from core.settings import PaymentSettings, PluginSettings, payment_settings
from application.dtos.payments import GatewayConfiguration, PaymentMethodDescriptor
from application.hooks import AVAILABLE_PAYMENT_METHODS, HookBus
from infrastructure.external.payments.base import BaseGatewayClient, ip_allowed
from infrastructure.external.payments.tangchao_client import TangchaoPayClient


ADAPTERS: tuple[Type[BaseGatewayClient], ...] = (
    TangchaoPayClient,
)


class GatewayPlugin:
    """An adapter class plus its plugin-level switches."""

    def __init__(
        self,
        adapter_cls: Type[BaseGatewayClient],
        settings: Optional[PluginSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.adapter_cls = adapter_cls
        self.settings = settings or PluginSettings()
        self._transport = transport

    @property
    def code(self) -> str:
        return self.adapter_cls.code

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    @property
    def fixed_notify_path(self) -> Optional[str]:
        return self.adapter_cls.fixed_notify_path

    def descriptor(self) -> PaymentMethodDescriptor:
        return PaymentMethodDescriptor(
            name=self.code,
            display_name=self.settings.display_name or self.adapter_cls.default_display_name or self.code,
            icon=self.settings.icon or self.adapter_cls.default_icon,
            plugin_code=self.code,
            enabled=self.enabled,
        )

    def _publish(self, methods: dict[str, PaymentMethodDescriptor]) -> dict[str, PaymentMethodDescriptor]:
        if self.enabled:
            methods = dict(methods)
            methods[self.code] = self.descriptor()
        return methods

    def boot(self, hooks: HookBus) -> None:
        hooks.add_filter(AVAILABLE_PAYMENT_METHODS, self._publish, owner=self.code)

    def bind(self, config: GatewayConfiguration) -> BaseGatewayClient:
        return self.adapter_cls(config, plugin=self.settings, transport=self._transport)


def build_gateway_registry(
    settings: Optional[PaymentSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, GatewayPlugin]:
    settings = settings or payment_settings
    return {
        cls.code: GatewayPlugin(cls, settings.plugin(cls.code), transport=transport)
        for cls in ADAPTERS
    }


def boot_plugins(registry: dict[str, GatewayPlugin], hooks: HookBus) -> None:
    for plugin in registry.values():
        plugin.boot(hooks)


__all__ = ["GatewayPlugin", "build_gateway_registry", "boot_plugins", "ip_allowed", "ADAPTERS"]
