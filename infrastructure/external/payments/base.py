"""
Base gateway client implementing shared concerns: http, config parsing, logging.

Concrete providers subclass and implement provider-specific logic. One
instance is bound to one GatewayConfiguration for the duration of a call;
nothing is cached between calls.
"""
from __future__ import annotations

import ipaddress
from contextlib import asynccontextmanager
from typing import Any, ClassVar, Mapping, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from core.logging_config import get_logger
from core.settings import PluginSettings, payment_settings
from application.dtos.payments import (
    CallbackVerificationResult,
    GatewayConfiguration,
    PaymentRequest,
    PaymentResult,
)
from application.ports.payment_gateway import PaymentGateway
from domain.common.exceptions import PaymentConfigurationError


logger = get_logger(__name__)


def ip_allowed(remote_ip: Optional[str], allowlist: Optional[list[str]]) -> bool:
    """Empty allow-list means no check; entries may be IPs or CIDRs."""
    if not allowlist:
        return True
    if not remote_ip:
        return False
    try:
        ip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if ip in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


class BaseGatewayClient(PaymentGateway):
    code: ClassVar[str] = "base"
    fixed_notify_path: ClassVar[Optional[str]] = None
    default_display_name: ClassVar[str] = ""
    default_icon: ClassVar[Optional[str]] = None
    # Typed view of the stored configuration
    config_model: ClassVar[Type[BaseModel]]
    # Declarative admin form: field -> {label, type, required, default, description, options}
    form_fields: ClassVar[dict[str, dict[str, Any]]] = {}

    def __init__(
        self,
        config: GatewayConfiguration,
        *,
        plugin: Optional[PluginSettings] = None,
        timeouts: Optional[dict[str, float]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self.plugin = plugin or PluginSettings()
        self._timeouts_cfg = timeouts or payment_settings.timeouts.model_dump()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        """Plugin-level switch (independent of the stored ``enable`` flag)."""
        return self.plugin.enabled

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @property
    def deadline(self) -> float:
        return float(self._timeouts_cfg["total"])

    @asynccontextmanager
    async def client(self, *, verify: bool = True):
        async with httpx.AsyncClient(timeout=self.timeouts, transport=self._transport, verify=verify) as client:
            yield client

    def settings(self) -> BaseModel:
        """Parse the opaque configuration into this adapter's typed model."""
        try:
            return self.config_model.model_validate(self.config.values)
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            raise PaymentConfigurationError(
                f"Invalid gateway configuration: {', '.join(fields) or 'unknown field'}",
                method=self.code,
                field=fields[0] if fields else None,
            )

    def form(self) -> dict[str, dict[str, Any]]:
        return {name: dict(spec) for name, spec in self.form_fields.items()}

    async def pay(self, request: PaymentRequest) -> PaymentResult:  # type: ignore[override]
        raise NotImplementedError

    async def notify(self, params: Mapping[str, Any], *, remote_ip: Optional[str] = None) -> CallbackVerificationResult:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.code,
            **kwargs,
        )
