"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
An adapter instance is bound to one GatewayConfiguration for one call.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CallbackVerificationResult,
    GatewayConfiguration,
    PaymentRequest,
    PaymentResult,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    ``form`` is pure and never raises. ``notify`` never raises for malformed
    or forged input; it only raises on configuration errors.
    """

    code: str
    fixed_notify_path: Optional[str]
    config: GatewayConfiguration

    def form(self) -> dict[str, dict[str, Any]]: ...

    async def pay(self, request: PaymentRequest) -> PaymentResult: ...

    async def notify(self, params: Mapping[str, Any], *, remote_ip: Optional[str] = None) -> CallbackVerificationResult: ...


@runtime_checkable
class GatewayPluginPort(Protocol):
    """Registry entry: knows its plugin code and binds adapters to a configuration."""

    code: str
    enabled: bool
    fixed_notify_path: Optional[str]

    def bind(self, config: GatewayConfiguration) -> PaymentGateway: ...
