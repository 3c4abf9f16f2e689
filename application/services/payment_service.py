"""
Application service orchestrating payment use-cases.

Resolves a payment method name to a gateway adapter bound to its stored
configuration, drives outbound payment creation and routes inbound callbacks
to the settlement service. Gateway plugins are provided by infrastructure and
injected from the composition root, keeping dependencies one-way.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlsplit

from application.dtos.payments import (
    FormField,
    GatewayConfiguration,
    NotifyOutcome,
    PaymentMethodDescriptor,
    PaymentRequest,
    PaymentResult,
    RejectedCallback,
)
from application.hooks import (
    AVAILABLE_PAYMENT_METHODS,
    PAYMENT_NOTIFY_AFTER,
    PAYMENT_NOTIFY_BEFORE,
    PAYMENT_NOTIFY_FAILED,
    PAYMENT_NOTIFY_SUCCESS,
    PAYMENT_NOTIFY_VERIFIED,
    HookBus,
)
from application.ports.payment_gateway import GatewayPluginPort, PaymentGateway
from application.services.settlement_service import OrderSettlementService
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    MethodDisabledError,
    OrderNotFoundError,
    PaymentConfigNotFoundError,
    PaymentConfigurationError,
    SettlementError,
    UnknownMethodError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentConfigRecord


logger = get_logger(__name__)


@dataclass
class BoundGateway:
    """An adapter bound to one configuration for one call."""

    method: str
    plugin: GatewayPluginPort
    gateway: PaymentGateway
    config: GatewayConfiguration
    record: Optional[PaymentConfigRecord] = None


def _to_configuration(record: Optional[PaymentConfigRecord]) -> GatewayConfiguration:
    if record is None:
        return GatewayConfiguration()
    return GatewayConfiguration(
        values=record.config_dict(),
        enable=bool(record.enable),
        id=record.id,
        public_id=record.public_id,
        notify_domain=record.notify_domain or None,
    )


def _normalize_options(options: Any) -> list[dict[str, Any]]:
    if not options:
        return []
    if isinstance(options, Mapping):
        return [{"label": label, "value": value} for value, label in options.items()]
    normalized = []
    for item in options:
        if isinstance(item, Mapping):
            normalized.append(dict(item))
        else:
            normalized.append({"label": str(item), "value": item})
    return normalized


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        hooks: HookBus,
        registry: Mapping[str, GatewayPluginPort],
        settlement: OrderSettlementService,
        *,
        app_url: Optional[str] = None,
        api_prefix: Optional[str] = None,
        frontend_url: Optional[str] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._hooks = hooks
        self._registry = registry
        self._settlement = settlement
        self._app_url = (app_url or settings.APP_URL).rstrip("/")
        self._api_prefix = api_prefix if api_prefix is not None else settings.API_PREFIX
        self._frontend_url = (frontend_url or settings.FRONTEND_URL or self._app_url).rstrip("/")

    # ---- method discovery ----

    async def available_methods(self) -> dict[str, PaymentMethodDescriptor]:
        """Rebuilt through the filter chain on every call."""
        methods = await self._hooks.apply_filters(AVAILABLE_PAYMENT_METHODS, {})
        return dict(methods or {})

    async def method_names(self) -> list[str]:
        return list((await self.available_methods()).keys())

    def _plugin_for(self, method: str, descriptors: Mapping[str, PaymentMethodDescriptor]) -> GatewayPluginPort:
        descriptor = descriptors.get(method)
        if descriptor is None:
            raise UnknownMethodError(method)
        for plugin in self._registry.values():
            if plugin.enabled and plugin.code == descriptor.plugin_code:
                return plugin
        raise UnknownMethodError(method)

    # ---- resolution ----

    async def _bind(self, method: str, record: Optional[PaymentConfigRecord], *, require_enabled: bool) -> BoundGateway:
        if record is not None:
            # 存储中的支付方式优先
            method = record.method
        config = _to_configuration(record)
        plugin = self._plugin_for(method, await self.available_methods())
        if require_enabled and not config.enable:
            raise MethodDisabledError(method, config_id=config.id)
        return BoundGateway(method=method, plugin=plugin, gateway=plugin.bind(config), config=config, record=record)

    async def resolve(
        self,
        method: str,
        *,
        config_id: Optional[int] = None,
        public_id: Optional[str] = None,
        require_enabled: bool = True,
    ) -> BoundGateway:
        record = None
        async with self._uow_factory(readonly=True) as uow:
            if config_id is not None:
                record = await uow.payment_config_repository.get_by_id(config_id)
            if record is None and public_id:
                record = await uow.payment_config_repository.get_by_public_id(public_id)
        return await self._bind(method, record, require_enabled=require_enabled)

    async def resolve_fixed(self, method: str) -> BoundGateway:
        """Gateways with a fixed callback path: first enabled configuration for the method."""
        async with self._uow_factory(readonly=True) as uow:
            record = await uow.payment_config_repository.first_enabled_by_method(method)
        if record is None:
            raise MethodDisabledError(method)
        return await self._bind(method, record, require_enabled=True)

    # ---- urls ----

    def build_notify_url(
        self,
        method: str,
        public_id: Optional[str],
        notify_domain: Optional[str] = None,
        fixed_path: Optional[str] = None,
    ) -> str:
        if fixed_path:
            url = f"{self._app_url}{self._api_prefix}{fixed_path}"
        else:
            if not public_id:
                raise PaymentConfigurationError("Payment configuration has no public id", method=method, field="public_id")
            url = f"{self._app_url}{self._api_prefix}/payment/notify/{method}/{public_id}"
        if notify_domain:
            domain = notify_domain.strip().rstrip("/")
            if "://" not in domain:
                domain = f"{urlsplit(self._app_url).scheme}://{domain}"
            url = domain + urlsplit(url).path
        return url

    def build_return_url(self, trade_no: str) -> str:
        return f"{self._frontend_url}/#/order/{trade_no}"

    # ---- use-cases ----

    async def form(self, method: str, config_id: Optional[int] = None) -> dict[str, dict[str, Any]]:
        bound = await self.resolve(method, config_id=config_id, require_enabled=False)
        if config_id is not None and bound.record is None:
            raise PaymentConfigNotFoundError(config_id)

        result: dict[str, dict[str, Any]] = {}
        for key, spec in bound.gateway.form().items():
            value = bound.config.values.get(key)
            if value is None:
                value = spec.get("default")
            options = spec.get("select_options")
            if options is None:
                options = spec.get("options")
            result[key] = FormField(
                type=spec.get("type") or "string",
                label=spec.get("label") or "",
                placeholder=spec.get("placeholder") or "",
                description=spec.get("description") or "",
                value="" if value is None else value,
                options=_normalize_options(options),
            ).model_dump()
        return result

    async def pay(self, method: str, config_id: Optional[int], request: PaymentRequest) -> PaymentResult:
        bound = await self.resolve(method, config_id=config_id)
        notify_url = self.build_notify_url(
            bound.method,
            bound.config.public_id,
            bound.config.notify_domain,
            bound.plugin.fixed_notify_path,
        )
        request = request.model_copy(update={
            "notify_url": notify_url,
            "return_url": self.build_return_url(request.trade_no),
        })
        logger.info("payment_create_request", method=bound.method, config_id=bound.config.id, trade_no=request.trade_no)
        result = await bound.gateway.pay(request)
        logger.info("payment_create_response", method=bound.method, trade_no=request.trade_no, type=result.type)
        return result

    async def notify(
        self,
        method: str,
        params: Mapping[str, Any],
        *,
        public_id: Optional[str] = None,
        remote_ip: Optional[str] = None,
    ) -> NotifyOutcome:
        """
        Authenticate a callback and settle the order it refers to.

        ``public_id=None`` means the fixed callback path of the method. Hooks
        ``before`` and ``verified`` may veto by raising; ``after`` always runs.
        """
        outcome: Optional[NotifyOutcome] = None
        try:
            await self._hooks.emit_strict(PAYMENT_NOTIFY_BEFORE, method, public_id, params)
            if public_id is None:
                bound = await self.resolve_fixed(method)
            else:
                bound = await self.resolve(method, public_id=public_id, require_enabled=False)
            if not bound.config.enable:
                raise MethodDisabledError(bound.method, config_id=bound.config.id)

            verification = await bound.gateway.notify(params, remote_ip=remote_ip)
            if isinstance(verification, RejectedCallback):
                logger.warning(
                    "payment_notify_rejected",
                    method=bound.method,
                    trade_no=params.get("order_no") or params.get("trade_no"),
                    reason=verification.reason,
                    remote_ip=remote_ip,
                )
                await self._hooks.emit(PAYMENT_NOTIFY_FAILED, bound.method, public_id, params)
                outcome = NotifyOutcome(status="rejected", method=bound.method, reason=verification.reason)
                return outcome

            await self._hooks.emit_strict(PAYMENT_NOTIFY_VERIFIED, verification)
            try:
                changed = await self._settlement.settle(verification.trade_no, verification.callback_no)
            except (OrderNotFoundError, SettlementError) as exc:
                logger.error("payment_notify_handle_error", method=bound.method, trade_no=verification.trade_no, error_type=exc.error_type)
                outcome = NotifyOutcome(
                    status="handle_error",
                    method=bound.method,
                    trade_no=verification.trade_no,
                    callback_no=verification.callback_no,
                    reason=exc.error_type,
                )
                return outcome

            if changed:
                await self._hooks.emit(PAYMENT_NOTIFY_SUCCESS, verification)
            logger.info("payment_notify_verified", method=bound.method, trade_no=verification.trade_no, settled=changed)
            outcome = NotifyOutcome(
                status="verified",
                method=bound.method,
                trade_no=verification.trade_no,
                callback_no=verification.callback_no,
                custom_result=verification.custom_result,
            )
            return outcome
        finally:
            await self._hooks.emit(PAYMENT_NOTIFY_AFTER, method, outcome)

    async def list_configs(self) -> list[dict[str, Any]]:
        """Admin listing: stored configurations with their computed callback URLs."""
        async with self._uow_factory(readonly=True) as uow:
            records = await uow.payment_config_repository.list_all()
        descriptors = await self.available_methods()

        items = []
        for record in records:
            try:
                plugin = self._plugin_for(record.method, descriptors)
                notify_url = self.build_notify_url(
                    record.method, record.public_id, record.notify_domain, plugin.fixed_notify_path
                )
            except (UnknownMethodError, PaymentConfigurationError):
                notify_url = None
            items.append({
                "id": record.id,
                "name": record.name,
                "payment": record.method,
                "icon": record.icon,
                "uuid": record.public_id,
                "enable": bool(record.enable),
                "notify_domain": record.notify_domain,
                "handling_fee_fixed": record.handling_fee_fixed,
                "handling_fee_percent": record.handling_fee_percent,
                "notify_url": notify_url,
            })
        return items
