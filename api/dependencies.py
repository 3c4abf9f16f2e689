"""
API依赖项 - 认证与服务装配

组合根：在这里把 HookBus、网关插件注册表、结算服务与各应用服务装配起来。
测试可通过 ``app.dependency_overrides[get_container]`` 注入替身。
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.hooks import HookBus
from application.ports.fulfillment import FulfillmentPort
from application.ports.payment_gateway import GatewayPluginPort
from application.services.device_token_service import DeviceTokenService
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentService
from application.services.settlement_service import OrderSettlementService
from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.adapters.fulfillment import CeleryFulfillmentAdapter
from infrastructure.external.payments import boot_plugins, build_gateway_registry
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)

http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


@dataclass
class CurrentUser:
    id: int
    is_admin: bool = False


@dataclass
class ServiceContainer:
    hooks: HookBus
    registry: dict[str, GatewayPluginPort]
    settlement: OrderSettlementService
    payments: PaymentService
    orders: OrderApplicationService
    device_tokens: DeviceTokenService


def build_container(
    uow_factory: Callable[..., AbstractUnitOfWork] = SQLAlchemyUnitOfWork,
    fulfillment: Optional[FulfillmentPort] = None,
    registry: Optional[dict[str, GatewayPluginPort]] = None,
    device_tokens: Optional[DeviceTokenService] = None,
) -> ServiceContainer:
    """装配一套完整的服务；插件在此处 boot，并向 HookBus 注册过滤器"""
    hooks = HookBus()
    registry = registry if registry is not None else build_gateway_registry()
    boot_plugins(registry, hooks)

    settlement = OrderSettlementService(uow_factory, fulfillment or CeleryFulfillmentAdapter(), hooks)
    payments = PaymentService(uow_factory, hooks, registry, settlement)
    device_tokens = device_tokens or DeviceTokenService()
    orders = OrderApplicationService(uow_factory, payments, settlement, device_tokens)
    logger.info("service_container_built", plugins=sorted(registry))
    return ServiceContainer(
        hooks=hooks,
        registry=registry,
        settlement=settlement,
        payments=payments,
        orders=orders,
        device_tokens=device_tokens,
    )


@lru_cache(maxsize=1)
def get_container() -> ServiceContainer:
    return build_container()


def get_payment_service(container: ServiceContainer = Depends(get_container)) -> PaymentService:
    return container.payments


def get_order_service(container: ServiceContainer = Depends(get_container)) -> OrderApplicationService:
    return container.orders


def decode_access_token(token: str) -> CurrentUser:
    """校验 JWT 并取出 sub（用户ID）与 is_admin 声明"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise UnauthorizedException("无效的认证凭据")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedException("无效的认证凭据")
    return CurrentUser(id=user_id, is_admin=bool(payload.get("is_admin", False)))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> CurrentUser:
    """获取当前登录用户"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("未提供认证凭据")
    return decode_access_token(credentials.credentials)


async def get_current_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_admin:
        raise ForbiddenException("需要管理员权限")
    return current_user
