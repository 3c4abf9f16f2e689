"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import copy
import os
from dataclasses import dataclass, field
from typing import Optional

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# In-memory database so importing infrastructure never needs a server
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEVICE_ID_SECRET", "0123456789abcdef0123456789abcdef")
os.environ.setdefault("APP_URL", "https://pay.example.com")

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from application.hooks import HookBus
from application.services.payment_service import PaymentService
from application.services.settlement_service import OrderSettlementService
from core.settings import PaymentSettings
from domain.common.exceptions import TrialAlreadyUsedError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import DeviceTrialBinding, Order, OrderStatus, Plan
from domain.order.repository import OrderRepository, PlanRepository, TrialDeviceRepository
from domain.payment.entity import PaymentConfigRecord
from domain.payment.repository import PaymentConfigRepository
from infrastructure.external.payments import boot_plugins, build_gateway_registry
from infrastructure.external.payments.signing import canonical_string, sign
from infrastructure.external.payments.tangchao_client import CALLBACK_SIGN_FIELDS


# ---- in-memory persistence ----

@dataclass
class StoreState:
    orders: dict = field(default_factory=dict)  # trade_no -> Order
    plans: dict = field(default_factory=dict)  # id -> Plan
    bindings: dict = field(default_factory=dict)  # (plan_id, device_id) -> DeviceTrialBinding
    configs: dict = field(default_factory=dict)  # id -> PaymentConfigRecord
    sequence: int = 0

    def next_id(self) -> int:
        self.sequence += 1
        return self.sequence


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, state: StoreState):
        self.state = state

    async def create(self, order: Order) -> Order:
        order = copy.deepcopy(order)
        order.id = self.state.next_id()
        self.state.orders[order.trade_no] = order
        return copy.deepcopy(order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        for order in self.state.orders.values():
            if order.id == order_id:
                return copy.deepcopy(order)
        return None

    async def get_by_trade_no(self, trade_no: str, *, for_update: bool = False) -> Optional[Order]:
        order = self.state.orders.get(trade_no)
        return copy.deepcopy(order) if order else None

    async def list_pending_by_user(self, user_id: int):
        return [copy.deepcopy(o) for o in self.state.orders.values() if o.user_id == user_id and o.is_pending]

    async def list_by_user(self, user_id, status=None):
        orders = [o for o in self.state.orders.values() if o.user_id == user_id and (status is None or o.status == status)]
        return [copy.deepcopy(o) for o in sorted(orders, key=lambda o: o.id, reverse=True)]

    async def update(self, order: Order) -> Order:
        stored = self.state.orders[order.trade_no]
        stored.total_amount = order.total_amount
        stored.handling_amount = order.handling_amount
        stored.balance_amount = order.balance_amount
        stored.payment_id = order.payment_id
        stored.device_id = order.device_id
        return copy.deepcopy(stored)

    async def compare_and_set_status(self, order_id, expected, target, *, callback_no=None, paid_at=None) -> bool:
        for order in self.state.orders.values():
            if order.id == order_id:
                if order.status != expected:
                    return False
                order.status = OrderStatus(target)
                if target == OrderStatus.PAID:
                    order.callback_no = callback_no
                    order.paid_at = paid_at
                return True
        return False


class InMemoryPlanRepository(PlanRepository):
    def __init__(self, state: StoreState):
        self.state = state

    async def get_by_id(self, plan_id: int) -> Optional[Plan]:
        plan = self.state.plans.get(plan_id)
        return copy.deepcopy(plan) if plan else None


class InMemoryTrialDeviceRepository(TrialDeviceRepository):
    def __init__(self, state: StoreState):
        self.state = state

    async def get(self, plan_id: int, device_id: str) -> Optional[DeviceTrialBinding]:
        return self.state.bindings.get((plan_id, device_id))

    async def create(self, binding: DeviceTrialBinding) -> DeviceTrialBinding:
        key = (binding.plan_id, binding.device_id)
        if key in self.state.bindings:
            raise TrialAlreadyUsedError(binding.plan_id)
        binding.id = self.state.next_id()
        self.state.bindings[key] = binding
        return binding


class InMemoryPaymentConfigRepository(PaymentConfigRepository):
    def __init__(self, state: StoreState):
        self.state = state

    def _sorted(self):
        return sorted(self.state.configs.values(), key=lambda r: (r.sort or 0, r.id))

    async def get_by_id(self, config_id: int):
        return copy.deepcopy(self.state.configs.get(config_id))

    async def get_by_public_id(self, public_id: str):
        for record in self.state.configs.values():
            if record.public_id == public_id:
                return copy.deepcopy(record)
        return None

    async def first_enabled_by_method(self, method: str):
        for record in sorted(self.state.configs.values(), key=lambda r: r.id):
            if record.method == method and record.enable:
                return copy.deepcopy(record)
        return None

    async def list_all(self):
        return [copy.deepcopy(r) for r in self._sorted()]

    async def list_enabled(self):
        return [copy.deepcopy(r) for r in self._sorted() if r.enable]


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Works on a copy of the store; commit publishes it, rollback drops it."""

    def __init__(self, store: "InMemoryStore", *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.store = store

    async def __aenter__(self):
        self._state = copy.deepcopy(self.store.state)
        self.order_repository = InMemoryOrderRepository(self._state)
        self.plan_repository = InMemoryPlanRepository(self._state)
        self.trial_device_repository = InMemoryTrialDeviceRepository(self._state)
        self.payment_config_repository = InMemoryPaymentConfigRepository(self._state)
        return self

    async def commit(self) -> None:
        if not self._readonly:
            self.store.state = self._state
            self.store.commits += 1
        self._committed = True

    async def rollback(self) -> None:
        self.store.rollbacks += 1


class InMemoryStore:
    def __init__(self):
        self.state = StoreState()
        self.commits = 0
        self.rollbacks = 0

    def uow(self, *, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self, readonly=readonly)

    def add_plan(self, plan: Plan) -> Plan:
        self.state.plans[plan.id] = plan
        return plan

    def add_order(self, order: Order) -> Order:
        if order.id is None:
            order.id = self.state.next_id()
        self.state.orders[order.trade_no] = order
        return order

    def add_config(self, record: PaymentConfigRecord) -> PaymentConfigRecord:
        if record.id is None:
            record.id = self.state.next_id()
        self.state.configs[record.id] = record
        return record

    def order(self, trade_no: str) -> Order:
        return self.state.orders[trade_no]


class RecordingFulfillment:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.applied: list[str] = []

    async def apply(self, order: Order) -> None:
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.applied.append(order.trade_no)


class GatewayRecorder:
    """httpx.MockTransport handler that records requests and replays one JSON response."""

    def __init__(self, payload=None, status_code: int = 200):
        self.payload = payload if payload is not None else {"code": 0, "data": {"url": "https://cashier.example.com/pay/abc"}}
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ---- fixtures ----

@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def tangchao_values(private_pem) -> dict:
    return {
        "app_id": "app-100",
        "merchant_id": "m-200",
        "private_key": private_pem,
        "public_key": "unused",
        "pay_type": "1",
        "currency": "rmb",
    }


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fulfillment() -> RecordingFulfillment:
    return RecordingFulfillment()


@pytest.fixture
def hooks() -> HookBus:
    return HookBus()


@pytest.fixture
def gateway() -> GatewayRecorder:
    return GatewayRecorder()


@pytest.fixture
def plugin_settings() -> PaymentSettings:
    return PaymentSettings()


@pytest.fixture
def registry(plugin_settings, gateway, hooks):
    registry = build_gateway_registry(plugin_settings, transport=gateway.transport())
    boot_plugins(registry, hooks)
    return registry


@pytest.fixture
def settlement(store, fulfillment, hooks) -> OrderSettlementService:
    return OrderSettlementService(store.uow, fulfillment, hooks)


@pytest.fixture
def payment_service(store, hooks, registry, settlement) -> PaymentService:
    return PaymentService(
        store.uow,
        hooks,
        registry,
        settlement,
        app_url="https://pay.example.com",
        api_prefix="/api/v1",
        frontend_url="https://app.example.com",
    )


@pytest.fixture
def tangchao_config(store, tangchao_values) -> PaymentConfigRecord:
    return store.add_config(PaymentConfigRecord(
        id=None,
        name="唐朝支付",
        method="TangchaoPay",
        public_id="uuid-tangchao",
        config=dict(tangchao_values),
        enable=True,
    ))


@pytest.fixture
def pending_order(store) -> Order:
    return store.add_order(Order(
        id=None,
        trade_no="202401010000000000012345",
        user_id=7,
        plan_id=1,
        period="month_price",
        total_amount=1000,
    ))


@pytest.fixture
def sign_callback(rsa_key):
    """Build callback params signed the way the provider does."""

    def _sign(trade_no: str, amount: str = "10.00", *, invoice_no: str = "INV-1", success: str = "1", pay_type: str = "1") -> dict:
        params = {
            "amount": amount,
            "invoice_no": invoice_no,
            "order_no": trade_no,
            "pay_type": pay_type,
            "success": success,
        }
        params["encode_sign"] = sign(canonical_string(params, CALLBACK_SIGN_FIELDS), rsa_key)
        return params

    return _sign