"""Repository and unit-of-work behaviour against a real SQLite database."""
import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from application.hooks import HookBus, PAYMENT_SETTLED
from application.services.settlement_service import OrderSettlementService
from domain.common.exceptions import TrialAlreadyUsedError
from domain.order.entity import DeviceTrialBinding, Order, OrderStatus
from infrastructure.database import build_engine, create_tables
from infrastructure.models import PaymentConfigModel, PlanModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


class _Fulfillment:
    def __init__(self):
        self.applied = []

    async def apply(self, order):
        self.applied.append(order.trade_no)


async def _setup(url="sqlite+aiosqlite:///:memory:"):
    engine = build_engine(url)
    await create_tables(bind=engine)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def uow_factory(**kwargs):
        return SQLAlchemyUnitOfWork(session_factory=factory, **kwargs)

    async with uow_factory() as uow:
        uow.session.add(PlanModel(id=1, name="Pro", prices={"month_price": 1000}, trial=False))
        uow.session.add(PaymentConfigModel(
            public_id="uuid-off", name="off", method="TangchaoPay", config={"app_id": "a"}, enable=False,
        ))
        uow.session.add(PaymentConfigModel(
            public_id="uuid-on", name="on", method="TangchaoPay", config='{"app_id": "b"}', enable=True,
            handling_fee_percent=1.5,
        ))
    return engine, uow_factory


async def _create_order(uow_factory, trade_no="T-SQL-1") -> Order:
    async with uow_factory() as uow:
        return await uow.order_repository.create(Order(
            id=None, trade_no=trade_no, user_id=7, plan_id=1, period="month_price", total_amount=1000,
        ))


@pytest.mark.asyncio
async def test_compare_and_set_status_only_moves_from_expected():
    engine, uow_factory = await _setup()
    try:
        order = await _create_order(uow_factory)

        async with uow_factory() as uow:
            assert await uow.order_repository.compare_and_set_status(
                order.id, OrderStatus.PENDING, OrderStatus.PAID, callback_no="CB-1"
            ) is True
        async with uow_factory() as uow:
            assert await uow.order_repository.compare_and_set_status(
                order.id, OrderStatus.PENDING, OrderStatus.PAID, callback_no="CB-2"
            ) is False

        async with uow_factory(readonly=True) as uow:
            stored = await uow.order_repository.get_by_trade_no(order.trade_no)
        assert stored.status == OrderStatus.PAID
        assert stored.callback_no == "CB-1"
        assert stored.paid_at is not None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_settlement_against_database_is_idempotent():
    engine, uow_factory = await _setup()
    try:
        order = await _create_order(uow_factory)
        fulfillment = _Fulfillment()
        service = OrderSettlementService(uow_factory, fulfillment, HookBus())

        assert await service.settle(order.trade_no, "CB-1") is True
        assert await service.settle(order.trade_no, "CB-1") is False
        assert fulfillment.applied == [order.trade_no]

        async with uow_factory(readonly=True) as uow:
            assert (await uow.order_repository.get_by_id(order.id)).status == OrderStatus.PAID
            assert await uow.order_repository.list_pending_by_user(7) == []
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_settlement_settles_once(tmp_path):
    engine, uow_factory = await _setup(f"sqlite+aiosqlite:///{tmp_path / 'settle.db'}")
    try:
        order = await _create_order(uow_factory)
        fulfillment = _Fulfillment()
        hooks = HookBus()
        settled = []
        hooks.on(PAYMENT_SETTLED, settled.append)
        service = OrderSettlementService(uow_factory, fulfillment, hooks)

        results = await asyncio.gather(
            service.settle(order.trade_no, "CB-1"),
            service.settle(order.trade_no, "CB-2"),
        )

        assert sorted(results) == [False, True]
        assert fulfillment.applied == [order.trade_no]
        assert len(settled) == 1
        async with uow_factory(readonly=True) as uow:
            stored = await uow.order_repository.get_by_id(order.id)
        assert stored.status == OrderStatus.PAID
        assert stored.callback_no == settled[0].callback_no
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_list_by_user_filters_and_orders_newest_first():
    engine, uow_factory = await _setup()
    try:
        first = await _create_order(uow_factory, "T-SQL-A")
        await _create_order(uow_factory, "T-SQL-B")
        async with uow_factory() as uow:
            await uow.order_repository.compare_and_set_status(first.id, OrderStatus.PENDING, OrderStatus.CANCELLED)

        async with uow_factory(readonly=True) as uow:
            repo = uow.order_repository
            assert [o.trade_no for o in await repo.list_by_user(7)] == ["T-SQL-B", "T-SQL-A"]
            assert [o.trade_no for o in await repo.list_by_user(7, OrderStatus.CANCELLED)] == ["T-SQL-A"]
            assert await repo.list_by_user(8) == []
    finally:
        await engine.dispose()

@pytest.mark.asyncio
async def test_trial_binding_is_unique_per_plan_and_device():
    engine, uow_factory = await _setup()
    try:
        async with uow_factory() as uow:
            await uow.trial_device_repository.create(DeviceTrialBinding(plan_id=1, device_id="dev-1"))

        with pytest.raises(TrialAlreadyUsedError):
            async with uow_factory() as uow:
                await uow.trial_device_repository.create(DeviceTrialBinding(plan_id=1, device_id="dev-1"))

        async with uow_factory(readonly=True) as uow:
            assert await uow.trial_device_repository.get(1, "dev-1") is not None
            assert await uow.trial_device_repository.get(1, "dev-2") is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_payment_config_queries():
    engine, uow_factory = await _setup()
    try:
        async with uow_factory(readonly=True) as uow:
            repo = uow.payment_config_repository
            first = await repo.first_enabled_by_method("TangchaoPay")
            assert first.public_id == "uuid-on"
            assert first.config_dict() == {"app_id": "b"}
            assert first.handling_fee_percent == 1.5
            assert (await repo.get_by_public_id("uuid-off")).config_dict() == {"app_id": "a"}
            assert [r.public_id for r in await repo.list_enabled()] == ["uuid-on"]
            assert len(await repo.list_all()) == 2
    finally:
        await engine.dispose()
