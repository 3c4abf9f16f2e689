import pytest

from application.hooks import ORDER_CANCELLED, PAYMENT_SETTLED
from application.services.settlement_service import OrderSettlementService
from domain.common.exceptions import InvalidTransitionError, OrderNotFoundError, SettlementError
from domain.order.entity import Order, OrderStatus
from domain.order.events import OrderCancelled, PaymentSettled


@pytest.mark.asyncio
async def test_settle_is_idempotent(store, hooks, settlement, pending_order, fulfillment):
    settled = []
    hooks.on(PAYMENT_SETTLED, settled.append)

    assert await settlement.settle(pending_order.trade_no, "CB-1") is True
    assert await settlement.settle(pending_order.trade_no, "CB-2") is False

    order = store.order(pending_order.trade_no)
    assert order.status == OrderStatus.PAID
    assert order.callback_no == "CB-1"
    assert order.paid_at is not None
    assert fulfillment.applied == [pending_order.trade_no]
    assert len(settled) == 1
    assert isinstance(settled[0], PaymentSettled)
    assert settled[0].order["status"] == int(OrderStatus.PAID)
    assert settled[0].callback_no == "CB-1"


class FlakyFulfillment:
    def __init__(self, failures: int):
        self.failures = failures
        self.applied = []

    async def apply(self, order):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("broker unavailable")
        self.applied.append(order.trade_no)


@pytest.mark.asyncio
async def test_fulfillment_failure_rolls_back_and_can_be_retried(store, hooks, pending_order):
    settled = []
    hooks.on(PAYMENT_SETTLED, settled.append)
    fulfillment = FlakyFulfillment(failures=1)
    service = OrderSettlementService(store.uow, fulfillment, hooks)

    with pytest.raises(SettlementError) as exc_info:
        await service.settle(pending_order.trade_no, "CB-1")
    assert exc_info.value.retryable is True
    assert exc_info.value.details["reason"] == "ConnectionError"
    assert store.order(pending_order.trade_no).status == OrderStatus.PENDING
    assert store.rollbacks == 1
    assert settled == []

    assert await service.settle(pending_order.trade_no, "CB-1") is True
    assert store.order(pending_order.trade_no).status == OrderStatus.PAID
    assert fulfillment.applied == [pending_order.trade_no]
    assert len(settled) == 1


@pytest.mark.asyncio
async def test_settle_unknown_order(settlement):
    with pytest.raises(OrderNotFoundError):
        await settlement.settle("missing", "CB")


@pytest.mark.asyncio
async def test_settle_cancelled_order_is_noop(store, settlement, fulfillment):
    store.add_order(Order(id=None, trade_no="T-C", user_id=1, plan_id=1, period="month_price",
                          total_amount=100, status=OrderStatus.CANCELLED))
    assert await settlement.settle("T-C", "CB") is False
    assert store.order("T-C").status == OrderStatus.CANCELLED
    assert fulfillment.applied == []


@pytest.mark.asyncio
async def test_cancel_pending_order(store, hooks, settlement, pending_order):
    cancelled = []
    hooks.on(ORDER_CANCELLED, cancelled.append)

    order = await settlement.cancel(pending_order.trade_no, user_id=pending_order.user_id)

    assert order.status == OrderStatus.CANCELLED
    assert store.order(pending_order.trade_no).status == OrderStatus.CANCELLED
    assert isinstance(cancelled[0], OrderCancelled)


@pytest.mark.asyncio
async def test_cancel_paid_order_is_invalid(store, settlement, pending_order):
    await settlement.settle(pending_order.trade_no, "CB")
    with pytest.raises(InvalidTransitionError):
        await settlement.cancel(pending_order.trade_no)


@pytest.mark.asyncio
async def test_cancel_someone_elses_order(settlement, pending_order):
    with pytest.raises(OrderNotFoundError):
        await settlement.cancel(pending_order.trade_no, user_id=pending_order.user_id + 1)
