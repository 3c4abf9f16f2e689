import pytest

from application.hooks import HookBus


@pytest.mark.asyncio
async def test_filters_pipe_value_in_registration_order():
    bus = HookBus()
    bus.add_filter("methods", lambda value: value + ["a"])

    async def add_b(value):
        return value + ["b"]

    bus.add_filter("methods", add_b)

    assert await bus.apply_filters("methods", []) == ["a", "b"]


@pytest.mark.asyncio
async def test_same_owner_replaces_handler_in_place():
    bus = HookBus()
    bus.add_filter("methods", lambda value: value + ["first"], owner="plugin-a")
    bus.add_filter("methods", lambda value: value + ["other"], owner="plugin-b")
    bus.add_filter("methods", lambda value: value + ["replaced"], owner="plugin-a")

    assert await bus.apply_filters("methods", []) == ["replaced", "other"]
    assert len(bus.filters("methods")) == 2


@pytest.mark.asyncio
async def test_apply_filters_without_handlers_returns_initial():
    bus = HookBus()
    initial = {"x": 1}
    assert await bus.apply_filters("nothing", initial) is initial


@pytest.mark.asyncio
async def test_emit_logs_failure_and_continues():
    bus = HookBus()
    seen = []

    def broken(*args):
        raise RuntimeError("boom")

    async def recorder(*args):
        seen.append(args)

    bus.on("payment.settled", broken)
    bus.on("payment.settled", recorder)

    await bus.emit("payment.settled", "T1")
    assert seen == [("T1",)]


@pytest.mark.asyncio
async def test_emit_strict_propagates_first_failure():
    bus = HookBus()
    seen = []

    def veto(*args):
        raise PermissionError("blocked")

    bus.on("payment.notify.before", veto)
    bus.on("payment.notify.before", lambda *args: seen.append(args))

    with pytest.raises(PermissionError):
        await bus.emit_strict("payment.notify.before", "TangchaoPay")
    assert seen == []
