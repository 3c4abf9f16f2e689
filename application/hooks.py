"""
In-process hook/filter bus.

The bus is a plain instance built in the composition root and handed to the
services and gateway plugins that need it; nothing registers globally.

Two kinds of registrations:

* actions (``on``) react to an event; ``emit`` logs and skips a failing
  handler, ``emit_strict`` lets the first failure propagate so a handler can
  veto the operation.
* filters (``add_filter``) transform a value; ``apply_filters`` pipes the
  value through every handler in registration order.

Registering the same ``(name, owner)`` pair again replaces the earlier
handler in place. Handlers may be plain callables or coroutine functions.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.logging_config import get_logger


logger = get_logger(__name__)


# Well-known names
AVAILABLE_PAYMENT_METHODS = "available_payment_methods"
PAYMENT_NOTIFY_BEFORE = "payment.notify.before"
PAYMENT_NOTIFY_VERIFIED = "payment.notify.verified"
PAYMENT_NOTIFY_SUCCESS = "payment.notify.success"
PAYMENT_NOTIFY_FAILED = "payment.notify.failed"
PAYMENT_NOTIFY_AFTER = "payment.notify.after"
PAYMENT_SETTLED = "payment.settled"
ORDER_CANCELLED = "order.cancelled"


@dataclass
class _Registration:
    handler: Callable[..., Any]
    owner: Optional[str]


async def _call(handler: Callable[..., Any], *args: Any) -> Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookBus:
    def __init__(self) -> None:
        self._actions: dict[str, list[_Registration]] = {}
        self._filters: dict[str, list[_Registration]] = {}

    @staticmethod
    def _register(table: dict[str, list[_Registration]], name: str, handler: Callable[..., Any], owner: Optional[str]) -> None:
        entries = table.setdefault(name, [])
        if owner is not None:
            for entry in entries:
                if entry.owner == owner:
                    entry.handler = handler
                    return
        entries.append(_Registration(handler=handler, owner=owner))

    def on(self, event: str, handler: Callable[..., Any], *, owner: Optional[str] = None) -> None:
        self._register(self._actions, event, handler, owner)

    def add_filter(self, name: str, handler: Callable[..., Any], *, owner: Optional[str] = None) -> None:
        self._register(self._filters, name, handler, owner)

    def handlers(self, name: str) -> list[Callable[..., Any]]:
        return [r.handler for r in self._actions.get(name, [])]

    def filters(self, name: str) -> list[Callable[..., Any]]:
        return [r.handler for r in self._filters.get(name, [])]

    async def apply_filters(self, name: str, initial: Any, *context: Any) -> Any:
        value = initial
        for reg in list(self._filters.get(name, [])):
            value = await _call(reg.handler, value, *context)
        return value

    async def emit(self, event: str, *args: Any) -> None:
        """Run action handlers; a failing handler is logged and skipped."""
        for reg in list(self._actions.get(event, [])):
            try:
                await _call(reg.handler, *args)
            except Exception as exc:
                logger.error("hook_handler_failed", hook=event, owner=reg.owner, error=str(exc), exc_info=True)

    async def emit_strict(self, event: str, *args: Any) -> None:
        """Run action handlers; the first exception propagates (veto)."""
        for reg in list(self._actions.get(event, [])):
            await _call(reg.handler, *args)
