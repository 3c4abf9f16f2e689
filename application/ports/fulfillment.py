"""
Fulfillment port: side effects applied when an order becomes PAID.

Runs inside the settlement transaction; raising rolls the settlement back.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.order.entity import Order


@runtime_checkable
class FulfillmentPort(Protocol):
    async def apply(self, order: Order) -> None: ...
