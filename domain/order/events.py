"""
Order domain events.

Emitted on the hook bus after the owning transaction commits.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid


@dataclass
class OrderEvent:
    trade_no: str
    order: dict = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentSettled(OrderEvent):
    callback_no: str | None = None


@dataclass
class OrderCancelled(OrderEvent):
    pass
