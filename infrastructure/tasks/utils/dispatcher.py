"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from kombu.exceptions import OperationalError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.celery import celery_app


ORDER_HANDLE_TASK = "orders.handle"


class TaskDispatcher:
    """Internal facade used by application adapters to schedule tasks."""

    def send_order_handle(self, order_id: int, trade_no: str) -> None:
        """Queue fulfillment for a freshly paid order."""
        self.enqueue(ORDER_HANDLE_TASK, kwargs={"order_id": order_id, "trade_no": trade_no})

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.1, max=2.0),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name; broker hiccups are retried."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
