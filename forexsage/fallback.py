# fallback.py
"""
Run blocking work under a deadline, with a webhook fallback.

`AsyncProcessor.execute_with_fallback` awaits `work()` for at most `timeout`
seconds. When the deadline passes the work is cancelled rather than left
running detached, and the caller gets either a `Deferred` marker (when the
request carried a push-notification config) or a `RequestTimeout`. On a
`Deferred` the caller is expected to put the task on the `TaskWorker` queue,
so the queue is the only place the long-running work lives.

A result that arrives in time is returned and, if a webhook is configured,
also delivered to it in the background.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from a2a.types import TaskState

from forexsage.envelopes import new_id, rpc_result
from forexsage.webhooks import WebhookConfig, WebhookService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestTimeout(Exception):
    pass


@dataclass(frozen=True)
class Deferred:
    task_id: str
    context_id: str
    state: str = TaskState.submitted.value


class AsyncProcessor:
    def __init__(self, webhooks: WebhookService) -> None:
        self._webhooks = webhooks
        self._background: set[asyncio.Task] = set()

    async def execute_with_fallback(
        self,
        work: Callable[[], Awaitable[T]],
        *,
        timeout: float = 55.0,
        webhook_config: WebhookConfig | None = None,
        fallback_to_webhook: bool = True,
        task_id: str | None = None,
        context_id: str | None = None,
    ) -> T | Deferred:
        task_id = task_id or new_id()
        context_id = context_id or new_id()

        job = asyncio.ensure_future(work())
        try:
            done, _ = await asyncio.wait({job}, timeout=timeout)
        except asyncio.CancelledError:
            job.cancel()
            raise

        if not done:
            job.cancel()
            logger.info("Task %s exceeded %ss; cancelled", task_id, timeout)
            if webhook_config is not None and fallback_to_webhook:
                logger.info("Falling back to webhook delivery for task %s", task_id)
                return Deferred(task_id, context_id)
            raise RequestTimeout(
                f"Request timeout after {timeout:g} seconds. "
                "Try using webhooks (non-blocking mode with a pushNotificationConfig) "
                "for longer processing."
            )

        result = job.result()

        if webhook_config is not None:
            self._deliver_in_background(webhook_config, rpc_result(task_id, result))

        return result

    def _deliver_in_background(self, config: WebhookConfig, payload: dict[str, Any]) -> None:
        delivery = asyncio.ensure_future(self._webhooks.send_webhook(config, payload))
        self._background.add(delivery)
        delivery.add_done_callback(self._on_delivery_done)

    def _on_delivery_done(self, delivery: asyncio.Task) -> None:
        self._background.discard(delivery)
        if delivery.cancelled():
            return
        exc = delivery.exception()
        if exc is not None:
            logger.error("Background webhook delivery failed: %r", exc)

    async def wait_background(self) -> None:
        """Wait for in-progress background webhook deliveries."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
