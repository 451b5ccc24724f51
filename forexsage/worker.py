# worker.py
#
# In-process task queue for non-blocking A2A requests.
#
# Tasks go into a bounded asyncio.Queue and are drained by long-lived worker
# coroutines. With the default single worker, processing is strictly FIFO:
# task N+1 is not dequeued until task N has finished and its webhook delivery
# has completed or given up. Nothing is persisted; a restart drops the queue.

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from forexsage.envelopes import (
    completed_task,
    failed_task,
    new_id,
    rpc_result,
    to_chat_messages,
)
from forexsage.registry import Registry
from forexsage.webhooks import WebhookConfig, WebhookService

logger = logging.getLogger(__name__)


class TaskQueueFull(Exception):
    pass


@dataclass
class TaskRequest:
    agent_id: str
    messages: list[dict[str, Any]]
    context_id: str | None = None
    task_id: str | None = None
    webhook_config: WebhookConfig | None = None
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=new_id)
    timestamp: float = field(default_factory=time.time)


class TaskWorker:
    def __init__(
        self,
        registry: Registry,
        webhooks: WebhookService,
        maxsize: int = 100,
        workers: int = 1,
    ) -> None:
        self._registry = registry
        self._webhooks = webhooks
        self._queue: asyncio.Queue[TaskRequest] = asyncio.Queue(maxsize=maxsize)
        self._worker_count = workers
        self._workers: list[asyncio.Task] = []
        self._in_flight: dict[str, TaskRequest] = {}

    def add_task(
        self,
        agent_id: str,
        messages: list[dict[str, Any]],
        *,
        context_id: str | None = None,
        task_id: str | None = None,
        webhook_config: WebhookConfig | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        task = TaskRequest(
            agent_id=agent_id,
            messages=messages,
            context_id=context_id,
            task_id=task_id,
            webhook_config=webhook_config,
            metadata=metadata,
        )
        try:
            self._queue.put_nowait(task)
        except asyncio.QueueFull:
            raise TaskQueueFull(f"Task queue is full ({self._queue.maxsize} pending)") from None

        logger.info("Task %s added to queue. Queue size: %d", task.id, self._queue.qsize())
        self.start()
        return task.id

    def start(self) -> None:
        """Spawn the worker coroutines if they are not already running."""
        self._workers = [w for w in self._workers if not w.done()]
        loop = asyncio.get_running_loop()
        while len(self._workers) < self._worker_count:
            self._workers.append(
                loop.create_task(self._run(), name=f"forexsage-worker-{len(self._workers)}")
            )

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        for worker in self._workers:
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        self._workers = []

    async def join(self) -> None:
        """Wait until every queued task has been processed."""
        await self._queue.join()

    def get_queue_status(self) -> dict[str, Any]:
        return {
            "queueLength": self._queue.qsize(),
            "processing": bool(self._in_flight),
            "currentTaskIds": list(self._in_flight),
        }

    async def _run(self) -> None:
        while True:
            task = await self._queue.get()
            self._in_flight[task.id] = task
            try:
                await self.process_task(task)
            except Exception:
                # One bad task must not take the worker down with it.
                logger.exception("Unexpected error while processing task %s", task.id)
            finally:
                self._in_flight.pop(task.id, None)
                self._queue.task_done()

    async def process_task(self, task: TaskRequest) -> dict[str, Any]:
        task_id = task.task_id or new_id()
        context_id = task.context_id or new_id()
        logger.info("Processing task %s (task %s) for %s", task.id, task_id, task.agent_id)

        try:
            target = self._registry.resolve(task.agent_id)
            response = await target.generate(to_chat_messages(task.messages))
            result = completed_task(
                task_id,
                context_id,
                task.agent_id,
                task.messages,
                response.text or "",
                response.tool_results,
                task.metadata,
            )
        except Exception as exc:
            logger.exception("Task %s failed", task.id)
            result = failed_task(task_id, context_id, str(exc), task.messages, task.metadata)

        logger.info("Task %s finished: %s", task.id, result["status"]["state"])

        if task.webhook_config is not None:
            await self._webhooks.send_webhook(task.webhook_config, rpc_result(task.id, result))

        return result
