# app.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from starlette.applications import Starlette

from forexsage.agent import ForexSageAgent
from forexsage.config import Settings
from forexsage.currencylayer import CurrencyLayerClient
from forexsage.fallback import AsyncProcessor
from forexsage.registry import Registry
from forexsage.routes import ROUTES
from forexsage.webhooks import WebhookService
from forexsage.worker import TaskWorker
from forexsage.workflows import (
    CompleteForexAnalysisWorkflow,
    DailyForexReportWorkflow,
    MultiCurrencyComparisonWorkflow,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-lifetime services shared by every route."""

    settings: Settings
    registry: Registry
    webhooks: WebhookService
    worker: TaskWorker
    processor: AsyncProcessor


def build_registry(settings: Settings) -> Registry:
    agent = ForexSageAgent(model=settings.model, max_turns=settings.max_turns)
    client = CurrencyLayerClient(settings.currencylayer_api_key, settings.currencylayer_base_url)
    workflows = [
        MultiCurrencyComparisonWorkflow(client, agent),
        CompleteForexAnalysisWorkflow(client, agent),
        DailyForexReportWorkflow(client, agent),
    ]
    return Registry(agents={agent.name: agent}, workflows={w.name: w for w in workflows})


def create_app(
    settings: Settings | None = None,
    registry: Registry | None = None,
    http_client: httpx.AsyncClient | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Starlette:
    settings = settings or Settings.from_env()
    registry = registry or build_registry(settings)

    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.webhook_timeout_seconds)

    webhooks = WebhookService(
        http_client,
        sleep=sleep,
        default_max_retries=settings.webhook_max_retries,
        pending_timeout=settings.pending_request_timeout_seconds,
    )
    worker = TaskWorker(registry, webhooks, maxsize=settings.task_queue_size)
    services = Services(
        settings=settings,
        registry=registry,
        webhooks=webhooks,
        worker=worker,
        processor=AsyncProcessor(webhooks),
    )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        worker.start()
        logger.info(
            "ForexSage ready: agents=%s workflows=%s",
            registry.agent_names,
            registry.workflow_names,
        )
        yield
        status = worker.get_queue_status()
        if status["queueLength"]:
            logger.warning("Shutting down with %d queued tasks; they will be dropped", status["queueLength"])
        await worker.stop()
        await services.processor.wait_background()
        if owns_client:
            await http_client.aclose()

    app = Starlette(routes=ROUTES, lifespan=lifespan)
    app.state.services = services
    return app
