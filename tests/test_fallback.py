import asyncio

import pytest

from forexsage.fallback import AsyncProcessor, Deferred, RequestTimeout
from forexsage.webhooks import WebhookConfig, WebhookService
from tests.fakes import WEBHOOK, FakeAgent, RecordingSleep, WebhookSink


def make_processor(sink):
    return AsyncProcessor(WebhookService(sink.client(), sleep=RecordingSleep()))


@pytest.mark.asyncio
async def test_result_in_time_is_returned():
    sink = WebhookSink()
    processor = make_processor(sink)

    async def work():
        return {"id": "task-1", "status": {"state": "completed"}}

    result = await processor.execute_with_fallback(work, timeout=1)
    await processor.wait_background()

    assert result == {"id": "task-1", "status": {"state": "completed"}}
    assert sink.requests == []


@pytest.mark.asyncio
async def test_result_in_time_is_also_sent_to_webhook():
    sink = WebhookSink()
    processor = make_processor(sink)

    async def work():
        return {"id": "task-1", "status": {"state": "completed"}}

    result = await processor.execute_with_fallback(
        work,
        timeout=1,
        webhook_config=WebhookConfig.from_dict(WEBHOOK),
        task_id="task-1",
    )
    await processor.wait_background()

    assert result["id"] == "task-1"
    [payload] = sink.payloads
    assert payload == {"jsonrpc": "2.0", "id": "task-1", "result": result}


@pytest.mark.asyncio
async def test_timeout_without_webhook_raises():
    agent = FakeAgent(delay=1)
    processor = make_processor(WebhookSink())

    with pytest.raises(RequestTimeout, match="webhooks"):
        await processor.execute_with_fallback(lambda: agent.generate([]), timeout=0.02)

    await asyncio.sleep(0.01)
    assert agent.cancelled is True


@pytest.mark.asyncio
async def test_timeout_with_webhook_defers_and_cancels_work():
    agent = FakeAgent(delay=1)
    sink = WebhookSink()
    processor = make_processor(sink)

    outcome = await processor.execute_with_fallback(
        lambda: agent.generate([]),
        timeout=0.02,
        webhook_config=WebhookConfig.from_dict(WEBHOOK),
        task_id="task-7",
        context_id="ctx-7",
    )
    await asyncio.sleep(0.01)

    assert outcome == Deferred(task_id="task-7", context_id="ctx-7", state="submitted")
    assert agent.cancelled is True
    assert sink.requests == []


@pytest.mark.asyncio
async def test_fallback_disabled_raises_even_with_webhook():
    agent = FakeAgent(delay=1)
    processor = make_processor(WebhookSink())

    with pytest.raises(RequestTimeout):
        await processor.execute_with_fallback(
            lambda: agent.generate([]),
            timeout=0.02,
            webhook_config=WebhookConfig.from_dict(WEBHOOK),
            fallback_to_webhook=False,
        )


@pytest.mark.asyncio
async def test_other_errors_propagate_unchanged():
    agent = FakeAgent(error=ValueError("bad currency code"))
    processor = make_processor(WebhookSink())

    with pytest.raises(ValueError, match="bad currency code"):
        await processor.execute_with_fallback(lambda: agent.generate([]), timeout=1)
