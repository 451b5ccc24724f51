import asyncio

import pytest

from forexsage.webhooks import (
    PendingRequestTimeout,
    WebhookConfig,
    WebhookService,
    backoff_delay,
)
from tests.fakes import WEBHOOK, RecordingSleep, WebhookSink

PAYLOAD = {"jsonrpc": "2.0", "id": "task-1", "result": {"id": "task-1", "kind": "task"}}


def test_config_from_push_notification_config():
    config = WebhookConfig.from_dict(WEBHOOK)
    assert config.url == WEBHOOK["url"]
    assert config.headers() == {
        "Content-Type": "application/json",
        "Authorization": "Bearer secret-token",
    }


def test_config_without_bearer_scheme_sends_no_authorization():
    config = WebhookConfig.from_dict({"url": "https://hooks.example.com", "token": "t"})
    assert "Authorization" not in config.headers()

    config = WebhookConfig.from_dict({"url": "https://hooks.example.com", "authentication": {"schemes": ["Bearer"]}})
    assert "Authorization" not in config.headers()


def test_config_requires_url():
    with pytest.raises(ValueError):
        WebhookConfig.from_dict({"token": "t"})


def test_backoff_is_exponential_and_capped():
    assert [backoff_delay(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    sink = WebhookSink(statuses=[500] * 10)
    sleep = RecordingSleep()
    service = WebhookService(sink.client(), sleep=sleep)

    delivered = await service.send_webhook(WebhookConfig.from_dict(WEBHOOK), PAYLOAD, max_retries=3)

    assert delivered is False
    assert len(sink.requests) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_succeeds_after_two_failures():
    sink = WebhookSink(statuses=[503, 500, 200])
    sleep = RecordingSleep()
    service = WebhookService(sink.client(), sleep=sleep)

    delivered = await service.send_webhook(WebhookConfig.from_dict(WEBHOOK), PAYLOAD)

    assert delivered is True
    assert len(sink.requests) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_network_errors_are_retried_like_bad_statuses():
    sink = WebhookSink(errors=1)
    service = WebhookService(sink.client(), sleep=RecordingSleep())

    assert await service.send_webhook(WebhookConfig.from_dict(WEBHOOK), PAYLOAD) is True
    assert len(sink.requests) == 2


@pytest.mark.asyncio
async def test_every_attempt_sends_the_same_payload():
    sink = WebhookSink(statuses=[500, 500, 200])
    service = WebhookService(sink.client(), sleep=RecordingSleep())

    await service.send_webhook(WebhookConfig.from_dict(WEBHOOK), PAYLOAD)

    bodies = {r.content for r in sink.requests}
    assert len(bodies) == 1
    assert sink.payloads[0] == PAYLOAD
    assert all(r.headers["Authorization"] == "Bearer secret-token" for r in sink.requests)
    assert all(r.method == "POST" for r in sink.requests)


@pytest.mark.asyncio
async def test_resolve_unknown_request_is_a_no_op():
    service = WebhookService(WebhookSink().client())
    assert service.resolve_pending_request("never-registered", {"x": 1}) is False
    assert service.reject_pending_request("never-registered", RuntimeError("x")) is False
    assert service.pending_request_count() == 0


@pytest.mark.asyncio
async def test_pending_request_settles_once():
    service = WebhookService(WebhookSink().client())
    resolved, rejected = [], []

    service.register_pending_request("req-1", resolved.append, rejected.append, timeout=5)
    assert service.pending_request_count() == 1

    assert service.resolve_pending_request("req-1", {"state": "completed"}) is True
    assert service.resolve_pending_request("req-1", {"state": "completed"}) is False
    assert service.reject_pending_request("req-1", RuntimeError("late")) is False

    assert resolved == [{"state": "completed"}]
    assert rejected == []
    assert service.pending_request_count() == 0


@pytest.mark.asyncio
async def test_pending_request_times_out():
    service = WebhookService(WebhookSink().client())
    resolved, rejected = [], []

    service.register_pending_request("req-1", resolved.append, rejected.append, timeout=0.01)
    await asyncio.sleep(0.05)

    assert resolved == []
    assert len(rejected) == 1
    assert isinstance(rejected[0], PendingRequestTimeout)
    assert service.pending_request_count() == 0
    assert service.resolve_pending_request("req-1", {}) is False


@pytest.mark.asyncio
async def test_wait_for_webhook_returns_resolved_result():
    service = WebhookService(WebhookSink().client())

    waiter = asyncio.create_task(service.wait_for_webhook("req-9", timeout=1))
    await asyncio.sleep(0)
    assert service.resolve_pending_request("req-9", {"id": "task-9"}) is True

    assert await waiter == {"id": "task-9"}


@pytest.mark.asyncio
async def test_wait_for_webhook_raises_on_timeout():
    service = WebhookService(WebhookSink().client())
    with pytest.raises(PendingRequestTimeout):
        await service.wait_for_webhook("req-10", timeout=0.01)
