import asyncio
import time

import pytest

from forexsage.registry import AgentResponse, Registry
from forexsage.webhooks import WebhookConfig, WebhookService
from forexsage.worker import TaskQueueFull, TaskWorker
from tests.fakes import WEBHOOK, FakeAgent, RecordingSleep, WebhookSink, user_message


class RecordingAgent:
    name = "recorder"

    def __init__(self, delays):
        self.delays = delays
        self.log = []

    async def generate(self, messages):
        label = messages[-1]["content"]
        self.log.append(("start", label, time.monotonic()))
        await asyncio.sleep(self.delays[label])
        self.log.append(("end", label, time.monotonic()))
        return AgentResponse(text=f"done {label}")


def make_worker(*agents, sink=None, maxsize=100):
    sink = sink or WebhookSink()
    registry = Registry(agents={a.name: a for a in agents})
    return TaskWorker(registry, WebhookService(sink.client(), sleep=RecordingSleep()), maxsize=maxsize)


@pytest.mark.asyncio
async def test_tasks_are_processed_in_enqueue_order():
    agent = RecordingAgent({"first": 0.05, "second": 0.0, "third": 0.02})
    worker = make_worker(agent)

    for label in ("first", "second", "third"):
        worker.add_task("recorder", [user_message(label)])
    await worker.join()
    await worker.stop()

    assert [(event, label) for event, label, _ in agent.log] == [
        ("start", "first"),
        ("end", "first"),
        ("start", "second"),
        ("end", "second"),
        ("start", "third"),
        ("end", "third"),
    ]
    timestamps = [ts for _, _, ts in agent.log]
    assert timestamps == sorted(timestamps)


@pytest.mark.asyncio
async def test_completed_task_is_delivered_to_webhook():
    sink = WebhookSink()
    agent = FakeAgent(tool_results=[{"toolName": "get_live_rates", "result": {"success": True}}])
    worker = make_worker(agent, sink=sink)

    queue_id = worker.add_task(
        "forexSageAgent",
        [user_message("USD to NGN?")],
        task_id="task-1",
        context_id="ctx-1",
        webhook_config=WebhookConfig.from_dict(WEBHOOK),
        metadata={"channel": "telex"},
    )
    await worker.join()
    await worker.stop()

    assert agent.calls == [[{"role": "user", "content": "USD to NGN?"}]]
    [payload] = sink.payloads
    assert payload["jsonrpc"] == "2.0"
    assert payload["id"] == queue_id

    result = payload["result"]
    assert result["id"] == "task-1"
    assert result["contextId"] == "ctx-1"
    assert result["status"]["state"] == "completed"
    assert result["metadata"] == {"channel": "telex"}
    assert result["artifacts"][0]["name"] == "forexSageAgentResponse"
    assert result["artifacts"][0]["parts"][0]["text"] == agent.text
    assert result["artifacts"][1]["name"] == "ToolResults"
    assert result["artifacts"][1]["parts"][0]["kind"] == "data"
    assert [m["role"] for m in result["history"]] == ["user", "agent"]
    assert all(m["taskId"] == "task-1" for m in result["history"])


@pytest.mark.asyncio
async def test_failure_is_reported_and_worker_keeps_going():
    sink = WebhookSink()
    broken = FakeAgent(name="broken", error=RuntimeError("currencylayer is down"))
    healthy = FakeAgent(name="healthy")
    worker = make_worker(broken, healthy, sink=sink)
    config = WebhookConfig.from_dict(WEBHOOK)

    worker.add_task("broken", [user_message("a")], task_id="t-1", webhook_config=config)
    worker.add_task("healthy", [user_message("b")], task_id="t-2", webhook_config=config)
    await worker.join()
    await worker.stop()

    failed, completed = (p["result"] for p in sink.payloads)
    assert failed["id"] == "t-1"
    assert failed["status"]["state"] == "failed"
    assert failed["status"]["error"]["code"] == -32603
    assert failed["status"]["error"]["data"]["details"] == "currencylayer is down"
    assert completed["id"] == "t-2"
    assert completed["status"]["state"] == "completed"


@pytest.mark.asyncio
async def test_unknown_agent_fails_the_task():
    sink = WebhookSink()
    worker = make_worker(FakeAgent(), sink=sink)

    worker.add_task("nobody", [user_message("hi")], webhook_config=WebhookConfig.from_dict(WEBHOOK))
    await worker.join()
    await worker.stop()

    [payload] = sink.payloads
    assert payload["result"]["status"]["state"] == "failed"
    assert "nobody" in payload["result"]["status"]["error"]["data"]["details"]


@pytest.mark.asyncio
async def test_task_without_webhook_sends_nothing():
    sink = WebhookSink()
    agent = FakeAgent()
    worker = make_worker(agent, sink=sink)

    worker.add_task("forexSageAgent", [user_message("hi")])
    await worker.join()
    await worker.stop()

    assert len(agent.calls) == 1
    assert sink.requests == []


@pytest.mark.asyncio
async def test_full_queue_rejects_new_tasks():
    worker = make_worker(FakeAgent(), maxsize=1)

    worker.add_task("forexSageAgent", [user_message("one")])
    with pytest.raises(TaskQueueFull):
        worker.add_task("forexSageAgent", [user_message("two")])

    await worker.join()
    await worker.stop()


@pytest.mark.asyncio
async def test_queue_status():
    agent = FakeAgent(delay=0.05)
    worker = make_worker(agent)

    assert worker.get_queue_status() == {"queueLength": 0, "processing": False, "currentTaskIds": []}

    first = worker.add_task("forexSageAgent", [user_message("one")])
    worker.add_task("forexSageAgent", [user_message("two")])
    await asyncio.sleep(0.01)

    status = worker.get_queue_status()
    assert status["processing"] is True
    assert status["queueLength"] == 1
    assert status["currentTaskIds"] == [first]

    await worker.join()
    await worker.stop()
    assert worker.get_queue_status()["processing"] is False
