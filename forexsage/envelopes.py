# envelopes.py
#
# Builders for the JSON-RPC 2.0 / A2A shapes this service sends and receives.
# Task states always come from a2a.types.TaskState; only submitted, working,
# completed and failed are ever emitted.

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from a2a.types import TaskState

JSONRPC_VERSION = "2.0"


def new_id() -> str:
    return str(uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def text_part(text: str) -> dict[str, Any]:
    return {"kind": "text", "text": text}


def data_part(data: Any) -> dict[str, Any]:
    return {"kind": "data", "data": data}


def part_to_text(part: dict[str, Any]) -> str:
    kind = part.get("kind")
    if kind == "text":
        return part.get("text") or ""
    if kind == "data":
        return json.dumps(part.get("data"))
    return ""


def to_chat_messages(messages: list[dict[str, Any]]) -> list[dict[str, str]]:
    """
    A2A messages carry a list of parts; the agent wants one content string.
    Text parts are kept verbatim, data parts are JSON-encoded, anything else
    is dropped. Parts are joined with newlines.
    """
    return [
        {
            "role": msg.get("role", "user"),
            "content": "\n".join(part_to_text(p) for p in msg.get("parts") or []),
        }
        for msg in messages
    ]


def agent_message(text: str, task_id: str, context_id: str, role: str = "agent") -> dict[str, Any]:
    return {
        "kind": "message",
        "role": role,
        "parts": [text_part(text)],
        "messageId": new_id(),
        "taskId": task_id,
        "contextId": context_id,
    }


def build_history(
    messages: list[dict[str, Any]],
    task_id: str,
    context_id: str,
    reply: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    history = [
        {
            "kind": "message",
            "role": msg.get("role", "user"),
            "parts": msg.get("parts") or [],
            "messageId": msg.get("messageId") or new_id(),
            "taskId": task_id,
            "contextId": context_id,
        }
        for msg in messages
    ]
    if reply is not None:
        history.append(reply)
    return history


def build_artifacts(name: str, text: str, tool_results: list[Any] | None = None) -> list[dict[str, Any]]:
    artifacts = [
        {
            "artifactId": new_id(),
            "name": f"{name}Response",
            "parts": [text_part(text)],
        }
    ]
    if tool_results:
        artifacts.append(
            {
                "artifactId": new_id(),
                "name": "ToolResults",
                "parts": [data_part(result) for result in tool_results],
            }
        )
    return artifacts


def _task(
    task_id: str,
    context_id: str,
    status: dict[str, Any],
    metadata: dict[str, Any] | None,
    **extra: Any,
) -> dict[str, Any]:
    task = {"id": task_id, "contextId": context_id, "status": status}
    task.update({k: v for k, v in extra.items() if v is not None})
    task["kind"] = "task"
    task["metadata"] = metadata or {}
    return task


def submitted_task(
    task_id: str,
    context_id: str,
    history: list[dict[str, Any]],
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    status = {"state": TaskState.submitted.value, "timestamp": now_iso()}
    return _task(task_id, context_id, status, metadata, history=history)


def completed_task(
    task_id: str,
    context_id: str,
    name: str,
    messages: list[dict[str, Any]],
    text: str,
    tool_results: list[Any] | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    reply = agent_message(text, task_id, context_id)
    status = {
        "state": TaskState.completed.value,
        "timestamp": now_iso(),
        "message": reply,
    }
    return _task(
        task_id,
        context_id,
        status,
        metadata,
        artifacts=build_artifacts(name, text, tool_results),
        history=build_history(messages, task_id, context_id, reply),
    )


def failed_task(
    task_id: str,
    context_id: str,
    details: str,
    messages: list[dict[str, Any]] | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    status = {
        "state": TaskState.failed.value,
        "timestamp": now_iso(),
        "error": {
            "code": -32603,
            "message": "Internal error",
            "data": {"details": details},
        },
    }
    history = build_history(messages, task_id, context_id) if messages else None
    return _task(task_id, context_id, status, metadata, history=history)


def rpc_result(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def rpc_error(request_id: Any, error: Any) -> dict[str, Any]:
    # a2a.types error models (InvalidRequestError, InternalError, ...) carry
    # their JSON-RPC code as a default field value.
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": error.model_dump(mode="json", exclude_none=True),
    }
