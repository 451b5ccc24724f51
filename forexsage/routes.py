# routes.py
"""
JSON-RPC 2.0 / A2A routes.

    POST /a2a/agent/{agent_id}          chat with an agent
    POST /a2a/workflow/{workflow_id}    run a workflow with params.triggerData
    POST /webhook/receiver              inbound webhook correlation
    GET  /webhook/health                pending requests + task queue status
    GET  /.well-known/agent.json        agent card

Agent and workflow requests are blocking unless params.configuration has
"blocking": false and a pushNotificationConfig. Non-blocking requests are
acknowledged with a "submitted" task and finished by the TaskWorker, which
POSTs the final task to the webhook. Blocking requests run under the sync
timeout; if it passes and a webhook is configured they are handed to the
TaskWorker too, otherwise the caller gets a timeout error (HTTP 408).
"""

from __future__ import annotations

import logging
from typing import Any

from a2a.types import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    JSONParseError,
    MethodNotFoundError,
)
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from forexsage.card import get_agent_card
from forexsage.envelopes import (
    build_history,
    completed_task,
    data_part,
    new_id,
    now_iso,
    rpc_error,
    rpc_result,
    submitted_task,
    to_chat_messages,
)
from forexsage.fallback import Deferred, RequestTimeout
from forexsage.registry import Runnable
from forexsage.webhooks import RemoteTaskError, WebhookConfig
from forexsage.worker import TaskQueueFull

logger = logging.getLogger(__name__)

ALLOWED_METHODS = {"message/send", "tasks/send", "workflow/execute"}


class RPCFailure(Exception):
    """Short-circuits a handler with a JSON-RPC error response."""

    def __init__(self, request_id: Any, error: Any, status_code: int) -> None:
        super().__init__(error.message)
        self.request_id = request_id
        self.error = error
        self.status_code = status_code

    def response(self) -> JSONResponse:
        return JSONResponse(rpc_error(self.request_id, self.error), status_code=self.status_code)


async def _read_rpc(request: Request) -> tuple[Any, dict[str, Any]]:
    try:
        body = await request.json()
    except ValueError:
        raise RPCFailure(None, JSONParseError(message="Parse error: body is not valid JSON"), 400) from None

    request_id = body.get("id") if isinstance(body, dict) else None
    if not isinstance(body, dict) or body.get("jsonrpc") != "2.0" or request_id in (None, ""):
        raise RPCFailure(
            request_id,
            InvalidRequestError(message='Invalid Request: jsonrpc must be "2.0" and id is required'),
            400,
        )

    method = body.get("method")
    if method is not None and method not in ALLOWED_METHODS:
        raise RPCFailure(request_id, MethodNotFoundError(message=f"Method '{method}' not found"), 404)

    params = body.get("params") or {}
    if not isinstance(params, dict):
        raise RPCFailure(request_id, InvalidParamsError(message="Invalid params: params must be an object"), 400)
    return request_id, params


def _messages_from_params(request_id: Any, params: dict[str, Any]) -> list[dict[str, Any]]:
    message, messages = params.get("message"), params.get("messages")
    if isinstance(message, dict):
        messages = [message]
    if not isinstance(messages, list) or not messages or not all(isinstance(m, dict) for m in messages):
        raise RPCFailure(
            request_id,
            InvalidParamsError(message="Invalid params: message or messages is required"),
            400,
        )
    for msg in messages:
        parts = msg.get("parts")
        if parts is not None and (not isinstance(parts, list) or not all(isinstance(p, dict) for p in parts)):
            raise RPCFailure(
                request_id,
                InvalidParamsError(message="Invalid params: message parts must be a list of objects"),
                400,
            )
    return messages


def _metadata_from_params(request_id: Any, params: dict[str, Any]) -> dict[str, Any]:
    metadata = params.get("metadata")
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise RPCFailure(request_id, InvalidParamsError(message="Invalid params: metadata must be an object"), 400)
    return metadata


def _webhook_config(request_id: Any, configuration: dict[str, Any]) -> WebhookConfig | None:
    raw = configuration.get("pushNotificationConfig")
    if raw is None:
        return None
    try:
        return WebhookConfig.from_dict(raw)
    except ValueError as e:
        raise RPCFailure(request_id, InvalidParamsError(message=f"Invalid params: {e}"), 400) from None


def _enqueue(
    request: Request,
    request_id: Any,
    target_id: str,
    messages: list[dict[str, Any]],
    task_id: str,
    context_id: str,
    webhook_config: WebhookConfig,
    metadata: dict[str, Any],
) -> JSONResponse:
    worker = request.app.state.services.worker
    try:
        worker.add_task(
            target_id,
            messages,
            context_id=context_id,
            task_id=task_id,
            webhook_config=webhook_config,
            metadata=metadata,
        )
    except TaskQueueFull as e:
        logger.warning("Rejecting task %s: %s", task_id, e)
        error = InternalError(message="Task queue is full; try again later", data={"details": str(e)})
        return JSONResponse(rpc_error(request_id, error), status_code=503)

    history = build_history(messages, task_id, context_id)
    return JSONResponse(rpc_result(request_id, submitted_task(task_id, context_id, history, metadata)))


async def _dispatch(
    request: Request,
    request_id: Any,
    target_id: str,
    target: Runnable,
    messages: list[dict[str, Any]],
    params: dict[str, Any],
    metadata: dict[str, Any],
) -> JSONResponse:
    services = request.app.state.services

    configuration = params.get("configuration") or {}
    if not isinstance(configuration, dict):
        raise RPCFailure(request_id, InvalidParamsError(message="Invalid params: configuration must be an object"), 400)

    blocking = configuration.get("blocking") is not False
    webhook_config = _webhook_config(request_id, configuration)

    task_id = params.get("taskId") or new_id()
    context_id = params.get("contextId") or new_id()

    if not blocking and webhook_config is not None:
        return _enqueue(request, request_id, target_id, messages, task_id, context_id, webhook_config, metadata)

    async def work() -> dict[str, Any]:
        response = await target.generate(to_chat_messages(messages))
        return completed_task(
            task_id,
            context_id,
            target_id,
            messages,
            response.text or "",
            response.tool_results,
            metadata,
        )

    try:
        outcome = await services.processor.execute_with_fallback(
            work,
            timeout=services.settings.sync_timeout_seconds,
            webhook_config=webhook_config,
            task_id=task_id,
            context_id=context_id,
        )
    except RequestTimeout as e:
        error = InternalError(
            message=str(e),
            data={"details": "The request took too long to process. Consider using non-blocking mode with webhooks."},
        )
        return JSONResponse(rpc_error(request_id, error), status_code=408)
    except Exception as e:
        logger.exception("%s failed for request %s", target_id, request_id)
        error = InternalError(message="Internal error", data={"details": str(e)})
        return JSONResponse(rpc_error(request_id, error), status_code=500)

    if isinstance(outcome, Deferred):
        return _enqueue(request, request_id, target_id, messages, task_id, context_id, webhook_config, metadata)

    return JSONResponse(rpc_result(request_id, outcome))


async def agent_route(request: Request) -> JSONResponse:
    registry = request.app.state.services.registry
    agent_id = request.path_params["agent_id"]
    try:
        request_id, params = await _read_rpc(request)

        agent = registry.get_agent(agent_id)
        if agent is None:
            raise RPCFailure(request_id, InvalidParamsError(message=f"Agent '{agent_id}' not found"), 404)

        messages = _messages_from_params(request_id, params)
        metadata = _metadata_from_params(request_id, params)
        return await _dispatch(request, request_id, agent_id, agent, messages, params, metadata)
    except RPCFailure as failure:
        return failure.response()


async def workflow_route(request: Request) -> JSONResponse:
    registry = request.app.state.services.registry
    workflow_id = request.path_params["workflow_id"]
    try:
        request_id, params = await _read_rpc(request)

        workflow = registry.get_workflow(workflow_id)
        if workflow is None:
            raise RPCFailure(request_id, InvalidParamsError(message=f"Workflow '{workflow_id}' not found"), 404)

        trigger_data = params.get("triggerData")
        extra_metadata = _metadata_from_params(request_id, params)
        problem = workflow.validate(trigger_data)
        if problem:
            error = InvalidParamsError(
                message=f"Invalid params: {problem}",
                data={"requiredFields": workflow.required_fields, "example": workflow.example},
            )
            raise RPCFailure(request_id, error, 400)

        # Queued and blocking runs both see the trigger data as one user message.
        messages = [
            {
                "kind": "message",
                "role": "user",
                "parts": [data_part(trigger_data)],
                "messageId": new_id(),
            }
        ]
        metadata = {
            "workflowId": workflow.name,
            "workflowName": workflow.title,
            **trigger_data,
            **extra_metadata,
        }
        return await _dispatch(request, request_id, workflow_id, workflow, messages, params, metadata)
    except RPCFailure as failure:
        return failure.response()


async def webhook_receiver(request: Request) -> JSONResponse:
    webhooks = request.app.state.services.webhooks
    try:
        body = await request.json()
    except ValueError:
        body = None

    if not isinstance(body, dict) or body.get("jsonrpc") != "2.0":
        return JSONResponse({"error": "Invalid JSON-RPC 2.0 format"}, status_code=400)

    request_id = body.get("id")
    error, result = body.get("error"), body.get("result")
    # Pending requests are keyed by string; JSON-RPC also allows numeric ids.
    pending_key = None if request_id is None else str(request_id)

    if error is not None:
        logger.warning("Webhook error for request %s: %s", request_id, error)
        if pending_key is not None:
            webhooks.reject_pending_request(pending_key, RemoteTaskError(error))
        return JSONResponse({"status": "error_received", "id": request_id, "timestamp": now_iso()})

    if result is not None:
        logger.info("Webhook result received for request %s", request_id)
        if pending_key is not None and webhooks.resolve_pending_request(pending_key, result):
            logger.info("Resolved pending request %s", request_id)
        return JSONResponse({"status": "received", "id": request_id, "timestamp": now_iso()})

    return JSONResponse({"status": "processed", "timestamp": now_iso()})


async def webhook_health(request: Request) -> JSONResponse:
    services = request.app.state.services
    return JSONResponse(
        {
            "status": "healthy",
            "timestamp": now_iso(),
            "pendingRequests": services.webhooks.pending_request_count(),
            "taskQueue": services.worker.get_queue_status(),
        }
    )


async def agent_card(request: Request) -> JSONResponse:
    card = get_agent_card(str(request.base_url))
    return JSONResponse(card.model_dump(mode="json", exclude_none=True, by_alias=True))


ROUTES = [
    Route("/a2a/agent/{agent_id}", agent_route, methods=["POST"]),
    Route("/a2a/workflow/{workflow_id}", workflow_route, methods=["POST"]),
    Route("/webhook/receiver", webhook_receiver, methods=["POST"]),
    Route("/webhook/health", webhook_health, methods=["GET"]),
    Route("/.well-known/agent.json", agent_card, methods=["GET"]),
]
