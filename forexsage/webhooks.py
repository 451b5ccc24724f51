# webhooks.py
"""
Outbound webhook delivery and inbound webhook correlation.

`WebhookService.send_webhook` POSTs a JSON-RPC envelope to the caller's
push-notification URL, retrying with capped exponential backoff. It never
raises: a delivery that keeps failing is logged and reported as `False`.

The pending-request map backs the `/webhook/receiver` route: a caller
registers resolve/reject callbacks under a request id and the first of
(inbound webhook, explicit reject, timeout) settles it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 10.0


class PendingRequestTimeout(Exception):
    """Raised (via the reject callback) when no webhook arrives in time."""


class RemoteTaskError(Exception):
    """A webhook arrived carrying a JSON-RPC error instead of a result."""

    def __init__(self, error: Any) -> None:
        message = error.get("message") if isinstance(error, dict) else None
        super().__init__(message or str(error))
        self.error = error


@dataclass(frozen=True)
class WebhookConfig:
    url: str
    token: str | None = None
    schemes: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "WebhookConfig":
        """
        Parse an A2A pushNotificationConfig:
            {"url": ..., "token": ..., "authentication": {"schemes": ["Bearer"]}}
        """
        if not isinstance(raw, dict) or not isinstance(raw.get("url"), str) or not raw["url"]:
            raise ValueError("pushNotificationConfig.url is required")
        auth = raw.get("authentication") or {}
        return cls(
            url=raw["url"],
            token=raw.get("token") or None,
            schemes=tuple(auth.get("schemes") or ()),
        )

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if "Bearer" in self.schemes and self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt number `attempt` (1-indexed)."""
    return min(1.0 * 2 ** (attempt - 1), MAX_BACKOFF_SECONDS)


@dataclass
class _Pending:
    resolve: Callable[[Any], Any]
    reject: Callable[[Exception], Any]
    timer: asyncio.TimerHandle


class WebhookService:
    def __init__(
        self,
        client: httpx.AsyncClient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        default_max_retries: int = 3,
        pending_timeout: float = 60.0,
    ) -> None:
        self._client = client
        self._sleep = sleep
        self._default_max_retries = default_max_retries
        self._pending_timeout = pending_timeout
        self._pending: dict[str, _Pending] = {}

    async def send_webhook(
        self,
        config: WebhookConfig,
        payload: dict[str, Any],
        max_retries: int | None = None,
    ) -> bool:
        if max_retries is None:
            max_retries = self._default_max_retries

        # Serialized once; every retry sends the same bytes.
        body = json.dumps(payload, default=str).encode("utf-8")
        headers = config.headers()

        attempt = 0
        while attempt <= max_retries:
            logger.info("Sending webhook to %s (attempt %d)", config.url, attempt + 1)
            try:
                response = await self._client.post(config.url, content=body, headers=headers)
                if response.is_success:
                    logger.info("Webhook delivered to %s", config.url)
                    return True
                logger.warning("Webhook to %s failed with status %d", config.url, response.status_code)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                logger.warning("Webhook attempt %d to %s failed: %r", attempt + 1, config.url, exc)

            attempt += 1
            if attempt <= max_retries:
                await self._sleep(backoff_delay(attempt))

        logger.error("Webhook to %s failed after %d attempts", config.url, attempt)
        return False

    # ------------------------------------------------------------------
    # Pending-request correlation
    # ------------------------------------------------------------------

    def register_pending_request(
        self,
        request_id: str,
        resolve: Callable[[Any], Any],
        reject: Callable[[Exception], Any],
        timeout: float | None = None,
    ) -> None:
        if timeout is None:
            timeout = self._pending_timeout

        previous = self._pending.pop(request_id, None)
        if previous is not None:
            previous.timer.cancel()
            logger.warning("Pending request %s re-registered; dropping the old entry", request_id)

        loop = asyncio.get_running_loop()
        timer = loop.call_later(timeout, self._expire, request_id, timeout)
        self._pending[request_id] = _Pending(resolve, reject, timer)

    def _expire(self, request_id: str, timeout: float) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        logger.warning("Pending request %s timed out after %ss", request_id, timeout)
        pending.reject(PendingRequestTimeout(f"Request {request_id} timed out after {timeout}s"))

    def resolve_pending_request(self, request_id: str, result: Any) -> bool:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return False
        pending.timer.cancel()
        pending.resolve(result)
        return True

    def reject_pending_request(self, request_id: str, error: Exception) -> bool:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return False
        pending.timer.cancel()
        pending.reject(error)
        return True

    def pending_request_count(self) -> int:
        return len(self._pending)

    async def wait_for_webhook(self, request_id: str, timeout: float | None = None) -> Any:
        """Block until the receiver route settles `request_id`."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def resolve(result: Any) -> None:
            if not future.done():
                future.set_result(result)

        def reject(error: Exception) -> None:
            if not future.done():
                future.set_exception(error)

        self.register_pending_request(request_id, resolve, reject, timeout)
        return await future
