"""Server-Sent Events adapter for :class:`~geo_order_service.events.subscriptions.Subscription`."""
from __future__ import annotations

import json
from typing import Any

from aiohttp import web

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SseConnection:
    """Writes subscription frames as ``data:`` lines and heartbeats as SSE comments."""

    def __init__(self, response: web.StreamResponse):
        self._response = response

    @classmethod
    async def prepare(cls, request: web.Request) -> "SseConnection":
        response = web.StreamResponse(status=200, headers=SSE_HEADERS)
        response.headers["X-Trace-Id"] = request.get("trace_id", "")
        response.headers["X-Request-Id"] = request.get("request_id", "")
        await response.prepare(request)
        await response.write(b": connected\n\n")
        return cls(response)

    @property
    def response(self) -> web.StreamResponse:
        return self._response

    async def send_frame(self, frame: dict[str, Any]) -> None:
        body = json.dumps(frame, default=str, separators=(",", ":"), ensure_ascii=False)
        await self._response.write(f"data: {body}\n\n".encode("utf-8"))

    async def send_heartbeat(self) -> None:
        await self._response.write(b": heartbeat\n\n")
