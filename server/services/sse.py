"""Server-Sent Events delivery.

Two delivery patterns share one connection lifecycle:

- ``event_stream``: forwards task change events from the broadcaster as they
  are published, with a periodic ping to keep idle proxies from closing
  the connection.
- ``polling_stream``: re-runs a query on a fixed interval and writes the
  full result every tick, whether or not anything changed.

Both generators finish when the client disconnects. Starlette cancels the
streaming task on ``http.disconnect`` and the generators also check
``request.is_disconnected()`` between writes; either path ends in
``SSEConnection.close``, which runs each cleanup exactly once.
"""

import asyncio
import time
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, List

import orjson
from fastapi.responses import StreamingResponse

from core.logging import get_logger
from services.task_events import TaskEvent, TaskEventBroadcaster, now_ms

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # disable nginx response buffering
}


def format_sse(data: Any) -> str:
    """Encode one ``data:`` message."""
    return f"data: {orjson.dumps(data).decode()}\n\n"


def sse_response(stream: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)


class ConnectionState(str, Enum):
    OPEN = "open"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class SSEConnection:
    """Lifecycle of one open SSE response.

    Cleanups registered with ``on_close`` run once, in reverse order of
    registration, on the first call to ``close``.
    """

    def __init__(self, request: Any, name: str):
        self.request = request
        self.name = name
        self.state = ConnectionState.OPEN
        self._cleanups: List[Callable[[], Any]] = []
        self._opened_at = time.monotonic()

    def on_close(self, cleanup: Callable[[], Any]) -> None:
        self._cleanups.append(cleanup)

    def begin(self) -> None:
        self.state = ConnectionState.STREAMING
        logger.info("SSE connection opened", stream=self.name)

    async def is_disconnected(self) -> bool:
        if self.state != ConnectionState.STREAMING:
            return True
        return await self.request.is_disconnected()

    def close(self) -> None:
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSING
        while self._cleanups:
            cleanup = self._cleanups.pop()
            try:
                cleanup()
            except Exception as e:
                logger.warning("SSE cleanup failed", stream=self.name, error=str(e))
        self.state = ConnectionState.CLOSED
        logger.info("SSE connection closed", stream=self.name,
                    duration_seconds=round(time.monotonic() - self._opened_at, 1))


async def event_stream(request: Any, broadcaster: TaskEventBroadcaster,
                       heartbeat_interval: float = 30.0) -> AsyncIterator[str]:
    """Forward every published task event to one client."""
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[TaskEvent]" = asyncio.Queue()
    connection = SSEConnection(request, "task_events")

    def enqueue(event: TaskEvent) -> None:
        # publish() may run outside the event loop thread
        loop.call_soon_threadsafe(queue.put_nowait, event)

    subscription = broadcaster.subscribe(enqueue)
    connection.on_close(lambda: broadcaster.unsubscribe(subscription))
    connection.begin()

    try:
        yield format_sse({
            "type": "connected",
            "message": "SSE connection established",
            "timestamp": now_ms(),
        })

        next_ping = loop.time() + heartbeat_interval
        while not await connection.is_disconnected():
            timeout = max(0.0, next_ping - loop.time())
            try:
                event = await asyncio.wait_for(queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                yield format_sse({"type": "ping", "timestamp": now_ms()})
                next_ping = loop.time() + heartbeat_interval
                continue
            yield format_sse(event.to_dict())
    finally:
        connection.close()


async def polling_stream(request: Any, query: Callable[[], Awaitable[Any]],
                         interval: float, update_type: str, key: str,
                         name: str = "polling") -> AsyncIterator[str]:
    """Write ``query()`` immediately and then once per ``interval``.

    The first successful result is sent as ``initial``; later ones as
    ``update_type``. A failing query is logged and retried on the next tick.
    """
    connection = SSEConnection(request, name)
    connection.begin()
    message_type = "initial"

    try:
        while True:
            try:
                result = await query()
            except Exception as e:
                logger.error("SSE refresh query failed", stream=name, error=str(e))
            else:
                yield format_sse({"type": message_type, key: result, "timestamp": now_ms()})
                message_type = update_type

            await asyncio.sleep(interval)
            if await connection.is_disconnected():
                break
    finally:
        connection.close()
