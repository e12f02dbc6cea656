"""Tests for SSE framing, connection lifecycle and both stream generators."""

import asyncio
import json

import pytest

from services.sse import ConnectionState, SSEConnection, event_stream, format_sse, polling_stream
from services.task_events import TaskEventBroadcaster, TaskEventType


def decode(chunk: str) -> dict:
    assert chunk.startswith("data: ")
    assert chunk.endswith("\n\n")
    return json.loads(chunk[len("data: "):])


async def next_message(stream, timeout: float = 1.0) -> dict:
    return decode(await asyncio.wait_for(stream.__anext__(), timeout))


class TestFormat:
    def test_single_data_line(self):
        chunk = format_sse({"type": "ping", "timestamp": 1})
        assert chunk == 'data: {"type":"ping","timestamp":1}\n\n'


class TestSSEConnection:
    def test_close_runs_cleanups_once_in_reverse_order(self, fake_request):
        calls = []
        connection = SSEConnection(fake_request, "test")
        connection.on_close(lambda: calls.append("first"))
        connection.on_close(lambda: calls.append("second"))
        connection.begin()

        connection.close()
        connection.close()

        assert calls == ["second", "first"]
        assert connection.state == ConnectionState.CLOSED

    def test_failing_cleanup_does_not_stop_others(self, fake_request):
        calls = []

        def broken():
            raise RuntimeError("already gone")

        connection = SSEConnection(fake_request, "test")
        connection.on_close(lambda: calls.append("ran"))
        connection.on_close(broken)
        connection.close()

        assert calls == ["ran"]

    async def test_closed_connection_reports_disconnected(self, fake_request):
        connection = SSEConnection(fake_request, "test")
        connection.begin()
        assert not await connection.is_disconnected()

        connection.close()
        assert await connection.is_disconnected()


class TestEventStream:
    async def test_connected_message_comes_first(self, fake_request):
        broadcaster = TaskEventBroadcaster()
        stream = event_stream(fake_request, broadcaster)

        message = await next_message(stream)
        assert message["type"] == "connected"
        assert message["message"] == "SSE connection established"
        assert isinstance(message["timestamp"], int)
        assert broadcaster.subscriber_count == 1

        await stream.aclose()

    async def test_published_event_is_forwarded(self, fake_request):
        broadcaster = TaskEventBroadcaster()
        stream = event_stream(fake_request, broadcaster)
        await next_message(stream)

        event = broadcaster.emit(TaskEventType.CREATED, task_id="abc")
        message = await next_message(stream)

        assert message == event.to_dict()
        assert message["type"] == "task_created"
        assert message["taskId"] == "abc"

        await stream.aclose()

    async def test_events_keep_publish_order(self, fake_request):
        broadcaster = TaskEventBroadcaster()
        stream = event_stream(fake_request, broadcaster)
        await next_message(stream)

        broadcaster.emit(TaskEventType.CREATED, task_id="t1")
        broadcaster.emit(TaskEventType.UPDATED, task_id="t1")
        broadcaster.emit(TaskEventType.DELETED, task_id="t1")

        types = [(await next_message(stream))["type"] for _ in range(3)]
        assert types == ["task_created", "task_updated", "task_deleted"]

        await stream.aclose()

    async def test_ping_sent_when_idle(self, fake_request):
        stream = event_stream(fake_request, TaskEventBroadcaster(), heartbeat_interval=0.05)
        await next_message(stream)

        message = await next_message(stream)
        assert message["type"] == "ping"
        assert isinstance(message["timestamp"], int)

        await stream.aclose()

    async def test_closing_stream_unsubscribes(self, fake_request):
        broadcaster = TaskEventBroadcaster()
        stream = event_stream(fake_request, broadcaster)
        await next_message(stream)

        await stream.aclose()
        assert broadcaster.subscriber_count == 0

        # Publishing after the client left must not fail
        broadcaster.emit(TaskEventType.CREATED, task_id="late")

    async def test_disconnect_ends_stream(self, fake_request):
        broadcaster = TaskEventBroadcaster()
        stream = event_stream(fake_request, broadcaster)
        await next_message(stream)

        fake_request.disconnected = True
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert broadcaster.subscriber_count == 0

    async def test_events_from_another_thread(self, fake_request):
        broadcaster = TaskEventBroadcaster()
        stream = event_stream(fake_request, broadcaster)
        await next_message(stream)

        await asyncio.to_thread(broadcaster.emit, TaskEventType.ASSIGNED, "t7")
        message = await next_message(stream)
        assert message["type"] == "task_assigned"
        assert message["taskId"] == "t7"

        await stream.aclose()


class TestPollingStream:
    async def test_initial_then_updates(self, fake_request):
        results = iter([[{"id": 1}], [{"id": 1}, {"id": 2}]])

        async def query():
            return next(results)

        stream = polling_stream(fake_request, query, interval=0.01,
                                update_type="status_update", key="users")

        first = await next_message(stream)
        assert first["type"] == "initial"
        assert first["users"] == [{"id": 1}]

        second = await next_message(stream)
        assert second["type"] == "status_update"
        assert second["users"] == [{"id": 1}, {"id": 2}]

        await stream.aclose()

    async def test_failed_query_is_skipped(self, fake_request):
        calls = []

        async def query():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database locked")
            return []

        stream = polling_stream(fake_request, query, interval=0.01,
                                update_type="message_update", key="messages")

        first = await next_message(stream)
        assert first == {"type": "initial", "messages": [], "timestamp": first["timestamp"]}
        assert len(calls) == 2

        second = await next_message(stream)
        assert second["type"] == "message_update"

        await stream.aclose()

    async def test_disconnect_stops_polling(self, fake_request):
        calls = []

        async def query():
            calls.append(1)
            return []

        stream = polling_stream(fake_request, query, interval=0.01,
                                update_type="status_update", key="users")
        await next_message(stream)

        fake_request.disconnected = True
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert len(calls) == 1
