"""Tests for the task change broadcaster."""

import dataclasses

import pytest

from services.task_events import TaskEvent, TaskEventBroadcaster, TaskEventType
from services.tasks import event_type_for_update


@pytest.fixture
def broadcaster() -> TaskEventBroadcaster:
    return TaskEventBroadcaster()


class TestPublish:
    def test_publish_without_subscribers(self, broadcaster):
        broadcaster.publish(TaskEvent(type=TaskEventType.CREATED, task_id="t1"))
        assert broadcaster.subscriber_count == 0

    def test_every_subscriber_receives_event_in_order(self, broadcaster):
        received = []
        for n in range(3):
            broadcaster.subscribe(lambda event, n=n: received.append((n, event.task_id)))

        broadcaster.emit(TaskEventType.UPDATED, task_id="t1")
        assert received == [(0, "t1"), (1, "t1"), (2, "t1")]

    def test_failing_subscriber_does_not_block_others(self, broadcaster):
        received = []

        def broken(event):
            raise RuntimeError("client gone")

        broadcaster.subscribe(received.append)
        broadcaster.subscribe(broken)
        broadcaster.subscribe(received.append)

        event = broadcaster.emit(TaskEventType.DELETED, task_id="t9")
        assert received == [event, event]

    def test_subscriber_added_during_publish_misses_current_event(self, broadcaster):
        late = []

        def add_late(event):
            broadcaster.subscribe(late.append)

        broadcaster.subscribe(add_late)
        broadcaster.emit(TaskEventType.CREATED, task_id="t1")
        assert late == []

        broadcaster.emit(TaskEventType.CREATED, task_id="t2")
        assert [e.task_id for e in late] == ["t2"]

    def test_emit_from_inside_a_subscriber(self, broadcaster):
        received = []

        def follow_up(event):
            received.append(event.type)
            if event.type == TaskEventType.CREATED:
                broadcaster.emit(TaskEventType.ASSIGNED, task_id=event.task_id)

        broadcaster.subscribe(follow_up)
        broadcaster.emit(TaskEventType.CREATED, task_id="t1")

        assert received == [TaskEventType.CREATED, TaskEventType.ASSIGNED]
        assert broadcaster.subscriber_count == 1


class TestSubscriptions:
    def test_unsubscribed_callback_is_not_called(self, broadcaster):
        received = []
        subscription = broadcaster.subscribe(received.append)

        assert broadcaster.unsubscribe(subscription) is True
        broadcaster.emit(TaskEventType.CREATED)
        assert received == []

    def test_unsubscribe_twice(self, broadcaster):
        subscription = broadcaster.subscribe(lambda event: None)
        broadcaster.unsubscribe(subscription)
        assert broadcaster.unsubscribe(subscription) is False

    def test_same_callback_can_subscribe_twice(self, broadcaster):
        received = []
        first = broadcaster.subscribe(received.append)
        broadcaster.subscribe(received.append)
        assert broadcaster.subscriber_count == 2

        broadcaster.unsubscribe(first)
        broadcaster.emit(TaskEventType.CREATED)
        assert len(received) == 1


class TestTaskEvent:
    def test_wire_shape_omits_absent_fields(self):
        event = TaskEvent(type=TaskEventType.DELETED, task_id="abc", timestamp=1700000000000)
        assert event.to_dict() == {
            "type": "task_deleted",
            "timestamp": 1700000000000,
            "taskId": "abc",
        }

    def test_wire_shape_with_task_and_user(self):
        event = TaskEvent(type=TaskEventType.CREATED, task_id="abc",
                          task={"id": "abc"}, user_id="7")
        data = event.to_dict()
        assert data["task"] == {"id": "abc"}
        assert data["userId"] == "7"
        assert isinstance(data["timestamp"], int)

    def test_events_are_immutable(self):
        event = TaskEvent(type=TaskEventType.CREATED)
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.task_id = "other"

    def test_unknown_event_type_is_rejected(self, broadcaster):
        with pytest.raises(ValueError):
            broadcaster.emit("task_exploded")


class TestUpdateEventType:
    @pytest.mark.parametrize("field,expected", [
        ("status", TaskEventType.STATUS_CHANGED),
        ("priority", TaskEventType.PRIORITY_CHANGED),
        ("network_type", TaskEventType.NETWORK_TYPE_CHANGED),
        ("assignee_id", TaskEventType.ASSIGNED),
        ("title", TaskEventType.UPDATED),
    ])
    def test_single_field(self, field, expected):
        assert event_type_for_update({field}, {"isArchived": False}) == expected

    def test_several_fields(self):
        assert event_type_for_update({"status", "title"}, {"isArchived": False}) == TaskEventType.UPDATED

    def test_archiving_wins(self):
        changed = {"is_archived", "status"}
        assert event_type_for_update(changed, {"isArchived": True}) == TaskEventType.ARCHIVED

    def test_unarchiving_is_an_update(self):
        assert event_type_for_update({"is_archived"}, {"isArchived": False}) == TaskEventType.UPDATED
