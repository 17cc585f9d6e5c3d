"""Tests for the continuation task queue."""

from datetime import datetime, timedelta, timezone

import pytest

from agents.base.agent_interface import AgentTask, AgentType, TaskStatus
from orchestrator.scheduler import PriorityTaskQueue, QueueError


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _task(priority: int = 5, minutes: int = 0, workflow_id: str = "s1",
          agent_type: AgentType = AgentType.CODER) -> AgentTask:
    return AgentTask(
        agent_type=agent_type,
        priority=priority,
        workflow_id=workflow_id,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


class TestOrdering:
    def test_highest_priority_first(self):
        queue = PriorityTaskQueue()
        low, high, mid = _task(1), _task(9), _task(5)
        for task in (low, high, mid):
            queue.enqueue(task)

        assert [queue.dequeue() for _ in range(3)] == [high, mid, low]
        assert queue.dequeue() is None

    def test_oldest_first_within_priority(self):
        queue = PriorityTaskQueue()
        newer, older = _task(minutes=5), _task(minutes=1)
        queue.enqueue(newer)
        queue.enqueue(older)

        assert queue.dequeue() is older

    def test_insertion_order_breaks_ties(self):
        queue = PriorityTaskQueue()
        first, second = _task(), _task()
        queue.enqueue(first)
        queue.enqueue(second)

        assert queue.get_all() == [first, second]

    def test_peek_does_not_remove(self):
        queue = PriorityTaskQueue()
        task = _task()
        queue.enqueue(task)

        assert queue.peek() is task
        assert queue.size() == 1


class TestEnqueue:
    def test_sets_pending(self):
        queue = PriorityTaskQueue()
        task = _task()
        task.status = TaskStatus.RUNNING

        queue.enqueue(task)

        assert task.status == TaskStatus.PENDING
        assert queue.get(task.id) is task

    def test_duplicate_rejected(self):
        queue = PriorityTaskQueue()
        task = _task()
        queue.enqueue(task)

        with pytest.raises(QueueError, match="already queued"):
            queue.enqueue(task)

    def test_max_size(self):
        queue = PriorityTaskQueue(max_size=1)
        queue.enqueue(_task())

        with pytest.raises(QueueError, match="full"):
            queue.enqueue(_task())


class TestRemoval:
    def test_remove_skips_stale_heap_entries(self):
        queue = PriorityTaskQueue()
        high, low = _task(9), _task(1)
        queue.enqueue(high)
        queue.enqueue(low)

        assert queue.remove(high.id) is high
        assert queue.remove(high.id) is None
        assert queue.peek() is low
        assert queue.dequeue() is low
        assert queue.is_empty()

    def test_remove_by_workflow(self):
        queue = PriorityTaskQueue()
        queue.enqueue(_task(workflow_id="s1"))
        queue.enqueue(_task(workflow_id="s1", agent_type=AgentType.TEST))
        other = _task(workflow_id="s2")
        queue.enqueue(other)

        assert queue.remove_by_workflow("s1") == 2
        assert queue.get_all() == [other]
        assert queue.remove_by_workflow("missing") == 0

    def test_clear(self):
        queue = PriorityTaskQueue()
        queue.enqueue(_task())
        queue.enqueue(_task())

        assert queue.clear() == 2
        assert queue.dequeue() is None


class TestUpdatePriority:
    def test_reorders(self):
        queue = PriorityTaskQueue()
        first, second = _task(5), _task(5)
        queue.enqueue(first)
        queue.enqueue(second)

        assert queue.update_priority(second.id, 8)

        assert second.priority == 8
        assert queue.dequeue() is second
        assert queue.dequeue() is first
        assert queue.dequeue() is None

    def test_unknown_task(self):
        assert not PriorityTaskQueue().update_priority("missing", 1)
