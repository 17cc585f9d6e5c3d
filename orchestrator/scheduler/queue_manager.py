# =============================================================================
# AGENTFORGE - QUEUE MANAGER
# =============================================================================
"""
Queue Manager

Holds AgentTasks waiting to be processed. The workflow engine enqueues
the task prepared for the next agent after each step and claims it when
the session's next message arrives.

Ordering:
    - Higher priority first
    - Older created_at first within the same priority
    - Insertion order as the final tie-breaker

Backed by a heap for ordering and a dict for O(1) lookups. Removal is
lazy: stale heap entries are skipped when popped. Not thread-safe; each
engine owns one queue.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from agents.base.agent_interface import AgentTask, TaskStatus


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class QueueError(Exception):
    """Base exception for queue errors."""
    pass


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(order=True)
class QueueEntry:
    """
    A heap entry.

    Priority is negated so the min-heap pops the highest priority first.
    """
    sort_priority: int
    created_at: datetime
    sequence: int
    task: AgentTask = field(compare=False)


# =============================================================================
# PRIORITY TASK QUEUE
# =============================================================================

class PriorityTaskQueue:
    """
    In-memory priority queue of AgentTasks.

    Usage:
        queue = PriorityTaskQueue()
        queue.enqueue(task)
        next_task = queue.dequeue()
    """

    def __init__(self, max_size: int = 0):
        """
        Initialize the queue.

        Args:
            max_size: Maximum number of queued tasks (0 = unbounded)
        """
        self.max_size = max_size
        self._heap: List[QueueEntry] = []
        self._entries: Dict[str, QueueEntry] = {}  # task_id -> live entry
        self._counter = itertools.count()

    def _push(self, task: AgentTask, sequence: int) -> QueueEntry:
        entry = QueueEntry(-task.priority, task.created_at, sequence, task)
        heapq.heappush(self._heap, entry)
        self._entries[task.id] = entry
        return entry

    def _prune(self):
        """Drop stale entries from the top of the heap."""
        while self._heap and self._entries.get(self._heap[0].task.id) is not self._heap[0]:
            heapq.heappop(self._heap)

    def enqueue(self, task: AgentTask) -> None:
        """
        Add a task.

        Raises:
            QueueError: If the task is already queued or the queue is full
        """
        if task.id in self._entries:
            raise QueueError(f"Task {task.id} is already queued")
        if self.max_size and len(self._entries) >= self.max_size:
            raise QueueError(f"Queue is full ({self.max_size} tasks)")

        task.status = TaskStatus.PENDING
        self._push(task, next(self._counter))
        logger.debug(f"Enqueued task {task.id} ({task.agent_type.value}, priority {task.priority})")

    def dequeue(self) -> Optional[AgentTask]:
        """Remove and return the highest priority task, or None."""
        self._prune()
        if not self._heap:
            return None
        entry = heapq.heappop(self._heap)
        del self._entries[entry.task.id]
        return entry.task

    def peek(self) -> Optional[AgentTask]:
        """Return the highest priority task without removing it."""
        self._prune()
        return self._heap[0].task if self._heap else None

    def size(self) -> int:
        return len(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    def get(self, task_id: str) -> Optional[AgentTask]:
        entry = self._entries.get(task_id)
        return entry.task if entry else None

    def remove(self, task_id: str) -> Optional[AgentTask]:
        """Remove a task by id. Returns it, or None if not queued."""
        entry = self._entries.pop(task_id, None)
        return entry.task if entry else None

    def remove_by_workflow(self, workflow_id: str) -> int:
        """Remove every task of a workflow. Returns the number removed."""
        task_ids = [
            task_id for task_id, entry in self._entries.items()
            if entry.task.workflow_id == workflow_id
        ]
        for task_id in task_ids:
            del self._entries[task_id]
        if task_ids:
            logger.debug(f"Removed {len(task_ids)} task(s) for workflow {workflow_id}")
        return len(task_ids)

    def update_priority(self, task_id: str, priority: int) -> bool:
        """Change a queued task's priority, keeping its insertion order."""
        entry = self._entries.get(task_id)
        if entry is None:
            return False
        entry.task.priority = priority
        self._push(entry.task, entry.sequence)
        return True

    def get_all(self) -> List[AgentTask]:
        """All queued tasks in dequeue order."""
        return [entry.task for entry in sorted(self._entries.values())]

    def clear(self) -> int:
        """Remove every task. Returns the number removed."""
        count = len(self._entries)
        self._heap.clear()
        self._entries.clear()
        return count
