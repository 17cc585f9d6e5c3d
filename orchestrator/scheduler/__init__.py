# =============================================================================
# AGENTFORGE - SCHEDULER PACKAGE
# =============================================================================
"""
Scheduler Package

Holds the tasks prepared for the next agent of each session.

Components:
    - PriorityTaskQueue: Heap-backed queue of AgentTasks

Usage:
    from orchestrator.scheduler import PriorityTaskQueue

    queue = PriorityTaskQueue()
    queue.enqueue(task)
    next_task = queue.dequeue()
"""

from orchestrator.scheduler.queue_manager import (
    PriorityTaskQueue,
    QueueEntry,
    QueueError,
)

__all__ = [
    "PriorityTaskQueue",
    "QueueEntry",
    "QueueError",
]
