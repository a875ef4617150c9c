"""Module layer — Per-module priority task queue.

Work handed to a running module (an immediate poll, a one-off lookup, any
custom message) is queued as a :class:`ModuleTask` and drained by the module
itself, highest priority first and, within one priority, oldest first.

The queue lives in memory only.  Tasks still queued when the module stops
are dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from media_collector.exceptions import TaskQueueFullError


class TaskPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


@dataclass(frozen=True)
class ModuleTask:
    """One unit of work for a module.

    ``name`` selects what the module does with it; ``payload`` carries the
    arguments, if any.
    """

    name: str
    payload: Any = None
    priority: TaskPriority = TaskPriority.NORMAL
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)


class TaskQueue:
    """asyncio priority queue of :class:`ModuleTask` for one module.

    Args:
        name:    Owning module's name (used in errors).
        maxsize: Maximum queued tasks; 0 means unbounded.
    """

    def __init__(self, name: str, maxsize: int = 0) -> None:
        if maxsize < 0:
            raise ValueError(f"maxsize must be >= 0, got {maxsize}")
        self.name = name
        self.maxsize = maxsize
        # Entries are (-priority, sequence, task); the sequence keeps equal
        # priorities in arrival order and tasks themselves are never compared.
        self._queue: asyncio.PriorityQueue[tuple[int, int, ModuleTask]] = asyncio.PriorityQueue(
            maxsize
        )
        self._sequence = itertools.count()
        self.completed = 0
        self.failed = 0

    def enqueue(self, task: ModuleTask) -> ModuleTask:
        """Queue *task* without waiting.

        Raises:
            TaskQueueFullError: The queue is bounded and already full.
        """
        try:
            self._queue.put_nowait((-int(task.priority), next(self._sequence), task))
        except asyncio.QueueFull:
            raise TaskQueueFullError(self.name, self.maxsize) from None
        return task

    async def get(self) -> ModuleTask:
        """Wait for and remove the highest-priority task."""
        _, _, task = await self._queue.get()
        return task

    def get_nowait(self) -> ModuleTask:
        _, _, task = self._queue.get_nowait()
        return task

    def task_done(self, failed: bool = False) -> None:
        if failed:
            self.failed += 1
        else:
            self.completed += 1
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued task has been marked done."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def __len__(self) -> int:
        return self._queue.qsize()

    def __repr__(self) -> str:
        return (
            f"TaskQueue({self.name!r}, queued={self.qsize()}, "
            f"completed={self.completed}, failed={self.failed})"
        )
