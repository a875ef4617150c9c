"""Module layer — BaseModule interface.

Every module — built-in or provider-specific — subclasses ``BaseModule``
and implements :meth:`run`.

Design principles:
  - A module is built from its (immutable) ModuleConfig and never sees the
    supervisor.  The only runtime collaborator it is handed is its own
    RateLimiter, through :meth:`start`.
  - Every outbound provider call goes through ``self.limiter``.
  - ``run()`` returning normally means the module stopped cleanly; raising
    means it failed.  Raise ``ModuleRuntimeError`` for failures that have a
    human-readable reason.
  - ``run()`` must watch :attr:`shutdown_requested` (or use
    :meth:`wait_for_shutdown` / :meth:`serve_tasks`) and return promptly
    once it is set.
  - Work submitted to a running module lands in its own priority queue
    (``self.tasks``).  Modules that call :meth:`serve_tasks` from ``run()``
    drain it by priority and override :meth:`handle_task` to act on it.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from media_collector.config import HttpConfig, ModuleConfig
from media_collector.events.bus import TOPIC_COLLECTED, EventBus, NullEventBus
from media_collector.exceptions import ModuleRuntimeError
from media_collector.logging import bind_module_context, get_logger
from media_collector.modules.queue import ModuleTask, TaskPriority, TaskQueue
from media_collector.modules.rate_limiter import RateLimiter


class BaseModule(ABC):
    """Abstract base class for all collector modules.

    Subclasses must:
      1. Set ``MODULE_KIND`` class attribute (snake_case, e.g. ``"http_poll"``)
      2. Set ``VERSION`` class attribute (semver string)
      3. Implement :meth:`run`
      4. Optionally implement :meth:`_check_dependencies` (raise ``ModuleLoadError`` if not met)
      5. Optionally implement :meth:`handle_task` for submitted tasks
    """

    MODULE_KIND: str = ""
    VERSION: str = "0.0.0"
    TASK_QUEUE_SIZE: int = 0

    def __init__(
        self,
        config: ModuleConfig,
        event_bus: EventBus | None = None,
        http: HttpConfig | None = None,
    ) -> None:
        self.config = config
        self.name = config.name
        self.log = get_logger(f"media_collector.modules.{self.MODULE_KIND or 'module'}")
        self.http = http or HttpConfig()
        self._bus = event_bus or NullEventBus()
        self._shutdown = asyncio.Event()
        self._limiter: RateLimiter | None = None
        self.tasks = TaskQueue(self.name, self.TASK_QUEUE_SIZE)
        self._check_dependencies()

    def _check_dependencies(self) -> None:
        """Raise ``ModuleLoadError`` if a prerequisite is missing.

        Called in ``__init__``.  Default implementation does nothing.
        """

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, limiter: RateLimiter) -> asyncio.Task[None]:
        """Bind *limiter* and spawn :meth:`run` as a task on the running loop."""
        if self._limiter is not None:
            raise RuntimeError(f"module '{self.name}' was already started")
        self._limiter = limiter
        return asyncio.create_task(self._run_in_context(), name=f"module:{self.name}")

    async def _run_in_context(self) -> None:
        bind_module_context(self.name)
        try:
            await self.run()
        finally:
            if not self.tasks.empty():
                self.log.info("tasks_dropped", queued=self.tasks.qsize())

    @abstractmethod
    async def run(self) -> None:
        """Module body.  Return on shutdown; raise on unrecoverable failure."""

    def request_shutdown(self) -> None:
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    async def wait_for_shutdown(self, timeout: float | None = None) -> bool:
        """Sleep until shutdown is requested or *timeout* elapses.

        Returns True if shutdown was requested.
        """
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    @property
    def limiter(self) -> RateLimiter:
        if self._limiter is None:
            raise RuntimeError(f"module '{self.name}' has not been started")
        return self._limiter

    # ------------------------------------------------------------------
    # Task queue
    # ------------------------------------------------------------------

    def submit(
        self,
        name: str,
        payload: Any = None,
        priority: TaskPriority = TaskPriority.NORMAL,
    ) -> ModuleTask:
        """Queue a task for this module.

        Raises:
            TaskQueueFullError: ``TASK_QUEUE_SIZE`` tasks are already queued.
        """
        task = self.tasks.enqueue(ModuleTask(name, payload, TaskPriority(priority)))
        self.log.debug(
            "task_enqueued",
            task_id=task.id,
            task=task.name,
            priority=task.priority.name,
            queued=self.tasks.qsize(),
        )
        return task

    async def next_task(self, timeout: float | None = None) -> ModuleTask | None:
        """Wait for the highest-priority queued task.

        Returns None when *timeout* elapses or shutdown is requested first.
        """
        if self.shutdown_requested:
            return None
        if not self.tasks.empty():
            return self.tasks.get_nowait()

        getter = asyncio.ensure_future(self.tasks.get())
        stopped = asyncio.ensure_future(self._shutdown.wait())
        try:
            done, _ = await asyncio.wait(
                {getter, stopped}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stopped.cancel()
            if not getter.done():
                getter.cancel()
        return getter.result() if getter in done else None

    async def serve_tasks(self, timeout: float | None = None) -> bool:
        """Handle queued tasks until *timeout* elapses or shutdown is requested.

        Returns True if shutdown was requested.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while not self.shutdown_requested:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            task = await self.next_task(remaining)
            if task is not None:
                await self.process_task(task)
        return True

    async def process_task(self, task: ModuleTask) -> None:
        """Run :meth:`handle_task` and mark the task done.

        A failing task is logged and the module carries on, except for
        ``ModuleRuntimeError``, which fails the module as it would from ``run()``.
        """
        self.log.debug("task_started", task_id=task.id, task=task.name)
        try:
            await self.handle_task(task)
        except ModuleRuntimeError:
            self.tasks.task_done(failed=True)
            raise
        except Exception as exc:
            self.tasks.task_done(failed=True)
            self.log.error(
                "task_failed",
                task_id=task.id,
                task=task.name,
                priority=task.priority.name,
                error=str(exc),
            )
            return
        self.tasks.task_done()
        self.log.debug("task_completed", task_id=task.id, completed=self.tasks.completed)

    async def handle_task(self, task: ModuleTask) -> None:
        """Act on one submitted task.  Override in subclasses."""
        self.log.warning("task_unhandled", task_id=task.id, task=task.name)

    # ------------------------------------------------------------------
    # Data hand-off
    # ------------------------------------------------------------------

    async def emit_collected(self, payload: Any, **extra: Any) -> None:
        """Hand collected provider data off to the event bus."""
        await self._bus.emit(
            TOPIC_COLLECTED,
            {"event": "data_collected", "module": self.name, "payload": payload, **extra},
        )
