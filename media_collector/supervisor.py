"""ModuleSupervisor — lifecycle and rate-limit wiring for collector modules.

The supervisor:

1. **Validates** every declared ModuleConfig with the ConfigValidator,
   before any module is started.
2. **Skips** invalid or disabled modules with a logged reason.  A skipped
   module is never an error at process level.
3. **Starts** each valid module with a fresh, dedicated RateLimiter.
4. **Watches** every module task and records how it ended: a normal return
   is ``stopped``, an exception is ``failed``.  One module's failure never
   touches its siblings.
5. **Shuts down** on request: signals every running module, waits for the
   grace period, then force-fails and cancels whatever is still running.
6. **Routes** submitted tasks to a running module's own priority queue.

State machine per module::

    pending → validating → skipped
                         → starting → running → stopped
                                              → failed
                           starting → failed   (module could not be built)

Usage::

    supervisor = ModuleSupervisor(default_registry(), event_bus=bus)
    statuses = await supervisor.run(settings.modules, stop_event=stop)
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from media_collector.config import HttpConfig, ModuleConfig
from media_collector.events.bus import TOPIC_MODULES, EventBus, NullEventBus
from media_collector.exceptions import (
    ConfigLoadError,
    ModuleError,
    ModuleRuntimeError,
    ShutdownTimeoutError,
)
from media_collector.logging import get_logger
from media_collector.modules.base import BaseModule
from media_collector.modules.queue import ModuleTask, TaskPriority
from media_collector.modules.rate_limiter import RateLimiter
from media_collector.modules.registry import ModuleRegistry
from media_collector.modules.validator import ConfigValidator, ValidationOutcome

log = get_logger(__name__)

# How long cancelled modules get to unwind once the grace period is over.
_CANCEL_GRACE_SECONDS = 1.0


class ModuleStatus(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    SKIPPED = "skipped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ModuleStatus.SKIPPED, ModuleStatus.STOPPED, ModuleStatus.FAILED)


@dataclass(frozen=True)
class StatusSnapshot:
    """Immutable view of one module's status, safe to hand to observers."""

    name: str
    status: ModuleStatus
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status.value, "reason": self.reason}


class ModuleHandle:
    """Supervisor-owned record of one declared module."""

    def __init__(self, config: ModuleConfig) -> None:
        self.name = config.name
        self.config = config
        self.status = ModuleStatus.PENDING
        self.reason: str | None = None
        self.module: BaseModule | None = None
        self.limiter: RateLimiter | None = None
        self.task: asyncio.Task[None] | None = None
        self.watcher: asyncio.Task[None] | None = None
        self.started_at: float | None = None
        self.finished_at: float | None = None

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(name=self.name, status=self.status, reason=self.reason)


class ModuleSupervisor:
    """Validates, starts, watches and stops collector modules.

    Args:
        registry:         Maps ``ModuleConfig.kind`` to module classes.
        validator:        Defaults to a ConfigValidator that knows the
                          registry's kinds.
        event_bus:        Receives ``module_*`` lifecycle events on
                          ``TOPIC_MODULES``; also handed to every module.
        shutdown_timeout: Seconds a module gets to stop after shutdown is
                          requested before it is force-failed.
        http:             HTTP settings handed to every module.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        validator: ConfigValidator | None = None,
        event_bus: EventBus | None = None,
        shutdown_timeout: float = 10.0,
        http: HttpConfig | None = None,
    ) -> None:
        if shutdown_timeout <= 0:
            raise ValueError("shutdown_timeout must be > 0")
        self._registry = registry
        self._validator = validator or ConfigValidator(known_kinds=registry.kinds())
        self._bus = event_bus or NullEventBus()
        self._shutdown_timeout = shutdown_timeout
        self._http = http or HttpConfig()
        self._handles: dict[str, ModuleHandle] = {}

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    async def start(self, configs: Sequence[ModuleConfig]) -> dict[str, StatusSnapshot]:
        """Validate every config, then start the valid ones.

        Returns the start/skip decision for each module.  Any earlier run's
        state (handles, rate limiters) is discarded first.

        Raises:
            ConfigLoadError: Two configs share a name.
            RuntimeError:    Modules from a previous start are still running.
        """
        if self.is_running:
            raise RuntimeError("supervisor is still running modules; call shutdown() first")

        seen: set[str] = set()
        for config in configs:
            if config.name in seen:
                raise ConfigLoadError(f"duplicate module name '{config.name}'")
            seen.add(config.name)

        self._handles = {config.name: ModuleHandle(config) for config in configs}

        verdicts: dict[str, ValidationOutcome] = {}
        for handle in self._handles.values():
            handle.status = ModuleStatus.VALIDATING
            verdicts[handle.name] = self._validator.validate(handle.config)

        for handle in self._handles.values():
            outcome = verdicts[handle.name]
            if outcome.valid:
                await self._start_module(handle)
            else:
                await self._skip(handle, outcome)

        counts = self.counts()
        log.info(
            "supervisor_started",
            declared=len(self._handles),
            running=counts.get(ModuleStatus.RUNNING.value, 0),
            skipped=counts.get(ModuleStatus.SKIPPED.value, 0),
        )
        return self.snapshot()

    async def wait(self) -> dict[str, StatusSnapshot]:
        """Wait until every started module has terminated."""
        watchers = [h.watcher for h in self._handles.values() if h.watcher is not None]
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)
        return self.snapshot()

    async def shutdown(self) -> dict[str, StatusSnapshot]:
        """Ask every running module to stop; force-fail those that do not."""
        running = [h for h in self._handles.values() if h.status is ModuleStatus.RUNNING]
        if not running:
            return self.snapshot()

        log.info(
            "supervisor_shutdown_requested",
            modules=len(running),
            timeout_seconds=self._shutdown_timeout,
        )
        for handle in running:
            if handle.module is not None:
                handle.module.request_shutdown()

        tasks = [h.task for h in running if h.task is not None]
        _, pending = await asyncio.wait(tasks, timeout=self._shutdown_timeout)

        stragglers = [h for h in running if h.task in pending]
        for handle in stragglers:
            error = ShutdownTimeoutError(handle.name, self._shutdown_timeout)
            await self._finish(handle, ModuleStatus.FAILED, error.message)
            if handle.task is not None:
                handle.task.cancel()
        if stragglers:
            await asyncio.wait(
                [h.task for h in stragglers if h.task is not None],
                timeout=_CANCEL_GRACE_SECONDS,
            )

        for handle in running:
            if handle.task is not None and handle.task.done():
                await self._record_outcome(handle)

        log.info("supervisor_stopped", **self.counts())
        return self.snapshot()

    async def run(
        self,
        configs: Sequence[ModuleConfig],
        stop_event: asyncio.Event | None = None,
    ) -> dict[str, StatusSnapshot]:
        """Start every valid module and return once all have terminated.

        When *stop_event* is set before that, :meth:`shutdown` is invoked.
        Module errors never propagate out of this method.
        """
        await self.start(configs)
        watchers = [h.watcher for h in self._handles.values() if h.watcher is not None]
        if not watchers:
            return self.snapshot()
        if stop_event is None:
            try:
                return await self.wait()
            except asyncio.CancelledError:
                await self.shutdown()
                raise

        all_done = asyncio.gather(*watchers, return_exceptions=True)
        stop_waiter = asyncio.create_task(stop_event.wait(), name="supervisor:stop")
        try:
            done, _ = await asyncio.wait(
                {all_done, stop_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            if stop_waiter in done:
                await self.shutdown()
        except asyncio.CancelledError:
            await self.shutdown()
            raise
        finally:
            stop_waiter.cancel()
            # Still pending when a straggler outlived the cancel grace.
            all_done.cancel()
        return self.snapshot()

    def submit(
        self,
        name: str,
        task: str,
        payload: Any = None,
        priority: TaskPriority = TaskPriority.NORMAL,
    ) -> ModuleTask:
        """Queue *task* on the running module *name*.

        Raises:
            LookupError:        *name* is not a running module.
            TaskQueueFullError: The module's task queue is full.
        """
        handle = self._handles.get(name)
        if handle is None or handle.module is None or handle.status is not ModuleStatus.RUNNING:
            raise LookupError(f"module '{name}' is not running")
        return handle.module.submit(task, payload, priority)

    # ---------------------------------------------------------------------------
    # Observation
    # ---------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return any(
            h.status in (ModuleStatus.STARTING, ModuleStatus.RUNNING)
            for h in self._handles.values()
        )

    def snapshot(self) -> dict[str, StatusSnapshot]:
        """Point-in-time copy of every module's status, in declaration order."""
        return {name: handle.snapshot() for name, handle in self._handles.items()}

    def counts(self) -> dict[str, int]:
        return dict(Counter(h.status.value for h in self._handles.values()))

    def config(self, name: str) -> ModuleConfig | None:
        handle = self._handles.get(name)
        return handle.config if handle else None

    def module(self, name: str) -> BaseModule | None:
        handle = self._handles.get(name)
        return handle.module if handle else None

    def limiter(self, name: str) -> RateLimiter | None:
        handle = self._handles.get(name)
        return handle.limiter if handle else None

    # ---------------------------------------------------------------------------
    # Transitions
    # ---------------------------------------------------------------------------

    async def _skip(self, handle: ModuleHandle, outcome: ValidationOutcome) -> None:
        handle.status = ModuleStatus.SKIPPED
        handle.reason = outcome.reason
        handle.finished_at = time.time()
        log.warning(
            "module_skipped",
            module=handle.name,
            reason=handle.reason,
            disabled=outcome.disabled,
        )
        await self._emit("module_skipped", handle)

    async def _start_module(self, handle: ModuleHandle) -> None:
        handle.status = ModuleStatus.STARTING
        try:
            limiter = RateLimiter.for_config(handle.config, self._http.default_rate_limit)
        except ValueError as exc:
            await self._finish(handle, ModuleStatus.FAILED, str(exc))
            return
        try:
            module = self._registry.create(handle.config, self._bus, self._http)
        except ModuleError as exc:
            await self._finish(handle, ModuleStatus.FAILED, exc.message)
            return

        handle.module = module
        handle.limiter = limiter
        handle.task = module.start(limiter)
        handle.status = ModuleStatus.RUNNING
        handle.started_at = time.time()
        handle.watcher = asyncio.create_task(self._watch(handle), name=f"watch:{handle.name}")

        log.info(
            "module_started",
            module=handle.name,
            kind=handle.config.kind,
            capacity=handle.limiter.capacity,
            refill_interval=handle.limiter.refill_interval,
        )
        await self._emit("module_started", handle)

    async def _watch(self, handle: ModuleHandle) -> None:
        if handle.task is None:
            return
        # asyncio.wait, unlike awaiting the task, never cancels the module
        # when the watcher itself is cancelled.
        await asyncio.wait([handle.task])
        await self._record_outcome(handle)

    async def _record_outcome(self, handle: ModuleHandle) -> None:
        task = handle.task
        if task is None or not task.done():
            return
        if task.cancelled():
            await self._finish(handle, ModuleStatus.FAILED, "module task was cancelled")
            return
        exc = task.exception()
        if exc is None:
            await self._finish(handle, ModuleStatus.STOPPED)
        elif isinstance(exc, ModuleRuntimeError):
            await self._finish(handle, ModuleStatus.FAILED, exc.reason)
        else:
            error = ModuleRuntimeError(handle.name, f"{type(exc).__name__}: {exc}")
            await self._finish(handle, ModuleStatus.FAILED, error.reason)

    async def _finish(
        self, handle: ModuleHandle, status: ModuleStatus, reason: str | None = None
    ) -> None:
        """Record a terminal status unless one is already recorded."""
        if handle.status.terminal:
            return
        handle.status = status
        handle.reason = reason
        handle.finished_at = time.time()
        if status is ModuleStatus.FAILED:
            log.warning("module_failed", module=handle.name, reason=reason)
            await self._emit("module_failed", handle)
        else:
            log.info("module_stopped", module=handle.name)
            await self._emit("module_stopped", handle)

    async def _emit(self, event: str, handle: ModuleHandle) -> None:
        payload: dict[str, Any] = {"event": event, "module": handle.name}
        if handle.reason is not None:
            payload["reason"] = handle.reason
        await self._bus.emit(TOPIC_MODULES, payload)
