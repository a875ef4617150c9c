"""Shared pytest fixtures for the media-collector test suite."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from media_collector.config import ModuleConfig
from media_collector.events.bus import MemoryEventBus
from media_collector.exceptions import ModuleRuntimeError
from media_collector.modules.base import BaseModule
from media_collector.modules.registry import ModuleRegistry
from media_collector.modules.builtin import HttpPollModule, LocalModule


# ---------------------------------------------------------------------------
# Fake time
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` advances it instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Test modules
# ---------------------------------------------------------------------------


class IdleModule(BaseModule):
    """Runs until shutdown is requested."""

    MODULE_KIND = "idle"

    async def run(self) -> None:
        await self.wait_for_shutdown()


class CrashingModule(BaseModule):
    """Fails right after start."""

    MODULE_KIND = "crashing"

    async def run(self) -> None:
        await asyncio.sleep(0)
        raise ModuleRuntimeError(self.name, "provider exploded")


class BuggyModule(BaseModule):
    """Raises an unexpected exception type."""

    MODULE_KIND = "buggy"

    async def run(self) -> None:
        await asyncio.sleep(0)
        raise KeyError("missing")


class OneShotModule(BaseModule):
    """Takes one permit and returns."""

    MODULE_KIND = "one_shot"

    async def run(self) -> None:
        await self.limiter.acquire()


class StubbornModule(BaseModule):
    """Ignores shutdown requests."""

    MODULE_KIND = "stubborn"

    async def run(self) -> None:
        while True:
            await asyncio.sleep(3600)


class BrokenModule(BaseModule):
    """Cannot be constructed."""

    MODULE_KIND = "broken"

    def _check_dependencies(self) -> None:
        raise RuntimeError("native library not found")


TEST_MODULES: tuple[type[BaseModule], ...] = (
    IdleModule,
    CrashingModule,
    BuggyModule,
    OneShotModule,
    StubbornModule,
    BrokenModule,
    LocalModule,
    HttpPollModule,
)


@pytest.fixture
def registry() -> ModuleRegistry:
    registry = ModuleRegistry()
    for module_class in TEST_MODULES:
        registry.register(module_class)
    return registry


@pytest.fixture
def bus() -> MemoryEventBus:
    return MemoryEventBus()


def make_config(name: str, kind: str | None = None, **fields: Any) -> ModuleConfig:
    """Enabled ModuleConfig with a generous rate limit unless overridden."""
    fields.setdefault("enabled", True)
    fields.setdefault("rate_limit", 100.0)
    return ModuleConfig(name=name, kind=kind or name, **fields)
