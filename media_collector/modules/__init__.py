"""Module layer — BaseModule interface, validator, rate limiter and registry."""

from media_collector.modules.base import BaseModule
from media_collector.modules.queue import ModuleTask, TaskPriority, TaskQueue
from media_collector.modules.rate_limiter import Permit, RateLimiter
from media_collector.modules.registry import ModuleRegistry, default_registry
from media_collector.modules.validator import ConfigValidator, ValidationOutcome

__all__ = [
    "BaseModule",
    "ConfigValidator",
    "ValidationOutcome",
    "RateLimiter",
    "Permit",
    "ModuleTask",
    "TaskPriority",
    "TaskQueue",
    "ModuleRegistry",
    "default_registry",
]
