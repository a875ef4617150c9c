"""Media Collector — supervised metadata collection from media providers.

Each external provider (anime/manga catalog APIs and the like) is reached
through an independently configurable *module*.  The supervisor validates
every module's configuration, starts only the enabled and valid ones, binds
each to its own rate limiter, and records how each one ends.

Architecture layers (bottom to top):
    1. Config     — pydantic models, YAML/TOML loading, environment overrides
    2. Modules    — ConfigValidator, RateLimiter, BaseModule, task queue, registry, HTTP client
    3. Supervisor — lifecycle state machine, shutdown grace period, status snapshots
    4. Daemon     — signal handling, event bus wiring, optional status API
    5. CLI        — ``media-collector run`` / ``check``
"""

__version__ = "0.1.0"
__author__ = "Media Collector Contributors"
__license__ = "Apache-2.0"

from media_collector.config import ModuleConfig, Settings
from media_collector.supervisor import ModuleStatus, ModuleSupervisor, StatusSnapshot

__all__ = [
    "__version__",
    "ModuleConfig",
    "Settings",
    "ModuleSupervisor",
    "ModuleStatus",
    "StatusSnapshot",
]
