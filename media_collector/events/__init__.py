"""Event streaming layer — EventBus infrastructure.

Quick start::

    from media_collector.events import LogEventBus, TOPIC_MODULES

    bus = LogEventBus(Path("./logs/events.ndjson"))
    await bus.emit(TOPIC_MODULES, {"event": "module_started", "module": "mal"})
"""

from media_collector.events.bus import (
    TOPIC_COLLECTED,
    TOPIC_MODULES,
    EventBus,
    FanoutEventBus,
    LogEventBus,
    MemoryEventBus,
    NullEventBus,
)

__all__ = [
    "EventBus",
    "NullEventBus",
    "LogEventBus",
    "MemoryEventBus",
    "FanoutEventBus",
    "TOPIC_MODULES",
    "TOPIC_COLLECTED",
]
