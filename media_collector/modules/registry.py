"""Module layer — Module registry.

Maps a module *kind* (the ``kind`` key of a ModuleConfig) to the class that
implements it.  Configuration selects the variant; nothing is discovered by
reflection at runtime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Type

from media_collector.exceptions import ModuleLoadError, ModuleNotFoundError
from media_collector.logging import get_logger

if TYPE_CHECKING:
    from media_collector.config import HttpConfig, ModuleConfig
    from media_collector.events.bus import EventBus
    from media_collector.modules.base import BaseModule

log = get_logger(__name__)


class ModuleRegistry:
    """Registry of module classes keyed by ``MODULE_KIND``.

    Usage::

        registry = ModuleRegistry()
        registry.register(HttpPollModule)
        module = registry.create(config, event_bus)
    """

    def __init__(self) -> None:
        self._classes: dict[str, Type["BaseModule"]] = {}

    def register(self, module_class: Type["BaseModule"]) -> None:
        kind = module_class.MODULE_KIND
        if not kind:
            raise ValueError(f"Module class {module_class.__name__} has no MODULE_KIND.")
        if kind in self._classes:
            log.warning("module_kind_already_registered", kind=kind)
        self._classes[kind] = module_class
        log.debug("module_kind_registered", kind=kind, version=module_class.VERSION)

    def unregister(self, kind: str) -> None:
        self._classes.pop(kind, None)

    def is_registered(self, kind: str) -> bool:
        return kind in self._classes

    def kinds(self) -> list[str]:
        return sorted(self._classes)

    def create(
        self,
        config: "ModuleConfig",
        event_bus: "EventBus | None" = None,
        http: "HttpConfig | None" = None,
    ) -> "BaseModule":
        """Instantiate the module described by *config*.

        Raises:
            ModuleNotFoundError: No class is registered for ``config.kind``.
            ModuleLoadError:     The constructor raised.
        """
        module_class = self._classes.get(config.kind)
        if module_class is None:
            raise ModuleNotFoundError(kind=config.kind)
        try:
            return module_class(config, event_bus, http)
        except ModuleLoadError:
            raise
        except Exception as exc:
            raise ModuleLoadError(module=config.name, reason=str(exc)) from exc


def default_registry() -> ModuleRegistry:
    """Return a registry holding every built-in module kind."""
    from media_collector.modules.builtin import HttpPollModule, LocalModule

    registry = ModuleRegistry()
    registry.register(LocalModule)
    registry.register(HttpPollModule)
    return registry
