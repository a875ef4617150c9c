"""Module layer — Configuration validator.

Decides, without side effects, whether a module's declared prerequisites
are satisfied.  Checks run in a fixed order and the first failure wins:

    1. enabled flag          → "module disabled"
    2. required fields present and non-empty, in sorted order
    3. rate_limit (when set) and rate_interval finite and strictly positive
    4. known module kind     (only when the validator was given the known kinds)
"""

from __future__ import annotations

import math
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any, Iterable

from media_collector.config import ModuleConfig
from media_collector.exceptions import ValidationError

DISABLED_REASON = "module disabled"
API_KEY_FIELD = "api_key"


@dataclass(frozen=True)
class ValidationOutcome:
    """Verdict for one ModuleConfig: either valid, or invalid with a reason."""

    valid: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "ValidationOutcome":
        return cls(valid=True)

    @classmethod
    def invalid(cls, reason: str) -> "ValidationOutcome":
        return cls(valid=False, reason=reason)

    @property
    def disabled(self) -> bool:
        """True when the module was switched off on purpose by the operator."""
        return not self.valid and self.reason == DISABLED_REASON

    def to_error(self, module: str) -> ValidationError:
        if self.valid:
            raise ValueError("a valid outcome has no error")
        return ValidationError(module=module, reason=self.reason or "invalid")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Collection):
        return len(value) == 0
    return False


def _positive_finite(value: float) -> bool:
    return math.isfinite(value) and value > 0


def missing_field_reason(module: str, field: str) -> str:
    if field == API_KEY_FIELD:
        return f"missing required API key for module: {module}"
    return f"missing required field '{field}' for module: {module}"


class ConfigValidator:
    """Pure validator for :class:`ModuleConfig`.

    Args:
        known_kinds: When given, a config whose ``kind`` is not in this set is
                     reported invalid.  When None, kinds are not checked.
    """

    def __init__(self, known_kinds: Iterable[str] | None = None) -> None:
        self._known_kinds = frozenset(known_kinds) if known_kinds is not None else None

    def validate(self, config: ModuleConfig) -> ValidationOutcome:
        name = config.name

        if not config.enabled:
            return ValidationOutcome.invalid(DISABLED_REASON)

        fields = config.provider_fields()
        for field in sorted(config.required_fields):
            if field in ModuleConfig.model_fields:
                value = getattr(config, field)
            else:
                value = fields.get(field)
            if _is_empty(value):
                return ValidationOutcome.invalid(missing_field_reason(name, field))

        # None means "use the HTTP default", which is always positive.
        if config.rate_limit is not None and not _positive_finite(config.rate_limit):
            return ValidationOutcome.invalid(
                f"invalid rate_limit {config.rate_limit:g} for module: {name}"
            )
        if not _positive_finite(config.rate_interval):
            return ValidationOutcome.invalid(
                f"invalid rate_interval {config.rate_interval:g} for module: {name}"
            )

        if self._known_kinds is not None and config.kind not in self._known_kinds:
            return ValidationOutcome.invalid(
                f"unknown module kind '{config.kind}' for module: {name}"
            )

        return ValidationOutcome.ok()
