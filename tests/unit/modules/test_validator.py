"""Unit tests — ConfigValidator (validator.py).

Tests cover:
  - disabled modules are invalid with the exact "module disabled" reason
  - missing / empty api_key produces the provider-facing reason string
  - required provider fields checked in sorted order, first failure wins
  - non-positive or non-finite rate limits and intervals
  - unknown module kinds when the validator knows the registry
  - validation is pure: same input, same verdict, config untouched
"""

from __future__ import annotations

import pytest

from media_collector.config import ModuleConfig
from media_collector.exceptions import ValidationError
from media_collector.modules.validator import (
    DISABLED_REASON,
    ConfigValidator,
    ValidationOutcome,
    missing_field_reason,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def validator() -> ConfigValidator:
    return ConfigValidator()


def _config(**overrides: object) -> ModuleConfig:
    data: dict[str, object] = {"name": "mal", "enabled": True, "rate_limit": 2.0}
    data.update(overrides)
    return ModuleConfig(**data)


class TestEnabledFlag:
    def test_disabled_module_is_invalid(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(enabled=False))
        assert outcome == ValidationOutcome(valid=False, reason="module disabled")
        assert outcome.disabled

    def test_disabled_wins_over_missing_key(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(enabled=False, requires_api_key=True))
        assert outcome.reason == DISABLED_REASON

    def test_enabled_defaults_to_false(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(ModuleConfig(name="x", rate_limit=1))
        assert outcome.disabled


class TestApiKey:
    def test_missing_api_key(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(requires_api_key=True))
        assert not outcome.valid
        assert outcome.reason == "missing required API key for module: mal"
        assert not outcome.disabled

    @pytest.mark.parametrize("empty", ["", "   ", None])
    def test_empty_api_key_counts_as_missing(
        self, validator: ConfigValidator, empty: object
    ) -> None:
        outcome = validator.validate(_config(requires_api_key=True, api_key=empty))
        assert outcome.reason == "missing required API key for module: mal"

    def test_present_api_key_is_valid(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(requires_api_key=True, api_key="abc123"))
        assert outcome == ValidationOutcome.ok()

    def test_api_key_listed_in_required_fields(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(required_fields={"api_key"}))
        assert outcome.reason == missing_field_reason("mal", "api_key")


class TestRequiredFields:
    def test_missing_generic_field(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(required_fields={"endpoint"}))
        assert outcome.reason == "missing required field 'endpoint' for module: mal"

    def test_first_missing_field_in_sorted_order(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(
            _config(required_fields={"user", "endpoint", "token"}, token="t")
        )
        assert outcome.reason == "missing required field 'endpoint' for module: mal"

    def test_empty_list_counts_as_missing(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(required_fields={"genres"}, genres=[]))
        assert outcome.reason == "missing required field 'genres' for module: mal"

    def test_zero_is_a_present_value(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(required_fields={"offset"}, offset=0))
        assert outcome.valid

    def test_all_present(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(
            _config(required_fields={"endpoint", "user"}, endpoint="https://x", user="u")
        )
        assert outcome.valid
        assert outcome.reason is None


class TestRateLimit:
    @pytest.mark.parametrize("rate", [0, -1, -0.5])
    def test_non_positive_rate_limit(self, validator: ConfigValidator, rate: float) -> None:
        outcome = validator.validate(_config(rate_limit=rate))
        assert not outcome.valid
        assert outcome.reason == f"invalid rate_limit {rate:g} for module: mal"

    def test_unset_rate_limit_uses_default(self, validator: ConfigValidator) -> None:
        assert validator.validate(_config(rate_limit=None)).valid

    def test_missing_key_reported_before_bad_rate(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(requires_api_key=True, rate_limit=0))
        assert outcome.reason == "missing required API key for module: mal"

    def test_non_positive_interval(self, validator: ConfigValidator) -> None:
        outcome = validator.validate(_config(rate_interval=0))
        assert outcome.reason == "invalid rate_interval 0 for module: mal"

    @pytest.mark.parametrize(
        "rate, shown", [(float("inf"), "inf"), (float("-inf"), "-inf"), (float("nan"), "nan")]
    )
    def test_non_finite_rate_limit(
        self, validator: ConfigValidator, rate: float, shown: str
    ) -> None:
        outcome = validator.validate(_config(rate_limit=rate))
        assert outcome.reason == f"invalid rate_limit {shown} for module: mal"

    @pytest.mark.parametrize("interval, shown", [(float("inf"), "inf"), (float("nan"), "nan")])
    def test_non_finite_interval(
        self, validator: ConfigValidator, interval: float, shown: str
    ) -> None:
        outcome = validator.validate(_config(rate_interval=interval))
        assert outcome.reason == f"invalid rate_interval {shown} for module: mal"

    def test_fractional_rate_is_valid(self, validator: ConfigValidator) -> None:
        assert validator.validate(_config(rate_limit=0.5)).valid


class TestKnownKinds:
    def test_unknown_kind(self) -> None:
        validator = ConfigValidator(known_kinds=["local", "http_poll"])
        outcome = validator.validate(_config(kind="anilist"))
        assert outcome.reason == "unknown module kind 'anilist' for module: mal"

    def test_known_kind(self) -> None:
        validator = ConfigValidator(known_kinds=["local"])
        assert validator.validate(_config(name="local")).valid

    def test_missing_key_reported_before_unknown_kind(self) -> None:
        validator = ConfigValidator(known_kinds=["local"])
        outcome = validator.validate(_config(required_fields={"api_key"}, api_key=""))
        assert outcome.reason == "missing required API key for module: mal"

    def test_kinds_unchecked_without_registry(self, validator: ConfigValidator) -> None:
        assert validator.validate(_config(kind="anything")).valid


class TestPurity:
    def test_repeated_validation_is_identical(self, validator: ConfigValidator) -> None:
        config = _config(requires_api_key=True)
        first = validator.validate(config)
        second = validator.validate(config)
        assert first == second

    def test_config_not_modified(self, validator: ConfigValidator) -> None:
        config = _config(requires_api_key=True, extra_field="v")
        before = config.model_dump()
        validator.validate(config)
        assert config.model_dump() == before


class TestOutcome:
    def test_to_error(self) -> None:
        error = ValidationOutcome.invalid("module disabled").to_error("mal")
        assert isinstance(error, ValidationError)
        assert error.module == "mal"
        assert error.reason == "module disabled"

    def test_valid_outcome_has_no_error(self) -> None:
        with pytest.raises(ValueError):
            ValidationOutcome.ok().to_error("mal")
