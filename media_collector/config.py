"""Media Collector — Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. System config: /etc/media-collector/config.yaml
    3. User config:   ~/.media-collector/config.yaml
    4. An explicit file passed to ``Settings.load()`` (YAML or TOML)
    5. Environment variables prefixed with MEDIA_COLLECTOR_

Environment variables also win over keyword arguments passed to
``Settings(...)``, which is how ``Settings.load()`` hands over file values.
Nested keys merge, so ``MEDIA_COLLECTOR_API__PORT`` replaces only
``api.port`` and keeps the file's ``api.host``.

All settings are immutable after load.  Call ``Settings.load()`` once at
startup and hand the instance to the components that need it; there is no
module-level singleton.

Module sections are accepted either as a list::

    modules:
      - name: mal
        kind: http_poll
        enabled: true
        requires_api_key: true
        api_key: "..."

or as a mapping keyed by module name::

    [modules.mal]
    enabled = true
    rate_limit = 2
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Annotated, Any, Literal, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from media_collector.exceptions import ConfigLoadError

DEFAULT_SEARCH_PATHS: tuple[Path, ...] = (
    Path("/etc/media-collector/config.yaml"),
    Path("~/.media-collector/config.yaml"),
)


# ---------------------------------------------------------------------------
# Per-module configuration
# ---------------------------------------------------------------------------


class ModuleConfig(BaseModel):
    """Configuration of one module.

    Anything not declared below (``api_key``, ``endpoint``...) is kept as a
    provider-specific field and is reachable through :meth:`provider_fields`.
    Numeric ranges are deliberately not enforced here: ``ConfigValidator``
    reports a non-positive ``rate_limit`` as a per-module problem instead of
    failing the whole configuration load.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str = Field(min_length=1, description="Unique, stable module identifier.")
    kind: str = Field(
        default="",
        description="Registry key selecting the module implementation. Defaults to name.",
    )
    enabled: bool = False
    required_fields: frozenset[str] = Field(
        default_factory=frozenset,
        description="Provider fields that must be present and non-empty.",
    )
    requires_api_key: bool = Field(
        default=False,
        description="Shorthand for adding 'api_key' to required_fields.",
    )
    rate_limit: float | None = Field(
        default=None,
        description="Requests allowed per rate_interval. None = use http.default_rate_limit.",
    )
    rate_interval: float = Field(default=1.0, description="Length of the rate window in seconds.")

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("kind"):
            data["kind"] = data.get("name", "")
        if data.get("requires_api_key"):
            required = set(data.get("required_fields") or ())
            required.add("api_key")
            data["required_fields"] = required
        return data

    def provider_fields(self) -> dict[str, Any]:
        """Return the provider-specific fields (everything undeclared)."""
        return dict(self.model_extra or {})

    def get(self, key: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(key, default)


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class RetryConfig(BaseModel):
    max_retries: Annotated[int, Field(ge=0, le=20)] = 3
    base_delay_ms: Annotated[int, Field(ge=0)] = 1000
    max_delay_ms: Annotated[int, Field(ge=0)] = 60_000


class HttpConfig(BaseModel):
    timeout_seconds: Annotated[float, Field(gt=0, le=600)] = 30.0
    user_agent: str = "media-collector/0.1.0"
    default_rate_limit: Annotated[float, Field(gt=0)] = Field(
        default=10.0,
        description="Requests per second for modules that do not set rate_limit.",
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)


class SupervisorConfig(BaseModel):
    shutdown_timeout_seconds: Annotated[float, Field(gt=0, le=3600)] = Field(
        default=10.0,
        description="Grace period for modules to stop before they are force-failed.",
    )


class ApiConfig(BaseModel):
    enabled: bool = Field(default=False, description="Serve the read-only status API.")
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    log_to_console: bool = True
    log_to_file: bool = False
    log_directory: Path = Path("./logs")
    log_file_prefix: str = "media-collector"
    log_rotation: Literal["daily", "hourly", "never"] = "daily"
    events_file: Path | None = Field(
        default=None,
        description="NDJSON file receiving module lifecycle and collected-data events.",
    )

    def log_file(self) -> Path | None:
        if not self.log_to_file:
            return None
        return self.log_directory.expanduser() / f"{self.log_file_prefix}.log"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEDIA_COLLECTOR_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    modules: list[ModuleConfig] = Field(default_factory=list)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # First source wins: the environment ranks above file values.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("modules", mode="before")
    @classmethod
    def _modules_from_mapping(cls, v: object) -> object:
        if not isinstance(v, dict):
            return v
        sections = []
        for name, section in v.items():
            if section is None:
                section = {}
            elif not isinstance(section, dict):
                raise ValueError(f"module section '{name}' must be a mapping")
            sections.append({"name": name, **section})
        return sections

    @model_validator(mode="after")
    def _check_modules(self) -> "Settings":
        seen: set[str] = set()
        for module in self.modules:
            if module.name in seen:
                raise ValueError(f"duplicate module name '{module.name}'")
            seen.add(module.name)
        default_rate = self.http.default_rate_limit
        self.modules = [
            m if m.rate_limit is not None else m.model_copy(update={"rate_limit": default_rate})
            for m in self.modules
        ]
        return self

    @classmethod
    def load(
        cls,
        config_file: Path | None = None,
        search_paths: Sequence[Path] = DEFAULT_SEARCH_PATHS,
    ) -> "Settings":
        """Load settings from file(s) + environment variables.

        Raises:
            ConfigLoadError: An explicit file is missing, a file cannot be
                parsed, or the merged data fails validation.
        """
        data: dict[str, Any] = {}

        candidates = [p.expanduser() for p in search_paths]
        if config_file is not None:
            config_file = Path(config_file).expanduser()
            if not config_file.exists():
                raise ConfigLoadError("file does not exist", source=str(config_file))
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                data.update(_read_file(path))

        try:
            return cls(**data)
        except PydanticValidationError as exc:
            source = str(config_file) if config_file else None
            raise ConfigLoadError(str(exc), source=source) from exc

    def module(self, name: str) -> ModuleConfig | None:
        return next((m for m in self.modules if m.name == name), None)

    def rate_limit_for(self, name: str) -> float:
        """Return the module's rate limit, or the HTTP default when unset."""
        module = self.module(name)
        if module is None or module.rate_limit is None:
            return self.http.default_rate_limit
        return module.rate_limit


def _read_file(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(str(exc), source=str(path)) from exc

    try:
        if path.suffix.lower() == ".toml":
            loaded: Any = tomllib.loads(text)
        else:
            loaded = yaml.safe_load(text) or {}
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigLoadError(f"cannot parse {path.name}: {exc}", source=str(path)) from exc

    if not isinstance(loaded, dict):
        raise ConfigLoadError(
            f"top-level value must be a mapping, got {type(loaded).__name__}",
            source=str(path),
        )
    return loaded
