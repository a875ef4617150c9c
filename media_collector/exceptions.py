"""Media Collector — Exception hierarchy.

All exceptions raised by the collector inherit from MediaCollectorError so
that callers can catch the full family with a single except clause when needed.

Hierarchy:
    MediaCollectorError
    ├── ConfigError
    │   ├── ConfigLoadError          (fatal — the process does not start)
    │   └── ValidationError          (per-module — module skipped)
    ├── ModuleError
    │   ├── ModuleNotFoundError
    │   ├── ModuleLoadError
    │   ├── ModuleRuntimeError       (per-module — module marked failed)
    │   ├── ShutdownTimeoutError     (per-module — module force-failed)
    │   └── TaskQueueFullError
    ├── RateLimitExceededError
    └── HttpError
        ├── RequestFailedError
        ├── ResourceNotFoundError
        ├── RateLimitedError
        ├── UnexpectedStatusError
        ├── DeserializationError
        └── RequestAbortedError      (shutdown requested mid-request)

Only ``ConfigLoadError`` is process-fatal.  Everything under ``ModuleError``
is contained by the supervisor and reflected in the final status mapping.
"""

from __future__ import annotations

from typing import Any


class MediaCollectorError(Exception):
    """Base exception for all Media Collector errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigError(MediaCollectorError):
    """Base for all configuration errors."""


class ConfigLoadError(ConfigError):
    """The configuration source could not be read or parsed at all."""

    def __init__(self, reason: str, source: str | None = None) -> None:
        super().__init__(
            f"failed to load configuration: {reason}",
            context={"source": source, "reason": reason},
        )
        self.source = source
        self.reason = reason


class ValidationError(ConfigError):
    """A module's prerequisites are unmet (disabled, missing key, bad range)."""

    def __init__(self, module: str, reason: str) -> None:
        super().__init__(reason, context={"module": module, "reason": reason})
        self.module = module
        self.reason = reason


# ---------------------------------------------------------------------------
# Module layer
# ---------------------------------------------------------------------------


class ModuleError(MediaCollectorError):
    """Base for all module errors."""


class ModuleNotFoundError(ModuleError):
    """No module class is registered for the given kind."""

    def __init__(self, kind: str) -> None:
        super().__init__(
            f"Module kind '{kind}' is not registered",
            context={"kind": kind},
        )
        self.kind = kind


class ModuleLoadError(ModuleError):
    """A module failed to initialise (missing dependency, bad provider field, etc.)."""

    def __init__(self, module: str, reason: str) -> None:
        super().__init__(
            f"Module '{module}' failed to load: {reason}",
            context={"module": module, "reason": reason},
        )
        self.module = module
        self.reason = reason


class ModuleRuntimeError(ModuleError):
    """A started module hit an unrecoverable error."""

    def __init__(self, module: str, reason: str) -> None:
        super().__init__(reason, context={"module": module, "reason": reason})
        self.module = module
        self.reason = reason


class ShutdownTimeoutError(ModuleError):
    """A module did not stop within the shutdown grace period."""

    def __init__(self, module: str, timeout_seconds: float) -> None:
        super().__init__(
            f"module '{module}' did not stop within {timeout_seconds:g}s",
            context={"module": module, "timeout_seconds": timeout_seconds},
        )
        self.module = module
        self.timeout_seconds = timeout_seconds



class TaskQueueFullError(ModuleError):
    """A bounded module task queue refused a new task."""

    def __init__(self, module: str, maxsize: int) -> None:
        super().__init__(
            f"task queue of module '{module}' is full ({maxsize} tasks)",
            context={"module": module, "maxsize": maxsize},
        )
        self.module = module
        self.maxsize = maxsize


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimitExceededError(MediaCollectorError):
    """A non-blocking permit request found the module's budget exhausted."""

    def __init__(self, limiter: str, capacity: int, retry_after: float) -> None:
        super().__init__(
            f"Rate limit exceeded for '{limiter}': max {capacity} per interval, "
            f"retry after {retry_after:.3f}s",
            context={"limiter": limiter, "capacity": capacity, "retry_after": retry_after},
        )
        self.limiter = limiter
        self.capacity = capacity
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Provider HTTP access
# ---------------------------------------------------------------------------


class HttpError(MediaCollectorError):
    """Base for all provider HTTP errors."""


class RequestFailedError(HttpError):
    """The request never produced a response (DNS, connect, timeout...)."""

    def __init__(self, url: str, cause: Exception) -> None:
        super().__init__(
            f"HTTP request failed: {cause}",
            context={"url": url, "cause": str(cause)},
        )
        self.url = url
        self.cause = cause


class ResourceNotFoundError(HttpError):
    """The provider answered 404."""

    def __init__(self, url: str, body: str = "") -> None:
        super().__init__(f"resource not found: {url}", context={"url": url, "body": body})
        self.url = url
        self.body = body


class RateLimitedError(HttpError):
    """The provider kept answering 429/403 after every retry."""

    def __init__(self, url: str, retry_after: float | None, body: str = "") -> None:
        super().__init__(
            f"rate limit exceeded, retry after {retry_after}",
            context={"url": url, "retry_after": retry_after, "body": body},
        )
        self.url = url
        self.retry_after = retry_after
        self.body = body


class UnexpectedStatusError(HttpError):
    """The provider answered with a status code we do not handle."""

    def __init__(self, url: str, status: int, body: str = "") -> None:
        super().__init__(
            f"unexpected status code {status}: {body}",
            context={"url": url, "status": status, "body": body},
        )
        self.url = url
        self.status = status
        self.body = body


class DeserializationError(HttpError):
    """The response body was not valid JSON."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            f"failed to deserialize response: {reason}",
            context={"url": url, "reason": reason},
        )
        self.url = url


class RequestAbortedError(HttpError):
    """Shutdown was requested while the request waited for a permit or a retry."""

    def __init__(self, url: str) -> None:
        super().__init__(f"request abandoned on shutdown: {url}", context={"url": url})
        self.url = url
