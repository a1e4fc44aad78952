"""Immutable construction-time settings for HttpFetchClient."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping

if TYPE_CHECKING:
    from efetch.utils.settings import Settings

RetryInterval = Callable[[int], float]


def default_retry_interval(attempt: int) -> float:
    """2 ** attempt seconds, attempt being the zero-based retry index."""
    return float(2 ** attempt)


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    default_headers: Mapping[str, str] = field(default_factory=dict)
    retry_count: int = 3
    retry_interval: RetryInterval = default_retry_interval
    timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        if not callable(self.retry_interval):
            raise ValueError("retry_interval must be callable")
        # freeze a private copy so later edits to the caller's dict are not observed
        object.__setattr__(self, "default_headers", MappingProxyType(dict(self.default_headers)))

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClientConfig":
        base = settings.retry_backoff_base
        return cls(
            base_url=str(settings.base_url or ""),
            default_headers=dict(settings.default_headers),
            retry_count=settings.retry_count,
            retry_interval=lambda attempt: float(base ** attempt),
            timeout_seconds=settings.timeout_seconds,
        )


__all__ = ["ClientConfig", "RetryInterval", "default_retry_interval"]
