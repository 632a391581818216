"""Retry classification and backoff for task submission."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

import grpc

from gridsession.config import ClientSettings

TRANSIENT_CODES = frozenset(
    {
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.ABORTED,
    }
)


def status_code(exc: BaseException) -> Optional[grpc.StatusCode]:
    code = getattr(exc, "code", None)
    if not callable(code):
        return None
    try:
        return code()
    except Exception:  # noqa: BLE001
        return None


def is_transient(exc: BaseException) -> bool:
    """Return True for RPC failures worth retrying on another channel."""

    return isinstance(exc, grpc.RpcError) and status_code(exc) in TRANSIENT_CODES


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff with multiplicative jitter."""

    max_retries: int = 5
    base_delay: float = 0.1
    max_delay: float = 5.0
    jitter: float = 0.2

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""

        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter:
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return max(0.0, delay)

    @classmethod
    def from_settings(cls, settings: ClientSettings, max_retries: Optional[int] = None) -> "RetryPolicy":
        return cls(
            max_retries=settings.submit_max_retries if max_retries is None else max_retries,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            jitter=settings.retry_jitter,
        )
