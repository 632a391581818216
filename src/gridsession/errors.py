"""Exceptions raised by the gridsession client."""

from __future__ import annotations

from typing import Optional, Sequence


class GridSessionError(RuntimeError):
    """Base exception for all gridsession errors."""


class ConfigurationError(GridSessionError, ValueError):
    """Raised when endpoint or credential input is incomplete or inconsistent."""


class CredentialError(GridSessionError):
    """Raised when certificate or key material cannot be read or parsed."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message)


class SessionCreationError(GridSessionError):
    """Raised when the CreateSession RPC fails."""

    def __init__(self, message: str, *, partition_ids: Sequence[str] = ()) -> None:
        self.partition_ids = list(partition_ids)
        super().__init__(message)


class NotReadyError(GridSessionError):
    """Raised when an operation requires a bound session."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Session is not ready (state={state})")


class SubmissionError(GridSessionError):
    """Raised when a task batch could not be submitted.

    ``index`` is the zero-based position, within the caller's batch, of the
    first payload of the request that failed; ``end_index`` is one past its
    last payload.
    """

    def __init__(
        self,
        message: str,
        *,
        index: int,
        end_index: Optional[int] = None,
        attempts: int = 0,
        session_id: Optional[str] = None,
        retryable: bool = True,
    ) -> None:
        self.index = index
        self.end_index = end_index if end_index is not None else index + 1
        self.attempts = attempts
        self.session_id = session_id
        self.retryable = retryable
        super().__init__(message)


class ResultUnavailableError(GridSessionError):
    """Raised when a task terminates without producing a result."""

    def __init__(self, task_id: str, *, session_id: Optional[str], status: str, reason: str = "") -> None:
        self.task_id = task_id
        self.session_id = session_id
        self.status = status
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Task {task_id} in session {session_id} ended {status}{detail}")


class UnknownTaskError(GridSessionError):
    """Raised when the control plane does not recognise a task id."""

    def __init__(self, task_id: str, *, session_id: Optional[str]) -> None:
        self.task_id = task_id
        self.session_id = session_id
        super().__init__(f"Task {task_id} is unknown to session {session_id}")


class ResultTimeoutError(GridSessionError):
    """Raised when a caller-supplied result timeout elapses."""

    def __init__(self, task_id: str, timeout: float) -> None:
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.2f}s waiting for task {task_id}")


class OperationCancelledError(GridSessionError):
    """Raised when the caller's cancellation signal interrupts an operation."""


class PoolClosedError(GridSessionError):
    """Raised when a lease is requested from a closed channel pool."""


class PoolExhaustedError(GridSessionError):
    """Raised when a bounded pool cannot hand out a channel in time."""

    def __init__(self, max_size: int, timeout: Optional[float]) -> None:
        self.max_size = max_size
        self.timeout = timeout
        super().__init__(f"No channel released within {timeout}s (max_size={max_size})")


__all__ = [
    "GridSessionError",
    "ConfigurationError",
    "CredentialError",
    "SessionCreationError",
    "NotReadyError",
    "SubmissionError",
    "ResultUnavailableError",
    "UnknownTaskError",
    "ResultTimeoutError",
    "OperationCancelledError",
    "PoolClosedError",
    "PoolExhaustedError",
]
