"""User-facing session object for submitting tasks and fetching results.

A SessionService is bound to one control-plane session. Construction either
creates a session (one CreateSession RPC) or binds to an existing one without
any RPC. Every submission goes through
:meth:`SessionService.submit_tasks_with_dependencies`, which leases a channel
from the pool per request and retries transient transport failures with
capped exponential backoff.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import grpc

from gridsession.config import ClientSettings, get_settings
from gridsession.errors import (
    OperationCancelledError,
    ResultTimeoutError,
    ResultUnavailableError,
    SessionCreationError,
    SubmissionError,
    UnknownTaskError,
)
from gridsession.models import (
    CreateSessionRequest,
    ResultReply,
    ResultRequest,
    Session,
    SubmitTasksRequest,
    TaskOptions,
    TaskRequest,
    TaskStatus,
)
from gridsession.protocol import SubmitterClient
from gridsession.session.retry import RetryPolicy, is_transient, status_code
from gridsession.session.state import SessionState, SessionTracker
from gridsession.transport import ChannelPool

LOGGER = logging.getLogger(__name__)

PayloadWithDependencies = Tuple[bytes, Optional[Sequence[str]]]


class SessionService:
    """Submits tasks to, and fetches results from, one control-plane session."""

    def __init__(
        self,
        channel_pool: ChannelPool,
        *,
        task_options: Optional[TaskOptions] = None,
        session: Union[Session, str, None] = None,
        partition_ids: Optional[Iterable[str]] = None,
        settings: Optional[ClientSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._pool = channel_pool
        self._settings = settings or get_settings()
        self._task_options = task_options or self.default_task_options(self._settings)
        self._tracker = SessionTracker()
        self._sleep = sleep

        if session is not None:
            self.open_session(session)
            return

        LOGGER.debug("Creating session...")
        partitions = list(partition_ids) if partition_ids is not None else [self._task_options.partition_id]
        self.create_session(partitions)
        LOGGER.debug("Session created %s", self)

    @staticmethod
    def default_task_options(settings: Optional[ClientSettings] = None) -> TaskOptions:
        """Task options used when the caller supplies none."""

        settings = settings or get_settings()
        return TaskOptions(
            max_duration=timedelta(seconds=settings.default_max_duration_seconds),
            max_retries=settings.default_max_retries,
            priority=settings.default_priority,
            partition_id=settings.partition_id,
            engine_type=settings.engine_type,
            application_name=settings.application_name,
            application_version=settings.application_version,
            application_namespace=settings.application_namespace,
            application_service=settings.application_service,
        )

    @property
    def channel_pool(self) -> ChannelPool:
        return self._pool

    @property
    def task_options(self) -> TaskOptions:
        return self._task_options

    @property
    def state(self) -> SessionState:
        return self._tracker.state

    @property
    def session(self) -> Optional[Session]:
        return self._tracker.session

    @property
    def session_id(self) -> Optional[str]:
        session = self._tracker.session
        return session.id if session is not None else None

    def __str__(self) -> str:
        return self.session_id or "Session_Not_ready"

    def __repr__(self) -> str:
        return f"SessionService(session_id={self.session_id!r}, state={self.state.value})"

    def _client(self, channel: grpc.Channel) -> SubmitterClient:
        return SubmitterClient(channel, timeout=self._settings.rpc_timeout_seconds)

    def create_session(self, partition_ids: Iterable[str]) -> Session:
        """Create a new control-plane session and bind to it. Not retried."""

        partitions = list(partition_ids)
        try:
            self._tracker.transition(SessionState.CREATING)
        except ValueError as exc:
            raise SessionCreationError(
                f"Cannot create a session from state {self._tracker.state.value}",
                partition_ids=partitions,
            ) from exc

        request = CreateSessionRequest(default_task_option=self._task_options, partition_ids=partitions)
        try:
            reply = self._pool.with_channel(lambda channel: self._client(channel).create_session(request))
            session = Session(id=reply.session_id)
        except Exception as exc:
            self._tracker.transition(SessionState.UNBOUND)
            LOGGER.error("CreateSession failed for partitions %s: %s", partitions, exc)
            raise SessionCreationError(f"CreateSession failed: {exc}", partition_ids=partitions) from exc

        self._tracker.bind(session)
        LOGGER.info("Session %s created (partitions=%s)", session.id, partitions)
        return session

    def open_session(self, session: Union[Session, str]) -> None:
        """Bind to an existing session id without issuing any RPC."""

        if isinstance(session, str):
            session = Session(id=session)
        if self._tracker.session is None:
            LOGGER.debug("Open session %s", session.id)
        elif self._tracker.session != session:
            LOGGER.debug("Rebinding from session %s to %s", self._tracker.session.id, session.id)
        self._tracker.bind(session)

    def submit_tasks(
        self,
        payloads: Iterable[bytes],
        max_retries: Optional[int] = None,
        task_options: Optional[TaskOptions] = None,
    ) -> List[str]:
        """Submit independent tasks; returns one task id per payload, in order."""

        return self.submit_tasks_with_dependencies(
            [(payload, None) for payload in payloads],
            max_retries,
            task_options,
        )

    def submit_task(
        self,
        payload: bytes,
        wait_before_next_submit_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        task_options: Optional[TaskOptions] = None,
    ) -> str:
        """Submit a single task after a short pacing delay."""

        self._tracker.require_bound()
        wait_ms = self._settings.submit_wait_ms if wait_before_next_submit_ms is None else wait_before_next_submit_ms
        if wait_ms > 0:
            LOGGER.debug("Pacing single submission by %sms", wait_ms)
            self._sleep(wait_ms / 1000.0)
        return self.submit_tasks([payload], max_retries, task_options)[0]

    def submit_task_with_dependencies(
        self,
        payload: bytes,
        dependencies: Optional[Sequence[str]],
        max_retries: Optional[int] = None,
        task_options: Optional[TaskOptions] = None,
    ) -> str:
        """Submit one task that starts only after ``dependencies`` complete."""

        return self.submit_tasks_with_dependencies(
            [(payload, dependencies)],
            max_retries,
            task_options,
        )[0]

    def submit_tasks_with_dependencies(
        self,
        payloads_with_dependencies: Iterable[PayloadWithDependencies],
        max_retries: Optional[int] = None,
        task_options: Optional[TaskOptions] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[str]:
        """Submit tasks with per-task dependency lists.

        Returns task ids positionally matching the input. Transient transport
        failures are retried up to ``max_retries`` times (default from
        settings, 5); each attempt leases a channel anew.

        Payloads travel in requests of up to ``submit_chunk_size`` tasks, and
        a request is accepted or rejected as a whole. On failure
        ``SubmissionError.index`` is therefore the position of the first
        payload of the failing request and ``end_index`` is one past its
        last; requests before it were submitted, later ones were not sent.
        """

        session = self._tracker.require_bound()
        policy = RetryPolicy.from_settings(self._settings, max_retries)
        if policy.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        options = task_options if task_options is not None else self._task_options

        entries = [
            TaskRequest(
                payload=bytes(payload),
                data_dependencies=list(dependencies or ()),
                task_options=options,
            )
            for payload, dependencies in payloads_with_dependencies
        ]

        task_ids: List[str] = []
        chunk_size = self._settings.submit_chunk_size
        for start in range(0, len(entries), chunk_size):
            chunk = entries[start : start + chunk_size]
            task_ids.extend(self._submit_chunk(session, chunk, start, policy, cancel_event))
        LOGGER.debug("Submitted %s task(s) to session %s", len(task_ids), session.id)
        return task_ids

    def _submit_chunk(
        self,
        session: Session,
        chunk: List[TaskRequest],
        start: int,
        policy: RetryPolicy,
        cancel_event: Optional[threading.Event],
    ) -> List[str]:
        request = SubmitTasksRequest(session_id=session.id, tasks=chunk)
        end = start + len(chunk)
        attempt = 0
        while True:
            attempt += 1
            try:
                reply = self._pool.with_channel(
                    lambda channel: self._client(channel).submit_tasks(request, cancel_event=cancel_event)
                )
            except grpc.RpcError as exc:
                if not is_transient(exc):
                    raise SubmissionError(
                        f"Submission of tasks [{start}, {end}) rejected ({status_code(exc)}): {exc}",
                        index=start,
                        end_index=end,
                        attempts=attempt,
                        session_id=session.id,
                        retryable=False,
                    ) from exc
                if attempt > policy.max_retries:
                    raise SubmissionError(
                        f"Submission of tasks [{start}, {end}) failed after {attempt} attempt(s): {exc}",
                        index=start,
                        end_index=end,
                        attempts=attempt,
                        session_id=session.id,
                    ) from exc
                delay = policy.delay_for(attempt)
                LOGGER.warning(
                    "Transient failure submitting tasks [%s, %s) (attempt %s/%s): %s; retrying in %.2fs",
                    start,
                    end,
                    attempt,
                    policy.max_retries + 1,
                    status_code(exc),
                    delay,
                )
                self._wait(delay, cancel_event)
                continue

            if len(reply.task_ids) != len(chunk):
                raise SubmissionError(
                    f"Control plane returned {len(reply.task_ids)} task id(s) for {len(chunk)} task(s)",
                    index=start,
                    end_index=end,
                    attempts=attempt,
                    session_id=session.id,
                    retryable=False,
                )
            return list(reply.task_ids)

    def _wait(self, delay: float, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is None:
            self._sleep(delay)
        elif cancel_event.wait(delay):
            raise OperationCancelledError("Operation cancelled while waiting")

    def _fetch_result(
        self,
        session: Session,
        task_id: str,
        cancel_event: Optional[threading.Event],
    ) -> ResultReply:
        request = ResultRequest(session_id=session.id, task_id=task_id)
        try:
            return self._pool.with_channel(
                lambda channel: self._client(channel).get_result(request, cancel_event=cancel_event)
            )
        except grpc.RpcError as exc:
            if status_code(exc) == grpc.StatusCode.NOT_FOUND:
                raise UnknownTaskError(task_id, session_id=session.id) from exc
            raise

    @staticmethod
    def _unwrap(session: Session, task_id: str, reply: ResultReply) -> bytes:
        if reply.status is TaskStatus.COMPLETED:
            return reply.payload or b""
        raise ResultUnavailableError(
            task_id,
            session_id=session.id,
            status=reply.status.value,
            reason=reply.error or "",
        )

    def try_get_result(self, task_id: str) -> Optional[bytes]:
        """Return the result if the task is terminal, else None. One RPC."""

        session = self._tracker.require_bound()
        reply = self._fetch_result(session, task_id, None)
        if not reply.status.terminal:
            return None
        return self._unwrap(session, task_id, reply)

    def get_result(
        self,
        task_id: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        """Block until ``task_id`` is terminal and return its payload."""

        session = self._tracker.require_bound()
        deadline = None if timeout is None else time.monotonic() + timeout
        interval = self._settings.result_poll_interval_seconds
        while True:
            reply = self._fetch_result(session, task_id, cancel_event)
            if reply.status.terminal:
                return self._unwrap(session, task_id, reply)

            wait = interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ResultTimeoutError(task_id, timeout)  # type: ignore[arg-type]
                wait = min(wait, remaining)
            LOGGER.debug("Task %s is %s; polling again in %.2fs", task_id, reply.status.value, wait)
            self._wait(wait, cancel_event)

    def get_results(self, task_ids: Iterable[str], *, timeout: Optional[float] = None) -> Dict[str, bytes]:
        """Wait for each task in turn; the mapping preserves input order."""

        return {task_id: self.get_result(task_id, timeout=timeout) for task_id in task_ids}
