"""In-process Submitter service used by the end-to-end tests."""

from __future__ import annotations

import threading
from concurrent import futures
from dataclasses import dataclass, field
from itertools import count
from typing import Callable, Dict, List, Optional

import grpc

from gridsession.models import (
    CreateSessionReply,
    CreateSessionRequest,
    ResultReply,
    ResultRequest,
    SubmitTasksReply,
    SubmitTasksRequest,
    TaskRequest,
    TaskStatus,
)
from gridsession.protocol import (
    CREATE_SESSION,
    GET_RESULT,
    SUBMIT_TASKS,
    SUBMITTER_METHODS,
    SUBMITTER_SERVICE,
    deserializer,
    serializer,
)


@dataclass
class _StoredTask:
    session_id: str
    request: TaskRequest
    polls: int = 0


@dataclass
class FakeControlPlane:
    """Records requests and answers them from memory.

    ``fail_submits`` makes the next N SubmitTasks calls abort with
    ``fail_code``. ``pending_polls`` makes GetResult answer PROCESSING that
    many times per task before reporting a terminal state. A request holding
    a payload that starts with ``b"reject"`` is refused as INVALID_ARGUMENT.
    Payloads starting with ``b"fail"`` end FAILED; others complete with
    ``execute(payload)``.
    """

    execute: Callable[[bytes], bytes] = lambda payload: payload[::-1]
    fail_submits: int = 0
    fail_code: grpc.StatusCode = grpc.StatusCode.UNAVAILABLE
    pending_polls: int = 0
    fail_create: bool = False

    sessions: Dict[str, CreateSessionRequest] = field(default_factory=dict)
    tasks: Dict[str, _StoredTask] = field(default_factory=dict)
    submit_requests: List[SubmitTasksRequest] = field(default_factory=list)
    submit_calls: int = 0
    result_calls: int = 0
    _ids: count = field(default_factory=count)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def create_session(self, request: CreateSessionRequest, context: grpc.ServicerContext) -> CreateSessionReply:
        if self.fail_create:
            context.abort(grpc.StatusCode.UNAVAILABLE, "control plane unavailable")
        with self._lock:
            session_id = f"session-{next(self._ids)}"
            self.sessions[session_id] = request
        return CreateSessionReply(session_id=session_id)

    def submit_tasks(self, request: SubmitTasksRequest, context: grpc.ServicerContext) -> SubmitTasksReply:
        with self._lock:
            self.submit_calls += 1
            failing = self.fail_submits > 0
            if failing:
                self.fail_submits -= 1
        if failing:
            context.abort(self.fail_code, "injected submission failure")
        if request.session_id not in self.sessions:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, f"unknown session {request.session_id}")
        if any(task.payload.startswith(b"reject") for task in request.tasks):
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, "payload rejected")
        with self._lock:
            self.submit_requests.append(request)
            task_ids = []
            for task in request.tasks:
                task_id = f"task-{next(self._ids)}"
                self.tasks[task_id] = _StoredTask(session_id=request.session_id, request=task)
                task_ids.append(task_id)
        return SubmitTasksReply(task_ids=task_ids)

    def get_result(self, request: ResultRequest, context: grpc.ServicerContext) -> ResultReply:
        with self._lock:
            self.result_calls += 1
            stored = self.tasks.get(request.task_id)
            if stored is not None and stored.polls < self.pending_polls:
                stored.polls += 1
                return ResultReply(status=TaskStatus.PROCESSING)
        if stored is None or stored.session_id != request.session_id:
            context.abort(grpc.StatusCode.NOT_FOUND, f"unknown task {request.task_id}")
        payload = stored.request.payload
        if payload.startswith(b"fail"):
            return ResultReply(status=TaskStatus.FAILED, error="worker raised")
        return ResultReply(status=TaskStatus.COMPLETED, payload=self.execute(payload))

    def generic_handler(self) -> grpc.GenericRpcHandler:
        behaviours = {
            CREATE_SESSION: self.create_session,
            SUBMIT_TASKS: self.submit_tasks,
            GET_RESULT: self.get_result,
        }
        handlers = {}
        for method, (request_cls, reply_cls) in SUBMITTER_METHODS.items():
            handlers[method] = grpc.unary_unary_rpc_method_handler(
                behaviours[method],
                request_deserializer=deserializer(request_cls),
                response_serializer=serializer(reply_cls),
            )
        return grpc.method_handlers_generic_handler(SUBMITTER_SERVICE, handlers)


class ControlPlaneServer:
    """Runs a FakeControlPlane on an ephemeral local port."""

    def __init__(
        self,
        plane: Optional[FakeControlPlane] = None,
        *,
        server_credentials: Optional[grpc.ServerCredentials] = None,
    ) -> None:
        self.plane = plane or FakeControlPlane()
        self._server = grpc.server(futures.ThreadPoolExecutor(max_workers=8))
        self._server.add_generic_rpc_handlers((self.plane.generic_handler(),))
        self.secure = server_credentials is not None
        if self.secure:
            self.port = self._server.add_secure_port("127.0.0.1:0", server_credentials)
        else:
            self.port = self._server.add_insecure_port("127.0.0.1:0")

    @property
    def endpoint(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://127.0.0.1:{self.port}"

    def start(self) -> "ControlPlaneServer":
        self._server.start()
        return self

    def stop(self) -> None:
        self._server.stop(None)
