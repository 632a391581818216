"""Thin gRPC client for the control-plane Submitter service."""

from __future__ import annotations

import logging
import threading
from typing import Optional, TypeVar

import grpc
from pydantic import BaseModel

from gridsession.errors import OperationCancelledError
from gridsession.models import (
    CreateSessionReply,
    CreateSessionRequest,
    ResultReply,
    ResultRequest,
    SubmitTasksReply,
    SubmitTasksRequest,
)
from gridsession.protocol.codec import deserializer, serializer

LOGGER = logging.getLogger(__name__)

SUBMITTER_SERVICE = "gridsession.api.v1.Submitter"
CREATE_SESSION = "CreateSession"
SUBMIT_TASKS = "SubmitTasks"
GET_RESULT = "GetResult"

# request/reply models per method; servers use the same table to register handlers
SUBMITTER_METHODS: dict[str, tuple[type[BaseModel], type[BaseModel]]] = {
    CREATE_SESSION: (CreateSessionRequest, CreateSessionReply),
    SUBMIT_TASKS: (SubmitTasksRequest, SubmitTasksReply),
    GET_RESULT: (ResultRequest, ResultReply),
}

CANCEL_POLL_SECONDS = 0.05

ReplyT = TypeVar("ReplyT", bound=BaseModel)


def method_path(method: str) -> str:
    return f"/{SUBMITTER_SERVICE}/{method}"


class SubmitterClient:
    """Issues Submitter RPCs over one leased channel."""

    def __init__(self, channel: grpc.Channel, *, timeout: Optional[float] = None) -> None:
        self._channel = channel
        self._timeout = timeout

    def _callable(self, method: str) -> grpc.UnaryUnaryMultiCallable:
        request_cls, reply_cls = SUBMITTER_METHODS[method]
        return self._channel.unary_unary(
            method_path(method),
            request_serializer=serializer(request_cls),
            response_deserializer=deserializer(reply_cls),
        )

    def _invoke(
        self,
        method: str,
        request: BaseModel,
        cancel_event: Optional[threading.Event],
    ) -> BaseModel:
        call = self._callable(method)
        if cancel_event is None:
            return call(request, timeout=self._timeout)
        if cancel_event.is_set():
            raise OperationCancelledError(f"{method} cancelled before it was sent")

        future = call.future(request, timeout=self._timeout)
        while True:
            try:
                return future.result(timeout=CANCEL_POLL_SECONDS)
            except grpc.FutureTimeoutError:
                if cancel_event.is_set():
                    future.cancel()
                    LOGGER.debug("Cancelled in-flight %s call", method)
                    raise OperationCancelledError(f"{method} cancelled by caller") from None
            except grpc.FutureCancelledError as exc:
                raise OperationCancelledError(f"{method} cancelled") from exc

    def create_session(
        self,
        request: CreateSessionRequest,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> CreateSessionReply:
        return self._invoke(CREATE_SESSION, request, cancel_event)  # type: ignore[return-value]

    def submit_tasks(
        self,
        request: SubmitTasksRequest,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> SubmitTasksReply:
        return self._invoke(SUBMIT_TASKS, request, cancel_event)  # type: ignore[return-value]

    def get_result(
        self,
        request: ResultRequest,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> ResultReply:
        return self._invoke(GET_RESULT, request, cancel_event)  # type: ignore[return-value]
