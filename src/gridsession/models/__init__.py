from .submitter import (
    CreateSessionReply,
    CreateSessionRequest,
    ResultReply,
    ResultRequest,
    SubmitTasksReply,
    SubmitTasksRequest,
    TaskRequest,
)
from .task import Session, TaskOptions, TaskStatus

__all__ = [
    "CreateSessionReply",
    "CreateSessionRequest",
    "ResultReply",
    "ResultRequest",
    "Session",
    "SubmitTasksReply",
    "SubmitTasksRequest",
    "TaskOptions",
    "TaskRequest",
    "TaskStatus",
]
