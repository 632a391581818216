"""Messages exchanged with the control-plane Submitter service."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .task import TaskOptions, TaskStatus


class _WireModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )


class CreateSessionRequest(_WireModel):
    default_task_option: TaskOptions = Field(alias="defaultTaskOption")
    partition_ids: List[str] = Field(default_factory=list, alias="partitionIds")


class CreateSessionReply(_WireModel):
    session_id: str = Field(alias="sessionId")


class TaskRequest(_WireModel):
    """One task entry of a SubmitTasks request."""

    payload: bytes
    data_dependencies: List[str] = Field(default_factory=list, alias="dataDependencies")
    task_options: Optional[TaskOptions] = Field(default=None, alias="taskOptions")


class SubmitTasksRequest(_WireModel):
    session_id: str = Field(alias="sessionId")
    tasks: List[TaskRequest] = Field(default_factory=list)


class SubmitTasksReply(_WireModel):
    task_ids: List[str] = Field(default_factory=list, alias="taskIds")


class ResultRequest(_WireModel):
    session_id: str = Field(alias="sessionId")
    task_id: str = Field(alias="taskId")


class ResultReply(_WireModel):
    status: TaskStatus
    payload: Optional[bytes] = None
    error: Optional[str] = None
