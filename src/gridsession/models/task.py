from __future__ import annotations

import enum
from datetime import timedelta
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, enum.Enum):
    """Lifecycle of a task as reported by the control plane."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


class TaskOptions(BaseModel):
    """Execution requirements attached to submitted tasks."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    max_duration: timedelta = Field(default=timedelta(seconds=40), alias="maxDuration")
    max_retries: int = Field(default=2, ge=0, alias="maxRetries")
    priority: int = Field(default=1, alias="priority")
    partition_id: str = Field(default="", alias="partitionId")
    application_name: str = Field(default="", alias="applicationName")
    application_version: str = Field(default="", alias="applicationVersion")
    application_namespace: str = Field(default="", alias="applicationNamespace")
    application_service: str = Field(default="", alias="applicationService")
    engine_type: str = Field(default="Unified", alias="engineType")
    options: Dict[str, str] = Field(default_factory=dict, alias="options")

    def with_overrides(self, **changes: Any) -> "TaskOptions":
        """Return a validated copy with ``changes`` applied; ``self`` is untouched."""

        data = self.model_dump()
        data.update(changes)
        return TaskOptions.model_validate(data)


class Session(BaseModel):
    """Opaque session handle issued by the control plane."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)

    def __str__(self) -> str:
        return self.id
