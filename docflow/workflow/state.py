"""
Observable state of a pipeline run.

Per stage:  pending -> running -> success | error
Per run:    not_started -> running -> completed | cancelled | failed

The runner owns a RunState and mutates it in place; observers only ever
see copies produced by snapshot() or carried in ProgressEvents.
"""

from __future__ import annotations

import copy
import json
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from docflow.errors import AppError


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class RunStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.CANCELLED, RunStatus.FAILED)


class CancellationToken:
    """
    Cooperative cancellation flag shared by a runner and its stages.

    Setting the flag never interrupts an in-flight model call; stages check
    it before each chunk and the runner before each stage.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class StageRunRecord:
    """Status of one agent within a run."""

    agent_id: int
    agent_name: str
    status: StageStatus = StageStatus.PENDING
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = self.agent_name

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "status": self.status.value,
            "message": self.message,
        }


@dataclass
class RunState:
    """Complete state of one pipeline run."""

    steps: list[StageRunRecord] = field(default_factory=list)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RunStatus = RunStatus.NOT_STARTED
    current_stage_index: int | None = None
    progress_percent: int = 0
    current_text: str = ""
    final_artifact: str | None = None
    cancelled: bool = False
    error: AppError | None = None
    started_at: str = ""
    completed_at: str = ""

    @property
    def current_step(self) -> StageRunRecord | None:
        if self.current_stage_index is None:
            return None
        return self.steps[self.current_stage_index]

    def snapshot(self) -> "RunState":
        """Return an independent copy for observers."""
        return copy.deepcopy(self)

    def to_dict(self, *, include_text: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "run_id": self.run_id,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "current_stage_index": self.current_stage_index,
            "progress_percent": self.progress_percent,
            "cancelled": self.cancelled,
            "error": self.error.model_dump(mode="json") if self.error else None,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "has_artifact": self.final_artifact is not None,
        }
        if include_text:
            data["current_text"] = self.current_text
            data["final_artifact"] = self.final_artifact
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(include_text=True), indent=indent, default=str)


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update delivered to observers."""

    run_id: str
    status: RunStatus
    overall_percent: int
    stage_index: int | None = None
    stage_message: str = ""
    chunk_index: int | None = None
    total_chunks: int | None = None
    steps: tuple[StageRunRecord, ...] = ()

    @property
    def is_final(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "overall_percent": self.overall_percent,
            "stage_index": self.stage_index,
            "stage_message": self.stage_message,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "steps": [s.to_dict() for s in self.steps],
        }


ProgressObserver = Callable[[ProgressEvent], None]
