"""Task lifecycle model.

A ``Task`` tracks one dispatched batch (or one workflow run) end to end.
Only the orchestrator mutates tasks, and only through the transition
methods below, which enforce:

- ``PENDING → RUNNING → COMPLETED | FAILED`` (``PENDING → FAILED`` allowed);
- progress in ``[0, 100]`` and non-decreasing while running;
- terminal states are final.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sentinel_pipeline.core.exceptions import TaskStateError


class TaskStatus(enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


def new_task_id(prefix: str = "GE") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


@dataclass(slots=True)
class Task:
    """One tracked batch job.

    Attributes:
        task_id: Unique identifier.
        name: Display name.
        destination: Destination kind value (``LOCAL``, ``DRIVE``, ``WORKFLOW`` ...).
        status: Lifecycle state.
        progress: Completion percentage in ``[0, 100]``.
        created_at: Creation time (UTC).
        started_at: Time the task entered ``RUNNING``.
        finished_at: Time the task reached a terminal state.
        error: Error message for ``FAILED`` tasks.
    """

    name: str
    destination: str
    task_id: str = field(default_factory=new_task_id)
    status: TaskStatus = TaskStatus.PENDING
    progress: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None

    def start(self) -> None:
        if self.status is not TaskStatus.PENDING:
            msg = f"Task {self.task_id} cannot start from {self.status.value}"
            raise TaskStateError(msg, correlation_id=self.task_id)
        self.status = TaskStatus.RUNNING
        self.started_at = datetime.now(UTC)

    def advance(self, completed: int, total: int) -> float:
        """Set progress to ``completed / total * 100``.

        Raises:
            TaskStateError: If the task is not running, the ratio is out of
                range, or the new value would move progress backwards.
        """
        if self.status is not TaskStatus.RUNNING:
            msg = f"Task {self.task_id} is {self.status.value}; progress is frozen"
            raise TaskStateError(msg, correlation_id=self.task_id)
        if total <= 0 or not 0 <= completed <= total:
            msg = f"Invalid progress ratio {completed}/{total}"
            raise TaskStateError(msg, correlation_id=self.task_id)
        value = completed / total * 100
        if value < self.progress:
            msg = f"Progress may not decrease ({self.progress:.1f} -> {value:.1f})"
            raise TaskStateError(msg, correlation_id=self.task_id)
        self.progress = value
        return value

    def complete(self) -> None:
        if self.status is not TaskStatus.RUNNING:
            msg = f"Task {self.task_id} cannot complete from {self.status.value}"
            raise TaskStateError(msg, correlation_id=self.task_id)
        self.status = TaskStatus.COMPLETED
        self.progress = 100.0
        self.finished_at = datetime.now(UTC)

    def fail(self, error: str) -> None:
        if self.status.is_terminal:
            msg = f"Task {self.task_id} is already {self.status.value}"
            raise TaskStateError(msg, correlation_id=self.task_id)
        self.status = TaskStatus.FAILED
        self.error = error
        self.finished_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.task_id,
            "name": self.name,
            "type": self.destination,
            "status": self.status.value,
            "progress": round(self.progress, 2),
            "createdAt": self.created_at.isoformat(),
            "startTime": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
        }
