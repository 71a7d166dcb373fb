"""In-memory registry of generation tasks with a cap on running ones."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..generation.types import GenerationMode
from ..schemas.generation import GenerationResult

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskLimitReached(Exception):
    """Raised when a new task would exceed the running-task cap."""

    def __init__(self, limit: int):
        super().__init__(f"Task queue is full, at most {limit} tasks can run at once")
        self.limit = limit


@dataclass(slots=True)
class Task:
    """One generation request tracked for display."""

    mode: GenerationMode
    prompt: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: TaskStatus = TaskStatus.RUNNING
    progress: float = 0.0
    stage: Optional[str] = None
    result_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_running(self) -> bool:
        return self.status is TaskStatus.RUNNING

    def asdict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mode": self.mode.value,
            "prompt": self.prompt,
            "status": self.status.value,
            "progress": self.progress,
            "stage": self.stage,
            "error": self.error,
            "resultId": self.result_id,
            "createdAt": self.created_at.isoformat(),
        }


class TaskRegistry:
    """Track tasks in insertion order; at most ``max_running`` may run at once.

    Adding a task evicts the oldest finished tasks beyond ``max_finished``, so
    the registry never holds more than ``max_running + max_finished``. A
    completed task only records the id of its result, which lives in history.
    """

    def __init__(self, max_running: int = 3, max_finished: int = 3) -> None:
        self._max_running = max_running
        self._max_finished = max_finished
        self._tasks: list[Task] = []
        self.active_task_id: Optional[str] = None

    @property
    def max_running(self) -> int:
        return self._max_running

    def running_count(self) -> int:
        return sum(1 for task in self._tasks if task.is_running)

    def can_add(self) -> bool:
        return self.running_count() < self._max_running

    def add(self, mode: GenerationMode, prompt: str) -> Task:
        if not self.can_add():
            raise TaskLimitReached(self._max_running)
        self._evict_finished(keep=self._max_finished)
        task = Task(mode=mode, prompt=prompt)
        self._tasks.append(task)
        self.active_task_id = task.id
        logger.debug("Task %s added (%s)", task.id, mode.value)
        return task

    def _evict_finished(self, keep: int) -> None:
        finished = [task for task in self._tasks if not task.is_running]
        excess = len(finished) - keep
        if excess <= 0:
            return
        for task in finished[:excess]:
            logger.debug("Evicting finished task %s", task.id)
            self.remove(task.id)

    def get(self, task_id: str) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def list_tasks(self) -> list[Task]:
        return list(self._tasks)

    def update_progress(self, task_id: str, percent: float, stage: str | None = None) -> None:
        task = self.get(task_id)
        if task is None or not task.is_running:
            return
        task.progress = percent
        task.stage = stage

    def complete(self, task_id: str, result: GenerationResult) -> None:
        task = self.get(task_id)
        if task is None:
            return
        task.status = TaskStatus.COMPLETED
        task.progress = 100.0
        task.result_id = result.id

    def fail(self, task_id: str, error: str) -> None:
        task = self.get(task_id)
        if task is None:
            return
        task.status = TaskStatus.FAILED
        task.error = error

    def remove(self, task_id: str) -> bool:
        before = len(self._tasks)
        self._tasks = [task for task in self._tasks if task.id != task_id]
        if len(self._tasks) == before:
            return False
        if not self._tasks:
            self.active_task_id = None
        elif self.active_task_id == task_id:
            self.active_task_id = self._tasks[0].id
        return True

    def set_active(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise KeyError(f"Unknown task: {task_id}")
        self.active_task_id = task_id
        return task


__all__ = ["Task", "TaskLimitReached", "TaskRegistry", "TaskStatus"]
