"""Task list endpoints for the multi-task panel."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..services.session import GenerationSession
from ..services.tasks import TaskRegistry
from .generation import get_session

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def get_tasks(session: GenerationSession = Depends(get_session)) -> TaskRegistry:
    return session.tasks


def _snapshot(tasks: TaskRegistry) -> dict[str, Any]:
    return {
        "tasks": [task.asdict() for task in tasks.list_tasks()],
        "activeTaskId": tasks.active_task_id,
        "runningCount": tasks.running_count(),
        "maxRunning": tasks.max_running,
    }


@router.get("")
async def list_tasks(tasks: TaskRegistry = Depends(get_tasks)) -> dict[str, Any]:
    return _snapshot(tasks)


@router.post("/{task_id}/active")
async def activate_task(
    task_id: str, tasks: TaskRegistry = Depends(get_tasks)
) -> dict[str, Any]:
    """Mark a task as the one the result pane displays."""

    try:
        tasks.set_active(task_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Task not found") from exc
    return _snapshot(tasks)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str, tasks: TaskRegistry = Depends(get_tasks)
) -> dict[str, Any]:
    if not tasks.remove(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return _snapshot(tasks)


__all__ = ["router"]
