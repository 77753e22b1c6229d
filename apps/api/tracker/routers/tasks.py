from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.deps import get_current_username, get_db, get_task_service
from tracker.schemas import AckOut, TaskHistoryOut, TaskOut
from tracker.security import (
  Permission,
  require_project_permission,
  require_task_permission,
  require_task_state_permission,
)
from tracker.services.tasks import TaskService, run_with_retry

router = APIRouter(prefix="/api", tags=["tasks"])


@router.get("/projects/{project_id}/task-states/{task_state_id}/tasks", response_model=list[TaskOut])
async def list_tasks(
  project_id: str,
  task_state_id: str,
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> list[TaskOut]:
  await require_project_permission(db, project_id, username, Permission.READ)
  return await service.get_tasks(project_id, task_state_id)


@router.post("/projects/{project_id}/task-states/{task_state_id}/tasks", response_model=TaskOut)
async def create_task(
  project_id: str,
  task_state_id: str,
  task_name: str = Query(...),
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> TaskOut:
  await require_project_permission(db, project_id, username, Permission.WRITE)
  return await run_with_retry(lambda: service.create_task(project_id, task_state_id, task_name, username))


@router.get("/tasks/assigned", response_model=list[TaskOut])
async def list_assigned_tasks(
  username: str = Depends(get_current_username),
  service: TaskService = Depends(get_task_service),
) -> list[TaskOut]:
  return await service.get_assigned_tasks(username)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def edit_task(
  task_id: str,
  task_name: str = Query(...),
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> TaskOut:
  await require_task_permission(db, task_id, username, Permission.WRITE)
  return await run_with_retry(lambda: service.edit_task(task_id, task_name, username))


@router.patch("/tasks/{task_id}/position/change", response_model=TaskOut)
async def change_task_position(
  task_id: str,
  optional_left_task_id: str | None = None,
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> TaskOut:
  await require_task_permission(db, task_id, username, Permission.READ)
  # A blank id means "move to head", same as omitting it.
  left_task_id = (optional_left_task_id or "").strip() or None
  return await run_with_retry(lambda: service.change_task_position(task_id, left_task_id, username))


@router.patch("/tasks/{task_id}/state/change", response_model=TaskOut)
async def change_task_state(
  task_id: str,
  new_task_state_id: str = Query(...),
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> TaskOut:
  await require_task_permission(db, task_id, username, Permission.READ)
  await require_task_state_permission(db, new_task_state_id, username, Permission.READ)
  return await run_with_retry(lambda: service.change_task_state(task_id, new_task_state_id, username))


@router.patch("/tasks/{task_id}/assign", response_model=TaskOut)
async def assign_task(
  task_id: str,
  assignee: str = Query(..., alias="username"),
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> TaskOut:
  await require_task_permission(db, task_id, username, Permission.WRITE)
  return await run_with_retry(lambda: service.assign_task_to_user(task_id, assignee, username))


@router.delete("/tasks/{task_id}", response_model=AckOut)
async def delete_task(
  task_id: str,
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> AckOut:
  await require_task_permission(db, task_id, username, Permission.WRITE)
  return await run_with_retry(lambda: service.delete_task(task_id, username))


@router.get("/tasks/{task_id}/history", response_model=list[TaskHistoryOut])
async def task_history(
  task_id: str,
  username: str = Depends(get_current_username),
  db: AsyncSession = Depends(get_db),
  service: TaskService = Depends(get_task_service),
) -> list[TaskHistoryOut]:
  await require_task_permission(db, task_id, username, Permission.READ)
  return await service.get_task_history(task_id)
