from __future__ import annotations

from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.errors import NotFoundError, PermissionDeniedError
from tracker.models import Project, ProjectMember, Task, TaskState, User


class Permission(str, Enum):
  READ = "READ"
  WRITE = "WRITE"


ROLE_ADMIN = "ROLE_ADMIN"
ROLE_USER = "ROLE_USER"

ROLE_PERMISSIONS: dict[str, frozenset[Permission]] = {
  ROLE_ADMIN: frozenset({Permission.READ, Permission.WRITE}),
  ROLE_USER: frozenset({Permission.READ}),
}


def role_allows(role: str, permission: Permission) -> bool:
  return permission in ROLE_PERMISSIONS.get(role, frozenset())


async def project_role(db: AsyncSession, project_id: str, username: str) -> str:
  pres = await db.execute(select(Project.id).where(Project.id == project_id))
  if pres.scalar_one_or_none() is None:
    raise NotFoundError(f'Project with id "{project_id}" not found')
  res = await db.execute(
    select(ProjectMember.role)
    .join(User, User.id == ProjectMember.user_id)
    .where(ProjectMember.project_id == project_id, User.username == username)
  )
  role = res.scalar_one_or_none()
  if role is None:
    raise PermissionDeniedError("No permissions")
  return role


async def require_project_permission(db: AsyncSession, project_id: str, username: str, permission: Permission) -> str:
  role = await project_role(db, project_id, username)
  if not role_allows(role, permission):
    raise PermissionDeniedError("Insufficient permissions")
  return role


async def require_task_state_permission(db: AsyncSession, task_state_id: str, username: str, permission: Permission) -> str:
  res = await db.execute(select(TaskState.project_id).where(TaskState.id == task_state_id))
  project_id = res.scalar_one_or_none()
  if project_id is None:
    raise NotFoundError(f'Task state with id "{task_state_id}" not found')
  return await require_project_permission(db, project_id, username, permission)


async def require_task_permission(db: AsyncSession, task_id: str, username: str, permission: Permission) -> str:
  res = await db.execute(
    select(TaskState.project_id).join(Task, Task.task_state_id == TaskState.id).where(Task.id == task_id)
  )
  project_id = res.scalar_one_or_none()
  if project_id is None:
    raise NotFoundError(f'Task with id "{task_id}" not found')
  return await require_project_permission(db, project_id, username, permission)
