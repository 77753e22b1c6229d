from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.errors import ConflictRetryableError, NotFoundError
from tracker.models import Project, ProjectMember, Task, TaskState, User
from tracker.ordering import Chain, build_chain

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, unique_violation
_CONFLICT_SQLSTATES = {"40001", "40P01"}
_UNIQUE_SQLSTATE = "23505"


def _sqlstate(exc: DBAPIError) -> str | None:
  orig = exc.orig
  return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_conflict(exc: DBAPIError) -> bool:
  code = _sqlstate(exc)
  text = str(exc.orig).lower()
  if isinstance(exc, IntegrityError):
    return code == _UNIQUE_SQLSTATE or "unique constraint failed" in text
  return code in _CONFLICT_SQLSTATES or "database is locked" in text


class TaskStore:
  """Persistence for tasks and their links. One instance per session / request."""

  def __init__(self, db: AsyncSession) -> None:
    self.db = db

  @asynccontextmanager
  async def transaction(self) -> AsyncIterator["TaskStore"]:
    try:
      yield self
      await self.db.commit()
    except DBAPIError as exc:
      await self.db.rollback()
      if is_conflict(exc):
        logger.info("Transaction aborted by a concurrent update: %s", exc.orig)
        raise ConflictRetryableError("Task state was modified concurrently, retry the request") from exc
      raise
    except BaseException:
      await self.db.rollback()
      raise

  async def load_task(self, task_id: str) -> Task:
    res = await self.db.execute(select(Task).where(Task.id == task_id))
    t = res.scalar_one_or_none()
    if not t:
      raise NotFoundError(f'Task with id "{task_id}" not found')
    return t

  async def load_task_state(self, task_state_id: str) -> TaskState:
    res = await self.db.execute(select(TaskState).where(TaskState.id == task_state_id))
    s = res.scalar_one_or_none()
    if not s:
      raise NotFoundError(f'Task state with id "{task_state_id}" not found')
    return s

  async def load_project(self, project_id: str) -> Project:
    res = await self.db.execute(select(Project).where(Project.id == project_id))
    p = res.scalar_one_or_none()
    if not p:
      raise NotFoundError(f'Project with id "{project_id}" not found')
    return p

  async def load_user(self, username: str) -> User:
    res = await self.db.execute(select(User).where(User.username == username))
    u = res.scalar_one_or_none()
    if not u:
      raise NotFoundError(f'User "{username}" not found')
    return u

  async def load_user_by_id(self, user_id: str) -> User | None:
    res = await self.db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()

  async def is_project_member(self, project_id: str, user_id: str) -> bool:
    res = await self.db.execute(
      select(ProjectMember.id).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
    )
    return res.scalar_one_or_none() is not None

  async def lock_task_states(self, *task_state_ids: str) -> dict[str, TaskState]:
    # Ascending id order so two moves in opposite directions cannot deadlock.
    locked: dict[str, TaskState] = {}
    for sid in sorted(set(task_state_ids)):
      res = await self.db.execute(
        select(TaskState).where(TaskState.id == sid).with_for_update().execution_options(populate_existing=True)
      )
      s = res.scalar_one_or_none()
      if not s:
        raise NotFoundError(f'Task state with id "{sid}" not found')
      locked[sid] = s
    return locked

  async def load_bucket(self, task_state_id: str, *, lock: bool = True) -> Chain:
    q = select(Task).where(Task.task_state_id == task_state_id)
    if lock:
      q = q.with_for_update().execution_options(populate_existing=True)
    res = await self.db.execute(q)
    return build_chain(task_state_id, res.scalars().all())

  async def find_task_by_name(self, task_state_id: str, name: str) -> Task | None:
    res = await self.db.execute(
      select(Task).where(Task.task_state_id == task_state_id, func.lower(Task.name) == name.lower())
    )
    return res.scalars().first()

  async def load_assigned_tasks(self, user_id: str) -> list[Task]:
    res = await self.db.execute(select(Task).where(Task.assigned_user_id == user_id).order_by(Task.created_at.asc()))
    return list(res.scalars().all())

  async def save(self, *tasks: Task) -> None:
    self.db.add_all(tasks)
    await self.db.flush()

  async def delete_task(self, task: Task) -> None:
    await self.db.delete(task)
    await self.db.flush()
