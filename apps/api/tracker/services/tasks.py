from __future__ import annotations

import logging
import smtplib
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from redis.exceptions import RedisError
from sqlalchemy import select

from tracker import ordering
from tracker.cache import BucketKey, CacheKey, TaskCache, UserKey
from tracker.config import settings
from tracker.errors import (
  BlankNameError,
  ConflictRetryableError,
  CrossBucketPositionError,
  DuplicateNameError,
  NotFoundError,
  SelfReferenceError,
  ValidationError,
)
from tracker.history import CHANGE_CREATE, CHANGE_DELETE, CHANGE_EDIT, list_task_history, record_history
from tracker.models import Task, TaskHistory, TaskState, User, new_id
from tracker.notifications import EmailNotification, Notifier
from tracker.ordering import Chain
from tracker.schemas import AckOut, TaskHistoryOut, TaskOut
from tracker.store import TaskStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    name=t.name,
    taskStateId=t.task_state_id,
    leftTaskId=t.left_task_id,
    rightTaskId=t.right_task_id,
    assignedUserId=t.assigned_user_id,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


def history_out(h: TaskHistory) -> TaskHistoryOut:
  return TaskHistoryOut(
    id=h.id,
    taskId=h.task_id,
    username=h.username,
    changeType=h.change_type,
    fieldName=h.field_name,
    oldValue=h.old_value,
    newValue=h.new_value,
    createdAt=h.created_at,
  )


def _unique(records: Iterable[Task]) -> list[Task]:
  return list({t.id: t for t in records}.values())


def _clean_name(name: str | None) -> str:
  cleaned = (name or "").strip()
  if not cleaned:
    raise BlankNameError("Task name can't be empty")
  return cleaned


async def run_with_retry(operation: Callable[[], Awaitable[T]], *, attempts: int | None = None) -> T:
  """Re-run `operation` while the store reports a concurrent-update conflict."""
  limit = max(1, attempts if attempts is not None else settings.conflict_retry_attempts)
  attempt = 1
  while True:
    try:
      return await operation()
    except ConflictRetryableError:
      if attempt >= limit:
        raise
      logger.info("Conflict on attempt %d of %d, retrying", attempt, limit)
      attempt += 1


class TaskService:
  """
  Task operations, each one an atomic unit.

  Every mutation runs inside `store.transaction()`: the affected task states
  are locked, their chains re-spliced and verified, the records and a history
  entry written, then the transaction commits. Cached views are invalidated
  only after the commit; an invalidation failure is logged and the entry
  stays stale until it expires.
  """

  def __init__(self, store: TaskStore, cache: TaskCache, notifier: Notifier) -> None:
    self.store = store
    self.cache = cache
    self.notifier = notifier

  @property
  def db(self):
    return self.store.db

  async def _cache_get(self, key: CacheKey) -> Any | None:
    try:
      return await self.cache.get(key)
    except RedisError:
      logger.warning("Cache read failed for %s", key.render(), exc_info=True)
      return None

  async def _cache_set(self, key: CacheKey, value: Any) -> None:
    try:
      await self.cache.set(key, value)
    except RedisError:
      logger.warning("Cache write failed for %s", key.render(), exc_info=True)

  async def _invalidate(self, keys: Iterable[CacheKey]) -> None:
    for key in set(keys):
      try:
        await self.cache.invalidate(key)
      except RedisError:
        logger.warning("Cache invalidation failed for %s; entry stays stale until it expires", key.render(), exc_info=True)

  async def _invalidate_all(self) -> None:
    try:
      await self.cache.invalidate_all()
    except RedisError:
      logger.warning("Cache flush failed; entries stay stale until they expire", exc_info=True)

  async def _user_keys(self, records: Iterable[Task]) -> list[CacheKey]:
    user_ids = {t.assigned_user_id for t in records if t.assigned_user_id}
    if not user_ids:
      return []
    res = await self.db.execute(select(User.username).where(User.id.in_(user_ids)))
    return [UserKey(username) for username in res.scalars().all()]

  async def _ensure_unique_name(self, task_state_id: str, name: str, *, exclude_id: str | None = None) -> None:
    existing = await self.store.find_task_by_name(task_state_id, name)
    if existing is not None and existing.id != exclude_id:
      raise DuplicateNameError(f'Task "{name}" already exists in this task state')

  async def _locked_chain(self, task: Task) -> tuple[TaskState, Chain]:
    states = await self.store.lock_task_states(task.task_state_id)
    state = states[task.task_state_id]
    chain = await self.store.load_bucket(state.id)
    if task.id not in chain:
      raise ConflictRetryableError("Task was moved concurrently, retry the request")
    return state, chain

  async def get_tasks(self, project_id: str, task_state_id: str) -> list[TaskOut]:
    key = BucketKey(project_id, task_state_id)
    cached = await self._cache_get(key)
    if cached is not None:
      return [TaskOut.model_validate(x) for x in cached]

    logger.debug("Loading tasks for project %s and task state %s", project_id, task_state_id)
    state = await self.store.load_task_state(task_state_id)
    if state.project_id != project_id:
      raise NotFoundError(f'Task state with id "{task_state_id}" not found')
    chain = await self.store.load_bucket(task_state_id, lock=False)
    out = [task_out(t) for t in ordering.walk(chain)]
    await self._cache_set(key, [o.model_dump(mode="json") for o in out])
    return out

  async def get_assigned_tasks(self, username: str) -> list[TaskOut]:
    key = UserKey(username)
    cached = await self._cache_get(key)
    if cached is not None:
      return [TaskOut.model_validate(x) for x in cached]

    user = await self.store.load_user(username)
    out = [task_out(t) for t in await self.store.load_assigned_tasks(user.id)]
    await self._cache_set(key, [o.model_dump(mode="json") for o in out])
    return out

  async def get_task_history(self, task_id: str) -> list[TaskHistoryOut]:
    return [history_out(h) for h in await list_task_history(self.db, task_id)]

  async def create_task(self, project_id: str, task_state_id: str, name: str, username: str) -> TaskOut:
    logger.info("Creating task '%s' in project %s, task state %s", name, project_id, task_state_id)
    name = _clean_name(name)

    async with self.store.transaction():
      project = await self.store.load_project(project_id)
      state = (await self.store.lock_task_states(task_state_id))[task_state_id]
      if state.project_id != project.id:
        raise NotFoundError("Project doesn't contain such a task state")
      await self._ensure_unique_name(state.id, name)

      chain = await self.store.load_bucket(state.id)
      task = Task(id=new_id(), name=name, task_state_id=state.id)
      mutated = ordering.append(chain, task)
      ordering.verify(chain)
      await self.store.save(*mutated)
      await record_history(self.db, task_id=task.id, username=username, change_type=CHANGE_CREATE, field_name="name", new_value=name)
      keys = [BucketKey(state.project_id, state.id), *await self._user_keys(mutated)]

    await self._invalidate(keys)
    return task_out(task)

  async def edit_task(self, task_id: str, name: str, username: str) -> TaskOut:
    logger.info("Renaming task %s to '%s'", task_id, name)
    name = _clean_name(name)

    async with self.store.transaction():
      task = await self.store.load_task(task_id)
      await self._ensure_unique_name(task.task_state_id, name, exclude_id=task.id)
      old_name = task.name
      if old_name == name:
        return task_out(task)
      task.name = name
      await self.store.save(task)
      await record_history(
        self.db, task_id=task.id, username=username, change_type=CHANGE_EDIT, field_name="name", old_value=old_name, new_value=name
      )
      state = await self.store.load_task_state(task.task_state_id)
      keys = [BucketKey(state.project_id, state.id), *await self._user_keys([task])]

    await self._invalidate(keys)
    return task_out(task)

  async def change_task_position(self, task_id: str, left_task_id: str | None, username: str) -> TaskOut:
    logger.info("Changing position of task %s to follow %s", task_id, left_task_id)

    async with self.store.transaction():
      task = await self.store.load_task(task_id)
      if task.left_task_id == left_task_id:
        return task_out(task)
      if left_task_id is not None and left_task_id == task_id:
        raise SelfReferenceError("Left task id equals changed task")

      state, chain = await self._locked_chain(task)
      old_left_id = task.left_task_id
      if old_left_id == left_task_id:
        return task_out(task)

      anchor = None
      if left_task_id is not None:
        anchor = chain.tasks.get(left_task_id)
        if anchor is None:
          await self.store.load_task(left_task_id)
          raise CrossBucketPositionError("Task position can be changed within the same task state")

      mutated = ordering.detach(chain, task)
      mutated += ordering.insert_after(chain, task, anchor)
      ordering.verify(chain)
      mutated = _unique(mutated)
      await self.store.save(*mutated)
      await record_history(
        self.db,
        task_id=task.id,
        username=username,
        change_type=CHANGE_EDIT,
        field_name="task position",
        old_value=old_left_id,
        new_value=left_task_id,
      )
      keys = [BucketKey(state.project_id, state.id), *await self._user_keys(mutated)]

    await self._invalidate(keys)
    return task_out(task)

  async def change_task_state(self, task_id: str, new_task_state_id: str, username: str) -> TaskOut:
    logger.info("Moving task %s to task state %s", task_id, new_task_state_id)

    async with self.store.transaction():
      task = await self.store.load_task(task_id)
      await self.store.load_task_state(new_task_state_id)
      if task.task_state_id == new_task_state_id:
        return task_out(task)

      source_id = task.task_state_id
      states = await self.store.lock_task_states(source_id, new_task_state_id)
      source, target = states[source_id], states[new_task_state_id]
      if source.project_id != target.project_id:
        raise ValidationError("Task can only be moved between task states of the same project")

      source_chain = await self.store.load_bucket(source.id)
      target_chain = await self.store.load_bucket(target.id)
      if task.id not in source_chain:
        raise ConflictRetryableError("Task was moved concurrently, retry the request")
      if any(t.name.lower() == task.name.lower() for t in target_chain.tasks.values()):
        raise DuplicateNameError(f'Task state "{target.name}" already contains task name "{task.name}"')

      mutated = ordering.detach(source_chain, task)
      mutated += ordering.append(target_chain, task)
      ordering.verify(source_chain)
      ordering.verify(target_chain)
      mutated = _unique(mutated)
      await self.store.save(*mutated)
      await record_history(
        self.db,
        task_id=task.id,
        username=username,
        change_type=CHANGE_EDIT,
        field_name="task state",
        old_value=source.name,
        new_value=target.name,
      )
      keys = [
        BucketKey(source.project_id, source.id),
        BucketKey(target.project_id, target.id),
        *await self._user_keys(mutated),
      ]

    await self._invalidate(keys)
    return task_out(task)

  async def delete_task(self, task_id: str, username: str) -> AckOut:
    logger.warning("Deleting task %s", task_id)

    async with self.store.transaction():
      task = await self.store.load_task(task_id)
      state, chain = await self._locked_chain(task)
      mutated = ordering.detach(chain, task)
      ordering.verify(chain)
      keys = [BucketKey(state.project_id, state.id), *await self._user_keys([task, *mutated])]
      await self.store.save(*mutated)
      await record_history(
        self.db, task_id=task.id, username=username, change_type=CHANGE_DELETE, field_name="name", old_value=task.name
      )
      await self.store.delete_task(task)

    await self._invalidate(keys)
    return AckOut(answer=True)

  async def assign_task_to_user(self, task_id: str, assignee: str, username: str) -> TaskOut:
    logger.info("Assigning task %s to user %s", task_id, assignee)

    async with self.store.transaction():
      task = await self.store.load_task(task_id)
      state = await self.store.load_task_state(task.task_state_id)
      user = await self.store.load_user(assignee)
      if not await self.store.is_project_member(state.project_id, user.id):
        raise ValidationError(f"Project doesn't contain user: {assignee}")

      # A task that was never assigned is recorded with an empty old value.
      previous = await self.store.load_user_by_id(task.assigned_user_id) if task.assigned_user_id else None
      task.assigned_user_id = user.id
      await self.store.save(task)
      await record_history(
        self.db,
        task_id=task.id,
        username=username,
        change_type=CHANGE_EDIT,
        field_name="assigned user",
        old_value=previous.username if previous else None,
        new_value=user.username,
      )

    await self._invalidate_all()
    msg = EmailNotification(
      to=user.email,
      subject="You have been assigned a task",
      body=f"You have been assigned to the task: {task.name}",
    )
    try:
      await self.notifier.send(msg)
    except (smtplib.SMTPException, OSError):
      logger.warning("Assignment email to %s failed", user.email, exc_info=True)
    return task_out(task)
