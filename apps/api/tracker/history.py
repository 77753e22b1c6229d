from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.models import TaskHistory

CHANGE_CREATE = "CREATE"
CHANGE_EDIT = "EDIT"
CHANGE_DELETE = "DELETE"


def _text(value: object) -> str | None:
  return None if value is None else str(value)


async def record_history(
  db: AsyncSession,
  *,
  task_id: str,
  username: str,
  change_type: str,
  field_name: str | None = None,
  old_value: object = None,
  new_value: object = None,
) -> TaskHistory:
  h = TaskHistory(
    task_id=task_id,
    username=username,
    change_type=change_type,
    field_name=field_name,
    old_value=_text(old_value),
    new_value=_text(new_value),
  )
  db.add(h)
  return h


async def list_task_history(db: AsyncSession, task_id: str) -> list[TaskHistory]:
  res = await db.execute(
    select(TaskHistory).where(TaskHistory.task_id == task_id).order_by(TaskHistory.created_at.asc(), TaskHistory.id.asc())
  )
  return list(res.scalars().all())
