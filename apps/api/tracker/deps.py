from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.cache import task_cache
from tracker.config import settings
from tracker.db import SessionLocal
from tracker.errors import AuthenticationError
from tracker.notifications import notifier
from tracker.services.tasks import TaskService
from tracker.store import TaskStore


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def get_current_username(request: Request) -> str:
  # Authentication happens upstream; the proxy forwards the verified username.
  username = (request.headers.get(settings.username_header) or "").strip()
  if not username:
    raise AuthenticationError("Not authenticated")
  return username


async def get_task_service(db: AsyncSession = Depends(get_db)) -> TaskService:
  return TaskService(TaskStore(db), task_cache, notifier)
