from __future__ import annotations

import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / '.tracker_test.db'}")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.pop("SMTP_HOST", None)

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker import ordering
from tracker.cache import MemoryCache, task_cache
from tracker.config import settings
from tracker.db import SessionLocal, create_schema, drop_schema, engine
from tracker.main import app
from tracker.models import Task
from tracker.notifications import LocalNotifier
from tracker.security import ROLE_USER
from tracker.seed import ensure_member, ensure_project, ensure_user
from tracker.services.tasks import TaskService
from tracker.store import TaskStore


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
async def db() -> AsyncSession:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. tracker_test)."
    )
  await drop_schema()
  await create_schema()
  await task_cache.invalidate_all()
  async with SessionLocal() as session:
    yield session
  await engine.dispose()


@pytest.fixture
async def board(db: AsyncSession) -> SimpleNamespace:
  # Plain ids only: ORM instances expire whenever a test transaction rolls back.
  admin = await ensure_user(db, "admin")
  member = await ensure_user(db, "member")
  await ensure_user(db, "outsider")
  project, states = await ensure_project(db, "Test project", admin, ["To do", "In progress", "Done"])
  await ensure_member(db, project, member, ROLE_USER)
  other, other_states = await ensure_project(db, "Other project", admin, ["Inbox"])
  await db.commit()
  return SimpleNamespace(
    project_id=project.id,
    todo_id=states[0].id,
    doing_id=states[1].id,
    done_id=states[2].id,
    other_project_id=other.id,
    other_state_id=other_states[0].id,
  )


@pytest.fixture
def cache() -> MemoryCache:
  return MemoryCache(ttl_seconds=300)


@pytest.fixture
def notifier() -> LocalNotifier:
  return LocalNotifier()


@pytest.fixture
async def service(db: AsyncSession, cache: MemoryCache, notifier: LocalNotifier) -> TaskService:
  return TaskService(TaskStore(db), cache, notifier)


@pytest.fixture
async def client(db: AsyncSession) -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


def as_user(username: str) -> dict[str, str]:
  return {settings.username_header: username}


async def chain_names(db: AsyncSession, task_state_id: str) -> list[str]:
  """Names in list order, after checking every chain invariant."""
  res = await db.execute(select(Task).where(Task.task_state_id == task_state_id))
  chain = ordering.build_chain(task_state_id, res.scalars().all())
  return [t.name for t in ordering.verify(chain)]


async def load_task(db: AsyncSession, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id).execution_options(populate_existing=True))
  return res.scalar_one()
