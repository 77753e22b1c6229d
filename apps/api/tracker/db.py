from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from tracker.config import settings
from tracker.models import Base


def _engine_kwargs() -> dict[str, Any]:
  kwargs: dict[str, Any] = {"echo": settings.db_echo}
  # SQLite gets its write lock from BEGIN IMMEDIATE instead, see _serialize_sqlite_writers.
  if settings.db_isolation_level and not settings.is_sqlite():
    kwargs["isolation_level"] = settings.db_isolation_level
  return kwargs


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
  """
  SQLite ignores FOR UPDATE and the driver defers BEGIN until the first write,
  so two transactions could read the same chain and both commit. Take the
  database write lock when the transaction starts; a writer that cannot get it
  within the busy timeout fails with "database is locked".
  """

  @event.listens_for(engine.sync_engine, "connect")
  def _no_driver_begin(dbapi_connection, _record) -> None:
    dbapi_connection.isolation_level = None

  @event.listens_for(engine.sync_engine, "begin")
  def _begin_immediate(conn) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_async_engine(settings.database_url, **_engine_kwargs())
if settings.is_sqlite():
  _serialize_sqlite_writers(engine)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def create_schema() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)


async def drop_schema() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
