from __future__ import annotations

import asyncio

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from tracker.config import settings
from tracker.models import Base

config = context.config
target_metadata = Base.metadata


def _url() -> str:
  return config.get_main_option("sqlalchemy.url") or settings.database_url


def run_migrations_offline() -> None:
  context.configure(url=_url(), target_metadata=target_metadata, literal_binds=True)
  with context.begin_transaction():
    context.run_migrations()


def _run(connection: Connection) -> None:
  context.configure(connection=connection, target_metadata=target_metadata)
  with context.begin_transaction():
    context.run_migrations()


async def run_migrations_online() -> None:
  engine = create_async_engine(_url())
  async with engine.connect() as conn:
    await conn.run_sync(_run)
  await engine.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_migrations_online())
