from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from tracker.errors import ConflictRetryableError, NotFoundError
from tracker.services.tasks import run_with_retry
from tracker.store import TaskStore, is_conflict


class _DriverError(Exception):
  def __init__(self, text: str, sqlstate: str | None = None) -> None:
    super().__init__(text)
    self.sqlstate = sqlstate


class _FakeSession:
  def __init__(self, commit_error: Exception | None = None) -> None:
    self.commit_error = commit_error
    self.commits = 0
    self.rollbacks = 0

  async def commit(self) -> None:
    if self.commit_error is not None:
      raise self.commit_error
    self.commits += 1

  async def rollback(self) -> None:
    self.rollbacks += 1


def _operational(text: str, sqlstate: str | None = None) -> OperationalError:
  return OperationalError("UPDATE tasks", {}, _DriverError(text, sqlstate))


def _integrity(text: str, sqlstate: str | None = None) -> IntegrityError:
  return IntegrityError("INSERT INTO tasks", {}, _DriverError(text, sqlstate))


def test_is_conflict_classification() -> None:
  assert is_conflict(_operational("could not serialize access", "40001"))
  assert is_conflict(_operational("deadlock detected", "40P01"))
  assert is_conflict(_operational("database is locked"))
  assert is_conflict(_integrity("duplicate key value", "23505"))
  assert is_conflict(_integrity("UNIQUE constraint failed: tasks.task_state_id"))

  assert not is_conflict(_operational("connection refused", "08006"))
  assert not is_conflict(_integrity("NOT NULL constraint failed: tasks.name"))
  assert not is_conflict(_integrity("null value in column", "23502"))


@pytest.mark.anyio
async def test_transaction_commits_on_success() -> None:
  session = _FakeSession()
  async with TaskStore(session).transaction():
    pass
  assert (session.commits, session.rollbacks) == (1, 0)


@pytest.mark.anyio
async def test_transaction_maps_conflicts_and_rolls_back() -> None:
  session = _FakeSession(_operational("could not serialize access", "40001"))
  with pytest.raises(ConflictRetryableError):
    async with TaskStore(session).transaction():
      pass
  assert session.rollbacks == 1


@pytest.mark.anyio
async def test_transaction_reraises_other_errors() -> None:
  session = _FakeSession(_operational("connection refused", "08006"))
  with pytest.raises(OperationalError):
    async with TaskStore(session).transaction():
      pass
  assert session.rollbacks == 1

  session = _FakeSession()
  with pytest.raises(NotFoundError):
    async with TaskStore(session).transaction():
      raise NotFoundError("gone")
  assert (session.commits, session.rollbacks) == (0, 1)


@pytest.mark.anyio
async def test_run_with_retry_retries_conflicts() -> None:
  calls = {"n": 0}

  async def flaky() -> str:
    calls["n"] += 1
    if calls["n"] < 3:
      raise ConflictRetryableError("busy")
    return "done"

  assert await run_with_retry(flaky, attempts=3) == "done"
  assert calls["n"] == 3


@pytest.mark.anyio
async def test_run_with_retry_gives_up_after_limit() -> None:
  calls = {"n": 0}

  async def always_busy() -> None:
    calls["n"] += 1
    raise ConflictRetryableError("busy")

  with pytest.raises(ConflictRetryableError):
    await run_with_retry(always_busy, attempts=2)
  assert calls["n"] == 2


@pytest.mark.anyio
async def test_run_with_retry_does_not_retry_other_errors() -> None:
  calls = {"n": 0}

  async def missing() -> None:
    calls["n"] += 1
    raise NotFoundError("gone")

  with pytest.raises(NotFoundError):
    await run_with_retry(missing, attempts=5)
  assert calls["n"] == 1
