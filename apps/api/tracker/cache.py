from __future__ import annotations

import json
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Union

from redis import asyncio as redis_asyncio

from tracker.config import settings


@dataclass(frozen=True)
class BucketKey:
  """Ordered view of one task state."""

  project_id: str
  task_state_id: str

  def render(self) -> str:
    return f"tasks:state:{self.project_id}:{self.task_state_id}"


@dataclass(frozen=True)
class UserKey:
  """Tasks assigned to one user."""

  username: str

  def render(self) -> str:
    return f"tasks:user:{self.username}"


CacheKey = Union[BucketKey, UserKey]


class MemoryCache:
  """
  In-process TTL cache.

  Notes:
  - Single-process only; multi-replica deployments use the Redis backend.
  - Values are stored as JSON text so callers never share mutable state.
  """

  def __init__(self, *, ttl_seconds: int) -> None:
    self._lock = Lock()
    self._ttl = ttl_seconds
    self._entries: dict[str, tuple[float, str]] = {}

  async def get(self, key: CacheKey) -> Any | None:
    now = time.monotonic()
    with self._lock:
      entry = self._entries.get(key.render())
      if entry is None:
        return None
      expires_at, raw = entry
      if now >= expires_at:
        del self._entries[key.render()]
        return None
    return json.loads(raw)

  async def set(self, key: CacheKey, value: Any) -> None:
    raw = json.dumps(value)
    with self._lock:
      self._entries[key.render()] = (time.monotonic() + self._ttl, raw)

  async def invalidate(self, key: CacheKey) -> None:
    with self._lock:
      self._entries.pop(key.render(), None)

  async def invalidate_all(self) -> None:
    with self._lock:
      self._entries.clear()


class RedisCache:
  def __init__(self, url: str, *, ttl_seconds: int, prefix: str) -> None:
    self._redis = redis_asyncio.from_url(url, encoding="utf-8", decode_responses=True)
    self._ttl = ttl_seconds
    self._prefix = prefix

  def _k(self, key: CacheKey) -> str:
    return f"{self._prefix}:{key.render()}"

  async def get(self, key: CacheKey) -> Any | None:
    raw = await self._redis.get(self._k(key))
    return json.loads(raw) if raw is not None else None

  async def set(self, key: CacheKey, value: Any) -> None:
    await self._redis.set(self._k(key), json.dumps(value), ex=self._ttl)

  async def invalidate(self, key: CacheKey) -> None:
    await self._redis.delete(self._k(key))

  async def invalidate_all(self) -> None:
    batch: list[str] = []
    async for k in self._redis.scan_iter(match=f"{self._prefix}:tasks:*", count=500):
      batch.append(k)
      if len(batch) >= 500:
        await self._redis.delete(*batch)
        batch = []
    if batch:
      await self._redis.delete(*batch)


TaskCache = Union[MemoryCache, RedisCache]


def build_cache() -> TaskCache:
  if settings.cache_backend == "redis":
    if not settings.redis_url:
      raise RuntimeError("REDIS_URL is required when CACHE_BACKEND=redis")
    return RedisCache(settings.redis_url, ttl_seconds=settings.cache_ttl_seconds, prefix=settings.cache_prefix)
  return MemoryCache(ttl_seconds=settings.cache_ttl_seconds)


task_cache = build_cache()
