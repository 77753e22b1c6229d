from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://tracker:tracker@db:5432/tracker"
  db_isolation_level: str | None = "SERIALIZABLE"
  db_echo: bool = False
  create_schema_on_start: bool = False
  app_version: str = "v2026-10-18"
  build_sha: str = "dev"
  log_level: str = "INFO"
  api_host: str = "0.0.0.0"
  api_port: int = 8000

  cache_backend: str = "memory"  # memory | redis
  redis_url: str | None = "redis://redis:6379/0"
  cache_ttl_seconds: int = 300
  cache_prefix: str = "tracker"

  conflict_retry_attempts: int = 3
  username_header: str = "X-Username"

  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_username: str | None = None
  smtp_password: str | None = None
  smtp_from: str = "tracker@localhost"
  smtp_starttls: bool = True

  def is_sqlite(self) -> bool:
    return self.database_url.startswith("sqlite")


settings = Settings()
