from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from tracker.config import settings
from tracker.db import create_schema
from tracker.errors import InternalConsistencyError, TrackerError
from tracker.logging_setup import setup_logging
from tracker.routers.tasks import router as tasks_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Task Tracker API", version="0.1.0")


@app.exception_handler(TrackerError)
async def _tracker_error_handler(_, exc: TrackerError) -> JSONResponse:
  if isinstance(exc, InternalConsistencyError):
    logger.error("Task chain invariant violated: %s", exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(tasks_router)


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.on_event("startup")
async def _startup() -> None:
  setup_logging(settings.log_level)
  if settings.create_schema_on_start:
    await create_schema()


def run() -> None:
  uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
