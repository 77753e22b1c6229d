from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class TaskOut(BaseModel):
  id: str
  name: str
  taskStateId: str
  leftTaskId: str | None
  rightTaskId: str | None
  assignedUserId: str | None = None
  createdAt: datetime
  updatedAt: datetime


class TaskHistoryOut(BaseModel):
  id: str
  taskId: str
  username: str
  changeType: str
  fieldName: str | None
  oldValue: str | None
  newValue: str | None
  createdAt: datetime


class AckOut(BaseModel):
  answer: bool
