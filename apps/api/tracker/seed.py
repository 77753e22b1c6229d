from __future__ import annotations

import asyncio
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.db import SessionLocal, create_schema
from tracker.models import Project, ProjectMember, TaskState, User
from tracker.security import ROLE_ADMIN, ROLE_USER

DEFAULT_TASK_STATES = ["To do", "In progress", "Done"]


async def ensure_user(db: AsyncSession, username: str, email: str | None = None) -> User:
  res = await db.execute(select(User).where(User.username == username))
  u = res.scalar_one_or_none()
  if not u:
    u = User(username=username, email=email or f"{username}@tracker.local")
    db.add(u)
    await db.flush()
  return u


async def ensure_member(db: AsyncSession, project: Project, user: User, role: str = ROLE_USER) -> ProjectMember:
  res = await db.execute(
    select(ProjectMember).where(ProjectMember.project_id == project.id, ProjectMember.user_id == user.id)
  )
  m = res.scalar_one_or_none()
  if not m:
    m = ProjectMember(project_id=project.id, user_id=user.id, role=role)
    db.add(m)
    await db.flush()
  return m


async def ensure_project(
  db: AsyncSession,
  name: str,
  admin: User,
  task_state_names: list[str] | None = None,
) -> tuple[Project, list[TaskState]]:
  res = await db.execute(select(Project).where(Project.name == name))
  p = res.scalar_one_or_none()
  if not p:
    p = Project(name=name, admin_id=admin.id)
    db.add(p)
    await db.flush()
  await ensure_member(db, p, admin, ROLE_ADMIN)

  sres = await db.execute(select(TaskState).where(TaskState.project_id == p.id).order_by(TaskState.position.asc()))
  states = list(sres.scalars().all())
  if not states:
    for idx, state_name in enumerate(task_state_names or DEFAULT_TASK_STATES):
      s = TaskState(project_id=p.id, name=state_name, position=idx)
      db.add(s)
      states.append(s)
    await db.flush()
  return p, states


async def seed() -> None:
  await create_schema()
  async with SessionLocal() as db:
    admin = await ensure_user(db, os.getenv("SEED_ADMIN_USERNAME", "admin"))
    member = await ensure_user(db, os.getenv("SEED_MEMBER_USERNAME", "member"))
    project, states = await ensure_project(db, "Demo", admin)
    await ensure_member(db, project, member, ROLE_USER)
    await db.commit()
    print(f"Seeded project {project.id} with task states:")
    for s in states:
      print(f"  {s.name}: {s.id}")


def main() -> None:
  asyncio.run(seed())


if __name__ == "__main__":
  main()
