"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_username", "users", ["username"], unique=True)

  op.create_table(
    "projects",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False, unique=True),
    sa.Column("admin_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_projects_admin_id", "projects", ["admin_id"], unique=False)

  op.create_table(
    "project_members",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("project_id", "user_id", name="ux_project_member_project_user"),
  )
  op.create_index("ix_project_members_project_id", "project_members", ["project_id"], unique=False)
  op.create_index("ix_project_members_user_id", "project_members", ["user_id"], unique=False)

  op.create_table(
    "task_states",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_task_states_project_id", "task_states", ["project_id"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("task_state_id", sa.String(36), sa.ForeignKey("task_states.id"), nullable=False),
    sa.Column("left_task_id", sa.String(36), nullable=True),
    sa.Column("right_task_id", sa.String(36), nullable=True),
    sa.Column("assigned_user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_task_state_id", "tasks", ["task_state_id"], unique=False)
  op.create_index("ix_tasks_left_task_id", "tasks", ["left_task_id"], unique=False)
  op.create_index("ix_tasks_right_task_id", "tasks", ["right_task_id"], unique=False)
  op.create_index("ix_tasks_assigned_user_id", "tasks", ["assigned_user_id"], unique=False)
  op.create_index("ux_tasks_task_state_name", "tasks", ["task_state_id", sa.text("lower(name)")], unique=True)

  op.create_table(
    "task_history",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("change_type", sa.String(), nullable=False),
    sa.Column("field_name", sa.String(), nullable=True),
    sa.Column("old_value", sa.Text(), nullable=True),
    sa.Column("new_value", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_task_history_task_id", "task_history", ["task_id"], unique=False)


def downgrade() -> None:
  op.drop_index("ix_task_history_task_id", table_name="task_history")
  op.drop_table("task_history")
  op.drop_index("ux_tasks_task_state_name", table_name="tasks")
  op.drop_index("ix_tasks_assigned_user_id", table_name="tasks")
  op.drop_index("ix_tasks_right_task_id", table_name="tasks")
  op.drop_index("ix_tasks_left_task_id", table_name="tasks")
  op.drop_index("ix_tasks_task_state_id", table_name="tasks")
  op.drop_table("tasks")
  op.drop_index("ix_task_states_project_id", table_name="task_states")
  op.drop_table("task_states")
  op.drop_index("ix_project_members_user_id", table_name="project_members")
  op.drop_index("ix_project_members_project_id", table_name="project_members")
  op.drop_table("project_members")
  op.drop_index("ix_projects_admin_id", table_name="projects")
  op.drop_table("projects")
  op.drop_index("ix_users_username", table_name="users")
  op.drop_table("users")
