"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


member_role_enum = sa.Enum("parent", "child", name="member_role")
points_transaction_type_enum = sa.Enum("earned", "spent", "adjusted", name="points_transaction_type")
points_reference_type_enum = sa.Enum("task", "reward", "manual", name="points_reference_type")
task_priority_enum = sa.Enum("low", "medium", "high", "urgent", name="task_priority")
task_recurrence_pattern_enum = sa.Enum("daily", "weekly", "monthly", name="task_recurrence_pattern")
task_status_enum = sa.Enum("active", "inactive", "archived", name="task_status")
assignment_status_enum = sa.Enum(
    "pending",
    "in_progress",
    "pending_review",
    "approved",
    "rejected",
    "overdue",
    name="assignment_status",
)
reward_status_enum = sa.Enum("available", "unavailable", name="reward_status")
redemption_status_enum = sa.Enum("pending", "approved", "denied", "cancelled", name="redemption_status")

_ENUMS = (
    member_role_enum,
    points_transaction_type_enum,
    points_reference_type_enum,
    task_priority_enum,
    task_recurrence_pattern_enum,
    task_status_enum,
    assignment_status_enum,
    reward_status_enum,
    redemption_status_enum,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum in _ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "families",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "family_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", member_role_enum, nullable=False),
        sa.Column("points_balance", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("points_balance >= 0", name="ck_family_members_points_balance_non_negative"),
        sa.ForeignKeyConstraint(["family_id"], ["families.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "family_id", name="uq_family_members_user_id_family_id"),
    )
    op.create_index("ix_family_members_family_id", "family_members", ["family_id"])

    op.create_table(
        "points_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_member_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", points_transaction_type_enum, nullable=False),
        sa.Column("points_amount", sa.Integer(), nullable=False),
        sa.Column("reference_type", points_reference_type_enum, nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference_type", "reference_id", name="uq_points_log_reference"),
    )
    op.create_index(
        "ix_points_log_family_member_id_created_at",
        "points_log",
        ["family_member_id", "created_at"],
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("priority", task_priority_enum, nullable=False),
        sa.Column("points_reward", sa.Integer(), nullable=False),
        sa.Column("photo_required", sa.Boolean(), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurrence_pattern", task_recurrence_pattern_enum, nullable=True),
        sa.Column("status", task_status_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("points_reward >= 0", name="ck_tasks_points_reward_non_negative"),
        sa.ForeignKeyConstraint(["family_id"], ["families.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["family_members.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_family_id", "tasks", ["family_id"])

    op.create_table(
        "task_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("assigned_to", sa.Integer(), nullable=False),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", assignment_status_enum, nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_comments", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
        sa.ForeignKeyConstraint(["assigned_to"], ["family_members.id"]),
        sa.ForeignKeyConstraint(["assigned_by"], ["family_members.id"]),
        sa.ForeignKeyConstraint(["reviewed_by"], ["family_members.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_assignments_assigned_to_status", "task_assignments", ["assigned_to", "status"])
    op.create_index("ix_task_assignments_status_due_date", "task_assignments", ["status", "due_date"])

    op.create_table(
        "task_submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("assignment_id", sa.Integer(), nullable=False),
        sa.Column("photo_url", sa.String(length=500), nullable=True),
        sa.Column("submission_notes", sa.Text(), nullable=True),
        sa.Column("is_latest", sa.Boolean(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["assignment_id"], ["task_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_submissions_assignment_id", "task_submissions", ["assignment_id"])

    op.create_table(
        "rewards",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("family_id", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("points_required", sa.Integer(), nullable=False),
        sa.Column("quantity_available", sa.Integer(), nullable=True),
        sa.Column("quantity_redeemed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status", reward_status_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("points_required >= 0", name="ck_rewards_points_required_non_negative"),
        sa.CheckConstraint("quantity_redeemed >= 0", name="ck_rewards_quantity_redeemed_non_negative"),
        sa.ForeignKeyConstraint(["family_id"], ["families.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["family_members.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rewards_family_id", "rewards", ["family_id"])

    op.create_table(
        "reward_redemptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reward_id", sa.Integer(), nullable=False),
        sa.Column("child_id", sa.Integer(), nullable=False),
        sa.Column("family_id", sa.Integer(), nullable=False),
        sa.Column("points_spent", sa.Integer(), nullable=False),
        sa.Column("status", redemption_status_enum, nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"]),
        sa.ForeignKeyConstraint(["child_id"], ["family_members.id"]),
        sa.ForeignKeyConstraint(["family_id"], ["families.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["family_members.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reward_redemptions_family_id_status", "reward_redemptions", ["family_id", "status"])
    op.create_index("ix_reward_redemptions_child_id", "reward_redemptions", ["child_id"])


def downgrade() -> None:
    op.drop_index("ix_reward_redemptions_child_id", table_name="reward_redemptions")
    op.drop_index("ix_reward_redemptions_family_id_status", table_name="reward_redemptions")
    op.drop_table("reward_redemptions")
    op.drop_index("ix_rewards_family_id", table_name="rewards")
    op.drop_table("rewards")
    op.drop_index("ix_task_submissions_assignment_id", table_name="task_submissions")
    op.drop_table("task_submissions")
    op.drop_index("ix_task_assignments_status_due_date", table_name="task_assignments")
    op.drop_index("ix_task_assignments_assigned_to_status", table_name="task_assignments")
    op.drop_table("task_assignments")
    op.drop_index("ix_tasks_family_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_points_log_family_member_id_created_at", table_name="points_log")
    op.drop_table("points_log")
    op.drop_index("ix_family_members_family_id", table_name="family_members")
    op.drop_table("family_members")
    op.drop_table("users")
    op.drop_table("families")

    bind = op.get_bind()
    for enum in reversed(_ENUMS):
        enum.drop(bind, checkfirst=True)
