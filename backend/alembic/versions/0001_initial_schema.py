"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates all tables for Groupwork:
users, groups, assignments, submissions, group_messages.

Groups and submissions reference users without foreign keys; dangling
references are repaired by membership reconciliation.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(150), nullable=False),
        sa.Column("student_id", sa.String(50), nullable=True, unique=True),
        sa.Column("role", sa.Enum("student", "admin", name="userrole"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- groups ---
    op.create_table(
        "groups",
        sa.Column("group_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column(
            "category",
            sa.Enum("study", "project", "class", "general", name="groupcategory"),
            nullable=False,
            server_default="general",
        ),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("max_members", sa.Integer, nullable=False, server_default="50"),
        sa.Column("creator_id", sa.String(36), nullable=False),
        sa.Column("members", sa.JSON, nullable=False),
        sa.Column("join_requests", sa.JSON, nullable=False),
        sa.Column("announcements", sa.JSON, nullable=False),
        sa.Column("resources", sa.JSON, nullable=False),
        sa.Column("activity_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer, nullable=False),
    )
    op.create_index("ix_groups_creator_id", "groups", ["creator_id"])

    # --- assignments ---
    op.create_table(
        "assignments",
        sa.Column("assignment_id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("onedrive_link", sa.String(500), nullable=True),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("is_for_all", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("assigned_groups", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- submissions ---
    op.create_table(
        "submissions",
        sa.Column("submission_id", sa.String(36), primary_key=True),
        sa.Column("assignment_id", sa.String(36), nullable=False),
        sa.Column("group_id", sa.String(36), nullable=False),
        sa.Column(
            "status",
            sa.Enum("submitted", "reviewed", "graded", name="submissionstatus"),
            nullable=False,
        ),
        sa.Column("submission_notes", sa.Text, nullable=True),
        sa.Column("files", sa.JSON, nullable=False),
        sa.Column("grade", sa.Float, nullable=True),
        sa.Column("feedback", sa.Text, nullable=True),
        sa.Column("submitted_by", sa.String(36), nullable=False),
        sa.Column("reviewed_by", sa.String(36), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer, nullable=False),
        sa.UniqueConstraint("assignment_id", "group_id", name="uq_submissions_assignment_group"),
    )
    op.create_index("ix_submissions_assignment_id", "submissions", ["assignment_id"])
    op.create_index("ix_submissions_group_id", "submissions", ["group_id"])

    # --- group_messages ---
    op.create_table(
        "group_messages",
        sa.Column("message_id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36), nullable=False),
        sa.Column("sender_id", sa.String(36), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("reply_to", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_group_messages_group_created", "group_messages", ["group_id", "created_at"])


def downgrade() -> None:
    op.drop_table("group_messages")
    op.drop_table("submissions")
    op.drop_table("assignments")
    op.drop_table("groups")
    op.drop_table("users")
    sa.Enum(name="submissionstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="groupcategory").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
