"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    activity_status_enum = sa.Enum(
        "planned", "in_progress", "done", "skipped", "cancelled",
        name="activity_status_enum",
    )
    activity_status_enum.create(op.get_bind(), checkfirst=True)

    template_kind_enum = sa.Enum("reflection", "report", name="template_kind_enum")
    template_kind_enum.create(op.get_bind(), checkfirst=True)

    template_cadence_enum = sa.Enum(
        "weekly", "monthly", "yearly", "manual", name="template_cadence_enum"
    )
    template_cadence_enum.create(op.get_bind(), checkfirst=True)

    # --- arcs ---
    op.create_table(
        "arcs",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("narrative", sa.Text(), nullable=True, comment="Long-form description of the arc"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_arcs_user_id", "arcs", ["user_id"])

    # --- goals ---
    op.create_table(
        "goals",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("arc_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_goals_user_id", "goals", ["user_id"])
    op.create_index("ix_goals_arc_id", "goals", ["arc_id"])

    # --- activities ---
    op.create_table(
        "activities",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("goal_id", sa.String(64), nullable=True),
        sa.Column("arc_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(512), nullable=False, server_default=""),
        sa.Column("status", sa.Enum(
            "planned", "in_progress", "done", "skipped", "cancelled",
            name="activity_status_enum", create_type=False,
        ), nullable=False, server_default="planned"),
        sa.Column("tags", sa.Text(), nullable=True, comment="JSON array of tag strings"),
        sa.Column("effort_minutes", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activities_user_id", "activities", ["user_id"])
    op.create_index("ix_activities_goal_id", "activities", ["goal_id"])
    op.create_index("ix_activities_arc_id", "activities", ["arc_id"])

    # --- chapter_templates ---
    op.create_table(
        "chapter_templates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("kind", sa.Enum(
            "reflection", "report", name="template_kind_enum", create_type=False,
        ), nullable=False, server_default="reflection"),
        sa.Column("cadence", sa.Enum(
            "weekly", "monthly", "yearly", "manual", name="template_cadence_enum", create_type=False,
        ), nullable=False, server_default="weekly"),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("filter_json", sa.Text(), nullable=True, comment="JSON array of filter groups"),
        sa.Column("filter_group_logic", sa.String(8), nullable=False, server_default="or"),
        sa.Column("detail_level", sa.String(16), nullable=True),
        sa.Column("tone", sa.String(16), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chapter_templates_id", "chapter_templates", ["id"])
    op.create_index("ix_chapter_templates_user_id", "chapter_templates", ["user_id"])
    op.create_index("ix_chapter_templates_enabled", "chapter_templates", ["enabled"])

    # --- chapters ---
    op.create_table(
        "chapters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_key", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending",
                  comment='"pending" | "ready" | "failed"'),
        sa.Column("input_summary", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("metrics", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("output_json", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "template_id", "period_key", name="uq_chapter_user_template_period"),
    )
    op.create_index("ix_chapters_id", "chapters", ["id"])
    op.create_index("ix_chapters_user_id", "chapters", ["user_id"])
    op.create_index("ix_chapters_template_id", "chapters", ["template_id"])
    op.create_index("ix_chapters_status", "chapters", ["status"])


def downgrade() -> None:
    op.drop_table("chapters")
    op.drop_table("chapter_templates")
    op.drop_table("activities")
    op.drop_table("goals")
    op.drop_table("arcs")

    op.execute("DROP TYPE IF EXISTS template_cadence_enum")
    op.execute("DROP TYPE IF EXISTS template_kind_enum")
    op.execute("DROP TYPE IF EXISTS activity_status_enum")
