"""session engine schema

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "program_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=120), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("visibility", sa.String(length=16), nullable=False, server_default="PUBLIC"),
        sa.Column("owner_user_id", sa.String(length=120), nullable=True),
        sa.Column("parent_template_id", sa.Integer(), sa.ForeignKey("program_templates.id"), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("type in ('LOGIC', 'MANUAL')", name="ck_program_templates_type"),
        sa.CheckConstraint("visibility in ('PUBLIC', 'PRIVATE')", name="ck_program_templates_visibility"),
    )
    op.create_index("ix_program_templates_owner_user_id", "program_templates", ["owner_user_id"])

    op.create_table(
        "program_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("program_templates.id"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("changelog", sa.Text(), nullable=True),
        sa.Column("parent_version_id", sa.Integer(), sa.ForeignKey("program_versions.id"), nullable=True),
        sa.Column("definition", sa.JSON(), nullable=False),
        sa.Column("defaults", sa.JSON(), nullable=True),
        sa.Column("is_deprecated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("template_id", "version", name="uq_program_version_template_version"),
    )
    op.create_index("ix_program_versions_template_id", "program_versions", ["template_id"])

    op.create_table(
        "plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=120), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("root_program_version_id", sa.Integer(), sa.ForeignKey("program_versions.id"), nullable=True),
        sa.Column("params", sa.JSON(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("type in ('SINGLE', 'COMPOSITE', 'MANUAL')", name="ck_plans_type"),
    )
    op.create_index("ix_plans_user_id", "plans", ["user_id"])
    op.create_index("ix_plans_type", "plans", ["type"])

    op.create_table(
        "plan_modules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target", sa.String(length=16), nullable=False),
        sa.Column("program_version_id", sa.Integer(), sa.ForeignKey("program_versions.id"), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("params", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("plan_id", "target", name="uq_plan_module_plan_target"),
        sa.CheckConstraint(
            "target in ('SQUAT', 'BENCH', 'DEADLIFT', 'OHP', 'PULL', 'CUSTOM')",
            name="ck_plan_modules_target",
        ),
    )
    op.create_index("ix_plan_modules_plan_id", "plan_modules", ["plan_id"])

    op.create_table(
        "plan_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scope", sa.String(length=16), nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=True),
        sa.Column("session_key", sa.String(length=40), nullable=True),
        sa.Column("patch", sa.JSON(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("scope in ('PLAN', 'WEEK', 'SESSION', 'EXERCISE')", name="ck_plan_overrides_scope"),
    )
    op.create_index("ix_plan_overrides_plan_scope", "plan_overrides", ["plan_id", "scope"])
    op.create_index("ix_plan_overrides_plan_week", "plan_overrides", ["plan_id", "week_number"])

    op.create_table(
        "generated_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=120), nullable=False),
        sa.Column("session_key", sa.String(length=40), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PLANNED"),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("plan_id", "session_key", name="uq_generated_session_plan_session"),
        sa.CheckConstraint("status in ('PLANNED', 'DONE', 'SKIPPED')", name="ck_generated_sessions_status"),
    )
    op.create_index("ix_generated_sessions_plan_id", "generated_sessions", ["plan_id"])
    op.create_index("ix_generated_sessions_user_id", "generated_sessions", ["user_id"])


def downgrade() -> None:
    op.drop_table("generated_sessions")
    op.drop_table("plan_overrides")
    op.drop_table("plan_modules")
    op.drop_table("plans")
    op.drop_table("program_versions")
    op.drop_table("program_templates")
