from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

PROGRAM_TYPES = ("LOGIC", "MANUAL")
VISIBILITY_TYPES = ("PUBLIC", "PRIVATE")
PLAN_TYPES = ("SINGLE", "COMPOSITE", "MANUAL")
MODULE_TARGETS = ("SQUAT", "BENCH", "DEADLIFT", "OHP", "PULL", "CUSTOM")
OVERRIDE_SCOPES = ("PLAN", "WEEK", "SESSION", "EXERCISE")
SESSION_STATUSES = ("PLANNED", "DONE", "SKIPPED")


def _in(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} in ({quoted})"


class Base(DeclarativeBase):
    pass


class ProgramTemplate(Base):
    __tablename__ = "program_templates"
    id: Mapped[int] = mapped_column(primary_key=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True)
    name: Mapped[str] = mapped_column(String(200))
    type: Mapped[str] = mapped_column(String(16))
    visibility: Mapped[str] = mapped_column(String(16), default="PUBLIC")
    owner_user_id: Mapped[Optional[str]] = mapped_column(String(120), index=True)
    parent_template_id: Mapped[Optional[int]] = mapped_column(ForeignKey("program_templates.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (
        CheckConstraint(_in("type", PROGRAM_TYPES), name="ck_program_templates_type"),
        CheckConstraint(_in("visibility", VISIBILITY_TYPES), name="ck_program_templates_visibility"),
    )


class ProgramVersion(Base):
    __tablename__ = "program_versions"
    id: Mapped[int] = mapped_column(primary_key=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("program_templates.id"), index=True)
    version: Mapped[int] = mapped_column(Integer)
    changelog: Mapped[Optional[str]] = mapped_column(Text)
    parent_version_id: Mapped[Optional[int]] = mapped_column(ForeignKey("program_versions.id"))
    definition: Mapped[dict[str, Any]] = mapped_column(JSON)
    defaults: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    is_deprecated: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (UniqueConstraint("template_id", "version", name="uq_program_version_template_version"),)


class Plan(Base):
    __tablename__ = "plans"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(120), index=True)
    name: Mapped[str] = mapped_column(String(200))
    type: Mapped[str] = mapped_column(String(16), index=True)
    root_program_version_id: Mapped[Optional[int]] = mapped_column(ForeignKey("program_versions.id"))
    params: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (CheckConstraint(_in("type", PLAN_TYPES), name="ck_plans_type"),)


class PlanModule(Base):
    __tablename__ = "plan_modules"
    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id", ondelete="CASCADE"), index=True)
    target: Mapped[str] = mapped_column(String(16))
    program_version_id: Mapped[int] = mapped_column(ForeignKey("program_versions.id"))
    priority: Mapped[int] = mapped_column(Integer, default=0)
    params: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (
        UniqueConstraint("plan_id", "target", name="uq_plan_module_plan_target"),
        CheckConstraint(_in("target", MODULE_TARGETS), name="ck_plan_modules_target"),
    )


class PlanOverride(Base):
    __tablename__ = "plan_overrides"
    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id", ondelete="CASCADE"))
    scope: Mapped[str] = mapped_column(String(16))
    week_number: Mapped[Optional[int]] = mapped_column(Integer)
    session_key: Mapped[Optional[str]] = mapped_column(String(40))
    patch: Mapped[dict[str, Any]] = mapped_column(JSON)
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (
        Index("ix_plan_overrides_plan_scope", "plan_id", "scope"),
        Index("ix_plan_overrides_plan_week", "plan_id", "week_number"),
        CheckConstraint(_in("scope", OVERRIDE_SCOPES), name="ck_plan_overrides_scope"),
    )


class GeneratedSession(Base):
    __tablename__ = "generated_sessions"
    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(120), index=True)
    session_key: Mapped[str] = mapped_column(String(40))
    scheduled_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(16), default="PLANNED")
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (
        UniqueConstraint("plan_id", "session_key", name="uq_generated_session_plan_session"),
        CheckConstraint(_in("status", SESSION_STATUSES), name="ck_generated_sessions_status"),
    )
