from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import DataIntegrityError, ForbiddenError, NotFoundError
from core.models import Plan, PlanModule, ProgramTemplate, ProgramVersion
from core.services.session_keys import SessionContext

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 2
NO_SCHEDULE_ERROR = "No schedule entry for this day. Provide plan.params.schedule."


def load_owned_plan(s: Session, plan_id: int, user_id: str) -> Plan:
    plan = s.get(Plan, plan_id)
    if plan is None:
        raise NotFoundError("Plan not found", plan_id=plan_id)
    if str(plan.user_id) != str(user_id):
        raise ForbiddenError("Plan belongs to another user", plan_id=plan_id)
    return plan


def _load_program(s: Session, version_id: int) -> tuple[Optional[ProgramVersion], Optional[ProgramTemplate]]:
    version = s.get(ProgramVersion, version_id)
    if version is None:
        return None, None
    return version, s.get(ProgramTemplate, version.template_id)


def program_meta(template: ProgramTemplate, version: ProgramVersion) -> dict[str, Any]:
    return {
        "slug": template.slug,
        "name": template.name,
        "type": template.type,
        "version": version.version,
    }


def _block(target: str, template: ProgramTemplate, version: ProgramVersion, params: Any) -> dict[str, Any]:
    return {
        "target": target,
        "program": program_meta(template, version),
        "definition": deepcopy(version.definition),
        "defaults": deepcopy(version.defaults or {}),
        "params": deepcopy(params or {}),
    }


def snapshot_header(plan: Plan, ctx: SessionContext) -> dict[str, Any]:
    header: dict[str, Any] = {
        "schemaVersion": SNAPSHOT_SCHEMA_VERSION,
        "sessionKey": ctx.session_key,
        "week": ctx.week,
        "day": ctx.day,
        "plan": {"id": plan.id, "type": plan.type, "name": plan.name},
    }
    if ctx.date_keyed:
        header["sessionDate"] = ctx.session_date
        header["timezone"] = ctx.timezone
    return header


def _root_program(s: Session, plan: Plan) -> tuple[ProgramVersion, ProgramTemplate]:
    if not plan.root_program_version_id:
        raise NotFoundError("rootProgramVersionId missing", plan_id=plan.id)
    version, template = _load_program(s, plan.root_program_version_id)
    if version is None:
        raise NotFoundError("Program version not found", program_version_id=plan.root_program_version_id)
    if template is None:
        raise NotFoundError("Program template not found", template_id=version.template_id)
    return version, template


def _resolve_single(s: Session, plan: Plan, snapshot: dict[str, Any]) -> None:
    version, template = _root_program(s, plan)
    snapshot["blocks"] = [_block("CUSTOM", template, version, plan.params)]


def _resolve_composite(s: Session, plan: Plan, snapshot: dict[str, Any]) -> None:
    modules = s.execute(select(PlanModule).where(PlanModule.plan_id == plan.id)).scalars().all()
    blocks: list[dict[str, Any]] = []
    for module in sorted(modules, key=lambda m: (m.priority or 0, m.id)):
        version, template = _load_program(s, module.program_version_id)
        if version is None or template is None:
            raise DataIntegrityError(
                "Plan module references a missing program",
                plan_id=plan.id,
                target=module.target,
                program_version_id=module.program_version_id,
            )
        blocks.append(_block(module.target, template, version, module.params))
    snapshot["blocks"] = blocks


def _schedule(params: Any) -> list[str]:
    raw = params.get("schedule") if isinstance(params, dict) else None
    if not isinstance(raw, list):
        return []
    return [str(entry) if entry is not None else "" for entry in raw]


def pick_manual_session(definition: Any, key: str) -> Optional[dict[str, Any]]:
    sessions = definition.get("sessions") if isinstance(definition, dict) else None
    if not isinstance(sessions, list):
        return None
    for candidate in sessions:
        if isinstance(candidate, dict) and str(candidate.get("key")) == key:
            return deepcopy(candidate)
    return None


def _resolve_manual(s: Session, plan: Plan, ctx: SessionContext, snapshot: dict[str, Any]) -> None:
    version, template = _root_program(s, plan)
    snapshot["program"] = program_meta(template, version)

    schedule = _schedule(plan.params)
    chosen = schedule[(ctx.day - 1) % len(schedule)] if schedule else ""
    if not chosen:
        snapshot["manualSession"] = None
        snapshot["manualError"] = NO_SCHEDULE_ERROR
        logger.info("manual_schedule_missing", extra={"ctx_plan_id": plan.id, "ctx_day": ctx.day})
        return

    snapshot["manualSessionKey"] = chosen
    snapshot["manualSession"] = pick_manual_session(version.definition, chosen)
    if snapshot["manualSession"] is None:
        snapshot["manualError"] = f"Manual session '{chosen}' not found in program definition"
        logger.info("manual_session_missing", extra={"ctx_plan_id": plan.id, "ctx_manual_session_key": chosen})


def resolve_base_snapshot(s: Session, plan: Plan, ctx: SessionContext) -> dict[str, Any]:
    """Build the override-free snapshot for one plan occurrence.

    Always reads the current template/version rows; a previously persisted
    snapshot is never consulted.
    """
    snapshot = snapshot_header(plan, ctx)
    if plan.type == "SINGLE":
        _resolve_single(s, plan, snapshot)
    elif plan.type == "COMPOSITE":
        _resolve_composite(s, plan, snapshot)
    elif plan.type == "MANUAL":
        _resolve_manual(s, plan, ctx, snapshot)
    else:
        raise DataIntegrityError(f"Unknown plan type {plan.type!r}", plan_id=plan.id)
    return snapshot
