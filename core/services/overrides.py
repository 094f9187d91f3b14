from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import PatchValidationError
from core.models import OVERRIDE_SCOPES, PlanOverride
from core.services.patches import parse_patch
from core.services.plan_resolver import load_owned_plan

logger = logging.getLogger(__name__)


def record_override(
    s: Session,
    user_id: str,
    plan_id: int,
    scope: str,
    patch: Any,
    *,
    week_number: Optional[int] = None,
    session_key: Optional[str] = None,
    note: Optional[str] = None,
) -> PlanOverride:
    """Append one override to the plan's log. Rows are never edited afterwards."""
    plan = load_owned_plan(s, plan_id, user_id)

    scope = str(scope or "").upper()
    if scope not in OVERRIDE_SCOPES:
        raise PatchValidationError(f"scope must be one of {list(OVERRIDE_SCOPES)}", scope=scope)
    if scope == "SESSION" and not session_key:
        raise PatchValidationError("sessionKey is required for SESSION scope", scope=scope)
    parsed = parse_patch(patch)

    row = PlanOverride(
        plan_id=plan.id,
        scope=scope,
        week_number=week_number,
        session_key=session_key,
        patch=dict(patch),
        note=note,
    )
    s.add(row)
    s.flush()
    logger.info(
        "override_recorded",
        extra={
            "ctx_override_id": row.id,
            "ctx_plan_id": plan.id,
            "ctx_scope": scope,
            "ctx_session_key": session_key,
            "ctx_op": parsed.op,
        },
    )
    return row


def list_overrides(s: Session, user_id: str, plan_id: int, session_key: Optional[str] = None) -> list[PlanOverride]:
    plan = load_owned_plan(s, plan_id, user_id)
    stmt = select(PlanOverride).where(PlanOverride.plan_id == plan.id)
    if session_key is not None:
        stmt = stmt.where(PlanOverride.session_key == session_key)
    return list(s.execute(stmt.order_by(PlanOverride.id)).scalars().all())
