"""Session generation entry point.

``generate`` reads the plan, its program rows and the SESSION overrides for
the requested key, builds the snapshot from scratch, and performs exactly one
write: the upsert of the ``(plan_id, session_key)`` row. Any fatal error is
raised before that write, so a failed call leaves no partial row behind.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from core.config import get_settings
from core.models import GeneratedSession
from core.services.plan_resolver import load_owned_plan
from core.services.session_builder import build_session_snapshot
from core.services.session_keys import derive_session_context
from core.services.session_store import upsert_generated_session

logger = logging.getLogger(__name__)


def generate(
    s: Session,
    user_id: str,
    plan_id: int,
    week: Any,
    day: Any,
    *,
    session_date: Optional[str] = None,
    timezone: Optional[str] = None,
) -> GeneratedSession:
    plan = load_owned_plan(s, plan_id, user_id)
    ctx = derive_session_context(
        plan.params,
        week,
        day,
        session_date=session_date,
        timezone=timezone,
        default_timezone=get_settings().default_timezone,
    )

    snapshot = build_session_snapshot(s, plan, ctx)
    row, created = upsert_generated_session(
        s,
        plan_id=plan.id,
        user_id=user_id,
        session_key=ctx.session_key,
        snapshot=snapshot,
    )
    logger.info(
        "session_generated",
        extra={
            "ctx_plan_id": plan.id,
            "ctx_plan_type": plan.type,
            "ctx_session_key": ctx.session_key,
            "ctx_generated_session_id": row.id,
            "ctx_created": created,
            "ctx_overrides_applied": len(snapshot.get("overridesApplied", [])),
            "ctx_manual_error": snapshot.get("manualError"),
        },
    )
    return row
