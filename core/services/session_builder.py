from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.models import Plan, PlanOverride
from core.services.override_interpreter import apply_overrides
from core.services.plan_resolver import resolve_base_snapshot
from core.services.program_logic import planned_exercises
from core.services.session_keys import SessionContext


def load_session_overrides(s: Session, plan_id: int, session_key: str) -> list[PlanOverride]:
    return list(
        s.execute(
            select(PlanOverride)
            .where(
                PlanOverride.plan_id == plan_id,
                PlanOverride.scope == "SESSION",
                PlanOverride.session_key == session_key,
            )
            .order_by(PlanOverride.id)
        )
        .scalars()
        .all()
    )


def build_session_snapshot(s: Session, plan: Plan, ctx: SessionContext) -> dict[str, Any]:
    snapshot = resolve_base_snapshot(s, plan, ctx)
    apply_overrides(snapshot, load_session_overrides(s, plan.id, ctx.session_key))
    snapshot["exercises"] = planned_exercises(snapshot, plan.params)
    return snapshot
