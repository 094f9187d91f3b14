from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.errors import ForbiddenError, NotFoundError
from core.models import GeneratedSession

_NATIVE_UPSERT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _find(s: Session, plan_id: int, session_key: str, *, refresh: bool = False) -> Optional[GeneratedSession]:
    stmt = select(GeneratedSession).where(
        GeneratedSession.plan_id == plan_id,
        GeneratedSession.session_key == session_key,
    )
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    return s.execute(stmt).scalar_one_or_none()


def _native_upsert(s: Session, insert, values: dict[str, Any]) -> None:
    stmt = insert(GeneratedSession).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[GeneratedSession.plan_id, GeneratedSession.session_key],
        set_={"snapshot": stmt.excluded.snapshot, "updated_at": stmt.excluded.updated_at},
    )
    s.execute(stmt)


def _savepoint_upsert(s: Session, values: dict[str, Any]) -> None:
    existing = _find(s, values["plan_id"], values["session_key"])
    if existing is None:
        try:
            with s.begin_nested():
                s.add(GeneratedSession(**values))
            return
        except IntegrityError:
            existing = _find(s, values["plan_id"], values["session_key"], refresh=True)
            if existing is None:
                # not a key collision
                raise
    existing.snapshot = values["snapshot"]
    existing.updated_at = values["updated_at"]
    s.flush()


def upsert_generated_session(
    s: Session,
    *,
    plan_id: int,
    user_id: str,
    session_key: str,
    snapshot: dict[str, Any],
) -> tuple[GeneratedSession, bool]:
    """Insert or refresh the single row for ``(plan_id, session_key)``.

    An existing row keeps its id, status and scheduled_at; only ``snapshot``
    and ``updated_at`` change. Returns the stored row and whether it was new.
    Concurrent callers are serialized by the unique constraint, last write wins.
    """
    now = dt.datetime.utcnow()
    created = _find(s, plan_id, session_key) is None
    values = {
        "plan_id": plan_id,
        "user_id": str(user_id),
        "session_key": session_key,
        "snapshot": snapshot,
        "status": "PLANNED",
        "created_at": now,
        "updated_at": now,
    }

    insert = _NATIVE_UPSERT.get(s.get_bind().dialect.name)
    if insert is not None:
        _native_upsert(s, insert, values)
    else:
        _savepoint_upsert(s, values)

    row = _find(s, plan_id, session_key, refresh=True)
    return row, created


def list_generated_sessions(
    s: Session,
    user_id: str,
    plan_id: Optional[int] = None,
    limit: int = 20,
    max_limit: int = 100,
) -> list[GeneratedSession]:
    limit = min(max(int(limit), 1), max_limit)
    stmt = select(GeneratedSession).where(GeneratedSession.user_id == str(user_id))
    if plan_id is not None:
        stmt = stmt.where(GeneratedSession.plan_id == plan_id)
    stmt = stmt.order_by(GeneratedSession.updated_at.desc(), GeneratedSession.id.desc()).limit(limit)
    return list(s.execute(stmt).scalars().all())


def get_generated_session(s: Session, user_id: str, session_id: int) -> GeneratedSession:
    row = s.get(GeneratedSession, session_id)
    if row is None:
        raise NotFoundError("Generated session not found", generated_session_id=session_id)
    if row.user_id != str(user_id):
        raise ForbiddenError("Generated session belongs to another user", generated_session_id=session_id)
    return row
