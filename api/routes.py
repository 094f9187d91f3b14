from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from api.schemas import (
    GeneratedSessionListResponse,
    GeneratedSessionOut,
    GeneratedSessionSummaryOut,
    GenerateSessionInput,
    GenerateSessionResponse,
    HealthResponse,
    OverrideCreateInput,
    OverrideListResponse,
    OverrideResponse,
    PlanOverrideOut,
)
from core.config import get_settings
from core.db import session_scope
from core.services.generation import generate
from core.services.overrides import list_overrides, record_override
from core.services.session_store import get_generated_session, list_generated_sessions

router = APIRouter(prefix="/api/v1")


@router.get("/health", response_model=HealthResponse, tags=["ops"])
def health():
    return HealthResponse(status="ok", app_env=get_settings().app_env)


@router.post("/plans/{plan_id}/generate", response_model=GenerateSessionResponse, status_code=201, tags=["sessions"])
def generate_session(plan_id: int, body: GenerateSessionInput):
    with session_scope() as s:
        row = generate(
            s,
            body.user_id,
            plan_id,
            body.week,
            body.day,
            session_date=body.session_date,
            timezone=body.timezone,
        )
        return GenerateSessionResponse(session=GeneratedSessionOut.model_validate(row))


@router.post("/plans/{plan_id}/overrides", response_model=OverrideResponse, status_code=201, tags=["overrides"])
def create_override(plan_id: int, body: OverrideCreateInput):
    with session_scope() as s:
        row = record_override(
            s,
            body.user_id,
            plan_id,
            body.scope,
            body.patch,
            week_number=body.week_number,
            session_key=body.session_key,
            note=body.note,
        )
        return OverrideResponse(override=PlanOverrideOut.model_validate(row))


@router.get("/plans/{plan_id}/overrides", response_model=OverrideListResponse, tags=["overrides"])
def get_overrides(
    plan_id: int,
    user_id: str = Query(..., alias="userId", min_length=1),
    session_key: Optional[str] = Query(None, alias="sessionKey"),
):
    with session_scope() as s:
        rows = list_overrides(s, user_id, plan_id, session_key=session_key)
        return OverrideListResponse(items=[PlanOverrideOut.model_validate(r) for r in rows])


@router.get("/generated-sessions", response_model=GeneratedSessionListResponse, tags=["sessions"])
def get_generated_sessions(
    user_id: str = Query(..., alias="userId", min_length=1),
    plan_id: Optional[int] = Query(None, alias="planId"),
    limit: Optional[int] = Query(None),
):
    settings = get_settings()
    with session_scope() as s:
        rows = list_generated_sessions(
            s,
            user_id,
            plan_id=plan_id,
            limit=limit if limit is not None else settings.generated_sessions_page_size,
            max_limit=settings.generated_sessions_max_page_size,
        )
        return GeneratedSessionListResponse(items=[GeneratedSessionSummaryOut.model_validate(r) for r in rows])


@router.get("/generated-sessions/{session_id}", response_model=GenerateSessionResponse, tags=["sessions"])
def get_generated_session_detail(session_id: int, user_id: str = Query(..., alias="userId", min_length=1)):
    with session_scope() as s:
        row = get_generated_session(s, user_id, session_id)
        return GenerateSessionResponse(session=GeneratedSessionOut.model_validate(row))
