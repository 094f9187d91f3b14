from __future__ import annotations

from datetime import datetime as dt_datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.services.session_keys import is_date_only, is_known_timezone


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class GenerateSessionInput(CamelModel):
    user_id: str = Field(min_length=1)
    week: int = Field(ge=1)
    day: int = Field(ge=1)
    session_date: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("session_date")
    @classmethod
    def valid_session_date(cls, v):
        if v is not None and not is_date_only(v):
            raise ValueError("sessionDate must be a valid YYYY-MM-DD date")
        return v

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v):
        if v is not None and v.strip() and not is_known_timezone(v):
            raise ValueError("timezone must be an IANA zone name")
        return v


class OverrideCreateInput(CamelModel):
    user_id: str = Field(min_length=1)
    scope: str
    week_number: Optional[int] = None
    session_key: Optional[str] = Field(default=None, max_length=40)
    patch: dict[str, Any]
    note: Optional[str] = Field(default=None, max_length=2000)


class GeneratedSessionOut(CamelModel):
    id: int
    plan_id: int
    user_id: str
    session_key: str
    scheduled_at: Optional[dt_datetime] = None
    status: str
    snapshot: dict[str, Any]
    created_at: dt_datetime
    updated_at: dt_datetime


class GeneratedSessionSummaryOut(CamelModel):
    id: int
    plan_id: int
    session_key: str
    status: str
    updated_at: dt_datetime


class PlanOverrideOut(CamelModel):
    id: int
    plan_id: int
    scope: str
    week_number: Optional[int] = None
    session_key: Optional[str] = None
    patch: dict[str, Any]
    note: Optional[str] = None
    created_at: dt_datetime


class GenerateSessionResponse(CamelModel):
    session: GeneratedSessionOut


class OverrideResponse(CamelModel):
    override: PlanOverrideOut


class OverrideListResponse(CamelModel):
    items: list[PlanOverrideOut]


class GeneratedSessionListResponse(CamelModel):
    items: list[GeneratedSessionSummaryOut]


class HealthResponse(CamelModel):
    status: str
    app_env: str
