from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

FALLBACK_TIMEZONE = "UTC"


@dataclass(frozen=True)
class SessionContext:
    week: int
    day: int
    session_key: str
    session_date: Optional[str]
    timezone: str
    date_keyed: bool


def session_key(week: int, day: int) -> str:
    return f"W{int(week)}D{int(day)}"


def is_date_only(value: Any) -> bool:
    """True for a real calendar date written as ``YYYY-MM-DD``."""
    if not isinstance(value, str) or not _DATE_ONLY.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_known_timezone(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        ZoneInfo(value.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(*candidates: Any) -> str:
    """First candidate naming a known IANA zone, else UTC."""
    for candidate in candidates:
        if is_known_timezone(candidate):
            return candidate.strip()
    return FALLBACK_TIMEZONE


def _clamp_positive_int(value: Any, fallback: int) -> int:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(n):
        return fallback
    return max(1, math.floor(n))


def _today_in(tz_name: str) -> str:
    return datetime.now(ZoneInfo(tz_name)).date().isoformat()


def derive_session_context(
    params: Optional[dict[str, Any]],
    week: Any,
    day: Any,
    *,
    session_date: Optional[str] = None,
    timezone: Optional[str] = None,
    default_timezone: str = FALLBACK_TIMEZONE,
) -> SessionContext:
    """Resolve week/day and the session key for one plan occurrence.

    ``W{week}D{day}`` is the key unless the plan sets ``sessionKeyMode: DATE``,
    in which case the ``YYYY-MM-DD`` session date is the key. When the plan
    carries ``startDate`` and the caller passes an explicit session date,
    week/day are counted from the start date using the schedule length (or
    ``sessionsPerWeek``, or 7) as the week size.

    Unknown zone names fall through to the next candidate; a malformed
    session date is treated as absent.
    """
    params = params if isinstance(params, dict) else {}
    tz_name = resolve_timezone(timezone, params.get("timezone"), default_timezone)
    date_keyed = str(params.get("sessionKeyMode") or "").upper() == "DATE"

    explicit_date = is_date_only(session_date)
    if explicit_date:
        resolved_date: Optional[str] = session_date
    elif date_keyed:
        resolved_date = _today_in(tz_name)
    else:
        resolved_date = None

    week_n = _clamp_positive_int(week, 1)
    day_n = _clamp_positive_int(day, 1)

    start_date = params.get("startDate")
    if explicit_date and is_date_only(start_date):
        delta = (date.fromisoformat(resolved_date) - date.fromisoformat(start_date)).days
        schedule = params.get("schedule") if isinstance(params.get("schedule"), list) else []
        per_week = len(schedule) if schedule else _clamp_positive_int(params.get("sessionsPerWeek"), 7)
        delta = max(0, delta)
        week_n = delta // per_week + 1
        day_n = delta % per_week + 1

    key = resolved_date if date_keyed else session_key(week_n, day_n)

    return SessionContext(
        week=week_n,
        day=day_n,
        session_key=key,
        session_date=resolved_date,
        timezone=tz_name,
        date_keyed=date_keyed,
    )
