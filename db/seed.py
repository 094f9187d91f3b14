"""Seed the public program templates.

Run with:  python -m db.seed
"""
from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.config import get_settings
from core.db import session_scope
from core.logging_config import setup_logging
from core.models import ProgramTemplate, ProgramVersion

logger = logging.getLogger(__name__)

PUBLIC_TEMPLATES: list[dict[str, Any]] = [
    {
        "slug": "531",
        "name": "5/3/1",
        "type": "LOGIC",
        "description": "Jim Wendler 5/3/1 template (base).",
        "tags": ["strength", "barbell"],
        "definition": {
            "kind": "531",
            "schedule": {"weeks": 4, "sessionsPerWeek": 4},
            "mainLifts": ["SQUAT", "BENCH", "DEADLIFT", "OHP"],
        },
        "defaults": {"tmPercent": 0.9},
    },
    {
        "slug": "operator",
        "name": "Tactical Barbell Operator",
        "type": "LOGIC",
        "description": "Tactical Barbell Operator template (base).",
        "tags": ["strength", "tactical"],
        "definition": {
            "kind": "operator",
            "schedule": {"weeks": 6, "sessionsPerWeek": 3},
            "cluster": ["SQUAT", "BENCH", "DEADLIFT"],
        },
        "defaults": {"intensity": "percent"},
    },
    {
        "slug": "candito-linear",
        "name": "Candito Linear Program",
        "type": "LOGIC",
        "description": "Candito linear program template (base).",
        "tags": ["strength", "powerlifting"],
        "definition": {"kind": "candito-linear", "schedule": {"weeks": 6, "sessionsPerWeek": 4}},
        "defaults": {},
    },
    {
        "slug": "manual",
        "name": "Manual Sessions",
        "type": "MANUAL",
        "description": "User-defined fixed sessions (no logic).",
        "tags": ["manual"],
        "definition": {"kind": "manual", "sessions": []},
        "defaults": {},
    },
]


def seed_program_templates(s: Session) -> int:
    """Insert missing public templates with their first version. Returns the number inserted."""
    inserted = 0
    for entry in PUBLIC_TEMPLATES:
        existing = s.execute(select(ProgramTemplate).where(ProgramTemplate.slug == entry["slug"])).scalar_one_or_none()
        if existing is not None:
            continue
        template = ProgramTemplate(
            slug=entry["slug"],
            name=entry["name"],
            type=entry["type"],
            visibility="PUBLIC",
            description=entry["description"],
            tags=list(entry["tags"]),
        )
        s.add(template)
        s.flush()
        s.add(
            ProgramVersion(
                template_id=template.id,
                version=1,
                definition=deepcopy(entry["definition"]),
                defaults=deepcopy(entry["defaults"]),
            )
        )
        inserted += 1
    s.flush()
    return inserted


def main() -> None:
    setup_logging(get_settings().log_level)
    with session_scope() as s:
        inserted = seed_program_templates(s)
    logger.info("program_templates_seeded", extra={"ctx_inserted": inserted})


if __name__ == "__main__":
    main()
