"""End-to-end generation against a SQLite database."""

from __future__ import annotations

import datetime as dt
import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from core.db import Base, get_engine, reset_engine, session_scope
from core.errors import DataIntegrityError, ForbiddenError, NotFoundError
from core.models import GeneratedSession, Plan, PlanModule, PlanOverride, ProgramTemplate, ProgramVersion
from core.services import session_store
from core.services.generation import generate
from core.services.plan_resolver import NO_SCHEDULE_ERROR


def _create_schema(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'engine.db'}")
    monkeypatch.delenv("APP_ENV", raising=False)
    reset_engine()
    Base.metadata.create_all(bind=get_engine())


def _program(s, slug: str, definition: dict, type_: str = "LOGIC", defaults: dict | None = None) -> ProgramVersion:
    template = ProgramTemplate(slug=slug, name=slug.upper(), type=type_, visibility="PUBLIC", tags=[])
    s.add(template)
    s.flush()
    version = ProgramVersion(template_id=template.id, version=1, definition=definition, defaults=defaults or {})
    s.add(version)
    s.flush()
    return version


def _composite_plan(user_id: str = "u1") -> int:
    with session_scope() as s:
        squat = _program(s, "squat-prog", {"kind": "531"})
        bench = _program(s, "bench-prog", {"kind": "operator"})
        dead = _program(s, "dead-prog", {"kind": "candito-linear"})
        plan = Plan(user_id=user_id, name="Big Three", type="COMPOSITE", params={"trainingMaxKg": 140})
        s.add(plan)
        s.flush()
        # rows inserted out of priority order
        s.add(PlanModule(plan_id=plan.id, target="DEADLIFT", program_version_id=dead.id, priority=3, params={}))
        s.add(PlanModule(plan_id=plan.id, target="SQUAT", program_version_id=squat.id, priority=1, params={"tm": 180}))
        s.add(PlanModule(plan_id=plan.id, target="BENCH", program_version_id=bench.id, priority=2, params={}))
        return plan.id


def _manual_plan(schedule: list[str], sessions: list[dict] | None = None) -> int:
    with session_scope() as s:
        version = _program(
            s,
            "manual",
            {"kind": "manual", "sessions": sessions if sessions is not None else []},
            type_="MANUAL",
        )
        plan = Plan(
            user_id="u1",
            name="Fixed",
            type="MANUAL",
            root_program_version_id=version.id,
            params={"schedule": schedule},
        )
        s.add(plan)
        s.flush()
        return plan.id


def _add_override(plan_id: int, patch: dict, session_key: str = "W1D1", scope: str = "SESSION") -> int:
    with session_scope() as s:
        row = PlanOverride(plan_id=plan_id, scope=scope, session_key=session_key, patch=patch)
        s.add(row)
        s.flush()
        return row.id


def _generate(plan_id: int, week: int = 1, day: int = 1, user_id: str = "u1", **kwargs) -> GeneratedSession:
    with session_scope() as s:
        return generate(s, user_id, plan_id, week, day, **kwargs)


def _row_count() -> int:
    with session_scope() as s:
        return s.execute(select(func.count()).select_from(GeneratedSession)).scalar_one()


def _accessory(name: str, order: int | None = None) -> dict:
    value: dict = {"exerciseName": name, "sets": [{"setNumber": 1, "reps": 10}]}
    if order is not None:
        value["order"] = order
    return {"op": "ADD_ACCESSORY", "value": value}


def test_composite_blocks_follow_ascending_priority(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()

    row = _generate(plan_id)

    snap = row.snapshot
    assert row.session_key == "W1D1"
    assert row.status == "PLANNED"
    assert snap["schemaVersion"] == 2
    assert snap["plan"] == {"id": plan_id, "type": "COMPOSITE", "name": "Big Three"}
    assert [b["target"] for b in snap["blocks"]] == ["SQUAT", "BENCH", "DEADLIFT"]
    assert snap["blocks"][0]["program"] == {"slug": "squat-prog", "name": "SQUAT-PROG", "type": "LOGIC", "version": 1}
    assert snap["blocks"][0]["params"] == {"tm": 180}
    assert snap["overridesApplied"] == []
    assert "accessories" not in snap


def test_single_plan_has_one_custom_block_with_plan_params(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    with session_scope() as s:
        version = _program(s, "531", {"kind": "531", "mainLifts": ["SQUAT", "BENCH"]})
        plan = Plan(user_id="u1", name="Wendler", type="SINGLE", root_program_version_id=version.id, params={"tm": 100})
        s.add(plan)
        s.flush()
        plan_id = plan.id

    snap = _generate(plan_id, week=1, day=2).snapshot

    assert len(snap["blocks"]) == 1
    block = snap["blocks"][0]
    assert block["target"] == "CUSTOM"
    assert block["params"] == {"tm": 100}
    assert block["definition"]["kind"] == "531"
    assert [e["exerciseName"] for e in snap["exercises"]] == ["Bench Press"]


def test_accessories_do_not_accumulate_across_regenerations(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    _add_override(plan_id, _accessory("Dips"))
    _add_override(plan_id, _accessory("Face Pull"))

    first = _generate(plan_id)
    assert [a["exerciseName"] for a in first.snapshot["accessories"]] == ["Dips", "Face Pull"]

    _add_override(plan_id, _accessory("Curl"))
    second = _generate(plan_id)

    assert second.id == first.id
    assert len(second.snapshot["accessories"]) == 3
    assert len(second.snapshot["overridesApplied"]) == 3


def test_overrides_for_other_sessions_are_ignored(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    _add_override(plan_id, _accessory("Dips"), session_key="W1D2")
    _add_override(plan_id, _accessory("Rows"), scope="WEEK")

    snap = _generate(plan_id).snapshot

    assert snap["overridesApplied"] == []
    assert "accessories" not in snap


def test_replace_exercise_on_missing_block_is_a_silent_noop(tmp_path, monkeypatch):
    """Pinned: a stale REPLACE_EXERCISE neither mutates blocks nor is recorded."""
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    baseline = _generate(plan_id).snapshot

    _add_override(plan_id, {"op": "REPLACE_EXERCISE", "target": {"blockTarget": "OHP"}, "value": {"exerciseName": "Push Press"}})
    snap = _generate(plan_id).snapshot

    assert snap["blocks"] == baseline["blocks"]
    assert snap["overridesApplied"] == []
    assert snap == baseline


def test_replace_and_reorder_shape_blocks(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    replace_id = _add_override(
        plan_id, {"op": "REPLACE_EXERCISE", "target": {"blockTarget": "BENCH"}, "value": {"exerciseName": "Close Grip Bench"}}
    )
    reorder_id = _add_override(plan_id, {"op": "REORDER_BLOCKS", "value": {"order": ["BENCH", "SQUAT"]}})

    snap = _generate(plan_id).snapshot

    assert [b["target"] for b in snap["blocks"]] == ["BENCH", "SQUAT", "DEADLIFT"]
    assert snap["blocks"][0]["replacements"] == {"mainExercise": "Close Grip Bench", "source": {"overrideId": replace_id}}
    assert snap["overridesApplied"] == [
        {"overrideId": replace_id, "op": "REPLACE_EXERCISE", "target": "BENCH"},
        {"overrideId": reorder_id, "op": "REORDER_BLOCKS"},
    ]
    main_names = [e["exerciseName"] for e in snap["exercises"] if e["role"] == "MAIN"]
    assert main_names[0] == "Close Grip Bench"


def test_regeneration_is_idempotent_and_keeps_id(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    _add_override(plan_id, _accessory("Dips", order=5))

    first = _generate(plan_id)
    second = _generate(plan_id)

    assert second.id == first.id
    assert json.dumps(second.snapshot, sort_keys=True) == json.dumps(first.snapshot, sort_keys=True)
    assert second.updated_at >= first.updated_at
    assert _row_count() == 1


def test_regeneration_preserves_status_and_schedule(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    first = _generate(plan_id)
    with session_scope() as s:
        row = s.get(GeneratedSession, first.id)
        row.status = "DONE"

    again = _generate(plan_id)

    assert again.id == first.id
    assert again.status == "DONE"
    assert again.created_at == first.created_at


def test_generation_tracks_live_module_edits(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    _generate(plan_id)
    with session_scope() as s:
        module = s.execute(select(PlanModule).where(PlanModule.plan_id == plan_id, PlanModule.target == "SQUAT")).scalar_one()
        module.priority = 10

    snap = _generate(plan_id).snapshot

    assert [b["target"] for b in snap["blocks"]] == ["BENCH", "DEADLIFT", "SQUAT"]


def test_foreign_user_is_forbidden_and_nothing_is_written(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan(user_id="owner")

    with pytest.raises(ForbiddenError):
        _generate(plan_id, user_id="intruder")

    assert _row_count() == 0


def test_missing_plan_is_not_found(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)

    with pytest.raises(NotFoundError):
        _generate(404)


def test_single_plan_without_root_version_is_not_found(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    with session_scope() as s:
        plan = Plan(user_id="u1", name="Empty", type="SINGLE", params={})
        s.add(plan)
        s.flush()
        plan_id = plan.id

    with pytest.raises(NotFoundError):
        _generate(plan_id)
    assert _row_count() == 0


def test_composite_module_with_dangling_version_is_data_integrity(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    with session_scope() as s:
        s.add(PlanModule(plan_id=plan_id, target="OHP", program_version_id=9999, priority=4, params={}))

    with pytest.raises(DataIntegrityError):
        _generate(plan_id)
    assert _row_count() == 0


def test_manual_schedule_wraps_by_day(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    sessions = [
        {"key": "A", "items": [{"exerciseName": "Front Squat", "sets": [{"reps": 5, "weightKg": 100}]}]},
        {"key": "B", "items": [{"exerciseName": "Row", "reps": 8}]},
    ]
    plan_id = _manual_plan(["A", "B", "A", "B"], sessions)

    day3 = _generate(plan_id, week=1, day=3).snapshot
    day5 = _generate(plan_id, week=1, day=5).snapshot
    day2 = _generate(plan_id, week=1, day=2).snapshot

    assert day3["manualSessionKey"] == "A"
    assert day5["manualSessionKey"] == "A"
    assert day2["manualSessionKey"] == "B"
    assert day3["manualSession"]["key"] == "A"
    assert day3["program"] == {"slug": "manual", "name": "MANUAL", "type": "MANUAL", "version": 1}
    assert "manualError" not in day3
    assert "blocks" not in day3
    assert day3["exercises"][0]["exerciseName"] == "Front Squat"
    assert day3["exercises"][0]["sets"] == [{"reps": 5, "targetWeightKg": 100}]


def test_manual_plan_without_schedule_persists_error_snapshot(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _manual_plan([])

    row = _generate(plan_id)

    assert row.id is not None
    assert row.snapshot["manualSession"] is None
    assert row.snapshot["manualError"] == NO_SCHEDULE_ERROR
    assert _row_count() == 1


def test_manual_plan_with_unknown_session_key_is_partial(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _manual_plan(["Z"], [{"key": "A", "items": []}])

    snap = _generate(plan_id).snapshot

    assert snap["manualSessionKey"] == "Z"
    assert snap["manualSession"] is None
    assert snap["manualError"] == "Manual session 'Z' not found in program definition"


def test_manual_plan_accepts_accessories(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _manual_plan(["A"], [{"key": "A", "items": [{"exerciseName": "Press"}]}])
    override_id = _add_override(plan_id, _accessory("Dips", order=1))

    snap = _generate(plan_id).snapshot

    assert snap["accessories"][0]["source"] == {"overrideId": override_id}
    assert [e["exerciseName"] for e in snap["exercises"]] == ["Press", "Dips"]


def test_date_keyed_plan_uses_session_date(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    with session_scope() as s:
        version = _program(s, "531", {"kind": "531"})
        plan = Plan(
            user_id="u1",
            name="Dated",
            type="SINGLE",
            root_program_version_id=version.id,
            params={"sessionKeyMode": "DATE", "timezone": "Europe/London"},
        )
        s.add(plan)
        s.flush()
        plan_id = plan.id

    row = _generate(plan_id, session_date="2026-03-02")

    assert row.session_key == "2026-03-02"
    assert row.snapshot["sessionKey"] == "2026-03-02"
    assert row.snapshot["sessionDate"] == "2026-03-02"
    assert row.snapshot["timezone"] == "Europe/London"


def test_week_day_plan_with_unknown_stored_timezone_still_generates(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    with session_scope() as s:
        version = _program(s, "531", {"kind": "531"})
        plan = Plan(
            user_id="u1",
            name="Odd zone",
            type="SINGLE",
            root_program_version_id=version.id,
            params={"timezone": "Not/AZone"},
        )
        s.add(plan)
        s.flush()
        plan_id = plan.id

    row = _generate(plan_id)

    assert row.session_key == "W1D1"
    assert "timezone" not in row.snapshot


def test_overrides_replay_in_insertion_order_not_clock_order(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    plan_id = _composite_plan()
    with session_scope() as s:
        first = PlanOverride(
            plan_id=plan_id,
            scope="SESSION",
            session_key="W1D1",
            patch={"op": "REORDER_BLOCKS", "value": {"order": ["DEADLIFT"]}},
            created_at=dt.datetime(2030, 1, 1),
        )
        s.add(first)
        s.flush()
        second = PlanOverride(
            plan_id=plan_id,
            scope="SESSION",
            session_key="W1D1",
            patch={"op": "REORDER_BLOCKS", "value": {"order": ["BENCH"]}},
            created_at=dt.datetime(2020, 1, 1),
        )
        s.add(second)
        s.flush()
        first_id, second_id = first.id, second.id

    snap = _generate(plan_id).snapshot

    assert [o["overrideId"] for o in snap["overridesApplied"]] == [first_id, second_id]
    assert [b["target"] for b in snap["blocks"]] == ["BENCH", "DEADLIFT", "SQUAT"]


def test_savepoint_upsert_keeps_single_row_and_status(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    monkeypatch.setattr(session_store, "_NATIVE_UPSERT", {})
    plan_id = _composite_plan()

    first = _generate(plan_id)
    with session_scope() as s:
        s.get(GeneratedSession, first.id).status = "SKIPPED"
    _add_override(plan_id, _accessory("Dips"))
    second = _generate(plan_id)

    assert second.id == first.id
    assert second.status == "SKIPPED"
    assert [a["exerciseName"] for a in second.snapshot["accessories"]] == ["Dips"]
    assert _row_count() == 1


def test_savepoint_upsert_updates_row_inserted_concurrently(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    monkeypatch.setattr(session_store, "_NATIVE_UPSERT", {})
    plan_id = _composite_plan()
    first = _generate(plan_id)

    # the unrefreshed lookup misses, as if another writer inserted after it ran
    real_find = session_store._find

    def racing_find(s, plan_id, session_key, *, refresh=False):
        return real_find(s, plan_id, session_key, refresh=True) if refresh else None

    monkeypatch.setattr(session_store, "_find", racing_find)
    _add_override(plan_id, _accessory("Dips"))
    second = _generate(plan_id)

    assert second.id == first.id
    assert second.snapshot["accessories"][0]["exerciseName"] == "Dips"
    assert _row_count() == 1


def test_savepoint_upsert_reraises_non_key_integrity_errors(tmp_path, monkeypatch):
    _create_schema(tmp_path, monkeypatch)
    now = dt.datetime.utcnow()
    values = {
        "plan_id": 1,
        "user_id": "u1",
        "session_key": "W1D1",
        "snapshot": {},
        "status": "BOGUS",
        "created_at": now,
        "updated_at": now,
    }

    with pytest.raises(IntegrityError):
        with session_scope() as s:
            session_store._savepoint_upsert(s, values)

    assert _row_count() == 0
