from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional

DEFAULT_TRAINING_MAX_KG = 100.0
ACCESSORY_ORDER_OFFSET = 10000
BLOCK_ORDER_STRIDE = 100

_DEFAULT_EXERCISE_FOR_TARGET = {
    "SQUAT": "Back Squat",
    "BENCH": "Bench Press",
    "DEADLIFT": "Deadlift",
    "OHP": "Overhead Press",
    "PULL": "Pull-Up",
}

_WAVES_531 = {
    1: [(5, 0.65, None), (5, 0.75, None), (5, 0.85, "5+")],
    2: [(3, 0.70, None), (3, 0.80, None), (3, 0.90, "3+")],
    3: [(5, 0.75, None), (3, 0.85, None), (1, 0.95, "1+")],
    4: [(5, 0.40, "deload"), (5, 0.50, None), (5, 0.60, None)],
}

# (sets, reps, percent, note) keyed by week in a six-week cycle
_CANDITO_LINEAR = {
    1: (4, 8, 0.70, "volume"),
    2: (4, 6, 0.75, None),
    3: (5, 4, 0.80, "strength"),
    4: (6, 3, 0.85, None),
    5: (4, 2, 0.90, "peak"),
    6: (3, 1, 0.95, "test prep"),
}


@dataclass
class GeneratorContext:
    week: int
    day: int
    params: dict[str, Any] = field(default_factory=dict)
    defaults: dict[str, Any] = field(default_factory=dict)
    forced_target: Optional[str] = None
    order_base: int = 0


def normalize_target(value: Any) -> str:
    return str(value).strip().upper()


def default_exercise_name(target: str) -> str:
    return _DEFAULT_EXERCISE_FOR_TARGET.get(normalize_target(target), "Main Lift")


def round_to_plate(kg: float) -> float:
    return math.floor(kg / 2.5 + 0.5) * 2.5


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            n = float(text)
        except ValueError:
            return None
        return n if math.isfinite(n) else None
    return None


def _clean(entry: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in entry.items() if v is not None}


def training_max_kg(params: dict[str, Any], defaults: dict[str, Any], target: str) -> float:
    keys = (target, target.lower())

    def scoped(source: Any) -> Optional[float]:
        if source is None:
            return None
        direct = _number(source)
        if direct is not None:
            return direct
        if not isinstance(source, dict):
            return None
        for key in keys:
            n = _number(source.get(key))
            if n is not None:
                return n
        return None

    for container in (params, defaults):
        for name in ("trainingMaxKg", "tmKg", "tm"):
            found = scoped((container or {}).get(name))
            if found is not None:
                return found
    return DEFAULT_TRAINING_MAX_KG


def definition_targets(definition: dict[str, Any], fallback: list[str]) -> list[str]:
    raw: list[Any] = []
    for name in ("lifts", "modules", "mainLifts", "cluster"):
        value = definition.get(name)
        if isinstance(value, list):
            raw.extend(value)
    targets: list[str] = []
    for item in raw:
        token = str(item).strip()
        if token and normalize_target(token) not in targets:
            targets.append(normalize_target(token))
    return targets or list(fallback)


def _percent_set(tm: float, reps: int, percent: float, note: Optional[str]) -> dict[str, Any]:
    return _clean(
        {
            "reps": reps,
            "percent": percent,
            "targetWeightKg": round_to_plate(tm * percent),
            "note": note,
        }
    )


def _main(target: str, order: int, sets: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "exerciseName": default_exercise_name(target),
        "role": "MAIN",
        "sourceBlockTarget": target,
        "order": order,
        "sets": sets,
    }


def _generate_531(definition: dict[str, Any], ctx: GeneratorContext) -> list[dict[str, Any]]:
    if ctx.forced_target:
        targets = [normalize_target(ctx.forced_target)]
    else:
        targets = definition_targets(definition, ["SQUAT", "BENCH", "DEADLIFT", "OHP"])
    target = targets[(ctx.day - 1) % len(targets)]
    tm = training_max_kg(ctx.params, ctx.defaults, target)
    wave = _WAVES_531[(ctx.week - 1) % 4 + 1]
    return [_main(target, ctx.order_base, [_percent_set(tm, reps, pct, note) for reps, pct, note in wave])]


def _operator_scheme(week_in_cycle: int) -> tuple[int, int, float, Optional[str]]:
    if week_in_cycle <= 2:
        return 5, 5, 0.75, None
    if week_in_cycle <= 4:
        return 5, 4, 0.80, None
    if week_in_cycle == 5:
        return 6, 3, 0.85, None
    return 3, 5, 0.70, "deload"


def _generate_operator(definition: dict[str, Any], ctx: GeneratorContext) -> list[dict[str, Any]]:
    if ctx.forced_target:
        targets = [normalize_target(ctx.forced_target)]
    else:
        targets = definition_targets(definition, ["SQUAT", "BENCH", "DEADLIFT"])
    sets_n, reps, pct, note = _operator_scheme((ctx.week - 1) % 6 + 1)
    out = []
    for i, target in enumerate(targets):
        tm = training_max_kg(ctx.params, ctx.defaults, target)
        out.append(_main(target, ctx.order_base + i, [_percent_set(tm, reps, pct, note) for _ in range(sets_n)]))
    return out


def _generate_candito_linear(definition: dict[str, Any], ctx: GeneratorContext) -> list[dict[str, Any]]:
    progression = definition.get("progression") if isinstance(definition.get("progression"), dict) else {}
    day_map = progression.get("dayMap")
    if isinstance(day_map, list) and day_map:
        rotation = [normalize_target(x) for x in day_map]
    else:
        rotation = ["SQUAT", "BENCH", "DEADLIFT", "BENCH"]
    target = normalize_target(ctx.forced_target) if ctx.forced_target else rotation[(ctx.day - 1) % len(rotation)]
    sets_n, reps, pct, note = _CANDITO_LINEAR[(ctx.week - 1) % 6 + 1]
    tm = training_max_kg(ctx.params, ctx.defaults, target)
    return [_main(target, ctx.order_base, [_percent_set(tm, reps, pct, note) for _ in range(sets_n)])]


_GENERATORS = {
    "531": _generate_531,
    "operator": _generate_operator,
    "candito-linear": _generate_candito_linear,
}


def generate_from_definition(definition: Any, ctx: GeneratorContext) -> list[dict[str, Any]]:
    definition = definition if isinstance(definition, dict) else {}
    kind = str(definition.get("kind") or "").lower()
    generator = _GENERATORS.get(kind)
    if generator is not None:
        return generator(definition, ctx)

    target = normalize_target(ctx.forced_target) if ctx.forced_target else "CUSTOM"
    return [_main(target, ctx.order_base, [{"reps": 5, "note": f"Unsupported logic kind: {definition.get('kind') or 'unknown'}"}])]


def exercises_from_blocks(blocks: list[dict[str, Any]], week: int, day: int, plan_params: Any) -> list[dict[str, Any]]:
    exercises: list[dict[str, Any]] = []
    base_params = plan_params if isinstance(plan_params, dict) else {}
    for i, block in enumerate(blocks):
        target = block.get("target")
        forced = normalize_target(target) if isinstance(target, str) and normalize_target(target) != "CUSTOM" else None
        generated = generate_from_definition(
            block.get("definition"),
            GeneratorContext(
                week=week,
                day=day,
                params={**base_params, **(block.get("params") or {})},
                defaults=block.get("defaults") or {},
                forced_target=forced,
                order_base=i * BLOCK_ORDER_STRIDE,
            ),
        )
        replacement = (block.get("replacements") or {}).get("mainExercise")
        if replacement:
            for exercise in generated:
                if exercise["role"] == "MAIN":
                    exercise["exerciseName"] = replacement
        exercises.extend(generated)
    return exercises


def _manual_set(row: Any) -> dict[str, Any]:
    row = row if isinstance(row, dict) else {}
    weight = row.get("targetWeightKg")
    if weight is None:
        weight = row.get("weightKg")
    return _clean(
        {
            "reps": _number(row.get("reps")),
            "targetWeightKg": _number(weight),
            "percent": _number(row.get("percent")),
            "rpe": _number(row.get("rpe")),
            "note": row.get("note") if isinstance(row.get("note"), str) else None,
        }
    )


def exercises_from_manual_session(manual_session: Any) -> list[dict[str, Any]]:
    items = manual_session.get("items") if isinstance(manual_session, dict) else None
    out: list[dict[str, Any]] = []
    for i, item in enumerate(items if isinstance(items, list) else []):
        if not isinstance(item, dict):
            continue
        name = str(item.get("exerciseName") or item.get("name") or "").strip()
        if not name:
            continue
        rows = item["sets"] if isinstance(item.get("sets"), list) and item["sets"] else [item]
        order = _number(item.get("order"))
        out.append(
            {
                "exerciseId": item["exerciseId"] if isinstance(item.get("exerciseId"), str) else None,
                "exerciseName": name,
                "role": "ASSIST" if item.get("role") == "ASSIST" else "MAIN",
                "sourceBlockTarget": "MANUAL",
                "order": i if order is None else order,
                "sets": [_manual_set(r) for r in rows],
            }
        )
    return out


def exercises_from_accessories(accessories: list[dict[str, Any]]) -> list[dict[str, Any]]:
    out = []
    for accessory in accessories:
        rows = accessory.get("sets") or []
        out.append(
            {
                "exerciseName": accessory["exerciseName"],
                "role": "ASSIST",
                "sourceBlockTarget": "ACCESSORY",
                "order": ACCESSORY_ORDER_OFFSET + accessory["order"],
                "sets": [
                    _clean(
                        {
                            "reps": _number(r.get("reps")),
                            "targetWeightKg": _number(r.get("weightKg")),
                            "rpe": _number(r.get("rpe")),
                        }
                    )
                    for r in rows
                    if isinstance(r, dict)
                ],
            }
        )
    return out


def planned_exercises(snapshot: dict[str, Any], plan_params: Any = None) -> list[dict[str, Any]]:
    """Flatten a finished snapshot into one ordered exercise list."""
    exercises: list[dict[str, Any]] = []
    if isinstance(snapshot.get("blocks"), list):
        exercises.extend(exercises_from_blocks(snapshot["blocks"], snapshot["week"], snapshot["day"], plan_params))
    if "manualSession" in snapshot:
        exercises.extend(exercises_from_manual_session(snapshot.get("manualSession")))
    if isinstance(snapshot.get("accessories"), list):
        exercises.extend(exercises_from_accessories(snapshot["accessories"]))
    return sorted(exercises, key=lambda e: e.get("order", 9999))
