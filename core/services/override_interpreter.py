from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Iterable, Union

from core.errors import PatchValidationError
from core.models import PlanOverride
from core.services.patches import (
    DEFAULT_ACCESSORY_ORDER,
    AddAccessoryPatch,
    ReorderBlocksPatch,
    ReplaceExercisePatch,
    parse_patch,
)

logger = logging.getLogger(__name__)

AnyPatch = Union[AddAccessoryPatch, ReplaceExercisePatch, ReorderBlocksPatch]


def reorder_blocks(blocks: list[dict[str, Any]], order: list[str]) -> list[dict[str, Any]]:
    """Listed targets first, in listed order; the rest keep their relative order."""
    by_target: dict[Any, dict[str, Any]] = {}
    for block in blocks:
        by_target.setdefault(block.get("target"), block)
    reordered = [by_target[t] for t in dict.fromkeys(order) if t in by_target]
    remaining = [b for b in blocks if b.get("target") not in order]
    return reordered + remaining


def _add_accessory(snapshot: dict[str, Any], override_id: int, patch: AddAccessoryPatch) -> bool:
    order = patch.value.order
    snapshot.setdefault("accessories", []).append(
        {
            "exerciseName": patch.value.exercise_name,
            "sets": deepcopy(patch.value.sets or []),
            "order": DEFAULT_ACCESSORY_ORDER if order is None else order,
            "source": {"overrideId": override_id},
        }
    )
    snapshot["overridesApplied"].append({"overrideId": override_id, "op": patch.op})
    return True


def _replace_exercise(snapshot: dict[str, Any], override_id: int, patch: ReplaceExercisePatch) -> bool:
    blocks = snapshot.get("blocks")
    if not isinstance(blocks, list):
        return False
    target = patch.target.block_target
    block = next((b for b in blocks if b.get("target") == target), None)
    if block is None:
        # Stale target: leave the snapshot untouched and record nothing.
        return False
    replacements = block.setdefault("replacements", {})
    replacements["mainExercise"] = patch.value.exercise_name
    replacements["source"] = {"overrideId": override_id}
    snapshot["overridesApplied"].append({"overrideId": override_id, "op": patch.op, "target": target})
    return True


def _reorder(snapshot: dict[str, Any], override_id: int, patch: ReorderBlocksPatch) -> bool:
    if isinstance(snapshot.get("blocks"), list):
        snapshot["blocks"] = reorder_blocks(snapshot["blocks"], patch.value.order)
    snapshot["overridesApplied"].append({"overrideId": override_id, "op": patch.op})
    return True


def apply_patch(snapshot: dict[str, Any], override_id: int, patch: AnyPatch) -> bool:
    """Apply one parsed patch in place. Returns False when it was a no-op."""
    if isinstance(patch, AddAccessoryPatch):
        return _add_accessory(snapshot, override_id, patch)
    if isinstance(patch, ReplaceExercisePatch):
        return _replace_exercise(snapshot, override_id, patch)
    if isinstance(patch, ReorderBlocksPatch):
        return _reorder(snapshot, override_id, patch)
    raise TypeError(f"Unhandled patch variant: {type(patch).__name__}")


def apply_overrides(snapshot: dict[str, Any], overrides: Iterable[PlanOverride]) -> dict[str, Any]:
    """Replay SESSION overrides, in the given order, onto a freshly built snapshot."""
    snapshot.setdefault("overridesApplied", [])

    for row in overrides:
        try:
            patch = parse_patch(row.patch)
        except PatchValidationError as exc:
            logger.warning(
                "override_skipped",
                extra={"ctx_override_id": row.id, "ctx_plan_id": row.plan_id, "ctx_reason": exc.message},
            )
            continue
        if not apply_patch(snapshot, row.id, patch):
            logger.info(
                "override_noop",
                extra={"ctx_override_id": row.id, "ctx_op": patch.op, "ctx_session_key": snapshot.get("sessionKey")},
            )

    if isinstance(snapshot.get("accessories"), list):
        snapshot["accessories"].sort(key=lambda a: a.get("order", DEFAULT_ACCESSORY_ORDER))
    return snapshot
