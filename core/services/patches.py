"""Tagged override patches.

A stored ``PlanOverride.patch`` is a JSON document whose ``op`` tag selects
one of a closed set of variants. Parsing narrows the document to a typed
model so the interpreter can dispatch over every variant explicitly.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from core.errors import PatchValidationError

DEFAULT_ACCESSORY_ORDER = 99


class _PatchPart(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class AccessoryValue(_PatchPart):
    exercise_name: str = Field(alias="exerciseName", min_length=1)
    sets: Optional[list[dict[str, Any]]] = None
    order: Optional[Union[int, float]] = None


class AddAccessoryPatch(_PatchPart):
    op: Literal["ADD_ACCESSORY"]
    value: AccessoryValue


class BlockTarget(_PatchPart):
    block_target: str = Field(alias="blockTarget", min_length=1)


class ReplacementValue(_PatchPart):
    exercise_name: str = Field(alias="exerciseName", min_length=1)


class ReplaceExercisePatch(_PatchPart):
    op: Literal["REPLACE_EXERCISE"]
    target: BlockTarget
    value: ReplacementValue


class ReorderValue(_PatchPart):
    order: list[str]


class ReorderBlocksPatch(_PatchPart):
    op: Literal["REORDER_BLOCKS"]
    value: ReorderValue


Patch = Annotated[
    Union[AddAccessoryPatch, ReplaceExercisePatch, ReorderBlocksPatch],
    Field(discriminator="op"),
]

PATCH_OPS = ("ADD_ACCESSORY", "REPLACE_EXERCISE", "REORDER_BLOCKS")

_patch_adapter: TypeAdapter[Patch] = TypeAdapter(Patch)


def parse_patch(document: Any) -> Union[AddAccessoryPatch, ReplaceExercisePatch, ReorderBlocksPatch]:
    if not isinstance(document, dict):
        raise PatchValidationError("Patch must be a JSON object", received=type(document).__name__)
    try:
        return _patch_adapter.validate_python(document)
    except ValidationError as exc:
        raise PatchValidationError(
            f"Invalid patch for op {document.get('op')!r}",
            op=document.get("op"),
            errors=exc.errors(include_url=False),
        ) from exc
