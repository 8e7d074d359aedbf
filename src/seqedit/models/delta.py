"""Delta protocol models.

A Delta is the minimal description of one content or structural change,
serializable across a request/response boundary. Blocks are addressed by
positional paths, so every Delta also carries the path shifts that other
blocks underwent as a consequence of the change.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from seqedit.models.segment import Segment


class BlockSnapshot(BaseModel):
    """Serializable copy of a block, as sent to the presentation layer."""

    id: str = Field(..., description="Stable block id (unique per page)")
    content: str = Field(default="", description="Raw block source text")
    segments: list[Segment] = Field(default_factory=list)
    depth: int = Field(default=0, ge=0)
    children: list["BlockSnapshot"] = Field(default_factory=list)
    todo_state: str = Field(default="")
    checkbox_state: str = Field(default="")
    priority: str = Field(default="")

    model_config = {"populate_by_name": True, "alias_generator": to_camel}


class PathShift(BaseModel):
    """Renumbering of one surviving block's path caused by a mutation."""

    old_path: list[int]
    new_path: list[int]

    model_config = {"frozen": True, "populate_by_name": True, "alias_generator": to_camel}


class Delta(BaseModel):
    """One content or structural change."""

    action: Literal["add", "update"] = Field(..., description="Kind of change")

    path: list[int] = Field(..., description="Path of the affected block after the change")

    block: BlockSnapshot = Field(..., description="Affected block after the change")

    shifts: list[PathShift] = Field(
        default_factory=list,
        description="Path renumbering other cached paths must undergo"
    )

    removed_path: Optional[list[int]] = Field(
        default=None,
        description="Pre-change path of a block the change deleted (merge)"
    )

    model_config = {"populate_by_name": True, "alias_generator": to_camel}


class EditResult(BaseModel):
    """Result of a compound structural edit (split, merge, indent, outdent)."""

    deltas: list[Delta] = Field(default_factory=list)

    focus_path: list[int] = Field(..., description="Block the caret should move to")

    cursor: Optional[int] = Field(
        default=None,
        description="Caret offset inside focus_path (None keeps the current offset)"
    )

    model_config = {"populate_by_name": True, "alias_generator": to_camel}
