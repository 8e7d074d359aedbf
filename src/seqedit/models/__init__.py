"""Pydantic data models for seqedit."""

from seqedit.models.segment import LinkKind, Segment, SegmentType
from seqedit.models.delta import BlockSnapshot, Delta, EditResult, PathShift

# Resolve the self-reference in BlockSnapshot.children
BlockSnapshot.model_rebuild()

__all__ = [
    "BlockSnapshot",
    "Delta",
    "EditResult",
    "LinkKind",
    "PathShift",
    "Segment",
    "SegmentType",
]
