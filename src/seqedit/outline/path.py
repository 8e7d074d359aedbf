"""Positional block addressing.

A path is the list of zero-based sibling indices from the page root to a
block: [0, 2, 1] means 1st root block -> 3rd child -> 2nd grandchild. Paths
are not stable identifiers. Any structural mutation may renumber them, which
is why mutations report PathShift records computed from an id->path index.
"""

from typing import Iterable, Iterator, Optional, Sequence, TYPE_CHECKING

from seqedit.models.delta import PathShift
from seqedit.services.exceptions import BlockNotFoundError

if TYPE_CHECKING:
    from seqedit.outline.block import Block


BlockPath = list[int]


def format_path(path: Sequence[int]) -> str:
    """Render a path as dotted indices ("0.2.1")."""
    return ".".join(str(index) for index in path)


def parse_path(text: str) -> BlockPath:
    """Parse dotted indices ("0.2.1") into a path.

    Raises:
        ValueError: If text is empty or contains non-integer/negative parts
    """
    if not text.strip():
        raise ValueError("Empty block path")
    try:
        path = [int(part) for part in text.strip().split(".")]
    except ValueError as e:
        raise ValueError(f"Invalid block path: {text!r}. Expected e.g. 0.2.1") from e
    if any(index < 0 for index in path):
        raise ValueError(f"Invalid block path: {text!r}. Indices must be >= 0")
    return path


def resolve_path(blocks: list["Block"], path: Sequence[int]) -> "Block":
    """Walk the tree by sibling index at each level.

    Raises:
        BlockNotFoundError: If the path is empty or any index is out of range
    """
    if not path:
        raise BlockNotFoundError(path, "Empty path")

    level = blocks
    block = None
    for position, index in enumerate(path):
        if index < 0 or index >= len(level):
            raise BlockNotFoundError(
                path, f"Invalid index {index} at path position {position} (siblings: {len(level)})"
            )
        block = level[index]
        level = block.children
    return block


def sibling_list(blocks: list["Block"], path: Sequence[int]) -> list["Block"]:
    """Return the list that holds (or would hold) the block at path.

    That is the root list for single-index paths, otherwise the children of
    the block at path[:-1]. The list is returned by reference so callers can
    insert or remove in place.

    Raises:
        BlockNotFoundError: If the path is empty or the parent does not exist
    """
    if not path:
        raise BlockNotFoundError(path, "Empty path")
    if len(path) == 1:
        return blocks
    return resolve_path(blocks, path[:-1]).children


def locate_block(blocks: list["Block"], target: "Block") -> BlockPath:
    """Find the path of a block by identity (inverse of resolve_path).

    Raises:
        BlockNotFoundError: If the block is not in the tree
    """
    for path, block in iter_paths(blocks):
        if block is target:
            return path
    raise BlockNotFoundError(None, f"Block {target.id} is not in this tree")


def iter_paths(blocks: list["Block"], prefix: Sequence[int] = ()) -> Iterator[tuple[BlockPath, "Block"]]:
    """Yield (path, block) for every block in document order."""
    for index, block in enumerate(blocks):
        path = [*prefix, index]
        yield path, block
        yield from iter_paths(block.children, path)


def build_path_index(blocks: list["Block"]) -> dict[str, tuple[int, ...]]:
    """Map every block id to its current path."""
    return {block.id: tuple(path) for path, block in iter_paths(blocks)}


def compute_shifts(
    before: dict[str, tuple[int, ...]],
    after: dict[str, tuple[int, ...]],
    exclude: Iterable[str] = (),
) -> list[PathShift]:
    """Diff two id->path indexes into PathShift records.

    Only blocks present in both snapshots whose path changed are reported
    (created and deleted blocks have no old/new path respectively). Records
    are ordered by old path, i.e. by pre-change document order.

    Args:
        before: Index taken before the mutation
        after: Index taken after the mutation
        exclude: Block ids to leave out
    """
    skip = set(exclude)
    shifts = [
        PathShift(old_path=list(old), new_path=list(after[block_id]))
        for block_id, old in before.items()
        if block_id not in skip and block_id in after and after[block_id] != old
    ]
    shifts.sort(key=lambda shift: shift.old_path)
    return shifts


def apply_shifts(path: Sequence[int], shifts: Iterable[PathShift]) -> Optional[BlockPath]:
    """Translate a cached path through a Delta's shifts.

    Returns the new path, the unchanged path when no shift mentions it, or
    None when the path is ambiguous (no record, but a record moved another
    block into that position). Callers treat None as "invalidate the cache".
    """
    target = list(path)
    occupied_by_other = False
    for shift in shifts:
        if shift.old_path == target:
            return list(shift.new_path)
        if shift.new_path == target:
            occupied_by_other = True
    if occupied_by_other:
        return None
    return target
