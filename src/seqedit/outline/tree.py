"""BlockTree: the nested-block page structure and its structural edits.

Every mutation follows the same shape: resolve the path, snapshot the
id->path index, mutate in place, rebuild the index, and report Deltas whose
shifts are the difference between the two indexes.

Mutations never raise for stale or invalid paths. They return None, which
callers treat as "no visible change, fall back to a full reload". Rapid user
edits can race earlier in-flight results, so a path that no longer resolves
is an expected situation, not an error.
"""

from typing import Callable, Iterator, Optional, Sequence

import structlog

from seqedit.models.delta import BlockSnapshot, Delta, EditResult
from seqedit.outline.block import Block, generate_block_id
from seqedit.outline.path import (
    BlockPath,
    build_path_index,
    compute_shifts,
    iter_paths,
    locate_block,
    resolve_path,
    sibling_list,
)
from seqedit.services.exceptions import BlockNotFoundError

logger = structlog.get_logger()


class BlockTree:
    """Ordered root blocks of one page plus an id->path index.

    Attributes:
        blocks: Root blocks in document order (depth 0)
    """

    def __init__(
        self,
        blocks: Optional[list[Block]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """Initialize tree.

        Args:
            blocks: Root blocks (owned by the tree from now on)
            id_factory: Id generator for new blocks (default: UUID4)
        """
        self.blocks: list[Block] = blocks if blocks is not None else []
        self._new_id = id_factory or generate_block_id
        self._index: dict[str, tuple[int, ...]] = {}
        self.reindex()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def reindex(self) -> None:
        """Rebuild the id->path index (after any out-of-band change to blocks)."""
        self._index = build_path_index(self.blocks)

    def resolve(self, path: Sequence[int]) -> Block:
        """Return the block at path.

        Raises:
            BlockNotFoundError: If any index is out of range
        """
        return resolve_path(self.blocks, path)

    def find(self, path: Sequence[int]) -> Optional[Block]:
        """Like resolve(), returning None when the path does not resolve."""
        try:
            return self.resolve(path)
        except BlockNotFoundError:
            return None

    def locate(self, block: Block) -> BlockPath:
        """Return the path of a block in this tree (by identity).

        Raises:
            BlockNotFoundError: If the block is not part of this tree
        """
        path = self._index.get(block.id)
        if path is not None and self.find(path) is block:
            return list(path)
        return locate_block(self.blocks, block)

    def path_of(self, block_id: str) -> Optional[BlockPath]:
        """Current path of a block id, or None if no such block."""
        path = self._index.get(block_id)
        return list(path) if path is not None else None

    def get(self, block_id: str) -> Optional[Block]:
        """Block with the given id, or None."""
        path = self._index.get(block_id)
        return self.find(path) if path is not None else None

    def iter_blocks(self) -> Iterator[tuple[BlockPath, Block]]:
        """Yield (path, block) in document order."""
        return iter_paths(self.blocks)

    def to_snapshots(self) -> list[BlockSnapshot]:
        """Serializable copy of the whole tree."""
        return [block.snapshot() for block in self.blocks]

    def __len__(self) -> int:
        return len(self._index)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _miss(self, operation: str, path: Sequence[int], reason: str = "block_not_found") -> None:
        logger.debug("tree_operation_noop", operation=operation, path=list(path), reason=reason)
        return None

    def update_content(self, path: Sequence[int], content: str) -> Optional[Delta]:
        """Replace a block's content and re-derive its segments and metadata.

        Returns:
            Delta{update} with the updated block, or None if path is stale
        """
        block = self.find(path)
        if block is None:
            return self._miss("update_content", path)

        block.set_content(content)
        return Delta(action="update", path=list(path), block=block.snapshot())

    def insert_at(self, path: Sequence[int], content: str, block_id: Optional[str] = None) -> Optional[Delta]:
        """Insert a new block at path, pushing later siblings down.

        The last index may equal the current sibling count (append). The new
        block's depth is len(path) - 1.

        Returns:
            Delta{add} with the created block and shift records, or None
        """
        try:
            siblings = sibling_list(self.blocks, path)
        except BlockNotFoundError:
            return self._miss("insert_at", path)

        index = path[-1]
        if index < 0 or index > len(siblings):
            return self._miss("insert_at", path, reason="index_out_of_range")

        before = dict(self._index)
        block = Block.create(content, depth=len(path) - 1, block_id=block_id or self._new_id())
        siblings.insert(index, block)
        self.reindex()

        logger.info("block_inserted", path=list(path), block_id=block.id)
        return Delta(
            action="add",
            path=list(path),
            block=block.snapshot(),
            shifts=compute_shifts(before, self._index),
        )

    def remove(self, path: Sequence[int]) -> Optional[Block]:
        """Detach and return the block at path (with its subtree), or None."""
        block = self.find(path)
        if block is None:
            return self._miss("remove", path)
        sibling_list(self.blocks, path).pop(path[-1])
        self.reindex()
        return block

    def split(self, path: Sequence[int], offset: int) -> Optional[EditResult]:
        """Split a block's content at offset.

        The original block keeps content[:offset]. The new block holding
        content[offset:] becomes the original's first child when the original
        already has children and the remainder is non-empty; otherwise it is
        inserted as the next sibling at the same depth.

        Returns:
            EditResult with [update original, add new] deltas and the caret at
            offset 0 of the new block, or None if path/offset is invalid
        """
        block = self.find(path)
        if block is None:
            return self._miss("split", path)
        if offset < 0 or offset > len(block.content):
            return self._miss("split", path, reason="offset_out_of_range")

        before_text = block.content[:offset]
        after_text = block.content[offset:]
        before = dict(self._index)

        block.set_content(before_text)
        new_block = Block.create(after_text, block_id=self._new_id())

        if block.has_children and after_text:
            new_block.set_depth(block.depth + 1)
            block.children.insert(0, new_block)
            new_path = [*path, 0]
        else:
            new_block.set_depth(block.depth)
            sibling_list(self.blocks, path).insert(path[-1] + 1, new_block)
            new_path = [*path[:-1], path[-1] + 1]

        self.reindex()
        logger.info(
            "block_split",
            path=list(path),
            offset=offset,
            new_path=new_path,
            as_child=len(new_path) > len(path),
        )
        return EditResult(
            deltas=[
                Delta(action="update", path=list(path), block=block.snapshot()),
                Delta(
                    action="add",
                    path=new_path,
                    block=new_block.snapshot(),
                    shifts=compute_shifts(before, self._index),
                ),
            ],
            focus_path=new_path,
            cursor=0,
        )

    def merge(self, path: Sequence[int]) -> Optional[EditResult]:
        """Merge a block into the block just before it in document order.

        The target is the previous sibling's deepest last descendant, or the
        parent when there is no previous sibling. The target's content becomes
        target + current, the current block is deleted and its children are
        re-homed so document order is kept.

        Returns:
            EditResult with one update delta (removed_path set) and the caret at
            the merge point, or None when there is nothing to merge into
        """
        block = self.find(path)
        if block is None:
            return self._miss("merge", path)

        index = path[-1]
        siblings = sibling_list(self.blocks, path)
        if index > 0:
            target = siblings[index - 1].last_descendant()
        elif len(path) > 1:
            target = self.resolve(path[:-1])
        else:
            return self._miss("merge", path, reason="first_block")

        before = dict(self._index)
        cursor = len(target.content)

        target.set_content(target.content + block.content)
        siblings.pop(index)

        orphans = block.children
        block.children = []
        for child in orphans:
            child.set_depth(target.depth + 1)
        if index > 0:
            target.children.extend(orphans)
        else:
            # target is the parent; keep orphans where the merged block was
            target.children[index:index] = orphans

        self.reindex()
        target_path = self.path_of(target.id)
        logger.info("block_merged", path=list(path), target_path=target_path, cursor=cursor)
        return EditResult(
            deltas=[
                Delta(
                    action="update",
                    path=target_path,
                    block=target.snapshot(),
                    shifts=compute_shifts(before, self._index, exclude=[target.id]),
                    removed_path=list(path),
                )
            ],
            focus_path=target_path,
            cursor=cursor,
        )

    def indent(self, path: Sequence[int]) -> Optional[EditResult]:
        """Make a block the last child of its previous sibling (depth + 1).

        Returns:
            EditResult with one update delta for the moved block, or None if
            the block has no previous sibling
        """
        block = self.find(path)
        if block is None:
            return self._miss("indent", path)

        index = path[-1]
        if index == 0:
            return self._miss("indent", path, reason="no_previous_sibling")

        siblings = sibling_list(self.blocks, path)
        new_parent = siblings[index - 1]
        return self._move(
            "block_indented",
            path,
            block,
            detach=lambda: siblings.pop(index),
            attach=lambda: new_parent.children.append(block),
            depth=new_parent.depth + 1,
        )

    def outdent(self, path: Sequence[int]) -> Optional[EditResult]:
        """Make a block the next sibling of its parent (depth - 1).

        Later siblings of the block stay with the old parent.

        Returns:
            EditResult with one update delta for the moved block, or None at
            depth 0
        """
        block = self.find(path)
        if block is None:
            return self._miss("outdent", path)
        if len(path) == 1:
            return self._miss("outdent", path, reason="already_root")

        parent_path = list(path[:-1])
        parent = self.resolve(parent_path)
        grand_siblings = sibling_list(self.blocks, parent_path)
        return self._move(
            "block_outdented",
            path,
            block,
            detach=lambda: parent.children.pop(path[-1]),
            attach=lambda: grand_siblings.insert(parent_path[-1] + 1, block),
            depth=parent.depth,
        )

    def _move(
        self,
        event: str,
        path: Sequence[int],
        block: Block,
        detach: Callable[[], Block],
        attach: Callable[[], None],
        depth: int,
    ) -> EditResult:
        before = dict(self._index)
        detach()
        attach()
        block.set_depth(depth)
        self.reindex()

        new_path = self.path_of(block.id)
        logger.info(event, path=list(path), new_path=new_path, depth=depth)
        return EditResult(
            deltas=[
                Delta(
                    action="update",
                    path=new_path,
                    block=block.snapshot(),
                    shifts=compute_shifts(before, self._index),
                )
            ],
            focus_path=new_path,
        )
