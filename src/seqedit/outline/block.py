"""Block: one outline node holding content and nested children."""

import uuid
from dataclasses import dataclass, field
from typing import Iterator, Optional

from seqedit.models.delta import BlockSnapshot
from seqedit.models.segment import Segment
from seqedit.outline.inline import parse_block_content


def generate_block_id() -> str:
    """Generate a fresh block id (UUID4, the format Logseq uses for id:: properties)."""
    return str(uuid.uuid4())


@dataclass
class Block:
    """Single bullet in an outline with its children.

    Each parent exclusively owns its ``children`` list; there are no parent
    back-pointers. Derived fields (segments, todo_state, checkbox_state,
    priority) are always recomputed from ``content`` through set_content().

    Attributes:
        id: Stable block id, unique per page
        content: Raw block source text (may span several lines)
        depth: Nesting depth (0 = root)
        children: Child blocks in document order
        segments: Parsed inline segments of content (TODO marker removed)
        todo_state: TODO/DOING/DONE/LATER/NOW/CANCELED or ""
        checkbox_state: "[ ]", "[x]" or ""
        priority: "A", "B", "C" or ""
    """

    id: str
    content: str = ""
    depth: int = 0
    children: list["Block"] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list, compare=False)
    todo_state: str = field(default="", compare=False)
    checkbox_state: str = field(default="", compare=False)
    priority: str = field(default="", compare=False)

    def __post_init__(self):
        """Derive segments and task metadata from the initial content."""
        self.set_content(self.content)

    @classmethod
    def create(cls, content: str = "", depth: int = 0, block_id: Optional[str] = None) -> "Block":
        """Create a block with a generated id unless one is given."""
        return cls(id=block_id or generate_block_id(), content=content, depth=depth)

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    def set_content(self, content: str) -> None:
        """Replace content and re-derive segments and metadata."""
        parsed = parse_block_content(content)
        self.content = content
        self.segments = parsed.segments
        self.todo_state = parsed.todo.todo_state
        self.checkbox_state = parsed.todo.checkbox_state
        self.priority = parsed.todo.priority

    def set_depth(self, depth: int) -> None:
        """Move this block (and its whole subtree) to a new depth."""
        self.depth = depth
        for child in self.children:
            child.set_depth(depth + 1)

    def add_child(self, content: str, position: Optional[int] = None, block_id: Optional[str] = None) -> "Block":
        """Add a child block one level deeper.

        Args:
            content: The child's content
            position: Optional index to insert at (None = append to end)
            block_id: Optional explicit id

        Returns:
            The created child block
        """
        child = Block.create(content, depth=self.depth + 1, block_id=block_id)
        if position is None:
            self.children.append(child)
        else:
            self.children.insert(position, child)
        return child

    def walk(self) -> Iterator["Block"]:
        """Yield this block and all descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def last_descendant(self) -> "Block":
        """Deepest last descendant (the block itself when it has no children)."""
        block = self
        while block.children:
            block = block.children[-1]
        return block

    def snapshot(self, include_children: bool = True) -> BlockSnapshot:
        """Serializable copy of this block for Delta payloads."""
        return BlockSnapshot(
            id=self.id,
            content=self.content,
            segments=list(self.segments),
            depth=self.depth,
            children=[child.snapshot() for child in self.children] if include_children else [],
            todo_state=self.todo_state,
            checkbox_state=self.checkbox_state,
            priority=self.priority,
        )

    @classmethod
    def from_snapshot(cls, snapshot: BlockSnapshot) -> "Block":
        """Rebuild a block (and its subtree) from a snapshot; derived fields are re-parsed."""
        return cls(
            id=snapshot.id,
            content=snapshot.content,
            depth=snapshot.depth,
            children=[cls.from_snapshot(child) for child in snapshot.children],
        )
