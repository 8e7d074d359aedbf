"""Backlink index: which pages reference which, block by block."""

from dataclasses import dataclass
from typing import Dict, Iterable

from seqedit.outline.block import Block
from seqedit.outline.inline import extract_page_references


@dataclass(frozen=True)
class BlockReference:
    """Where a [[page]] reference appears.

    Attributes:
        page_id: Page containing the reference
        block_id: Block containing the reference
        position: Character offset of the reference in the block content
    """

    page_id: str
    block_id: str
    position: int


class BacklinkIndex:
    """Forward and backward [[link]] references between pages.

    Self-references are ignored. Pages are (re)indexed as a whole, so updating
    one page never requires rescanning the others.
    """

    def __init__(self) -> None:
        # source page -> target page -> references
        self.forward: Dict[str, Dict[str, list[BlockReference]]] = {}
        # target page -> source page -> references
        self.backward: Dict[str, Dict[str, list[BlockReference]]] = {}

    def index_page(self, page_id: str, blocks: Iterable[Block]) -> None:
        """Replace all references originating from page_id."""
        self.remove_page(page_id)
        self.forward[page_id] = {}

        for root in blocks:
            for block in root.walk():
                for target in extract_page_references(block.content):
                    if target == page_id:
                        continue
                    ref = BlockReference(
                        page_id=page_id,
                        block_id=block.id,
                        position=block.content.find(f"[[{target}]]"),
                    )
                    self.forward[page_id].setdefault(target, []).append(ref)
                    self.backward.setdefault(target, {}).setdefault(page_id, []).append(ref)

    def remove_page(self, page_id: str) -> None:
        """Drop all references originating from page_id."""
        for target in self.forward.pop(page_id, {}):
            sources = self.backward.get(target)
            if sources is None:
                continue
            sources.pop(page_id, None)
            if not sources:
                del self.backward[target]

    def backlinks(self, page_id: str) -> dict[str, list[str]]:
        """Pages referencing page_id, mapped to the referencing block ids."""
        return {
            source: [ref.block_id for ref in refs]
            for source, refs in sorted(self.backward.get(page_id, {}).items())
        }

    def forward_links(self, page_id: str) -> list[str]:
        """Pages that page_id references."""
        return sorted(self.forward.get(page_id, {}))

    def is_orphan(self, page_id: str) -> bool:
        """True if the page has no incoming and no outgoing links."""
        return not self.forward.get(page_id) and not self.backward.get(page_id)
