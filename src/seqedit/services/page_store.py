"""Page Store interface and an in-memory implementation.

The Page Store owns durable page/block/backlink data. seqedit talks to it
only through the async PageStore interface; InMemoryPageStore is the
reference implementation used by the CLI and the tests.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

import structlog

from seqedit.models.delta import Delta
from seqedit.outline.block import Block
from seqedit.outline.markdown import parse_page, render_page
from seqedit.outline.tree import BlockTree
from seqedit.services.backlinks import BacklinkIndex
from seqedit.services.exceptions import BlockNotFoundError

logger = structlog.get_logger()


@dataclass
class PageData:
    """A fetched page.

    Attributes:
        page_id: Page identifier (its name)
        title: Display title
        properties: Page-level properties
        blocks: Root blocks (the caller owns this copy)
        backlinks: Referring page id -> ids of its blocks linking here
    """

    page_id: str
    title: str
    blocks: list[Block]
    properties: dict[str, str] = field(default_factory=dict)
    backlinks: dict[str, list[str]] = field(default_factory=dict)


class PageStore(ABC):
    """Async interface to the external Page Store.

    Implementations raise StoreUnavailableError when the store cannot be
    reached and BlockNotFoundError when a path or page does not exist.
    """

    @abstractmethod
    async def fetch_page(self, page_id: str) -> PageData:
        """Fetch a whole page with its backlinks."""

    @abstractmethod
    async def commit_update(self, page_id: str, path: Sequence[int], content: str) -> Delta:
        """Persist new content for the block at path."""

    @abstractmethod
    async def commit_insert(self, page_id: str, path: Sequence[int], content: str) -> Delta:
        """Persist a new block inserted at path."""

    @abstractmethod
    async def commit_structure(self, page_id: str, blocks: list[Block]) -> None:
        """Persist the whole outline of a page (moves and removals)."""

    @abstractmethod
    async def list_pages(self) -> list[str]:
        """List all page ids."""


@dataclass
class _StoredPage:
    tree: BlockTree
    title: str
    properties: dict[str, str] = field(default_factory=dict)
    frontmatter: list[str] = field(default_factory=list)
    explicit_ids: set[str] = field(default_factory=set)
    indent_str: str = "  "


class InMemoryPageStore(PageStore):
    """Page Store kept in process memory.

    Fetching an unknown page creates it with a single empty block. Fetched
    blocks are deep copies, so callers can mutate them freely.

    Example:
        >>> store = InMemoryPageStore()
        >>> store.load_markdown("Groceries", "- Milk\\n- Bread")
        >>> page = await store.fetch_page("Groceries")
    """

    def __init__(self, indent_str: str = "  "):
        self.indent_str = indent_str
        self._pages: dict[str, _StoredPage] = {}
        self.backlinks = BacklinkIndex()

    # ------------------------------------------------------------------
    # Seeding and export
    # ------------------------------------------------------------------

    def add_page(self, page_id: str, blocks: list[Block], title: Optional[str] = None,
                 properties: Optional[dict[str, str]] = None) -> None:
        """Store a page built in code."""
        self._pages[page_id] = _StoredPage(
            tree=BlockTree(copy.deepcopy(blocks)),
            title=title or "",
            properties=dict(properties or {}),
            indent_str=self.indent_str,
        )
        self._reindex(page_id)

    def load_markdown(self, page_id: str, markdown: str) -> None:
        """Store a page parsed from Logseq markdown."""
        parsed = parse_page(markdown, default_indent=self.indent_str)
        self._pages[page_id] = _StoredPage(
            tree=BlockTree(parsed.blocks),
            title=parsed.title,
            properties=parsed.properties,
            frontmatter=parsed.frontmatter,
            explicit_ids=parsed.explicit_ids,
            indent_str=parsed.indent_str,
        )
        self._reindex(page_id)
        logger.info("page_loaded_from_markdown", page_id=page_id, blocks=len(parsed.blocks))

    def export_markdown(self, page_id: str) -> str:
        """Render a stored page back to Logseq markdown.

        Raises:
            KeyError: If the page does not exist
        """
        page = self._pages[page_id]
        return render_page(
            page.tree.blocks,
            frontmatter=page.frontmatter,
            title=page.title,
            indent_str=page.indent_str,
            explicit_ids=page.explicit_ids,
        )

    def has_page(self, page_id: str) -> bool:
        return page_id in self._pages

    # ------------------------------------------------------------------
    # PageStore interface
    # ------------------------------------------------------------------

    async def fetch_page(self, page_id: str) -> PageData:
        page = self._pages.get(page_id)
        if page is None:
            self.add_page(page_id, [Block.create("")])
            page = self._pages[page_id]
            logger.info("page_created", page_id=page_id)

        return PageData(
            page_id=page_id,
            title=page.title or page_id,
            blocks=copy.deepcopy(page.tree.blocks),
            properties=dict(page.properties),
            backlinks=self.backlinks.backlinks(page_id),
        )

    async def commit_update(self, page_id: str, path: Sequence[int], content: str) -> Delta:
        delta = self._tree(page_id, path).update_content(path, content)
        if delta is None:
            raise BlockNotFoundError(path)
        self._reindex(page_id)
        return delta

    async def commit_insert(self, page_id: str, path: Sequence[int], content: str) -> Delta:
        delta = self._tree(page_id, path).insert_at(path, content)
        if delta is None:
            raise BlockNotFoundError(path, "Invalid insertion path")
        self._reindex(page_id)
        return delta

    async def commit_structure(self, page_id: str, blocks: list[Block]) -> None:
        page = self._pages.get(page_id)
        if page is None:
            raise BlockNotFoundError(None, f"Page '{page_id}' not found")
        page.tree = BlockTree(copy.deepcopy(blocks))
        self._reindex(page_id)
        logger.info("page_structure_committed", page_id=page_id, blocks=len(page.tree))

    async def list_pages(self) -> list[str]:
        return sorted(self._pages)

    # ------------------------------------------------------------------

    def _tree(self, page_id: str, path: Sequence[int]) -> BlockTree:
        page = self._pages.get(page_id)
        if page is None:
            raise BlockNotFoundError(path, f"Page '{page_id}' not found")
        return page.tree

    def _reindex(self, page_id: str) -> None:
        self.backlinks.index_page(page_id, self._pages[page_id].tree.blocks)
