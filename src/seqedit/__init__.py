"""seqedit - Structural editing for Logseq-style outline pages.

This package keeps a page of nested blocks and the edit operations a text
outliner needs, independent of any rendering layer.

Key features:
- Inline parsing of block content into typed segments (links, tags, refs...)
- TODO/priority/checkbox metadata derived from block content
- Split, merge, indent and outdent with path-shift bookkeeping
- Deltas describing every change for incremental re-rendering
- Editor sessions that serialize saves and flush edits before navigation

Example:
    >>> from seqedit import BlockTree, parse_page
    >>> tree = BlockTree(parse_page("- Buy milk [[Groceries]]").blocks)
    >>> result = tree.split([0], 8)
    >>> result.focus_path
    [1]
"""

from seqedit.outline.block import Block
from seqedit.outline.tree import BlockTree
from seqedit.outline.inline import parse_block_content, parse_segments
from seqedit.outline.markdown import parse_page, render_page
from seqedit.services.editor_session import EditorSession
from seqedit.services.page_store import InMemoryPageStore, PageStore

__version__ = "0.1.0"

__all__ = [
    "Block",
    "BlockTree",
    "EditorSession",
    "InMemoryPageStore",
    "PageStore",
    "parse_block_content",
    "parse_page",
    "parse_segments",
    "render_page",
]
