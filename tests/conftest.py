"""Shared test fixtures for all test modules."""

import itertools

import pytest

from seqedit.outline.block import Block
from seqedit.outline.tree import BlockTree


@pytest.fixture
def id_factory():
    """Deterministic block id generator: new-1, new-2, ..."""
    counter = itertools.count(1)
    return lambda: f"new-{next(counter)}"


@pytest.fixture
def sample_blocks():
    """
    Small outline used across tree tests:

    - A            [0]
      - B          [0, 0]
        - B1       [0, 0, 0]
      - C          [0, 1]
    - D            [1]
    - E            [2]
    """
    a = Block(id="a", content="A")
    b = a.add_child("B", block_id="b")
    b.add_child("B1", block_id="b1")
    a.add_child("C", block_id="c")
    d = Block(id="d", content="D")
    e = Block(id="e", content="E")
    return [a, d, e]


@pytest.fixture
def sample_tree(sample_blocks, id_factory):
    """BlockTree over sample_blocks with deterministic new ids."""
    return BlockTree(sample_blocks, id_factory=id_factory)


@pytest.fixture
def sample_markdown():
    """A Logseq page with frontmatter, nesting, an explicit id and links."""
    return (
        "title:: Groceries\n"
        "tags:: shopping\n"
        "\n"
        "- TODO [#A] Buy milk [[Dairy]]\n"
        "  id:: 6501a1b2-0000-4000-8000-000000000001\n"
        "  - whole milk\n"
        "  - oat milk\n"
        "- [ ] Bread\n"
        "- See ((6501a1b2-0000-4000-8000-000000000001))\n"
    )
