"""Unit tests for the in-memory Page Store."""

import pytest

from seqedit.outline.block import Block
from seqedit.services.exceptions import BlockNotFoundError
from seqedit.services.page_store import InMemoryPageStore


@pytest.fixture
def store():
    store = InMemoryPageStore()
    store.load_markdown("Groceries", "- Milk\n  - whole\n- Bread\n")
    store.load_markdown("Journal", "- Buy [[Groceries]]\n- call [[Mom]]\n")
    return store


class TestFetchPage:
    """Test fetching pages."""

    @pytest.mark.asyncio
    async def test_fetch_existing(self, store):
        page = await store.fetch_page("Groceries")

        assert page.page_id == "Groceries"
        assert page.title == "Groceries"
        assert [b.content for b in page.blocks] == ["Milk", "Bread"]
        assert page.blocks[0].children[0].content == "whole"

    @pytest.mark.asyncio
    async def test_fetch_includes_backlinks(self, store):
        page = await store.fetch_page("Groceries")
        journal = await store.fetch_page("Journal")

        assert page.backlinks == {"Journal": [journal.blocks[0].id]}

    @pytest.mark.asyncio
    async def test_fetch_unknown_creates_page(self, store):
        """Test an unknown page is created with one empty block."""
        page = await store.fetch_page("Mom")

        assert len(page.blocks) == 1
        assert page.blocks[0].content == ""
        assert store.has_page("Mom")
        assert page.backlinks == {"Journal": [(await store.fetch_page("Journal")).blocks[1].id]}

    @pytest.mark.asyncio
    async def test_fetch_returns_copies(self, store):
        """Test mutating fetched blocks does not touch the store."""
        page = await store.fetch_page("Groceries")
        page.blocks[0].set_content("changed")

        again = await store.fetch_page("Groceries")

        assert again.blocks[0].content == "Milk"

    @pytest.mark.asyncio
    async def test_list_pages_sorted(self, store):
        assert await store.list_pages() == ["Groceries", "Journal"]


class TestCommits:
    """Test commit operations."""

    @pytest.mark.asyncio
    async def test_commit_update(self, store):
        delta = await store.commit_update("Groceries", [1], "TODO Bread")

        assert delta.action == "update"
        assert delta.block.todo_state == "TODO"
        assert store.export_markdown("Groceries") == "- Milk\n  - whole\n- TODO Bread\n"

    @pytest.mark.asyncio
    async def test_commit_update_reindexes_backlinks(self, store):
        await store.commit_update("Journal", [0], "Buy nothing")

        assert (await store.fetch_page("Groceries")).backlinks == {}

    @pytest.mark.asyncio
    async def test_commit_update_stale_path(self, store):
        with pytest.raises(BlockNotFoundError):
            await store.commit_update("Groceries", [5], "x")

    @pytest.mark.asyncio
    async def test_commit_to_unknown_page(self, store):
        with pytest.raises(BlockNotFoundError, match="Page 'Nope' not found"):
            await store.commit_update("Nope", [0], "x")

    @pytest.mark.asyncio
    async def test_commit_insert(self, store):
        delta = await store.commit_insert("Groceries", [1], "Eggs")

        assert delta.action == "add"
        assert delta.shifts[0].old_path == [1]
        assert delta.shifts[0].new_path == [2]
        assert store.export_markdown("Groceries") == "- Milk\n  - whole\n- Eggs\n- Bread\n"

    @pytest.mark.asyncio
    async def test_commit_insert_invalid(self, store):
        with pytest.raises(BlockNotFoundError, match="Invalid insertion path"):
            await store.commit_insert("Groceries", [0, 5], "x")

    @pytest.mark.asyncio
    async def test_commit_structure(self, store):
        """Test replacing the whole outline of a page."""
        blocks = [Block(id="only", content="Only [[Journal]]")]

        await store.commit_structure("Groceries", blocks)
        blocks[0].set_content("mutated after commit")

        assert store.export_markdown("Groceries") == "- Only [[Journal]]\n"
        assert (await store.fetch_page("Journal")).backlinks == {"Groceries": ["only"]}

    @pytest.mark.asyncio
    async def test_commit_structure_unknown_page(self, store):
        with pytest.raises(BlockNotFoundError):
            await store.commit_structure("Nope", [])


class TestSeeding:
    """Test building pages in code."""

    def test_add_page(self):
        store = InMemoryPageStore(indent_str="\t")
        root = Block(id="r", content="root")
        root.add_child("child")

        store.add_page("P", [root], title="Pretty", properties={"tags": "x"})

        assert store.export_markdown("P") == "# Pretty\n\n- root\n\t- child\n"

    def test_export_unknown_page(self):
        with pytest.raises(KeyError):
            InMemoryPageStore().export_markdown("Nope")
