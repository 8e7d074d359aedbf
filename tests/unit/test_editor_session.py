"""Unit tests for EditorSession sequencing: saves, flushes and navigation."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from seqedit.models.delta import BlockSnapshot, Delta
from seqedit.services.editor_session import EditorSession, SaveOutcome, SessionState
from seqedit.services.exceptions import BlockNotFoundError, StaleResponseError, StoreUnavailableError
from seqedit.services.page_store import InMemoryPageStore


class RecordingStore(InMemoryPageStore):
    """In-memory store that records calls and can hold commits or fetches at gates."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.gate = None
        self.active_updates = 0
        self.max_active_updates = 0
        self.on_fetch = None
        self.insert_gate = None
        self.fetch_gates = {}

    async def fetch_page(self, page_id):
        self.calls.append(("fetch_page", page_id))
        if self.on_fetch is not None:
            self.on_fetch(page_id)
        if page_id in self.fetch_gates:
            await self.fetch_gates[page_id].wait()
        return await super().fetch_page(page_id)

    async def commit_update(self, page_id, path, content):
        self.calls.append(("commit_update", page_id, content))
        self.active_updates += 1
        self.max_active_updates = max(self.max_active_updates, self.active_updates)
        try:
            if self.gate is not None:
                await self.gate.wait()
            return await super().commit_update(page_id, path, content)
        finally:
            self.active_updates -= 1

    async def commit_insert(self, page_id, path, content):
        self.calls.append(("commit_insert", page_id, content))
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        return await super().commit_insert(page_id, path, content)

    async def commit_structure(self, page_id, blocks):
        self.calls.append(("commit_structure", page_id))
        return await super().commit_structure(page_id, blocks)

    def fetches(self):
        return [call for call in self.calls if call[0] == "fetch_page"]


@pytest.fixture
def store():
    store = RecordingStore()
    store.load_markdown("A", "- first [[B]]\n  - child\n- second\n")
    store.load_markdown("B", "- on page B\n")
    return store


@pytest.fixture
def session(store, id_factory):
    return EditorSession(store, id_factory=id_factory)


def contents(session):
    return [block.content for _, block in session.tree.iter_blocks()]


class TestNavigation:
    """Test loading pages and going back."""

    @pytest.mark.asyncio
    async def test_navigate_loads_page(self, session):
        assert await session.navigate("A") is True

        assert session.current_page_id == "A"
        assert session.page.title == "A"
        assert contents(session) == ["first [[B]]", "child", "second"]
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_navigate_exposes_backlinks(self, session):
        await session.navigate("B")

        assert list(session.page.backlinks) == ["A"]

    @pytest.mark.asyncio
    async def test_navigate_unknown_page_creates_it(self, session):
        await session.navigate("Brand New")

        assert contents(session) == [""]

    @pytest.mark.asyncio
    async def test_state_is_loading_during_fetch(self, session, store):
        states = []
        store.on_fetch = lambda page_id: states.append(session.state)

        await session.navigate("A")

        assert states == [SessionState.LOADING]

    @pytest.mark.asyncio
    async def test_go_back(self, session):
        await session.navigate("A")
        await session.navigate("B")

        assert await session.go_back() == "A"
        assert session.current_page_id == "A"
        assert contents(session)[0] == "first [[B]]"

    @pytest.mark.asyncio
    async def test_go_back_on_empty_history(self, session, store):
        """Test going back with no history is a no-op."""
        await session.navigate("A")
        fetches = len(store.fetches())

        assert await session.go_back() is None
        assert session.current_page_id == "A"
        assert len(store.fetches()) == fetches

    @pytest.mark.asyncio
    async def test_jump_to_records_no_history(self, session):
        await session.navigate("A")

        await session.jump_to("B")

        assert session.current_page_id == "B"
        assert not session.navigation.can_go_back

    @pytest.mark.asyncio
    async def test_navigate_store_failure(self, session, store):
        """Test a failed load keeps the current page."""
        await session.navigate("A")
        store.fetch_page = AsyncMock(side_effect=StoreUnavailableError("fetch_page", "B"))

        assert await session.navigate("B") is False
        assert session.current_page_id == "A"
        assert session.state == SessionState.IDLE
        assert not session.navigation.can_go_back


class TestFlushBeforeNavigate:
    """Test pending edits are committed before the next page is requested."""

    @pytest.mark.asyncio
    async def test_staged_edit_committed_before_fetch(self, session, store):
        await session.navigate("A")
        assert session.stage_edit([1], "second, edited")

        await session.navigate("B")

        update = store.calls.index(("commit_update", "A", "second, edited"))
        fetch = store.calls.index(("fetch_page", "B"))
        assert update < fetch
        assert "- second, edited" in store.export_markdown("A")

    @pytest.mark.asyncio
    async def test_go_back_flushes_too(self, session, store):
        await session.navigate("A")
        await session.navigate("B")
        session.stage_edit([0], "typed on B")

        await session.go_back()

        assert store.export_markdown("B") == "- typed on B\n"

    @pytest.mark.asyncio
    async def test_navigation_waits_for_inflight_save(self, session, store):
        """Test the destination is not fetched while a save is outstanding."""
        await session.navigate("A")
        store.gate = asyncio.Event()

        save = asyncio.create_task(session.commit_edit([0], "edited"))
        await asyncio.sleep(0)
        navigation = asyncio.create_task(session.navigate("B"))
        await asyncio.sleep(0.01)

        assert ("fetch_page", "B") not in store.calls
        assert session.state == SessionState.FLUSHING

        store.gate.set()
        assert await navigation is True
        assert await save == SaveOutcome.SAVED
        assert store.export_markdown("A").startswith("- edited\n")

    @pytest.mark.asyncio
    async def test_unchanged_staged_edit_not_sent(self, session, store):
        await session.navigate("A")
        session.stage_edit([1], "second")

        await session.flush()

        assert not [call for call in store.calls if call[0] == "commit_update"]

    @pytest.mark.asyncio
    async def test_stage_edit_stale_path(self, session):
        await session.navigate("A")

        assert session.stage_edit([9], "x") is False

    @pytest.mark.asyncio
    async def test_overlapping_go_back_steps_back_twice(self, session):
        """Test each concurrent go_back takes its target from history under the lock."""
        await session.navigate("A")
        await session.navigate("B")
        await session.navigate("C")

        results = await asyncio.gather(session.go_back(), session.go_back())

        assert results == ["B", "A"]
        assert session.current_page_id == "A"
        assert session.page.page_id == "A"
        assert not session.navigation.can_go_back

    @pytest.mark.asyncio
    async def test_reload_superseded_by_navigation(self, session, store):
        """Test a reload answered after a navigation does not replace the new page."""
        await session.navigate("A")
        store.fetch_gates["A"] = asyncio.Event()

        reload = asyncio.create_task(
            session.receive_delta(Delta(action="update", path=[9], block=BlockSnapshot(id="ghost")))
        )
        await asyncio.sleep(0.01)
        assert await session.navigate("B") is True

        store.fetch_gates["A"].set()
        await reload

        assert session.current_page_id == "B"
        assert session.page.page_id == "B"
        assert contents(session) == ["on page B"]

    @pytest.mark.asyncio
    async def test_navigation_waits_for_structural_commit(self, session, store):
        """Test the destination is not fetched while a split is being persisted."""
        await session.navigate("A")
        store.insert_gate = asyncio.Event()

        split = asyncio.create_task(session.split_block([1], 3))
        await asyncio.sleep(0.01)
        navigation = asyncio.create_task(session.navigate("B"))
        await asyncio.sleep(0.01)

        assert ("fetch_page", "B") not in store.calls
        assert session.state == SessionState.FLUSHING

        store.insert_gate.set()
        assert await navigation is True
        assert await split is not None

        insert = store.calls.index(("commit_insert", "A", "ond"))
        assert insert < store.calls.index(("fetch_page", "B"))
        page = await store.fetch_page("A")
        assert [b.content for b in page.blocks] == ["first [[B]]", "sec", "ond"]


class TestSaves:
    """Test content commits."""

    @pytest.mark.asyncio
    async def test_commit_edit_applies_store_delta(self, session, store):
        await session.navigate("A")

        outcome = await session.commit_edit([1], "TODO second")

        assert outcome == SaveOutcome.SAVED
        block = session.tree.find([1])
        assert block.content == "TODO second"
        assert block.todo_state == "TODO"

    @pytest.mark.asyncio
    async def test_saves_for_one_block_are_serialized(self, session, store):
        """Test a second edit while a save is in flight is queued, not raced."""
        await session.navigate("A")
        store.gate = asyncio.Event()

        first = asyncio.create_task(session.commit_edit([0], "one"))
        await asyncio.sleep(0)
        assert session.saving(session.tree.find([0]).id)

        assert await session.commit_edit([0], "two") == SaveOutcome.QUEUED
        assert await session.commit_edit([0], "three") == SaveOutcome.QUEUED

        store.gate.set()
        assert await first == SaveOutcome.SAVED

        sent = [call[2] for call in store.calls if call[0] == "commit_update"]
        assert sent == ["one", "three"]
        assert store.max_active_updates == 1
        assert session.tree.find([0]).content == "three"

    @pytest.mark.asyncio
    async def test_saves_for_different_blocks_run_independently(self, session, store):
        await session.navigate("A")

        outcomes = await asyncio.gather(
            session.commit_edit([0], "x"),
            session.commit_edit([1], "y"),
        )

        assert outcomes == [SaveOutcome.SAVED, SaveOutcome.SAVED]
        assert contents(session) == ["x", "child", "y"]

    @pytest.mark.asyncio
    async def test_stale_response_discarded_after_reload(self, session, store):
        """Test a save answered after the page was reloaded does not overwrite it."""
        await session.navigate("A")
        store.gate = asyncio.Event()

        save = asyncio.create_task(session.commit_edit([1], "late"))
        await asyncio.sleep(0.01)
        await session.receive_delta(Delta(action="update", path=[9], block=BlockSnapshot(id="ghost")))
        generation = session.generation

        store.gate.set()

        assert await save == SaveOutcome.STALE
        assert session.generation == generation
        assert session.tree.find([1]).content == "second"

    @pytest.mark.asyncio
    async def test_failure_after_reload_is_stale(self, session, store):
        """Test a save that fails after the page was reloaded is discarded, not reverted."""
        await session.navigate("A")
        gate = asyncio.Event()

        async def failing_update(page_id, path, content):
            await gate.wait()
            raise StoreUnavailableError("commit_update", page_id)

        store.commit_update = failing_update
        save = asyncio.create_task(session.commit_edit([1], "late"))
        await asyncio.sleep(0.01)
        await session.receive_delta(Delta(action="update", path=[9], block=BlockSnapshot(id="ghost")))

        gate.set()

        assert await save == SaveOutcome.STALE
        assert session.tree.find([1]).content == "second"

    def test_stale_error_names_block(self):
        error = StaleResponseError("blk-1")

        assert error.block_id == "blk-1"
        assert "blk-1" in str(error)

    @pytest.mark.asyncio
    async def test_store_failure_keeps_last_known_good(self, session, store):
        """Test an unavailable store reverts to the confirmed content."""
        await session.navigate("A")
        block_id = session.tree.find([1]).id
        store.commit_update = AsyncMock(side_effect=StoreUnavailableError("commit_update", "A"))

        outcome = await session.commit_edit([1], "never saved")

        assert outcome == SaveOutcome.FAILED
        assert session.content_of(block_id) == "second"
        assert not session.saving(block_id)

    @pytest.mark.asyncio
    async def test_missing_block_in_store_triggers_reload(self, session, store):
        await session.navigate("A")
        fetches = len(store.fetches())
        store.commit_update = AsyncMock(side_effect=BlockNotFoundError([1]))

        assert await session.commit_edit([1], "x") == SaveOutcome.FAILED
        assert len(store.fetches()) == fetches + 1

    @pytest.mark.asyncio
    async def test_commit_stale_path_skipped(self, session):
        await session.navigate("A")

        assert await session.commit_edit([7], "x") == SaveOutcome.SKIPPED


class TestDeltas:
    """Test applying store deltas to the local tree."""

    @pytest.mark.asyncio
    async def test_update_delta_follows_block_id(self, session):
        """Test a delta whose path went stale is placed by block id."""
        await session.navigate("A")
        second = session.tree.find([1])

        applied = session.apply_delta(
            Delta(action="update", path=[0], block=BlockSnapshot(id=second.id, content="moved"))
        )

        assert applied
        assert second.content == "moved"
        assert session.tree.find([0]).content == "first [[B]]"

    @pytest.mark.asyncio
    async def test_add_delta_inserts_block(self, session):
        await session.navigate("A")

        applied = session.apply_delta(
            Delta(action="add", path=[2], block=BlockSnapshot(id="remote", content="from elsewhere"))
        )

        assert applied
        assert session.tree.path_of("remote") == [2]

    @pytest.mark.asyncio
    async def test_unplaceable_delta_reloads(self, session, store):
        await session.navigate("A")
        fetches = len(store.fetches())

        await session.receive_delta(Delta(action="add", path=[5, 5], block=BlockSnapshot(id="x")))

        assert len(store.fetches()) == fetches + 1


class TestStructuralEdits:
    """Test structural edits are applied locally and persisted."""

    @pytest.mark.asyncio
    async def test_split_persists_and_adopts_store_id(self, session, store):
        await session.navigate("A")

        result = await session.split_block([1], 3)

        assert contents(session) == ["first [[B]]", "child", "sec", "ond"]
        page = await store.fetch_page("A")
        assert [b.content for b in page.blocks] == ["first [[B]]", "sec", "ond"]
        assert session.tree.find([2]).id == page.blocks[2].id
        assert result.deltas[1].block.id == page.blocks[2].id
        assert result.focus_path == [2]

    @pytest.mark.asyncio
    async def test_split_as_first_child_persists(self, session, store):
        await session.navigate("A")

        await session.split_block([0], 5)

        assert store.export_markdown("A") == "- first\n  -  [[B]]\n  - child\n- second\n"

    @pytest.mark.asyncio
    async def test_split_commits_staged_edit_first(self, session, store):
        await session.navigate("A")
        session.stage_edit([1], "second line")

        await session.split_block([1], 6)

        assert contents(session)[-2:] == ["second", " line"]

    @pytest.mark.asyncio
    async def test_merge_persists(self, session, store):
        await session.navigate("A")

        result = await session.merge_block([1])

        assert result.cursor == len("child")
        assert store.export_markdown("A") == "- first [[B]]\n  - childsecond\n"
        assert ("commit_structure", "A") in store.calls

    @pytest.mark.asyncio
    async def test_indent_and_outdent_persist(self, session, store):
        await session.navigate("A")

        await session.indent_block([1])
        assert store.export_markdown("A") == "- first [[B]]\n  - child\n  - second\n"

        await session.outdent_block([0, 1])
        assert store.export_markdown("A") == "- first [[B]]\n  - child\n- second\n"

    @pytest.mark.asyncio
    async def test_insert_block(self, session, store):
        await session.navigate("A")

        delta = await session.insert_block([1], "inserted")

        page = await store.fetch_page("A")
        assert [b.content for b in page.blocks] == ["first [[B]]", "inserted", "second"]
        assert delta.block.id == page.blocks[1].id
        assert session.tree.path_of(delta.block.id) == [1]

    @pytest.mark.asyncio
    async def test_noop_edit_does_not_reload(self, session, store):
        """Test indenting a first block changes nothing and fetches nothing."""
        await session.navigate("A")
        fetches = len(store.fetches())

        assert await session.indent_block([0]) is None
        assert len(store.fetches()) == fetches

    @pytest.mark.asyncio
    async def test_stale_path_reloads(self, session, store):
        await session.navigate("A")
        fetches = len(store.fetches())

        assert await session.outdent_block([4, 1]) is None
        assert len(store.fetches()) == fetches + 1

    @pytest.mark.asyncio
    async def test_store_failure_reloads_page(self, session, store):
        """Test a failed structural commit falls back to the store's outline."""
        await session.navigate("A")
        second_id = session.tree.find([1]).id
        store.commit_structure = AsyncMock(side_effect=StoreUnavailableError("commit_structure", "A"))

        assert await session.indent_block([1]) is None
        assert session.tree.path_of(second_id) == [1]
        assert session.tree.find([1]).depth == 0


class TestCollapse:
    """Test collapse toggles through the session."""

    @pytest.mark.asyncio
    async def test_toggle_hides_children(self, session):
        await session.navigate("A")
        first = session.tree.find([0])

        assert session.toggle_collapse(first.id) is True
        assert [path for path, _ in session.visible_blocks()] == [[0], [1]]

        assert session.toggle_collapse(first.id) is False
        assert len(session.visible_blocks()) == 3

    @pytest.mark.asyncio
    async def test_toggle_recursive(self, session):
        await session.navigate("A")
        first = session.tree.find([0])

        assert session.toggle_collapse(first.id, recursive=True) is True
        assert session.is_collapsed(first.children[0].id)

        assert session.toggle_collapse(first.id, recursive=True) is False
        assert not session.is_collapsed(first.children[0].id)

    @pytest.mark.asyncio
    async def test_toggle_unknown_block(self, session):
        await session.navigate("A")

        assert session.toggle_collapse("nope") is None

    def test_nothing_collapsed_without_page(self, session):
        assert not session.is_collapsed("anything")
