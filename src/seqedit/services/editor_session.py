"""Editor session: the single controller for one editing window.

The session owns everything that used to be ambient state in an outliner
front end: the current page and its BlockTree, the navigation history and the
collapse flags. It sequences every interaction with the Page Store:

- Navigation is two-phase, flush then load. The staged edit is committed and
  every in-flight save and structural commit is awaited before the
  destination page is requested. State moves IDLE -> FLUSHING -> LOADING ->
  IDLE and navigations never overlap.
- Saves are serialized per block. A second edit for a block whose save is in
  flight is queued (latest content wins) and sent when the first completes.
- A save response is applied only if it is still the newest request for its
  block and the page has not been reloaded since; otherwise it is discarded.
- Store failures never escape: content edits revert to the last-known-good
  content, structural edits fall back to a full reload.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

import structlog

from seqedit.models.delta import Delta, EditResult
from seqedit.outline.block import Block
from seqedit.outline.path import BlockPath
from seqedit.outline.tree import BlockTree
from seqedit.services.collapse_state import CollapseState
from seqedit.services.exceptions import BlockNotFoundError, StaleResponseError, StoreUnavailableError
from seqedit.services.navigation import NavigationStack
from seqedit.services.page_store import PageData, PageStore

logger = structlog.get_logger()


class SessionState(str, Enum):
    """Navigation phase of the session."""

    IDLE = "idle"
    FLUSHING = "flushing"
    LOADING = "loading"


class SaveOutcome(str, Enum):
    """What happened to one content commit."""

    SAVED = "saved"      # store accepted it and the local tree reflects it
    QUEUED = "queued"    # another save for the block was in flight; sent afterwards
    STALE = "stale"      # response arrived after a reload/re-edit and was discarded
    FAILED = "failed"    # store unavailable; visible content reverts to last-known-good
    SKIPPED = "skipped"  # block no longer exists in the current tree


class EditorSession:
    """Controller owning the current page, navigation history and collapse state.

    Example:
        >>> session = EditorSession(InMemoryPageStore())
        >>> await session.navigate("Page A")
        >>> await session.commit_edit([0], "Buy milk [[Groceries]]")
        <SaveOutcome.SAVED: 'saved'>
        >>> await session.navigate("Groceries")
        >>> await session.go_back()
        'Page A'
    """

    def __init__(
        self,
        store: PageStore,
        collapse_state: Optional[CollapseState] = None,
        navigation: Optional[NavigationStack] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """Initialize session.

        Args:
            store: Page Store to fetch from and commit to
            collapse_state: Collapse flags (in-memory by default)
            navigation: Navigation history (empty by default)
            id_factory: Id generator for locally created blocks
        """
        self.store = store
        self.collapse = collapse_state if collapse_state is not None else CollapseState()
        self.navigation = navigation if navigation is not None else NavigationStack()
        self.state = SessionState.IDLE
        self.page: Optional[PageData] = None
        self.generation = 0

        self._id_factory = id_factory
        self.tree = BlockTree(id_factory=id_factory)
        self._navigation_lock = asyncio.Lock()
        self._inflight: dict[str, asyncio.Future] = {}
        self._pending: set[asyncio.Future] = set()
        self._queued: dict[str, str] = {}
        self._request_seq: dict[str, int] = {}
        self._staged: Optional[tuple[str, str]] = None

    @property
    def current_page_id(self) -> Optional[str]:
        return self.navigation.current

    def saving(self, block_id: str) -> bool:
        """True while a save for block_id is in flight."""
        return block_id in self._inflight

    def content_of(self, block_id: str) -> Optional[str]:
        """Last-known-good content of a block (what the store has confirmed)."""
        block = self.tree.get(block_id)
        return block.content if block is not None else None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def navigate(self, page_id: str) -> bool:
        """Flush, load page_id and record the previous page in history.

        Returns:
            True if the page was loaded, False if the store was unavailable
        """
        return await self._flush_then_load(page_id, "push") is not None

    async def jump_to(self, page_id: str) -> bool:
        """Flush and load page_id without recording history (e.g. from a page list)."""
        return await self._flush_then_load(page_id, "replace") is not None

    async def go_back(self) -> Optional[str]:
        """Return to the previous page.

        No-op (returns None, current page unchanged) when history is empty.
        """
        return await self._flush_then_load(None, "back")

    async def reload(self) -> bool:
        """Flush and reload the current page (full-reload fallback)."""
        if self.current_page_id is None:
            return False
        return await self._flush_then_load(self.current_page_id, "replace") is not None

    async def _flush_then_load(self, page_id: Optional[str], mode: str) -> Optional[str]:
        """Run one navigation under the lock.

        In "back" mode the destination is read from history once the lock is
        held, so overlapping calls each step back one page.

        Returns:
            The page loaded, or None if nothing was loaded
        """
        async with self._navigation_lock:
            if mode == "back":
                page_id = self.navigation.peek()
                if page_id is None:
                    return None
            try:
                self.state = SessionState.FLUSHING
                await self.flush()

                self.state = SessionState.LOADING
                try:
                    data = await self.store.fetch_page(page_id)
                except StoreUnavailableError as e:
                    logger.error("page_load_failed", page_id=page_id, error=str(e))
                    return None

                if mode == "push":
                    self.navigation.push(page_id)
                elif mode == "back":
                    self.navigation.go_back()
                else:
                    self.navigation.current = page_id
                self._install(data)
                return page_id
            finally:
                self.state = SessionState.IDLE

    def _install(self, data: PageData) -> None:
        self.page = data
        self.tree = BlockTree(data.blocks, id_factory=self._id_factory)
        self.generation += 1
        self._staged = None
        logger.info(
            "page_loaded",
            page_id=data.page_id,
            blocks=len(self.tree),
            generation=self.generation,
            history=len(self.navigation.history),
        )

    async def _reload_now(self) -> None:
        """Refetch the current page without flushing (used from inside saves).

        Runs outside the navigation lock, so the result is dropped if another
        load or navigation finished while the fetch was pending.
        """
        page_id = self.current_page_id
        if page_id is None:
            return
        generation = self.generation
        logger.warning("page_reload_fallback", page_id=page_id)
        try:
            data = await self.store.fetch_page(page_id)
        except StoreUnavailableError as e:
            logger.error("page_reload_failed", page_id=page_id, error=str(e))
            return
        if page_id != self.current_page_id or generation != self.generation:
            logger.info("page_reload_superseded", page_id=page_id, current=self.current_page_id)
            return
        self._install(data)

    # ------------------------------------------------------------------
    # Content edits
    # ------------------------------------------------------------------

    def stage_edit(self, path: Sequence[int], content: str) -> bool:
        """Record the edit in progress so the next flush commits it.

        Returns:
            False if path does not resolve
        """
        block = self.tree.find(path)
        if block is None:
            return False
        self._staged = (block.id, content)
        return True

    async def flush(self) -> None:
        """Commit the staged edit and wait until no save or structural commit is in flight."""
        if self._staged is not None:
            block_id, content = self._staged
            self._staged = None
            path = self.tree.path_of(block_id)
            if path is not None and self.content_of(block_id) != content:
                await self.commit_edit(path, content)

        while self._inflight or self._pending:
            # Failures are handled by the edit that started each commit
            await asyncio.gather(*self._inflight.values(), *self._pending, return_exceptions=True)

    async def commit_edit(self, path: Sequence[int], content: str) -> SaveOutcome:
        """Persist new content for the block at path.

        The local tree changes only once the store confirms, so until then it
        holds the last-known-good content. A save in flight is never cancelled,
        even if the caller is.
        """
        block = self.tree.find(path)
        if block is None:
            logger.info("save_skipped", path=list(path), reason="block_not_found")
            return SaveOutcome.SKIPPED

        if self._staged is not None and self._staged[0] == block.id:
            self._staged = None

        if block.id in self._inflight:
            self._queued[block.id] = content
            logger.debug("save_queued", block_id=block.id)
            return SaveOutcome.QUEUED

        task = asyncio.ensure_future(self._save_serialized(block.id, content))
        self._inflight[block.id] = task
        return await asyncio.shield(task)

    async def _save_serialized(self, block_id: str, content: str) -> SaveOutcome:
        try:
            outcome = await self._save_or_discard(block_id, content)
            while block_id in self._queued:
                outcome = await self._save_or_discard(block_id, self._queued.pop(block_id))
            return outcome
        finally:
            self._inflight.pop(block_id, None)

    async def _save_or_discard(self, block_id: str, content: str) -> SaveOutcome:
        try:
            return await self._save_once(block_id, content)
        except StaleResponseError as e:
            logger.warning("stale_response_discarded", block_id=e.block_id, error=str(e))
            return SaveOutcome.STALE

    async def _save_once(self, block_id: str, content: str) -> SaveOutcome:
        """Send one commit_update and apply its Delta.

        Raises:
            StaleResponseError: If the page was reloaded or the block re-edited
                while the request was pending
        """
        path = self.tree.path_of(block_id)
        page_id = self.current_page_id
        if path is None or page_id is None:
            return SaveOutcome.SKIPPED

        generation = self.generation
        seq = self._touch(block_id)
        logger.info("save_started", page_id=page_id, block_id=block_id, path=path, seq=seq)

        try:
            delta = await self.store.commit_update(page_id, path, content)
        except StoreUnavailableError as e:
            if not self._is_current(block_id, generation, seq):
                raise StaleResponseError(block_id) from e
            logger.error(
                "save_failed_reverting",
                page_id=page_id,
                block_id=block_id,
                error=str(e),
                restored=self.content_of(block_id),
            )
            return SaveOutcome.FAILED
        except BlockNotFoundError as e:
            logger.warning("save_target_missing", page_id=page_id, block_id=block_id, error=str(e))
            if self._is_current(block_id, generation, seq):
                await self._reload_now()
            return SaveOutcome.FAILED

        if not self._is_current(block_id, generation, seq):
            raise StaleResponseError(block_id)

        if not self.apply_delta(delta):
            await self._reload_now()
        logger.info("save_completed", page_id=page_id, block_id=block_id, seq=seq)
        return SaveOutcome.SAVED

    def _touch(self, block_id: str) -> int:
        """Mark a new request/edit for block_id; older responses become stale."""
        seq = self._request_seq.get(block_id, 0) + 1
        self._request_seq[block_id] = seq
        return seq

    def _is_current(self, block_id: str, generation: int, seq: int) -> bool:
        return generation == self.generation and self._request_seq.get(block_id) == seq

    def apply_delta(self, delta: Delta) -> bool:
        """Apply a store Delta to the local tree.

        The delta's path is trusted only if it still holds the same block id;
        otherwise the id index is consulted.

        Returns:
            False when the delta cannot be placed (caller should reload)
        """
        if delta.action == "update":
            path = delta.path
            block = self.tree.find(path)
            if block is None or block.id != delta.block.id:
                path = self.tree.path_of(delta.block.id)
                if path is None:
                    logger.warning("delta_unplaceable", action=delta.action, path=delta.path)
                    return False
            self.tree.update_content(path, delta.block.content)
            return True

        existing = self.tree.get(delta.block.id)
        if existing is not None:
            return existing.content == delta.block.content
        if self.tree.insert_at(delta.path, delta.block.content, block_id=delta.block.id) is None:
            logger.warning("delta_unplaceable", action=delta.action, path=delta.path)
            return False
        return True

    async def receive_delta(self, delta: Delta) -> None:
        """Apply a Delta pushed from elsewhere, reloading if it does not fit."""
        if not self.apply_delta(delta):
            await self._reload_now()

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    async def split_block(self, path: Sequence[int], offset: int) -> Optional[EditResult]:
        """Split a block locally and persist it as an update plus an insert."""
        await self.flush()
        result = self.tree.split(path, offset)
        if result is None:
            return await self._structural_miss("split", path)

        update, add = result.deltas
        self._touch(update.block.id)
        page_id = self.current_page_id
        generation = self.generation

        async def persist() -> None:
            await self.store.commit_update(page_id, update.path, update.block.content)
            stored = await self.store.commit_insert(page_id, add.path, add.block.content)
            if generation == self.generation and stored.block.id != add.block.id:
                self._adopt_id(add.block.id, stored.block.id)
                add.block.id = stored.block.id

        try:
            await self._track(persist())
        except (StoreUnavailableError, BlockNotFoundError) as e:
            return await self._structural_failed("split", path, e)
        return result

    async def insert_block(self, path: Sequence[int], content: str = "") -> Optional[Delta]:
        """Insert a new block locally and persist it."""
        await self.flush()
        delta = self.tree.insert_at(path, content)
        if delta is None:
            return await self._structural_miss("insert", path)

        page_id = self.current_page_id
        generation = self.generation

        async def persist() -> None:
            stored = await self.store.commit_insert(page_id, path, content)
            if generation == self.generation and stored.block.id != delta.block.id:
                self._adopt_id(delta.block.id, stored.block.id)
                delta.block.id = stored.block.id

        try:
            await self._track(persist())
        except (StoreUnavailableError, BlockNotFoundError) as e:
            return await self._structural_failed("insert", path, e)
        return delta

    async def merge_block(self, path: Sequence[int]) -> Optional[EditResult]:
        """Merge a block into its predecessor and persist the new outline."""
        return await self._restructure("merge", path, self.tree.merge)

    async def indent_block(self, path: Sequence[int]) -> Optional[EditResult]:
        """Indent a block and persist the new outline."""
        return await self._restructure("indent", path, self.tree.indent)

    async def outdent_block(self, path: Sequence[int]) -> Optional[EditResult]:
        """Outdent a block and persist the new outline."""
        return await self._restructure("outdent", path, self.tree.outdent)

    async def _restructure(
        self,
        operation: str,
        path: Sequence[int],
        mutate: Callable[[Sequence[int]], Optional[EditResult]],
    ) -> Optional[EditResult]:
        await self.flush()
        block = self.tree.find(path)
        result = mutate(path)
        if result is None:
            return await self._structural_miss(operation, path)

        if block is not None:
            self._touch(block.id)
        for delta in result.deltas:
            self._touch(delta.block.id)
        try:
            await self._track(self.store.commit_structure(self.current_page_id, self.tree.blocks))
        except (StoreUnavailableError, BlockNotFoundError) as e:
            return await self._structural_failed(operation, path, e)
        return result

    async def _track(self, commit: Awaitable[None]) -> None:
        """Run a structural commit as pending work that flush() waits for."""
        task = asyncio.ensure_future(commit)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        await asyncio.shield(task)

    async def _structural_miss(self, operation: str, path: Sequence[int]) -> None:
        # A resolvable path means a legitimate no-op (e.g. indenting a first child)
        if self.tree.find(path) is None:
            logger.info("structural_edit_stale_path", operation=operation, path=list(path))
            await self._reload_now()
        return None

    async def _structural_failed(self, operation: str, path: Sequence[int], error: Exception) -> None:
        logger.error("structural_commit_failed", operation=operation, path=list(path), error=str(error))
        await self._reload_now()
        return None

    def _adopt_id(self, local_id: str, store_id: str) -> None:
        """Replace a locally generated id with the one the store assigned."""
        block = self.tree.get(local_id)
        if block is None:
            return
        block.id = store_id
        self.tree.reindex()
        if local_id in self._request_seq:
            self._request_seq[store_id] = self._request_seq.pop(local_id)

    # ------------------------------------------------------------------
    # Collapse state
    # ------------------------------------------------------------------

    def is_collapsed(self, block_id: str) -> bool:
        if self.current_page_id is None:
            return False
        return self.collapse.is_collapsed(self.current_page_id, block_id)

    def toggle_collapse(self, block_id: str, recursive: bool = False) -> Optional[bool]:
        """Flip a block's collapse flag (and its descendants' when recursive).

        Returns:
            The new collapsed value, or None if the block is not on this page
        """
        block = self.tree.get(block_id)
        if block is None or self.current_page_id is None:
            return None
        if not recursive:
            return self.collapse.toggle(self.current_page_id, block_id)
        collapse = not self.is_collapsed(block_id)
        self.collapse.toggle_recursive(self.current_page_id, block, collapse)
        return collapse

    def visible_blocks(self) -> list[tuple[BlockPath, Block]]:
        """Blocks in document order, skipping descendants of collapsed blocks."""
        visible: list[tuple[BlockPath, Block]] = []

        def visit(blocks: list[Block], prefix: list[int]) -> None:
            for index, block in enumerate(blocks):
                path = [*prefix, index]
                visible.append((path, block))
                if not self.is_collapsed(block.id):
                    visit(block.children, path)

        visit(self.tree.blocks, [])
        return visible
