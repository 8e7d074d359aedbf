"""Per-block collapse flags, kept apart from document content.

Collapse state is local presentation state: it is keyed by (page id, block
id), defaults to expanded, and is never sent to the Page Store. Flags are
stored in a simple string-keyed store where the presence of a key means
"collapsed".
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, Optional, TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from seqedit.outline.block import Block

logger = structlog.get_logger()


class KeyValueStore(ABC):
    """Minimal string-keyed store (localStorage-like)."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key (no error if absent)."""

    @abstractmethod
    def keys(self) -> Iterator[str]:
        """Iterate over stored keys."""


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store, lost when the process exits."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))


class JsonFileKeyValueStore(KeyValueStore):
    """Store persisted as a JSON object, rewritten atomically on every change.

    The file is stored as:
    {
        "collapsed:Page:block-id": "1",
        ...
    }
    """

    def __init__(self, path: Path):
        """Initialize store, loading the file if it exists.

        Args:
            path: Path to JSON file

        Raises:
            ValueError: If the existing file is malformed
        """
        self.path = path
        self._data: Dict[str, str] = {}

        if path.exists():
            self.load()

    def load(self) -> None:
        """Load entries from disk.

        Raises:
            ValueError: If the file is not a JSON object
        """
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed collapse state file: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Malformed collapse state file: expected object in {self.path}")
        self._data = {str(key): str(value) for key, value in data.items()}

    def save(self) -> None:
        """Write entries to disk (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = self.path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
            temp_path.replace(self.path)
        except Exception as e:
            if temp_path.exists():
                temp_path.unlink()
            raise IOError(f"Failed to save collapse state: {e}") from e

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.save()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self.save()

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))


class CollapseState:
    """Collapse flags for blocks across pages.

    Example:
        >>> state = CollapseState()
        >>> state.toggle("Page A", "block-1")
        True
        >>> state.is_collapsed("Page A", "block-1")
        True
    """

    KEY_PREFIX = "collapsed"

    def __init__(self, store: Optional[KeyValueStore] = None):
        """Initialize with a backing store (in-memory by default)."""
        self.store = store if store is not None else MemoryKeyValueStore()

    @classmethod
    def key(cls, page_id: str, block_id: str) -> str:
        return f"{cls.KEY_PREFIX}:{page_id}:{block_id}"

    def is_collapsed(self, page_id: str, block_id: str) -> bool:
        return self.store.get(self.key(page_id, block_id)) is not None

    def set_collapsed(self, page_id: str, block_id: str, collapsed: bool) -> None:
        key = self.key(page_id, block_id)
        if collapsed:
            if self.store.get(key) is None:
                self.store.set(key, "1")
        else:
            self.store.delete(key)

    def toggle(self, page_id: str, block_id: str) -> bool:
        """Flip one flag; returns the new collapsed value."""
        collapsed = not self.is_collapsed(page_id, block_id)
        self.set_collapsed(page_id, block_id, collapsed)
        logger.debug("collapse_toggled", page_id=page_id, block_id=block_id, collapsed=collapsed)
        return collapsed

    def toggle_recursive(self, page_id: str, block: "Block", collapse: bool) -> int:
        """Set the same flag on a block and every descendant.

        Returns:
            Number of blocks updated
        """
        count = 0
        for node in block.walk():
            self.set_collapsed(page_id, node.id, collapse)
            count += 1
        logger.info(
            "collapse_set_recursive",
            page_id=page_id,
            block_id=block.id,
            collapsed=collapse,
            count=count,
        )
        return count

    def collapsed_blocks(self, page_id: str) -> list[str]:
        """Ids of collapsed blocks on a page."""
        prefix = f"{self.KEY_PREFIX}:{page_id}:"
        return sorted(key[len(prefix):] for key in self.store.keys() if key.startswith(prefix))
