"""Custom exceptions for seqedit."""

from typing import Optional, Sequence


class SeqeditError(Exception):
    """Base class for all seqedit errors."""


class BlockNotFoundError(SeqeditError):
    """Raised when a path or block does not exist in the current tree snapshot.

    Paths are positional, so a path computed before a structural mutation may
    point nowhere afterwards. This is never fatal: structural operations turn
    it into a "no visible change" result.

    Attributes:
        path: The path that failed to resolve (None when locating by identity)
        message: Human-readable error message
    """

    def __init__(self, path: Optional[Sequence[int]] = None, message: str = "Block not found"):
        """Initialize BlockNotFoundError.

        Args:
            path: Path that failed to resolve
            message: Human-readable error message
        """
        self.path = list(path) if path is not None else None
        self.message = message
        if self.path is None:
            super().__init__(message)
        else:
            super().__init__(f"{message}: {self.path}")


class StoreUnavailableError(SeqeditError):
    """Raised when a Page Store call (fetch or commit) fails.

    Attributes:
        operation: Store operation that failed (e.g. "commit_update")
        page_id: Page the operation targeted
        message: Human-readable error message
    """

    def __init__(self, operation: str, page_id: str, message: str = "Page store unavailable"):
        """Initialize StoreUnavailableError.

        Args:
            operation: Store operation that failed
            page_id: Page the operation targeted
            message: Human-readable error message
        """
        self.operation = operation
        self.page_id = page_id
        self.message = message
        super().__init__(f"{message} ({operation} on '{page_id}')")


class StaleResponseError(SeqeditError):
    """Raised when a save result arrives after its block was reloaded or re-edited.

    The response is discarded; newer local state always wins.

    Attributes:
        block_id: Block the stale response was for
    """

    def __init__(self, block_id: str, message: str = "Discarded stale save response"):
        """Initialize StaleResponseError.

        Args:
            block_id: Block the stale response was for
            message: Human-readable error message
        """
        self.block_id = block_id
        self.message = message
        super().__init__(f"{message}: {block_id}")
