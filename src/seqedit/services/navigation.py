"""Page-visit history.

Only back navigation is supported: popping an entry discards it, so there is
no forward history. Flushing pending edits before a navigation is the
EditorSession's job; this class is the plain stack.
"""

from typing import Optional

import structlog

logger = structlog.get_logger()


class NavigationStack:
    """Stack of previously visited page ids plus the current page.

    Example:
        >>> nav = NavigationStack(current="Page A")
        >>> nav.push("Page B")
        >>> nav.go_back()
        'Page A'
    """

    def __init__(self, current: Optional[str] = None):
        self.current = current
        self._history: list[str] = []

    @property
    def history(self) -> list[str]:
        """Visited pages, oldest first (copy)."""
        return list(self._history)

    @property
    def can_go_back(self) -> bool:
        return bool(self._history)

    def push(self, page_id: str) -> None:
        """Record a navigation to page_id.

        Navigating to the page already shown records nothing.
        """
        if page_id == self.current:
            return
        if self.current is not None:
            self._history.append(self.current)
        self.current = page_id
        logger.debug("navigation_pushed", page_id=page_id, depth=len(self._history))

    def peek(self) -> Optional[str]:
        """Most recent history entry without removing it (None if empty)."""
        return self._history[-1] if self._history else None

    def pop(self) -> Optional[str]:
        """Remove and return the most recent history entry (None if empty)."""
        if not self._history:
            return None
        return self._history.pop()

    def go_back(self) -> Optional[str]:
        """Make the previous page current.

        Returns:
            The page now current, or None (current unchanged) on empty history
        """
        previous = self.pop()
        if previous is None:
            return None
        self.current = previous
        logger.debug("navigation_back", page_id=previous, depth=len(self._history))
        return previous

    def clear(self) -> None:
        self._history.clear()
