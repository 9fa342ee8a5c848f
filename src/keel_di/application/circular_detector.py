"""Application layer - Cycle detection for non-singleton components."""

import threading
from contextlib import contextmanager
from typing import Iterator, List

from keel_di.domain import CircularCreationError


class CircularCreationDetector:
    """Detects creation cycles among prototype and custom-scoped components.

    Uses thread-local storage to track the names currently being constructed
    by the calling thread. Non-singletons have no canonical instance that
    could be exposed early, so re-entering a name fails fast instead of
    blocking or recursing.

    Attributes:
        _local: Thread-local storage for creation stacks.
    """

    def __init__(self) -> None:
        """Initialize the detector with thread-local storage."""
        self._local = threading.local()

    def _get_stack(self) -> List[str]:
        """Get the current thread's creation stack.

        Returns:
            The creation stack for the current thread.
        """
        if not hasattr(self._local, "stack"):
            self._local.stack = []
        return self._local.stack

    def push(self, name: str) -> None:
        """Mark a component as being constructed by the current thread.

        Args:
            name: The component name.

        Raises:
            CircularCreationError: If the name is already being constructed.

        Example:
            >>> detector = CircularCreationDetector()
            >>> detector.push("a")
            >>> detector.push("b")
            >>> detector.push("a")  # Raises CircularCreationError
        """
        stack = self._get_stack()

        if name in stack:
            cycle = stack[stack.index(name) :] + [name]
            raise CircularCreationError(name, cycle)

        stack.append(name)

    def pop(self, name: str) -> None:
        """Remove a component from the current thread's creation stack.

        Called after construction finished, successfully or not.
        """
        stack = self._get_stack()
        if stack and stack[-1] == name:
            stack.pop()
        elif name in stack:
            stack.remove(name)

    def is_in_creation(self, name: str) -> bool:
        """Whether the current thread is constructing the name."""
        return name in self._get_stack()

    @contextmanager
    def guard(self, name: str) -> Iterator[None]:
        """Context manager pairing `push` and `pop`."""
        self.push(name)
        try:
            yield
        finally:
            self.pop(name)

    def clear(self) -> None:
        """Clear the current thread's creation stack.

        Useful for testing or error recovery.
        """
        if hasattr(self._local, "stack"):
            self._local.stack.clear()
