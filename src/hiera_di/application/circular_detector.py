"""Application layer - Circular dependency detection."""

import threading
from typing import List, Optional

from hiera_di.domain import CacheEntry, CircularDependencyError, ResolutionContext, Token


class CircularDependencyDetector:
    """Detects circular dependencies during resolution.

    Uses thread-local storage to track the tokens in flight for the current
    top-level resolution. A token appearing twice in the same thread is a cycle.

    Cycles that span threads show up as waits instead: thread 1 builds A and
    waits for B while thread 2 builds B and waits for A. Before blocking, a
    waiter follows the wait-for chain of the entry's owner; if the chain leads
    back to the waiter, waiting would deadlock and the cycle is raised instead.

    One detector is shared by every injector of a tree.

    Attributes:
        _local: Thread-local storage for resolution contexts.
        _wait_lock: Guards the wait-for links between contexts.
    """

    def __init__(self) -> None:
        """Initialize the detector with thread-local storage."""
        self._local = threading.local()
        self._wait_lock = threading.Lock()

    def current(self) -> ResolutionContext:
        """Get the current thread's resolution context.

        Returns:
            The resolution context for the current thread.
        """
        if not hasattr(self._local, "context"):
            self._local.context = ResolutionContext()
        return self._local.context

    def push(self, token: Token) -> None:
        """Add a token to the current thread's in-flight stack.

        Args:
            token: The token being resolved.

        Raises:
            CircularDependencyError: If the token is already in flight.

        Example:
            >>> detector = CircularDependencyDetector()
            >>> detector.push(SERVICE_A)
            >>> detector.push(SERVICE_B)
            >>> detector.push(SERVICE_A)  # Raises CircularDependencyError
        """
        self.current().push(token)

    def pop(self) -> None:
        """Remove the most recent token from the in-flight stack."""
        self.current().pop()

    def begin_wait(self, entry: CacheEntry) -> None:
        """Record that the current context is about to block on ``entry``.

        Args:
            entry: The in-progress entry owned by another resolution.

        Raises:
            CircularDependencyError: If the owner of ``entry`` is, directly or
                transitively, waiting on the current context.
        """
        waiter = self.current()
        with self._wait_lock:
            cycle = self._find_wait_cycle(waiter, entry)
            if cycle is not None:
                raise CircularDependencyError(cycle)
            waiter.waiting_on = entry

    def end_wait(self) -> None:
        """Clear the current context's wait-for link."""
        with self._wait_lock:
            self.current().waiting_on = None

    @staticmethod
    def _find_wait_cycle(waiter: ResolutionContext, entry: CacheEntry) -> Optional[List[Token]]:
        # Each blocked context's stack ends with the token it waits for, so the
        # tokens above the one it holds form its segment of the cycle.
        path = [entry.token]
        context = entry.owner
        seen = set()
        while context is not None and id(context) not in seen:
            seen.add(id(context))
            if context is not waiter and context.waiting_on is None:
                return None
            stack = context.stack
            start = stack.index(path[-1]) + 1 if path[-1] in stack else 0
            path.extend(stack[start:])
            if context is waiter:
                return path
            context = context.waiting_on.owner
        return None

    def clear(self) -> None:
        """Clear the current thread's in-flight stack.

        Useful for testing or error recovery.
        """
        if hasattr(self._local, "context"):
            self._local.context.clear()
