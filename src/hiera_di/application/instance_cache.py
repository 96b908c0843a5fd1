import logging
import threading
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from hiera_di.application.circular_detector import CircularDependencyDetector
from hiera_di.domain import CacheEntry, CacheState, IInstanceCache, InjectorDestroyedError, Token

logger = logging.getLogger(__name__)


class InstanceCache(IInstanceCache):
    """Caches constructed instances for one injector with single-flight construction.

    The first caller for a key claims it (``IN_PROGRESS``) and constructs the
    instance outside the lock; concurrent callers for the same key wait on the
    condition and re-read the entry once the claim is settled. A claim is
    always settled by the caller that made it: ``complete``, ``fail`` or
    ``release``.

    Attributes:
        _injector_path: Path of the owning injector, for error messages.
        _detector: Tree-wide detector used to refuse deadlocking waits.
        _condition: Serializes access to the entries and wakes waiters.
        _entries: Cache entries keyed by token or (token, slot).
        _completion_order: Ready keys in the order they completed.
        _closed: Whether the owning injector was destroyed.
    """

    def __init__(self, injector_path: str, detector: CircularDependencyDetector) -> None:
        """Initialize an empty cache.

        Args:
            injector_path: Path of the owning injector.
            detector: The tree-wide circular dependency detector.
        """
        self._injector_path = injector_path
        self._detector = detector
        self._condition = threading.Condition()
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._completion_order: List[Hashable] = []
        self._closed = False

    def acquire(self, key: Hashable, token: Token) -> CacheEntry:
        """Return the settled entry for ``key`` or claim it for construction.

        Args:
            key: Cache key.
            token: Token constructed under the key.

        Returns:
            A ``READY`` or ``FAILED`` entry, or a fresh ``IN_PROGRESS`` entry
            owned by the caller, who must then settle it.

        Raises:
            InjectorDestroyedError: If the cache was closed.
            CircularDependencyError: If waiting for the current owner would deadlock.
        """
        with self._condition:
            while True:
                if self._closed:
                    raise InjectorDestroyedError(self._injector_path)

                entry = self._entries.get(key)
                if entry is None:
                    entry = CacheEntry(token=token, owner=self._detector.current())
                    self._entries[key] = entry
                    return entry

                if entry.state is not CacheState.IN_PROGRESS:
                    return entry

                self._detector.begin_wait(entry)
                try:
                    self._condition.wait()
                finally:
                    self._detector.end_wait()

    def complete(self, key: Hashable, instance: Any, teardown: Optional[Callable[[Any], Any]] = None) -> bool:
        """Store the instance for a claimed key and wake waiters.

        Returns:
            False if the cache was closed while the instance was being built;
            the caller then owns the instance and must tear it down.
        """
        with self._condition:
            if self._closed:
                return False
            entry = self._entries[key]
            entry.state = CacheState.READY
            entry.instance = instance
            entry.teardown = teardown
            entry.owner = None
            self._completion_order.append(key)
            self._condition.notify_all()
            return True

    def fail(self, key: Hashable, error: BaseException) -> None:
        """Store a sticky failure for a claimed key and wake waiters."""
        with self._condition:
            entry = self._entries.get(key)
            if entry is not None:
                entry.state = CacheState.FAILED
                entry.error = error
                entry.owner = None
            self._condition.notify_all()

    def release(self, key: Hashable) -> None:
        """Drop an unsettled claim so that a later call retries the construction."""
        with self._condition:
            entry = self._entries.get(key)
            if entry is not None and entry.state is CacheState.IN_PROGRESS:
                del self._entries[key]
            self._condition.notify_all()

    def get(self, key: Hashable) -> Optional[CacheEntry]:
        """Return the entry for a key without waiting or claiming."""
        with self._condition:
            return self._entries.get(key)

    def close(self) -> List[Tuple[Token, Any, Optional[Callable[[Any], Any]]]]:
        """Close the cache and hand back every ready instance.

        Returns:
            (token, instance, teardown) for each ready entry, most recently
            completed first so that dependents are torn down before their
            dependencies.
        """
        with self._condition:
            if self._closed:
                return []
            self._closed = True
            ready = [self._entries[key] for key in reversed(self._completion_order)]
            self._entries.clear()
            self._completion_order.clear()
            self._condition.notify_all()

        logger.debug("Closed instance cache of injector '%s' with %d ready instance(s)", self._injector_path, len(ready))
        return [(entry.token, entry.instance, entry.teardown) for entry in ready]

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._condition:
            return len(self._entries)
