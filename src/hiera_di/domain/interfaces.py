from abc import ABC, abstractmethod
from typing import Any, Hashable, List, Optional, Tuple, TypeVar

from hiera_di.domain.models import CacheEntry, ProviderSpec, Token

T = TypeVar("T")


class IInjector(ABC):
    """Abstract interface for one node of the injector tree."""

    @property
    @abstractmethod
    def parent(self) -> Optional["IInjector"]:
        """The parent injector, or None for the root."""

    @property
    @abstractmethod
    def path(self) -> str:
        """Slash-joined names from the root to this injector."""

    @abstractmethod
    def register(self, token: Token, spec: ProviderSpec) -> None:
        """Install a provider in this injector's local table.

        Args:
            token: The token to provide.
            spec: The provider recipe.
        """

    @abstractmethod
    def resolve(self, token: Token[T]) -> T:
        """Resolve the instance for a token from this injector's point of view.

        Args:
            token: The token to resolve.
        """

    @abstractmethod
    def create_child(self, name: Optional[str] = None) -> "IInjector":
        """Create and return a child injector."""

    @abstractmethod
    def destroy(self) -> None:
        """Destroy this injector and, first, all of its children."""


class IResolver(ABC):
    """Abstract interface for dependency resolution over an injector tree."""

    @abstractmethod
    def resolve(self, origin: IInjector, token: Token) -> Any:
        """Resolve a token starting at ``origin``.

        Args:
            origin: The injector the request originates from.
            token: The token to resolve.

        Returns:
            The instance provided for the token.

        Raises:
            NoProviderError: If no injector in the chain provides the token.
            CircularDependencyError: If resolving the token requires itself.
        """


class IInstanceCache(ABC):
    """Abstract interface for a per-injector single-flight instance cache."""

    @abstractmethod
    def acquire(self, key: Hashable, token: Token) -> CacheEntry:
        """Return the ready or failed entry for ``key``, or claim it for construction.

        Blocks while another caller is constructing the same key.

        Args:
            key: Cache key.
            token: Token being constructed under that key.
        """

    @abstractmethod
    def complete(self, key: Hashable, instance: Any, teardown: Any = None) -> bool:
        """Store a constructed instance for a claimed key."""

    @abstractmethod
    def fail(self, key: Hashable, error: BaseException) -> None:
        """Store a sticky failure for a claimed key."""

    @abstractmethod
    def release(self, key: Hashable) -> None:
        """Abandon a claim, leaving the key empty."""

    @abstractmethod
    def close(self) -> List[Tuple[Token, Any, Any]]:
        """Close the cache and return (token, instance, teardown) for every ready entry."""
