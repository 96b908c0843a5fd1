import logging
import threading
import uuid
import weakref
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

from hiera_di.application.circular_detector import CircularDependencyDetector
from hiera_di.application.instance_cache import InstanceCache
from hiera_di.application.provider_table import ProviderTable
from hiera_di.application.resolver import DependencyResolver
from hiera_di.domain import (
    CacheState,
    IInjector,
    InjectorDestroyedError,
    ProviderSpec,
    TeardownError,
    Token,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Injector(IInjector):
    """One node of the hierarchical injector tree.

    Owns a provider table and an instance cache. Holds its parent through a
    weak reference and its children strongly. Resolution walks from the
    requesting injector towards the root and uses the nearest provider, so a
    child's registration shadows its ancestors for everything at or below it.

    Attributes:
        _name: Identifier of this injector.
        _parent_ref: Weak reference to the parent, or None for the root.
        _children: Child injectors owned by this injector.
        _providers: Local provider table.
        _cache: Local instance cache.
        _detector: Circular dependency detector shared by the whole tree.
        _resolver: Resolver shared by the whole tree.
        _lock: Serializes registration, child creation and destruction.
        _destroyed: Whether the injector was destroyed.

    Example:
        >>> root = Injector(name="app")
        >>> root.register_values({DATABASE_URL: "sqlite://"})
        >>> with root.create_child(name="request") as scope:
        ...     repository = scope.resolve(USER_REPOSITORY)
    """

    def __init__(self, parent: Optional["Injector"] = None, name: Optional[str] = None) -> None:
        """Initialize the injector and attach it to its parent.

        Args:
            parent: Parent injector; None creates a root.
            name: Identifier used in paths, logs and errors. Generated if omitted.

        Raises:
            InjectorDestroyedError: If the parent was destroyed.
        """
        self._name = name or f"injector-{uuid.uuid4().hex[:8]}"
        self._parent_ref: Optional["weakref.ref[Injector]"] = None
        self._children: List[Injector] = []
        self._providers = ProviderTable()
        self._lock = threading.RLock()
        self._destroyed = False

        if parent is None:
            self._detector = CircularDependencyDetector()
            self._resolver = DependencyResolver(self._detector)
            self._path = self._name
        else:
            self._detector = parent._detector
            self._resolver = parent._resolver
            self._path = f"{parent.path}/{self._name}"
            self._parent_ref = weakref.ref(parent)
            parent._adopt(self)

        self._cache = InstanceCache(self._path, self._detector)
        logger.debug("Created injector '%s'", self._path)

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> str:
        return self._path

    @property
    def parent(self) -> Optional["Injector"]:
        """The parent injector, or None for the root.

        Raises:
            InjectorDestroyedError: If the parent was garbage collected.
        """
        if self._parent_ref is None:
            return None
        parent = self._parent_ref()
        if parent is None:
            raise InjectorDestroyedError(self._path.rsplit("/", 1)[0])
        return parent

    @property
    def children(self) -> Tuple["Injector", ...]:
        with self._lock:
            return tuple(self._children)

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def providers(self) -> ProviderTable:
        return self._providers

    @property
    def cache(self) -> InstanceCache:
        return self._cache

    def ensure_active(self) -> None:
        """Raise if this injector was destroyed.

        Raises:
            InjectorDestroyedError: If the injector was destroyed.
        """
        if self._destroyed:
            raise InjectorDestroyedError(self._path)

    def ancestry(self) -> Iterator["Injector"]:
        """Yield this injector and then each ancestor up to the root.

        Raises:
            InjectorDestroyedError: If an injector of the chain was destroyed.
        """
        injector: Optional[Injector] = self
        while injector is not None:
            injector.ensure_active()
            yield injector
            injector = injector.parent

    def create_child(self, name: Optional[str] = None) -> "Injector":
        """Create a child injector that inherits this injector's providers.

        Args:
            name: Optional identifier of the child.

        Returns:
            The new child injector.
        """
        return type(self)(parent=self, name=name)

    def _adopt(self, child: "Injector") -> None:
        with self._lock:
            self.ensure_active()
            self._children.append(child)

    def _forget(self, child: "Injector") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def register(self, token: Token, spec: ProviderSpec) -> None:
        """Install a provider in this injector's local table.

        Re-registering a single-valued token replaces the previous provider.
        An instance this injector already built for the token stays cached
        until the injector is destroyed.

        Args:
            token: The token to provide.
            spec: The provider recipe.

        Raises:
            InvalidProviderError: If the registration is malformed.
            InjectorDestroyedError: If the injector was destroyed.

        Example:
            >>> injector.register(CLOCK, ProviderSpec.of_factory(SystemClock))
        """
        with self._lock:
            self.ensure_active()
            replaced = self._providers.register(token, spec)

        if replaced is not None:
            entry = self._cache.get(token)
            if entry is not None and entry.state is CacheState.READY:
                logger.warning(
                    "Token '%s' re-registered in injector '%s' after its instance was built; "
                    "the cached instance is kept until the injector is destroyed",
                    token.name,
                    self._path,
                )
        logger.debug("Registered %s provider for token '%s' in injector '%s'", spec.kind, token.name, self._path)

    def register_values(self, values: Dict[Token, Any]) -> None:
        """Register multiple value providers at once.

        Args:
            values: Dictionary mapping tokens to precomputed instances.

        Example:
            >>> injector.register_values({
            ...     DATABASE_URL: "postgresql://localhost/app",
            ...     POOL_SIZE: 10,
            ... })
        """
        for token, value in values.items():
            self.register(token, ProviderSpec.of_value(value))

    def register_factories(self, factories: Dict[Token, Tuple[Callable[..., Any], Sequence[Token]]]) -> None:
        """Register multiple factory providers at once.

        Args:
            factories: Dictionary mapping tokens to (factory, dependencies) pairs.
                Each factory receives its resolved dependencies positionally.

        Example:
            >>> injector.register_factories({
            ...     ENGINE: (create_engine, (DATABASE_URL,)),
            ...     USER_REPOSITORY: (UserRepository, (ENGINE,)),
            ... })
        """
        for token, (factory, dependencies) in factories.items():
            self.register(token, ProviderSpec.of_factory(factory, tuple(dependencies)))

    def register_alias(self, token: Token, target: Token) -> None:
        """Make ``token`` resolve to whatever ``target`` resolves to from this injector."""
        self.register(token, ProviderSpec.of_alias(target))

    def register_multi(self, token: Token, element: ProviderSpec) -> None:
        """Add one element to a multi token."""
        self.register(token, ProviderSpec.of_multi(element))

    def has_provider(self, token: Token) -> bool:
        """Whether this injector's own table provides the token (ancestors are not consulted)."""
        return token in self._providers

    def resolve(self, token: Token[T]) -> T:
        """Resolve the instance for a token from this injector's point of view.

        Args:
            token: The token to resolve.

        Returns:
            The provided instance; a list for multi tokens.

        Raises:
            NoProviderError: If no injector in the chain provides the token.
            CircularDependencyError: If resolving the token requires itself.
            InjectorDestroyedError: If this injector or an ancestor was destroyed.
            ProviderFactoryError: If a factory raised.

        Example:
            >>> service = scope.resolve(USER_SERVICE)
        """
        return self._resolver.resolve(self, token)

    def destroy(self) -> None:
        """Destroy this injector, its children first.

        Every cached instance that has a teardown is handed to it, most recently
        built first. Destroying an already destroyed injector does nothing.

        Raises:
            TeardownError: If one or more teardown callables raised. All
                instances are still torn down and the injector stays destroyed.
        """
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            children = list(self._children)
            self._children.clear()

        failures: List[Tuple[Token, BaseException]] = []
        for child in reversed(children):
            try:
                child.destroy()
            except TeardownError as e:
                failures.extend(e.failures)

        for token, instance, teardown in self._cache.close():
            if teardown is None:
                continue
            try:
                teardown(instance)
            except Exception as e:
                logger.exception("Teardown of token '%s' failed in injector '%s'", token.name, self._path)
                failures.append((token, e))

        self._providers.clear()
        if self._parent_ref is not None:
            parent = self._parent_ref()
            if parent is not None:
                parent._forget(self)

        logger.debug("Destroyed injector '%s'", self._path)
        if failures:
            raise TeardownError(self._path, failures)

    def __enter__(self) -> "Injector":
        """Context manager entry - returns self."""
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        """Context manager exit - destroys the injector."""
        self.destroy()
        return False

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else "active"
        return f"Injector(path={self._path!r}, {state})"


def create_injector(parent: Optional[Injector] = None, name: Optional[str] = None) -> Injector:
    """Create a root injector, or a child of ``parent``.

    Args:
        parent: Parent injector; omitted only for the root.
        name: Optional identifier of the injector.

    Returns:
        The new injector.
    """
    if parent is None:
        return Injector(name=name)
    return parent.create_child(name=name)
