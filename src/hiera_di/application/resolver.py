import logging
from typing import TYPE_CHECKING, Any, Hashable, List, Tuple

from hiera_di.application.circular_detector import CircularDependencyDetector
from hiera_di.domain import (
    CacheState,
    InjectorDestroyedError,
    IResolver,
    NoProviderError,
    ProviderFactoryError,
    ProviderKind,
    ProviderSpec,
    Token,
)

if TYPE_CHECKING:
    from hiera_di.application.injector import Injector

logger = logging.getLogger(__name__)


class DependencyResolver(IResolver):
    """Resolves tokens by walking an injector's ancestor chain.

    The resolver keeps no per-call state of its own: the in-flight stack lives
    in the tree's detector and instances live in each injector's cache.

    A provider's dependencies are resolved from the requesting injector, not
    from the injector that owns the provider, so a descendant's override of a
    shared dependency is honored even for providers registered higher up.
    Aliases are resolved from the injector that owns the alias.

    Attributes:
        _detector: The tree-wide circular dependency detector.
    """

    def __init__(self, detector: CircularDependencyDetector) -> None:
        """Initialize the resolver.

        Args:
            detector: Detector shared by every injector of the tree.
        """
        self._detector = detector

    def resolve(self, origin: "Injector", token: Token) -> Any:
        """Resolve a token starting at ``origin``.

        Args:
            origin: The injector the request originates from.
            token: The token to resolve.

        Returns:
            The provided instance, or a list of instances for multi tokens.

        Raises:
            NoProviderError: If no injector in the chain provides the token.
            CircularDependencyError: If resolving the token requires itself.
            InjectorDestroyedError: If an injector of the chain was destroyed.
            ProviderFactoryError: If the token's factory raised (now or earlier).

        Example:
            >>> resolver.resolve(request_scope, USER_REPOSITORY)
        """
        origin.ensure_active()
        self._detector.push(token)
        try:
            if token.multi:
                return self._resolve_multi(origin, token)

            owner, spec = self._find_provider(origin, token)
            return self._provide(owner, origin, token, token, spec)
        finally:
            self._detector.pop()

    def _find_provider(self, origin: "Injector", token: Token) -> Tuple["Injector", ProviderSpec]:
        for injector in origin.ancestry():
            spec = injector.providers.get(token)
            if spec is not None:
                return injector, spec
        raise NoProviderError(token, origin.path)

    def _resolve_multi(self, origin: "Injector", token: Token) -> List[Any]:
        # Nearest injector first, registration order within an injector.
        instances = []
        for injector in origin.ancestry():
            for slot, element in enumerate(injector.providers.get_multi(token)):
                instances.append(self._provide(injector, origin, token, (token, slot), element))
        return instances

    def _provide(self, owner: "Injector", origin: "Injector", token: Token, key: Hashable, spec: ProviderSpec) -> Any:
        if spec.kind is ProviderKind.VALUE:
            return spec.value

        if spec.kind is ProviderKind.ALIAS:
            return self.resolve(owner, spec.target)

        return self._construct(owner, origin, token, key, spec)

    def _construct(self, owner: "Injector", origin: "Injector", token: Token, key: Hashable, spec: ProviderSpec) -> Any:
        entry = owner.cache.acquire(key, token)
        if entry.state is CacheState.READY:
            return entry.instance
        if entry.state is CacheState.FAILED:
            # Replays never re-raise the cached error object.
            raise ProviderFactoryError(token, entry.error.cause) from entry.error.cause

        try:
            arguments = [self.resolve(origin, dependency) for dependency in spec.dependencies]
        except BaseException:
            owner.cache.release(key)
            raise

        try:
            instance = spec.factory(*arguments)
        except Exception as e:
            failure = ProviderFactoryError(token, e)
            owner.cache.fail(key, failure)
            logger.debug("Factory for token '%s' failed in injector '%s': %r", token.name, owner.path, e)
            raise failure from e
        except BaseException:
            owner.cache.release(key)
            raise

        if not owner.cache.complete(key, instance, spec.teardown):
            if spec.teardown is not None:
                try:
                    spec.teardown(instance)
                except Exception:
                    logger.exception(
                        "Teardown of late instance for token '%s' failed in injector '%s'", token.name, owner.path
                    )
            raise InjectorDestroyedError(owner.path)

        logger.debug("Constructed token '%s' in injector '%s' (requested from '%s')", token.name, owner.path, origin.path)
        return instance
