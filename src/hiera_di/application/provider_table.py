"""Application layer - Per-injector provider registry."""

from typing import Dict, List, Optional, Tuple

from hiera_di.domain import InvalidProviderError, ProviderKind, ProviderSpec, Token


class ProviderTable:
    """Maps tokens to provider recipes for a single injector.

    Holds at most one non-multi provider per token; multi providers for a token
    accumulate in registration order. Writes are serialized by the owning
    injector; reads need no lock.

    Attributes:
        _providers: Single providers keyed by token.
        _multi_providers: Accumulated multi elements keyed by token.
    """

    def __init__(self) -> None:
        """Initialize an empty table."""
        self._providers: Dict[Token, ProviderSpec] = {}
        self._multi_providers: Dict[Token, List[ProviderSpec]] = {}

    def register(self, token: Token, spec: ProviderSpec) -> Optional[ProviderSpec]:
        """Validate and install a provider.

        Args:
            token: The token to provide.
            spec: The provider recipe.

        Returns:
            The single provider that was replaced, if any.

        Raises:
            InvalidProviderError: If the registration is malformed.
        """
        self.validate(token, spec)

        if spec.kind is ProviderKind.MULTI:
            self._multi_providers.setdefault(token, []).append(spec.element)
            return None

        previous = self._providers.get(token)
        self._providers[token] = spec
        return previous

    @staticmethod
    def validate(token: Token, spec: ProviderSpec) -> None:
        """Preflight checks run before a provider is installed.

        Raises:
            InvalidProviderError: If the registration is malformed.
        """
        if not isinstance(token, Token):
            raise InvalidProviderError(token, f"expected a Token, got {type(token).__name__}")
        if not isinstance(spec, ProviderSpec):
            raise InvalidProviderError(token, f"expected a ProviderSpec, got {type(spec).__name__}")

        if token.multi and spec.kind is not ProviderKind.MULTI:
            raise InvalidProviderError(token, f"multi token cannot take a {spec.kind} provider")
        if not token.multi and spec.kind is ProviderKind.MULTI:
            raise InvalidProviderError(token, "multi provider registered for a single-valued token")

        recipe = spec.element if spec.kind is ProviderKind.MULTI else spec
        if recipe.kind is ProviderKind.FACTORY and any(dependency is token for dependency in recipe.dependencies):
            raise InvalidProviderError(token, "factory depends on its own token")
        if recipe.kind is ProviderKind.ALIAS and recipe.target is token:
            raise InvalidProviderError(token, "alias targets its own token")

    def get(self, token: Token) -> Optional[ProviderSpec]:
        """Return the single provider for a token, if registered here."""
        return self._providers.get(token)

    def get_multi(self, token: Token) -> Tuple[ProviderSpec, ...]:
        """Return the multi elements registered here for a token, in registration order."""
        return tuple(self._multi_providers.get(token, ()))

    def __contains__(self, token: object) -> bool:
        return token in self._providers or token in self._multi_providers

    def __len__(self) -> int:
        return len(self._providers) + sum(len(elements) for elements in self._multi_providers.values())

    def clear(self) -> None:
        """Remove every provider."""
        self._providers.clear()
        self._multi_providers.clear()
