from enum import Enum


class ProviderKind(str, Enum):
    """Defines how a provider satisfies a token.

    Attributes:
        VALUE: A precomputed instance.
        FACTORY: A callable invoked with the resolved dependencies.
        ALIAS: Redirects resolution to another token.
        MULTI: One element of an accumulated sequence of providers.
    """

    VALUE = "value"
    FACTORY = "factory"
    ALIAS = "alias"
    MULTI = "multi"

    def __str__(self) -> str:
        return self.value


class CacheState(str, Enum):
    """State of a cache entry for one (injector, key) pair."""

    IN_PROGRESS = "in_progress"
    READY = "ready"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value
