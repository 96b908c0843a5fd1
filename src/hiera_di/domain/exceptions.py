from typing import TYPE_CHECKING, List, Sequence, Tuple

if TYPE_CHECKING:
    from hiera_di.domain.models import Token


def _token_name(token: object) -> str:
    if token is None:
        return "<unbound>"
    return getattr(token, "name", repr(token))


class DIException(Exception):
    """Base exception for DI-related errors."""


class NoProviderError(DIException):
    """Raised when no injector in the ancestor chain provides a token.

    Attributes:
        token: The token that could not be resolved.
        injector_path: Path of the injector the resolution started from.
    """

    def __init__(self, token: "Token", injector_path: str) -> None:
        self.token = token
        self.injector_path = injector_path
        super().__init__(f"No provider for token '{_token_name(token)}' (requested from injector '{injector_path}')")


class CircularDependencyError(DIException):
    """Raised when a circular dependency is detected.

    Attributes:
        dependency_chain: Tokens involved in the cycle, closed by the repeated token.
    """

    def __init__(self, dependency_chain: List["Token"]) -> None:
        self.dependency_chain = dependency_chain
        message = f"Circular dependency detected: {' -> '.join([_token_name(token) for token in dependency_chain])}"
        super().__init__(message)


class InvalidProviderError(DIException):
    """Raised when a provider registration is malformed.

    This occurs when:
    - The key is not a Token.
    - A factory lists its own token as a dependency.
    - An alias targets its own token.
    - A multi provider is registered for a single-valued token (or vice versa).

    Attributes:
        token: The token the provider was registered for.
        reason: Why the provider was rejected.
    """

    def __init__(self, token: object, reason: str) -> None:
        self.token = token
        self.reason = reason
        super().__init__(f"Invalid provider for token '{_token_name(token)}': {reason}")


class InjectorDestroyedError(DIException):
    """Raised when an injector is used after it was destroyed.

    Attributes:
        injector_path: Path of the destroyed injector.
    """

    def __init__(self, injector_path: str) -> None:
        self.injector_path = injector_path
        super().__init__(f"Injector '{injector_path}' has been destroyed")


class ProviderFactoryError(DIException):
    """Raised when a factory provider fails to build its instance.

    The original exception is chained as ``__cause__``. The failure is cached
    by the owning injector; resolving the token again raises a new error
    carrying the same cause.

    Attributes:
        token: The token whose factory failed.
        cause: The exception raised by the factory.
    """

    def __init__(self, token: "Token", cause: BaseException) -> None:
        self.token = token
        self.cause = cause
        super().__init__(f"Factory for token '{_token_name(token)}' failed: {cause!r}")


class TeardownError(DIException):
    """Raised after destruction when one or more teardown callables failed.

    Attributes:
        injector_path: Path of the destroyed injector.
        failures: Pairs of (token, exception) for every failed teardown.
    """

    def __init__(self, injector_path: str, failures: Sequence[Tuple["Token", BaseException]]) -> None:
        self.injector_path = injector_path
        self.failures = list(failures)
        names = ", ".join(_token_name(token) for token, _ in self.failures)
        super().__init__(f"Teardown failed for {len(self.failures)} instance(s) of injector '{injector_path}': {names}")
