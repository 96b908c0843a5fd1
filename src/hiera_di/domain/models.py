from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from hiera_di.domain.enums import CacheState, ProviderKind
from hiera_di.domain.exceptions import CircularDependencyError, InvalidProviderError

T = TypeVar("T")


class Token(Generic[T]):
    """Identity key for a requestable dependency.

    Tokens compare and hash by identity only: two tokens with the same name are
    different keys. The name is used in error messages and logs.

    Attributes:
        name: Human-readable name of the dependency.
        multi: Whether the token collects multi providers into a list.

    Example:
        >>> DATABASE_URL: Token[str] = Token("database_url")
        >>> PLUGINS: Token[list] = Token("plugins", multi=True)
    """

    __slots__ = ("name", "multi")

    def __init__(self, name: str, multi: bool = False) -> None:
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "multi", multi)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"Token '{self.name}' is immutable")

    def __repr__(self) -> str:
        if self.multi:
            return f"Token({self.name!r}, multi=True)"
        return f"Token({self.name!r})"


class ProviderSpec(BaseModel):
    """Value object describing how to satisfy a token.

    Use the ``of_*`` constructors rather than building the model directly; they
    convert validation failures into ``InvalidProviderError``.

    Attributes:
        kind: Which variant this spec is.
        value: The precomputed instance (VALUE).
        factory: Callable receiving the resolved dependencies positionally (FACTORY).
        dependencies: Tokens resolved, in order, as the factory arguments (FACTORY).
        teardown: Optional callable receiving the instance on injector destruction (FACTORY).
        target: Token the alias redirects to (ALIAS).
        element: The wrapped value, factory or alias provider (MULTI).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ProviderKind = Field(..., description="The provider variant.")
    value: Any = Field(default=None, description="Precomputed instance for value providers.")
    factory: Optional[Callable[..., Any]] = Field(default=None, description="Factory callable.")
    dependencies: Tuple[Token, ...] = Field(default=(), description="Tokens passed to the factory, in order.")
    teardown: Optional[Callable[[Any], Any]] = Field(default=None, description="Teardown for factory instances.")
    target: Optional[Token] = Field(default=None, description="Alias target token.")
    element: Optional["ProviderSpec"] = Field(default=None, description="Element provider of a multi spec.")

    @model_validator(mode="after")
    def _check_variant(self) -> "ProviderSpec":
        if self.kind is ProviderKind.FACTORY and self.factory is None:
            raise ValueError("factory providers require a factory callable")
        if self.kind is not ProviderKind.FACTORY and (self.factory is not None or self.dependencies):
            raise ValueError(f"{self.kind} providers cannot declare a factory or dependencies")
        if self.teardown is not None and self.kind is not ProviderKind.FACTORY:
            raise ValueError("only factory providers accept a teardown")
        if self.kind is ProviderKind.ALIAS and self.target is None:
            raise ValueError("alias providers require a target token")
        if self.kind is ProviderKind.MULTI:
            if self.element is None:
                raise ValueError("multi providers require an element provider")
            if self.element.kind is ProviderKind.MULTI:
                raise ValueError("multi providers cannot be nested")
        return self

    @classmethod
    def _build(cls, **fields: Any) -> "ProviderSpec":
        try:
            return cls(**fields)
        except ValidationError as e:
            reason = "; ".join(error["msg"] for error in e.errors())
            raise InvalidProviderError(None, reason) from e

    @classmethod
    def of_value(cls, value: Any) -> "ProviderSpec":
        """Create a provider returning a precomputed instance."""
        return cls._build(kind=ProviderKind.VALUE, value=value)

    @classmethod
    def of_factory(
        cls,
        factory: Callable[..., Any],
        dependencies: Tuple[Token, ...] = (),
        teardown: Optional[Callable[[Any], Any]] = None,
    ) -> "ProviderSpec":
        """Create a provider built by ``factory(*resolved_dependencies)``.

        Args:
            factory: Callable building the instance.
            dependencies: Tokens resolved, in order, as positional arguments.
            teardown: Optional callable invoked with the instance when the owning
                injector is destroyed.

        Example:
            >>> ProviderSpec.of_factory(Engine, (DATABASE_URL,), teardown=Engine.dispose)
        """
        return cls._build(
            kind=ProviderKind.FACTORY,
            factory=factory,
            dependencies=tuple(dependencies),
            teardown=teardown,
        )

    @classmethod
    def of_alias(cls, target: Token) -> "ProviderSpec":
        """Create a provider redirecting to ``target``."""
        return cls._build(kind=ProviderKind.ALIAS, target=target)

    @classmethod
    def of_multi(cls, element: "ProviderSpec") -> "ProviderSpec":
        """Wrap a value, factory or alias provider as one element of a multi token."""
        return cls._build(kind=ProviderKind.MULTI, element=element)


class CacheEntry(BaseModel):
    """Construction state of one cached key.

    Attributes:
        token: The token being constructed.
        state: In progress, ready or failed.
        instance: The constructed instance once ready.
        error: The sticky failure once failed.
        teardown: Teardown callable for the ready instance, if any.
        owner: Resolution context that is constructing the entry.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    token: Token = Field(..., description="The token being constructed.")
    state: CacheState = Field(default=CacheState.IN_PROGRESS, description="Current construction state.")
    instance: Any = Field(default=None, description="Constructed instance once ready.")
    error: Optional[BaseException] = Field(default=None, description="Cached failure once failed.")
    teardown: Optional[Callable[[Any], Any]] = Field(default=None, description="Teardown for the instance.")
    owner: Optional[Any] = Field(default=None, repr=False, description="Context constructing the entry.")


class ResolutionContext(BaseModel):
    """Tracks the tokens being resolved by one thread.

    Used for circular dependency detection. The stack spans the whole
    top-level resolution, regardless of which injector owns each token.

    Attributes:
        stack: Tokens currently being resolved, outermost first.
        waiting_on: Cache entry this context is blocked on, if any.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stack: List[Token] = Field(
        default_factory=list,
        description="Stack of tokens currently being resolved.",
    )
    waiting_on: Optional[CacheEntry] = Field(default=None, repr=False, description="Entry being waited on.")

    def push(self, token: Token) -> None:
        """Add a token to the resolution stack.

        Args:
            token: The token being resolved.

        Raises:
            CircularDependencyError: If the token is already in the stack.
        """
        if token in self.stack:
            cycle = self.stack[self.stack.index(token) :] + [token]
            raise CircularDependencyError(cycle)
        self.stack.append(token)

    def pop(self) -> None:
        """Remove the last (most recent) token from the stack."""
        if self.stack:
            self.stack.pop()

    def clear(self) -> None:
        """Clear the entire resolution stack."""
        self.stack.clear()
