from typing import Awaitable, Callable, Dict, Optional, TypeVar

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from hiera_di.application import Injector
from hiera_di.domain import ProviderSpec, Token

T = TypeVar("T")


def create_fastapi_dependency(injector: Injector, token: Token[T]) -> Callable[[], T]:
    """Create a FastAPI Depends() callable that resolves a token from an injector.

    The instance is cached by whichever injector of the chain provides the
    token, so repeated calls return the same instance.

    Args:
        injector: The injector to resolve from.
        token: The token to resolve when the dependency is called.

    Returns:
        A callable that FastAPI can use with Depends().

    Example:
        >>> root = Injector(name="app")
        >>> root.register_factories({USER_REPOSITORY: (UserRepository, (DATABASE,))})
        >>>
        >>> get_user_repo = create_fastapi_dependency(root, USER_REPOSITORY)
        >>>
        >>> @app.get("/users")
        >>> async def list_users(repo: UserRepository = Depends(get_user_repo)):
        ...     return await repo.get_all()
    """

    def dependency() -> T:
        """Resolve the token from the injector."""
        return injector.resolve(token)

    return dependency


def create_scoped_dependency(token: Token[T]) -> Callable[[Request], T]:
    """Create a FastAPI dependency that resolves from the request's injector.

    Requires the ScopedInjectorMiddleware to be installed.

    Args:
        token: The token to resolve from the request injector.

    Returns:
        A callable that resolves from the request-scoped injector.

    Example:
        >>> app.add_middleware(ScopedInjectorMiddleware, injector=root)
        >>>
        >>> get_request_context = create_scoped_dependency(REQUEST_CONTEXT)
        >>>
        >>> @app.get("/process")
        >>> async def process_request(ctx: RequestContext = Depends(get_request_context)):
        ...     return {"request_id": ctx.request_id}
    """

    def scoped_dependency(request: Request) -> T:
        """Resolve from the request's injector."""
        if not hasattr(request.state, "di_injector"):
            raise RuntimeError(
                "Request does not have a scoped injector. Did you forget to add ScopedInjectorMiddleware?"
            )
        scoped_injector: Injector = request.state.di_injector
        return scoped_injector.resolve(token)

    return scoped_dependency


class ScopedInjectorMiddleware(BaseHTTPMiddleware):
    """Middleware that creates a child injector for each request.

    The child is available as `request.state.di_injector` and is destroyed when
    the request finishes, tearing down everything it built. Providers
    registered in the child (the request itself, ``scoped_providers``) shadow
    the application injector for that request only.

    Attributes:
        injector: The application injector requests are scoped under.
        request_token: Optional token under which the current Request is provided.
        scoped_providers: Providers registered in every request injector.

    Example:
        >>> REQUEST = Token("request")
        >>> app = FastAPI()
        >>> app.add_middleware(
        ...     ScopedInjectorMiddleware,
        ...     injector=root,
        ...     request_token=REQUEST,
        ...     scoped_providers={SESSION: ProviderSpec.of_factory(Session, (ENGINE,), teardown=Session.close)},
        ... )
    """

    def __init__(
        self,
        app: FastAPI,
        injector: Injector,
        request_token: Optional[Token] = None,
        scoped_providers: Optional[Dict[Token, ProviderSpec]] = None,
    ):
        """Initialize the middleware with the application injector.

        Args:
            app: The FastAPI/Starlette application.
            injector: The injector to create request scopes from.
            request_token: Token to register the incoming Request under, if any.
            scoped_providers: Providers to register in each request injector.
        """
        super().__init__(app)
        self.injector = injector
        self.request_token = request_token
        self.scoped_providers = dict(scoped_providers or {})

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """Create a request injector, execute the endpoint, then destroy the injector.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint handler.

        Returns:
            The response from the endpoint.
        """
        scoped_injector = self.injector.create_child(name=f"request-{id(request):x}")
        request.state.di_injector = scoped_injector

        try:
            if self.request_token is not None:
                scoped_injector.register_values({self.request_token: request})
            for token, spec in self.scoped_providers.items():
                scoped_injector.register(token, spec)

            response = await call_next(request)
            return response
        finally:
            scoped_injector.destroy()
