import functools
import inspect
import logging
from contextvars import ContextVar, Token
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from keel_di.application import DIContainer
from keel_di.domain import IContainer, IScope, ScopeError

REQUEST_SCOPE = "request"

logger = logging.getLogger(__name__)


class _RequestStore:
    """Objects and destruction callbacks of one request."""

    def __init__(self) -> None:
        self.objects: Dict[str, Any] = {}
        self.callbacks: List[Tuple[str, Callable[[], None]]] = []


class RequestScope(IScope):
    """Custom scope keeping one instance per name and HTTP request.

    The scope is only usable while a request is active, which
    `RequestScopeMiddleware` takes care of. Components are destroyed when
    the request ends, most recently created first.

    Example:
        >>> container.register_scope("request", RequestScope())
        >>> container.register_definition(
        ...     "request_context", ComponentDefinition(component_type=RequestContext, scope="request")
        ... )
    """

    def __init__(self) -> None:
        self._current: ContextVar[Optional[_RequestStore]] = ContextVar(f"keel_di_request_{id(self):x}", default=None)

    @property
    def is_active(self) -> bool:
        return self._current.get() is not None

    def activate(self) -> Token:
        """Start a request and return the token that ends it."""
        return self._current.set(_RequestStore())

    def deactivate(self, token: Token) -> None:
        """End the current request and destroy its components."""
        store = self._current.get()
        self._current.reset(token)
        if store is None:
            return
        for name, callback in reversed(store.callbacks):
            try:
                callback()
            except Exception:
                logger.warning("Destruction callback of request-scoped component '%s' failed", name, exc_info=True)
        store.objects.clear()
        store.callbacks.clear()

    def get(self, name: str, object_factory: Callable[[], Any]) -> Any:
        store = self._store(name)
        if name not in store.objects:
            store.objects[name] = object_factory()
        return store.objects[name]

    def remove(self, name: str) -> Optional[Any]:
        store = self._store(name)
        store.callbacks = [(registered, callback) for registered, callback in store.callbacks if registered != name]
        return store.objects.pop(name, None)

    def register_destruction_callback(self, name: str, callback: Callable[[], None]) -> None:
        self._store(name).callbacks.append((name, callback))

    def _store(self, name: str) -> _RequestStore:
        store = self._current.get()
        if store is None:
            raise ScopeError(
                "Scope 'request' is not active for the current thread; "
                "is RequestScopeMiddleware installed and is this code running inside a request?",
                name,
            )
        return store


def create_fastapi_dependency(container: IContainer, dependency: Union[str, type]) -> Callable[[], Any]:
    """Create a FastAPI Depends() callable that gets a component from the container.

    The lifetime of the returned object follows its definition: singleton,
    prototype or a custom scope such as `request`.

    Args:
        container: The DI container to get components from.
        dependency: Component name or type.

    Returns:
        A callable that FastAPI can use with Depends().

    Example:
        >>> container = DIContainer()
        >>> container.register_singletons({
        ...     UserRepository: lambda c: UserRepository(c.resolve(DatabaseConnection)),
        ... })
        >>>
        >>> get_user_repo = create_fastapi_dependency(container, UserRepository)
        >>>
        >>> @app.get("/users")
        >>> async def list_users(repo: UserRepository = Depends(get_user_repo)):
        ...     return await repo.get_all()
    """

    def dependency_provider() -> Any:
        """Get the component from the container."""
        return container.get(dependency)

    return dependency_provider


def create_scoped_dependency(dependency: Union[str, type]) -> Callable[[Request], Any]:
    """Create a FastAPI dependency that gets a component from the request's container.

    Requires the RequestScopeMiddleware to be installed.

    Args:
        dependency: Component name or type.

    Returns:
        A callable that gets the component from `request.state.di_container`.

    Example:
        >>> app.add_middleware(RequestScopeMiddleware, container=container)
        >>>
        >>> get_request_context = create_scoped_dependency("request_context")
        >>>
        >>> @app.get("/process")
        >>> async def process_request(ctx: RequestContext = Depends(get_request_context)):
        ...     return {"request_id": ctx.request_id}
    """

    def scoped_dependency(request: Request) -> Any:
        """Get the component from the request's container."""
        if not hasattr(request.state, "di_container"):
            raise ScopeError("Request does not have a DI container. Did you forget to add RequestScopeMiddleware?")
        container: IContainer = request.state.di_container
        return container.get(dependency)

    return scoped_dependency


class RequestScopeMiddleware(BaseHTTPMiddleware):
    """Middleware that opens the `request` scope for each HTTP request.

    Components declared with the `request` scope are shared within one
    request and destroyed once the response was produced. The container is
    accessible via `request.state.di_container`.

    Attributes:
        container: The DI container serving the application.
        scope: The request scope registered on the container.

    Example:
        >>> container = DIContainer()
        >>> container.register_definition(
        ...     "request_context", ComponentDefinition(component_type=RequestContext, scope="request")
        ... )
        >>>
        >>> app = FastAPI()
        >>> app.add_middleware(RequestScopeMiddleware, container=container)
    """

    def __init__(self, app: FastAPI, container: DIContainer, scope_name: str = REQUEST_SCOPE) -> None:
        """Initialize the middleware and register the request scope.

        Args:
            app: The FastAPI/Starlette application.
            container: The DI container serving the application.
            scope_name: Name the request scope is registered under. An existing
                `RequestScope` under that name is reused.
        """
        super().__init__(app)
        self.container = container
        existing = container.lifetime_manager.get_scope(scope_name)
        if isinstance(existing, RequestScope):
            self.scope = existing
        else:
            self.scope = RequestScope()
            container.register_scope(scope_name, self.scope)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """Run the endpoint inside a fresh request scope.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint handler.

        Returns:
            The response from the endpoint.
        """
        token = self.scope.activate()
        request.state.di_container = self.container
        try:
            return await call_next(request)
        finally:
            self.scope.deactivate(token)


def inject_dependencies(container: IContainer, **dependencies: Union[str, type]) -> Callable:
    """Decorator that injects components into keyword parameters of an endpoint.

    Injected parameters are hidden from the signature FastAPI inspects, so
    they are not mistaken for query parameters.

    Args:
        container: The DI container to get components from.
        **dependencies: Parameter name to component name or type.

    Returns:
        A decorator function.

    Example:
        >>> @app.get("/users")
        >>> @inject_dependencies(container, user_service=UserService, logger="audit_logger")
        >>> async def list_users(user_service: UserService, logger: AuditLogger):
        ...     logger.info("Listing users")
        ...     return await user_service.get_all()
    """

    def decorator(func: Callable) -> Callable:
        """Wrap the function with dependency injection logic."""
        signature = inspect.signature(func)
        unknown = set(dependencies) - set(signature.parameters)
        if unknown:
            raise TypeError(f"{func.__qualname__}() has no parameters named {sorted(unknown)}")
        visible = signature.replace(
            parameters=[param for name, param in signature.parameters.items() if name not in dependencies]
        )

        def resolve(kwargs: Dict[str, Any]) -> Dict[str, Any]:
            for param_name, dependency in dependencies.items():
                if param_name not in kwargs:
                    kwargs[param_name] = container.get(dependency)
            return kwargs

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                return await func(*args, **resolve(kwargs))

            wrapper: Callable = async_wrapper
        else:

            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs):
                return func(*args, **resolve(kwargs))

            wrapper = sync_wrapper

        wrapper.__signature__ = visible
        return wrapper

    return decorator
