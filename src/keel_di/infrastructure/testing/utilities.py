import inspect
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from keel_di.application import DIContainer
from keel_di.domain import ComponentDefinition, IContainer, MergedDefinition, Scope, ScopeError
from keel_di.settings import EngineSettings


class TestContainer(DIContainer):
    """DI container for testing with component override capabilities.

    Copies the definitions, aliases, scopes and interceptors of a parent
    container and builds its own instances from them, so overriding a
    component also rewires everything depending on it. Ready-made
    singletons of the parent remain reachable through the parent.

    This is useful for:
    - Mocking external services (databases, APIs, etc.)
    - Replacing implementations with test doubles
    - Isolating tests from shared state

    Attributes:
        _parent_container: The container registrations were copied from.
        _overrides: Description of each overridden component, by name.

    Example:
        >>> # Production container
        >>> container = DIContainer()
        >>> container.register_singletons({
        ...     EmailService: lambda c: RealEmailService(),
        ...     UserService: lambda c: UserService(c.resolve(EmailService)),
        ... })
        >>>
        >>> # Test container with mocks
        >>> def test_user_service():
        ...     test_container = TestContainer(container)
        ...     mock_email = MockEmailService()
        ...     test_container.mock_singleton(EmailService, mock_email)
        ...
        ...     # UserService will get mocked EmailService
        ...     service = test_container.resolve(UserService)
        ...     assert service.email is mock_email
    """

    __test__ = False  # Tell pytest not to collect this class as a test

    def __init__(self, parent_container: Optional[DIContainer] = None, settings: Optional[EngineSettings] = None) -> None:
        """Initialize the test container.

        Args:
            parent_container: Optional container to copy registrations from.
                If None, creates an empty container.
            settings: Engine settings; the parent's when omitted.
        """
        super().__init__(settings=settings, parent=parent_container)
        self._parent_container = parent_container
        self._overrides: Dict[str, str] = {}
        self._copy_registrations()

    def mock_singleton(self, dependency: Union[str, type], mock_instance: Any) -> List[str]:
        """Replace a component with a mock instance.

        A type replaces every component of that type; when there is none, the
        mock is registered under the type. The mock does not need to be an
        instance of the type.

        Args:
            dependency: Component name or type to mock.
            mock_instance: The mock instance to return.

        Returns:
            The overridden component names.

        Example:
            >>> test_container = TestContainer(container)
            >>> mock_db = MockDatabase()
            >>> test_container.mock_singleton(DatabaseConnection, mock_db)
            >>> assert test_container.resolve(UserService).db is mock_db
        """
        return self.override_registration(dependency, lambda c: mock_instance, Scope.SINGLETON)

    def mock_prototype(self, dependency: Union[str, type], factory: Callable[[], Any]) -> List[str]:
        """Replace a component with a mock factory called on every request.

        Example:
            >>> test_container = TestContainer(container)
            >>> test_container.mock_prototype(RequestHandler, lambda: MockRequestHandler())
            >>> assert test_container.resolve(RequestHandler) is not test_container.resolve(RequestHandler)
        """
        return self.override_registration(dependency, lambda c: factory(), Scope.PROTOTYPE)

    def override_registration(
        self, dependency: Union[str, type], builder: Callable[[IContainer], Any], scope: Union[Scope, str]
    ) -> List[str]:
        """Override a component with a custom builder and scope.

        Args:
            dependency: Component name or type to override.
            builder: Receives the container and returns the instance.
            scope: Scope of the overriding component.

        Returns:
            The overridden component names.

        Raises:
            ValueError: If the scope is not a built-in one.

        Example:
            >>> test_container = TestContainer(container)
            >>> test_container.override_registration(
            ...     CacheService,
            ...     lambda c: InMemoryCacheService(),  # Instead of Redis
            ...     Scope.SINGLETON,
            ... )
        """
        scope = Scope(scope)
        component_type = dependency if inspect.isclass(dependency) else None
        names = self._names_to_override(dependency)
        for name in names:
            if self.contains_definition(name):
                self.remove_definition(name)
            self.register_definition(
                name,
                ComponentDefinition(
                    component_type=component_type,
                    instance_supplier=builder,
                    scope=scope.value,
                    synthetic=True,
                    description="test override",
                ),
            )
            self._overrides[name] = scope.value
        return names

    def reset_overrides(self) -> None:
        """Remove all overrides and restore the parent's registrations.

        Useful for cleaning up between test cases.
        """
        overridden = list(self._overrides)
        self._overrides.clear()
        for name in overridden:
            if self.contains_definition(name):
                self.remove_definition(name)
        parent = self._parent_container
        if parent is not None:
            for name in overridden:
                if parent.contains_definition(name):
                    self.register_definition(name, parent.get_definition(name).model_copy())

    def is_overridden(self, name: str) -> bool:
        return name in self._overrides

    def _names_to_override(self, dependency: Union[str, type]) -> List[str]:
        if isinstance(dependency, str):
            return [self.canonical_name(dependency)]
        names = [name for name in self.names_for_type(dependency) if self.contains_definition(name)]
        return names or [self.type_key_name(dependency)]

    def _copy_registrations(self) -> None:
        parent = self._parent_container
        if parent is None:
            return
        for name in parent.definition_names():
            self.register_definition(name, parent.get_definition(name).model_copy())
            for alias in parent.aliases_of(name):
                self.register_alias(name, alias)
        for scope_name in parent.lifetime_manager.scope_names():
            self.register_scope(scope_name, parent.lifetime_manager.get_scope(scope_name))
        self.interceptors.copy_from(parent.interceptors)

    def _adapt(self, instance: Any, name: str, required_type: Optional[type]) -> Any:
        # Test doubles do not have to subclass the type they replace
        if name in self._overrides:
            return instance
        return super()._adapt(instance, name, required_type)

    def _matches_type(self, name: str, merged: MergedDefinition, dependency_type: Any) -> bool:
        if name in self._overrides and inspect.isclass(merged.component_type) and inspect.isclass(dependency_type):
            return issubclass(merged.component_type, dependency_type)
        return super()._matches_type(name, merged, dependency_type)

    def __enter__(self) -> "TestContainer":
        """Context manager entry - returns self."""
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        """Context manager exit - destroy test instances and drop overrides."""
        self.reset_overrides()
        self.clear()
        return False


def create_mock_container(*singletons: Tuple[Union[str, type], Any]) -> TestContainer:
    """Create a test container with pre-configured mock singletons.

    Convenience function for quickly setting up a test container with
    multiple mocked dependencies.

    Args:
        *singletons: Tuples of (component name or type, mock_instance).

    Returns:
        TestContainer with mocked dependencies.

    Example:
        >>> test_container = create_mock_container(
        ...     (DatabaseConnection, MockDatabase()),
        ...     ("cache", MockCache()),
        ... )
    """
    container = TestContainer()

    for dependency, mock_instance in singletons:
        container.mock_singleton(dependency, mock_instance)

    return container


class MockScope:
    """Context manager activating a custom scope for the duration of a test.

    Components of the scope are shared within the block and destroyed on
    exit. Works with any scope offering `activate()` / `deactivate(token)`
    such as `RequestScope`; a `ThreadScope` is cleared on exit instead.

    Example:
        >>> container = DIContainer()
        >>> container.register_scope("request", RequestScope())
        >>> container.register_definition(
        ...     "ctx", ComponentDefinition(component_type=RequestContext, scope="request")
        ... )
        >>>
        >>> with MockScope(container, "request") as scoped:
        ...     assert scoped.get("ctx") is scoped.get("ctx")
        ...
        ... # Request-scoped instances destroyed here
    """

    def __init__(self, container: DIContainer, scope_name: str) -> None:
        """Initialize the mock scope.

        Args:
            container: The container the scope is registered on.
            scope_name: Name of the custom scope to activate.
        """
        self._container = container
        self._scope_name = scope_name
        self._token: Any = None

    def __enter__(self) -> DIContainer:
        """Activate the scope.

        Returns:
            The container, for getting scoped components.

        Raises:
            ScopeError: If no scope is registered under the name.
        """
        scope = self._scope()
        if hasattr(scope, "activate"):
            self._token = scope.activate()
        return self._container

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        """Destroy the scoped instances and deactivate the scope."""
        scope = self._scope()
        if hasattr(scope, "deactivate"):
            scope.deactivate(self._token)
        elif hasattr(scope, "clear"):
            scope.clear()
        self._token = None
        return False

    def _scope(self) -> Any:
        scope = self._container.lifetime_manager.get_scope(self._scope_name)
        if scope is None:
            raise ScopeError(f"No scope registered for scope name '{self._scope_name}'")
        return scope
