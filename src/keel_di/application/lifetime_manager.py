import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from keel_di.application.circular_detector import CircularCreationDetector
from keel_di.application.singleton_registry import SingletonRegistry
from keel_di.domain import IScope, MergedDefinition, Scope, ScopeError

logger = logging.getLogger(__name__)


class LifetimeManager:
    """Dispatches instance creation to the storage of the definition's scope.

    Singletons are kept by the singleton registry, prototypes are never kept,
    and custom-scoped instances live in the store of their registered scope.

    Attributes:
        _registry: Singleton storage.
        _detector: Cycle detection for non-singletons.
        _scopes: Custom scopes by name.
    """

    def __init__(self, registry: SingletonRegistry, detector: CircularCreationDetector) -> None:
        """Initialize the lifetime manager.

        Args:
            registry: Singleton registry of the owning container.
            detector: Cycle detector shared by prototype and custom scopes.
        """
        self._registry = registry
        self._detector = detector
        self._scopes: Dict[str, IScope] = {}
        self._lock = threading.Lock()

    def get_or_create(self, name: str, merged: MergedDefinition, recipe: Callable[[], Any]) -> Any:
        """Get the existing instance or create a new one according to the scope.

        Args:
            name: The component name.
            merged: The merged definition, which carries the scope.
            recipe: Builds a new, fully initialized instance.

        Returns:
            Instance according to scope rules:
            - Singleton: The registry's shared instance, created once
            - Prototype: Always a new instance
            - Custom: Whatever the scope's store holds for the name

        Raises:
            ScopeError: If the scope name was never registered.
            CircularCreationError: If a non-singleton is already being
                created by the current thread.
        """
        if merged.is_singleton:
            return self._registry.get_or_create_singleton(name, recipe)

        if merged.is_prototype:
            with self._detector.guard(name):
                return recipe()

        scope = self.get_scope(merged.scope)
        if scope is None:
            raise ScopeError(f"No scope registered for scope name '{merged.scope}'", name)

        def scoped_recipe() -> Any:
            with self._detector.guard(name):
                return recipe()

        return scope.get(name, scoped_recipe)

    def register_scope(self, scope_name: str, scope: IScope) -> None:
        """Register a custom scope under a name.

        Raises:
            ScopeError: If the name is one of the built-in scopes.
        """
        if scope_name in (Scope.SINGLETON.value, Scope.PROTOTYPE.value):
            raise ScopeError(f"Cannot replace the built-in '{scope_name}' scope")
        with self._lock:
            previous = self._scopes.get(scope_name)
            self._scopes[scope_name] = scope
        if previous is not None and previous is not scope:
            logger.debug("Replacing scope '%s' [%r] with [%r]", scope_name, previous, scope)

    def get_scope(self, scope_name: str) -> Optional[IScope]:
        with self._lock:
            return self._scopes.get(scope_name)

    def scope_names(self) -> List[str]:
        with self._lock:
            return list(self._scopes)
