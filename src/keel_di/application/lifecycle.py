"""Application layer - Lifecycle callbacks around construction and disposal."""

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from keel_di.domain import (
    INFERRED_METHOD,
    NULL,
    ComponentCreationError,
    ComponentInterceptor,
    DIException,
    DisposableComponent,
    InitializationFailedError,
    InitializingComponent,
    InterceptorKind,
    InvalidDefinitionError,
    MergedDefinition,
    NameAware,
    RegistryAware,
    ScopeError,
)

if TYPE_CHECKING:
    from keel_di.application.container import DIContainer

logger = logging.getLogger(__name__)

_HOOKS: Dict[InterceptorKind, str] = {
    InterceptorKind.BEFORE_INSTANTIATION: "before_instantiation",
    InterceptorKind.MERGED_DEFINITION: "post_process_merged_definition",
    InterceptorKind.EARLY_REFERENCE: "get_early_reference",
    InterceptorKind.AFTER_INSTANTIATION: "after_instantiation",
    InterceptorKind.PROPERTY_VALUES: "process_property_values",
    InterceptorKind.BEFORE_INITIALIZATION: "before_initialization",
    InterceptorKind.AFTER_INITIALIZATION: "after_initialization",
    InterceptorKind.BEFORE_DESTRUCTION: "before_destruction",
}

_INFERRED_CANDIDATES = ("close", "shutdown")


class InterceptorRegistry:
    """Ordered interceptor callbacks per extension point.

    Attributes:
        _callbacks: Callbacks by kind, in registration order.
        _destruction_filters: `requires_destruction` of interceptor objects,
            keyed by their registered `before_destruction` callback.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: Dict[InterceptorKind, List[Callable[..., Any]]] = {kind: [] for kind in InterceptorKind}
        self._destruction_filters: Dict[Callable[..., Any], Callable[[Any], bool]] = {}

    def register(self, kind: InterceptorKind, callback: Callable[..., Any]) -> None:
        """Append a callback to an extension point.

        Args:
            kind: The extension point.
            callback: Callable with the signature of the matching
                `ComponentInterceptor` hook.
        """
        with self._lock:
            self._callbacks[InterceptorKind(kind)].append(callback)

    def add(self, interceptor: ComponentInterceptor) -> List[InterceptorKind]:
        """Register every hook a `ComponentInterceptor` subclass overrides.

        Returns:
            The kinds the interceptor was registered for.
        """
        registered: List[InterceptorKind] = []
        for kind, hook in _HOOKS.items():
            if getattr(type(interceptor), hook) is getattr(ComponentInterceptor, hook):
                continue
            callback = getattr(interceptor, hook)
            self.register(kind, callback)
            registered.append(kind)
            if kind is InterceptorKind.BEFORE_DESTRUCTION:
                with self._lock:
                    self._destruction_filters[callback] = interceptor.requires_destruction
        return registered

    def get(self, kind: InterceptorKind) -> List[Callable[..., Any]]:
        """Return a snapshot of the callbacks of a kind."""
        with self._lock:
            return list(self._callbacks[kind])

    def has(self, kind: InterceptorKind) -> bool:
        with self._lock:
            return bool(self._callbacks[kind])

    def requires_destruction(self, callback: Callable[..., Any], instance: Any) -> bool:
        """Whether a `BEFORE_DESTRUCTION` callback applies to an instance."""
        with self._lock:
            accepts = self._destruction_filters.get(callback)
        return accepts is None or bool(accepts(instance))

    def destruction_callbacks_for(self, instance: Any) -> List[Callable[..., Any]]:
        return [
            callback
            for callback in self.get(InterceptorKind.BEFORE_DESTRUCTION)
            if self.requires_destruction(callback, instance)
        ]

    def copy_from(self, other: "InterceptorRegistry") -> None:
        """Append every callback of another registry, keeping its destruction filters."""
        with other._lock:
            callbacks = {kind: list(registered) for kind, registered in other._callbacks.items()}
            filters = dict(other._destruction_filters)
        with self._lock:
            for kind, registered in callbacks.items():
                self._callbacks[kind].extend(registered)
            self._destruction_filters.update(filters)

    def clear(self) -> None:
        with self._lock:
            for callbacks in self._callbacks.values():
                callbacks.clear()
            self._destruction_filters.clear()


class DisposableAdapter(DisposableComponent):
    """Runs every destruction step of one instance.

    Order: `BEFORE_DESTRUCTION` interceptors, `DisposableComponent.destroy()`,
    then the declared (or inferred) destroy method. A failing step is logged
    and does not prevent the following ones.

    Attributes:
        name: The component name.
        instance: The instance to destroy.
    """

    def __init__(
        self,
        name: str,
        instance: Any,
        merged: Optional[MergedDefinition],
        interceptors: InterceptorRegistry,
        enforce_destroy_method: bool = True,
    ) -> None:
        """Initialize the adapter.

        Raises:
            InvalidDefinitionError: If a declared destroy method does not exist
                and `enforce_destroy_method` is set.
        """
        self.name = name
        self.instance = instance
        self._callbacks = interceptors.destruction_callbacks_for(instance)
        self._destroy_method_name = self.destroy_method_for(name, instance, merged, enforce_destroy_method)

    @staticmethod
    def destroy_method_for(
        name: str, instance: Any, merged: Optional[MergedDefinition], enforce: bool = True
    ) -> Optional[str]:
        """Return the destroy method to call on an instance, if any."""
        declared = merged.destroy_method_name if merged is not None else None
        if not declared:
            return None
        if declared == INFERRED_METHOD:
            if isinstance(instance, DisposableComponent):
                return None
            for candidate in _INFERRED_CANDIDATES:
                if callable(getattr(instance, candidate, None)):
                    return candidate
            return None
        if isinstance(instance, DisposableComponent) and declared == "destroy":
            return None
        if not callable(getattr(instance, declared, None)):
            if enforce:
                raise InvalidDefinitionError(
                    f"Could not find a destroy method named '{declared}' on component with name '{name}'",
                    name,
                )
            logger.debug("No destroy method '%s' on component '%s'", declared, name)
            return None
        return declared

    @classmethod
    def has_destruction(
        cls, name: str, instance: Any, merged: Optional[MergedDefinition], interceptors: InterceptorRegistry
    ) -> bool:
        """Whether disposing the instance would do anything."""
        if instance is NULL or instance is None:
            return False
        if isinstance(instance, DisposableComponent):
            return True
        declared = merged.destroy_method_name if merged is not None else None
        if declared and (declared != INFERRED_METHOD or cls.destroy_method_for(name, instance, merged, False)):
            return True
        return bool(interceptors.destruction_callbacks_for(instance))

    def destroy(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self.instance, self.name)
            except Exception:
                logger.warning("Destruction interceptor failed on component '%s'", self.name, exc_info=True)

        if isinstance(self.instance, DisposableComponent):
            logger.debug("Invoking destroy() on component '%s'", self.name)
            try:
                self.instance.destroy()
            except Exception:
                logger.warning("Invocation of destroy() failed on component '%s'", self.name, exc_info=True)

        if self._destroy_method_name:
            logger.debug("Invoking destroy method '%s' on component '%s'", self._destroy_method_name, self.name)
            try:
                getattr(self.instance, self._destroy_method_name)()
            except Exception:
                logger.warning(
                    "Invocation of destroy method '%s' failed on component '%s'",
                    self._destroy_method_name,
                    self.name,
                    exc_info=True,
                )


class LifecycleOrchestrator:
    """Drives an instance through the lifecycle callbacks around construction.

    Instantiated -> merged definition processed -> early exposure (singletons
    in a cycle) -> populated -> aware callbacks -> before-initialization
    interceptors -> init callbacks -> after-initialization interceptors ->
    ready, and eventually disposed.

    Attributes:
        _container: The owning container.
    """

    def __init__(self, container: "DIContainer") -> None:
        self._container = container

    @property
    def _interceptors(self) -> InterceptorRegistry:
        return self._container.interceptors

    def before_instantiation(self, name: str, merged: MergedDefinition) -> Optional[Any]:
        """Give interceptors a chance to supply the instance instead of the recipe.

        Returns:
            The substitute (already passed through after-initialization
            interceptors), or None to build normally.
        """
        if merged.cache.before_instantiation_resolved is False:
            return None
        result = None
        if not merged.synthetic and self._interceptors.has(InterceptorKind.BEFORE_INSTANTIATION):
            component_type = self._container.predict_type(name, merged)
            if component_type is not None:
                for callback in self._interceptors.get(InterceptorKind.BEFORE_INSTANTIATION):
                    result = callback(component_type, name)
                    if result is not None:
                        break
                if result is not None:
                    logger.debug("Component '%s' supplied by a before-instantiation interceptor", name)
                    result = self.apply_after_initialization(result, name)
        merged.cache.before_instantiation_resolved = result is not None
        return result

    def apply_merged_definition(self, name: str, merged: MergedDefinition, component_type: Optional[type]) -> None:
        """Run merged-definition interceptors once per merged definition."""
        with merged.lock:
            if merged.cache.post_processed:
                return
            for callback in self._interceptors.get(InterceptorKind.MERGED_DEFINITION):
                try:
                    callback(merged, component_type, name)
                except DIException:
                    raise
                except Exception as e:
                    raise ComponentCreationError(f"Post-processing of merged definition failed: {e}", name) from e
            merged.cache.post_processed = True

    def early_reference(self, name: str, merged: MergedDefinition, instance: Any) -> Any:
        """Return the object exposed to circular dependents of a singleton in creation."""
        exposed = instance
        if not merged.synthetic:
            for callback in self._interceptors.get(InterceptorKind.EARLY_REFERENCE):
                exposed = callback(exposed, name)
        return exposed

    def initialize(self, name: str, instance: Any, merged: Optional[MergedDefinition] = None) -> Any:
        """Run aware callbacks, init callbacks and the initialization interceptors.

        Args:
            name: The component name.
            instance: The populated instance.
            merged: The merged definition, None for foreign objects.

        Returns:
            The instance to expose, possibly wrapped by interceptors.

        Raises:
            InitializationFailedError: If an init callback raises.
            InvalidDefinitionError: If the declared init method does not exist.
        """
        if instance is NULL:
            return instance
        self._invoke_aware(name, instance)

        intercepted = merged is None or not merged.synthetic
        wrapped = self.apply_before_initialization(instance, name) if intercepted else instance

        try:
            self._invoke_init_methods(name, wrapped, merged)
        except DIException:
            raise
        except Exception as e:
            raise InitializationFailedError(f"Invocation of init method failed: {e}", name) from e

        if intercepted:
            wrapped = self.apply_after_initialization(wrapped, name)
        return wrapped

    def apply_before_initialization(self, instance: Any, name: str) -> Any:
        result = instance
        for callback in self._interceptors.get(InterceptorKind.BEFORE_INITIALIZATION):
            current = callback(result, name)
            if current is None:
                return result
            result = current
        return result

    def apply_after_initialization(self, instance: Any, name: str) -> Any:
        result = instance
        for callback in self._interceptors.get(InterceptorKind.AFTER_INITIALIZATION):
            current = callback(result, name)
            if current is None:
                return result
            result = current
        return result

    def register_disposable_if_necessary(self, name: str, instance: Any, merged: MergedDefinition) -> None:
        """Arrange for the instance to be destroyed together with its scope.

        Prototypes are never tracked. Singletons are destroyed by the singleton
        registry; custom-scoped instances through their scope's callbacks.
        """
        if merged.is_prototype:
            return
        if not DisposableAdapter.has_destruction(name, instance, merged, self._interceptors):
            return
        adapter = DisposableAdapter(
            name,
            instance,
            merged,
            self._interceptors,
            self._container.settings.enforce_destroy_method,
        )
        if merged.is_singleton:
            self._container.registry.register_disposable(name, adapter)
            return
        scope = self._container.lifetime_manager.get_scope(merged.scope)
        if scope is None:
            raise ScopeError(f"No scope registered for scope name '{merged.scope}'", name)
        scope.register_destruction_callback(name, adapter.destroy)

    def destroy_instance(self, name: str, instance: Any, merged: Optional[MergedDefinition]) -> None:
        """Destroy an instance the container does not track, such as a prototype."""
        DisposableAdapter(
            name,
            instance,
            merged,
            self._interceptors,
            self._container.settings.enforce_destroy_method,
        ).destroy()

    def _invoke_aware(self, name: str, instance: Any) -> None:
        if isinstance(instance, NameAware):
            instance.set_component_name(name)
        if isinstance(instance, RegistryAware):
            instance.set_registry(self._container)

    def _invoke_init_methods(self, name: str, instance: Any, merged: Optional[MergedDefinition]) -> None:
        initializing = isinstance(instance, InitializingComponent)
        if initializing:
            logger.debug("Invoking after_properties_set() on component '%s'", name)
            instance.after_properties_set()

        method_name = merged.init_method_name if merged is not None else None
        if not method_name or (initializing and method_name == "after_properties_set"):
            return

        method = getattr(instance, method_name, None)
        if not callable(method):
            if self._container.settings.enforce_init_method:
                raise InvalidDefinitionError(
                    f"Could not find an init method named '{method_name}' on component with name '{name}'",
                    name,
                )
            logger.debug("No init method '%s' on component '%s'", method_name, name)
            return
        logger.debug("Invoking init method '%s' on component '%s'", method_name, name)
        method()
