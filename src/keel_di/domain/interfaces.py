from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, List, Optional

from keel_di.domain.enums import InterceptorKind
from keel_di.domain.models import (
    ComponentDefinition,
    DependencyDescriptor,
    ExecutableCandidate,
    MergedDefinition,
    PropertySpec,
    PropertyValue,
)


class IContainer(ABC):
    """Abstract interface of the component container seen by collaborators."""

    @abstractmethod
    def get(self, name: Any, required_type: Optional[type] = None, *args: Any) -> Any:
        """Return the component registered under a name (or the unique one of a type).

        Args:
            name: Component name, alias, `&name` for a factory component itself, or a type.
            required_type: Type the component must be an instance of.
            *args: Explicit constructor arguments; forces a fresh instance.
        """

    @abstractmethod
    def register_definition(self, name: str, definition: ComponentDefinition) -> None:
        """Register a component definition under a name.

        Args:
            name: The component name.
            definition: The raw definition.
        """

    @abstractmethod
    def contains_definition(self, name: str) -> bool:
        """Whether a definition is registered locally under the name."""

    @abstractmethod
    def register_interceptor(self, kind: InterceptorKind, callback: Callable[..., Any]) -> None:
        """Append an interceptor callback to a lifecycle extension point."""

    @abstractmethod
    def resolve_dependency(self, descriptor: DependencyDescriptor, requesting_name: Optional[str] = None) -> Any:
        """Resolve an injection point by type.

        Args:
            descriptor: The injection point.
            requesting_name: Component being injected, excluded from self-injection.
        """

    @abstractmethod
    def destroy(self, name: str) -> None:
        """Destroy a singleton and everything depending on it."""

    @abstractmethod
    def destroy_all(self) -> None:
        """Destroy every singleton in reverse dependency order."""

    @abstractmethod
    def create_child(self) -> "IContainer":
        """Create a child container that falls back to this one."""


class IScope(ABC):
    """Storage strategy of a custom scope (e.g. per thread, per request)."""

    @abstractmethod
    def get(self, name: str, object_factory: Callable[[], Any]) -> Any:
        """Return the scoped object, creating it through `object_factory` if absent."""

    @abstractmethod
    def remove(self, name: str) -> Optional[Any]:
        """Remove the scoped object and return it, if present."""

    @abstractmethod
    def register_destruction_callback(self, name: str, callback: Callable[[], None]) -> None:
        """Register a callback to run when the scoped object is destroyed."""


class IIntrospector(ABC):
    """Describes how types can be constructed and wired."""

    @abstractmethod
    def describe_constructors(self, component_type: type) -> List[ExecutableCandidate]:
        """Return the constructors of a type."""

    @abstractmethod
    def describe_factory_methods(self, factory_type: type, method_name: str, static: bool) -> List[ExecutableCandidate]:
        """Return the candidates for a named factory method.

        Args:
            factory_type: Class declaring the method.
            method_name: Factory method name.
            static: Only static/class methods when True, only instance methods otherwise.
        """

    @abstractmethod
    def describe_settable_properties(self, component_type: type) -> List[PropertySpec]:
        """Return the properties of a type that can be assigned after construction."""


class IExpressionEvaluator(ABC):
    """Evaluates literal values that may contain expressions."""

    @abstractmethod
    def evaluate(self, text: str, definition: Optional[MergedDefinition] = None) -> Any:
        """Return the value of the literal; returning `text` unchanged means "not an expression"."""


class ITypeLoader(ABC):
    """Loads a type from its name."""

    @abstractmethod
    def load(self, type_name: str) -> type:
        """Return the type for a (dotted) name.

        Raises:
            InvalidDefinitionError: If the type cannot be loaded.
        """


class NameAware(ABC):
    """Implemented by components that want to know their own name."""

    @abstractmethod
    def set_component_name(self, name: str) -> None:
        """Receive the component name before init callbacks run."""


class RegistryAware(ABC):
    """Implemented by components that want a reference to their container."""

    @abstractmethod
    def set_registry(self, registry: IContainer) -> None:
        """Receive the owning container before init callbacks run."""


class InitializingComponent(ABC):
    """Implemented by components that run logic once all properties are set."""

    @abstractmethod
    def after_properties_set(self) -> None:
        """Called after wiring and aware callbacks, before the declared init method."""


class DisposableComponent(ABC):
    """Implemented by components that release resources on shutdown."""

    @abstractmethod
    def destroy(self) -> None:
        """Called when the owning scope destroys the component."""


class FactoryComponent(ABC):
    """A component that produces the object exposed under its name.

    `get(name)` returns `get_object()`; `get("&name")` returns the factory.

    Attributes:
        object_type: Optional class attribute naming the produced type before
            the factory is instantiated.
    """

    object_type: ClassVar[Optional[type]] = None

    @abstractmethod
    def get_object(self) -> Any:
        """Produce the exposed object."""

    def is_singleton(self) -> bool:
        """Whether the produced object is cached and shared."""
        return True


class SmartInitializingSingleton(ABC):
    """Implemented by singletons that run logic once all eager singletons exist."""

    @abstractmethod
    def after_singletons_instantiated(self) -> None:
        """Called at the end of `preinstantiate_singletons`."""


class ComponentInterceptor:
    """Convenience base for interceptors covering several extension points.

    Override only the hooks you need; `DIContainer.add_interceptor` registers
    exactly the overridden ones. Defaults leave the pipeline unchanged.
    """

    def before_instantiation(self, component_type: Optional[type], name: str) -> Optional[Any]:
        """Return a substitute instance to skip normal construction."""
        return None

    def post_process_merged_definition(self, definition: MergedDefinition, component_type: Optional[type], name: str) -> None:
        """Inspect or adjust the merged definition once, right after instantiation."""

    def get_early_reference(self, instance: Any, name: str) -> Any:
        """Return the object exposed to circular dependents before initialization."""
        return instance

    def after_instantiation(self, instance: Any, name: str) -> bool:
        """Return False to skip property wiring."""
        return True

    def process_property_values(self, values: List[PropertyValue], instance: Any, name: str) -> Optional[List[PropertyValue]]:
        """Return the property values to apply, or None to apply nothing."""
        return values

    def before_initialization(self, instance: Any, name: str) -> Optional[Any]:
        """Return the (possibly replaced) instance before init callbacks."""
        return instance

    def after_initialization(self, instance: Any, name: str) -> Optional[Any]:
        """Return the (possibly wrapped) instance after init callbacks."""
        return instance

    def before_destruction(self, instance: Any, name: str) -> None:
        """Release resources held for the instance."""

    def requires_destruction(self, instance: Any) -> bool:
        """Whether `before_destruction` must run for this instance."""
        return True
