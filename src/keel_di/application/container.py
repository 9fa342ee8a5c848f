import collections.abc
import inspect
import logging
import threading
import typing
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, TypeVar, Union

from keel_di.application.circular_detector import CircularCreationDetector
from keel_di.application.collaborators import IdentityEvaluator, ImportTypeLoader
from keel_di.application.constructor_resolver import ConstructorResolver
from keel_di.application.creation import ComponentCreator
from keel_di.application.definition_merger import DefinitionMerger
from keel_di.application.factory_support import FactoryComponentSupport, is_factory_dereference, strip_factory_prefix
from keel_di.application.introspection import Introspector
from keel_di.application.lifecycle import InterceptorRegistry, LifecycleOrchestrator
from keel_di.application.lifetime_manager import LifetimeManager
from keel_di.application.property_populator import PropertyPopulator
from keel_di.application.singleton_registry import SingletonRegistry
from keel_di.application.type_converter import TypeConverter
from keel_di.application.value_resolver import ValueResolver
from keel_di.domain import (
    NULL,
    AmbiguousResolutionError,
    AutowireMode,
    CircularCreationError,
    ComponentDefinition,
    ComponentInterceptor,
    DefinitionOverrideError,
    DependencyDescriptor,
    FactoryComponent,
    IContainer,
    IExpressionEvaluator,
    IIntrospector,
    InterceptorKind,
    InvalidDefinitionError,
    IScope,
    ITypeLoader,
    MergedDefinition,
    NotFoundError,
    Scope,
    SmartInitializingSingleton,
    TypeMismatchError,
    UnsatisfiedDependencyError,
)
from keel_di.settings import EngineSettings

T = TypeVar("T")

logger = logging.getLogger(__name__)

_SEQUENCE_ORIGINS = (list, collections.abc.Sequence, collections.abc.Iterable, collections.abc.Collection)
_SET_ORIGINS = (set, frozenset, collections.abc.Set)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping)


class DIContainer(IContainer):
    """Main dependency injection container.

    Holds component definitions by name and builds, wires and destroys the
    object graph they describe on demand. Singletons are created once and
    shared, prototypes are created on every request, custom scopes decide
    for themselves. Mutually dependent singletons are wired through early
    references of the instance in creation.

    Attributes:
        _settings: Engine settings.
        _parent: Container serving names this one does not define.
        _definitions: Raw definitions by name, in registration order.
        _aliases: Alias to name mapping.
        _created: Names requested at least once.
        _registry: Singleton instances and dependency edges.
        _merger: Merged definitions.
        _lifetime_manager: Scope dispatch.
        _interceptors: Lifecycle interceptors.

    Example:
        >>> container = DIContainer()
        >>> container.register_definition("repo", ComponentDefinition(component_type=Repository))
        >>> container.register_definition(
        ...     "svc", ComponentDefinition(component_type=Service).add_argument(ref("repo"))
        ... )
        >>> assert container.get("svc").repo is container.get("repo")
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        parent: Optional["DIContainer"] = None,
        expression_evaluator: Optional[IExpressionEvaluator] = None,
        type_loader: Optional[ITypeLoader] = None,
        introspector: Optional[IIntrospector] = None,
    ) -> None:
        """Initialize an empty container.

        Args:
            settings: Engine settings; read from the environment when omitted.
                A child container defaults to its parent's settings.
            parent: Container to fall back to for unknown names.
            expression_evaluator: Evaluates literal values (identity by default).
            type_loader: Loads types named by strings (imports by default).
            introspector: Describes constructors and properties.
        """
        if settings is None:
            settings = parent.settings if parent is not None else EngineSettings()
        self._settings = settings
        self._parent = parent

        self._definitions_lock = threading.RLock()
        self._definitions: Dict[str, ComponentDefinition] = {}
        self._aliases: Dict[str, str] = {}
        self._created: Set[str] = set()

        self._expression_evaluator = expression_evaluator or (
            parent.expression_evaluator if parent is not None else IdentityEvaluator()
        )
        self._type_loader = type_loader or (parent.type_loader if parent is not None else ImportTypeLoader())
        self._introspector = introspector or (parent.introspector if parent is not None else Introspector())
        self._converter = TypeConverter(self._type_loader)

        self._registry = SingletonRegistry()
        self._detector = CircularCreationDetector()
        self._lifetime_manager = LifetimeManager(self._registry, self._detector)
        self._interceptors = InterceptorRegistry()
        self._merger = DefinitionMerger(
            self._find_definition,
            self._settings,
            parent=self._parent_merged_definition if parent is not None else None,
            canonical_name=self.canonical_name,
        )
        self._lifecycle = LifecycleOrchestrator(self)
        self._factory_support = FactoryComponentSupport(self._registry, self._lifecycle.apply_after_initialization)
        self._value_resolver = ValueResolver(self)
        self._constructor_resolver = ConstructorResolver(self)
        self._property_populator = PropertyPopulator(self)
        self._creator = ComponentCreator(self)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def parent(self) -> Optional["DIContainer"]:
        return self._parent

    @property
    def expression_evaluator(self) -> IExpressionEvaluator:
        return self._expression_evaluator

    @expression_evaluator.setter
    def expression_evaluator(self, evaluator: IExpressionEvaluator) -> None:
        self._expression_evaluator = evaluator

    @property
    def type_loader(self) -> ITypeLoader:
        return self._type_loader

    @type_loader.setter
    def type_loader(self, loader: ITypeLoader) -> None:
        self._type_loader = loader
        self._converter = TypeConverter(loader)

    @property
    def introspector(self) -> IIntrospector:
        return self._introspector

    @property
    def converter(self) -> TypeConverter:
        return self._converter

    @property
    def registry(self) -> SingletonRegistry:
        return self._registry

    @property
    def merger(self) -> DefinitionMerger:
        return self._merger

    @property
    def interceptors(self) -> InterceptorRegistry:
        return self._interceptors

    @property
    def lifetime_manager(self) -> LifetimeManager:
        return self._lifetime_manager

    @property
    def lifecycle(self) -> LifecycleOrchestrator:
        return self._lifecycle

    @property
    def factory_support(self) -> FactoryComponentSupport:
        return self._factory_support

    @property
    def value_resolver(self) -> ValueResolver:
        return self._value_resolver

    @property
    def constructor_resolver(self) -> ConstructorResolver:
        return self._constructor_resolver

    @property
    def property_populator(self) -> PropertyPopulator:
        return self._property_populator

    @property
    def creator(self) -> ComponentCreator:
        return self._creator

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_definition(self, name: str, definition: ComponentDefinition) -> None:
        """Register a component definition under a name.

        Args:
            name: The component name.
            definition: The raw definition. It should not be modified once
                the component was requested.

        Raises:
            InvalidDefinitionError: If the name is empty.
            DefinitionOverrideError: If the name is taken and overriding is disabled.
        """
        if not name:
            raise InvalidDefinitionError("Component name must not be empty")
        with self._definitions_lock:
            existing = self._definitions.get(name)
            if existing is not None:
                if not self._settings.allow_definition_overriding:
                    raise DefinitionOverrideError(
                        f"Cannot register [{definition.describe()}]: there is already [{existing.describe()}] bound",
                        name,
                    )
                logger.warning(
                    "Overriding definition for component '%s': replacing [%s] with [%s]",
                    name,
                    existing.describe(),
                    definition.describe(),
                )
            elif name in self._aliases:
                if not self._settings.allow_definition_overriding:
                    raise DefinitionOverrideError(
                        f"Cannot register definition under alias of component '{self._aliases[name]}'",
                        name,
                    )
                del self._aliases[name]
            self._definitions[name] = definition

        if existing is not None or self._registry.contains_singleton(name):
            self._reset_definition(name, set())

    def remove_definition(self, name: str) -> None:
        """Remove a definition and destroy its singleton instance.

        Raises:
            NotFoundError: If no definition is registered under the name.
        """
        with self._definitions_lock:
            if self._definitions.pop(name, None) is None:
                raise NotFoundError(name)
        self._reset_definition(name, set())

    def contains_definition(self, name: str) -> bool:
        with self._definitions_lock:
            return name in self._definitions

    def get_definition(self, name: str) -> ComponentDefinition:
        """Return the raw definition registered under a name or alias.

        Raises:
            NotFoundError: If no definition is registered locally.
        """
        definition = self._find_definition(self.canonical_name(name))
        if definition is None:
            raise NotFoundError(name)
        return definition

    def definition_names(self) -> List[str]:
        with self._definitions_lock:
            return list(self._definitions)

    def register_alias(self, name: str, alias: str) -> None:
        """Make a component reachable under another name.

        Raises:
            InvalidDefinitionError: If the alias is a component name, points to
                another name while overriding is disabled, or closes a cycle.
        """
        with self._definitions_lock:
            if alias == name:
                self._aliases.pop(alias, None)
                return
            if alias in self._definitions:
                raise InvalidDefinitionError(f"Cannot register alias '{alias}' for name '{name}': a component uses that name")
            existing = self._aliases.get(alias)
            if existing == name:
                return
            if existing is not None and not self._settings.allow_definition_overriding:
                raise InvalidDefinitionError(
                    f"Cannot define alias '{alias}' for name '{name}': it is already registered for name '{existing}'"
                )
            current = name
            while current in self._aliases:
                current = self._aliases[current]
                if current == alias:
                    raise InvalidDefinitionError(
                        f"Cannot register alias '{alias}' for name '{name}': circular reference - "
                        f"'{name}' is a direct or indirect alias for '{alias}' already"
                    )
            self._aliases[alias] = name
        logger.debug("Alias '%s' registered for component '%s'", alias, name)

    def aliases_of(self, name: str) -> List[str]:
        """Return every alias resolving to a name, directly or transitively."""
        canonical = self.canonical_name(strip_factory_prefix(name))
        with self._definitions_lock:
            return [alias for alias in self._aliases if alias != name and self.canonical_name(alias) == canonical]

    def canonical_name(self, name: str) -> str:
        """Follow aliases to the name a component is registered under."""
        with self._definitions_lock:
            seen: Set[str] = set()
            while name in self._aliases and name not in seen:
                seen.add(name)
                name = self._aliases[name]
            return name

    def transformed_name(self, name: str) -> str:
        return self.canonical_name(strip_factory_prefix(name))

    def register_singletons(self, dependencies: Dict[Union[str, type], Callable[[IContainer], Any]]) -> None:
        """Register multiple singleton components built by supplier functions.

        Args:
            dependencies: Maps a component name or type to a builder. Each
                builder receives the container and returns the instance.

        Example:
            >>> container.register_singletons({
            ...     DatabaseConfig: lambda c: DatabaseConfig.from_env(),
            ...     "connection": lambda c: DatabaseConnection(c.resolve(DatabaseConfig)),
            ... })
        """
        for key, builder in dependencies.items():
            self._register_supplier(key, builder, Scope.SINGLETON)

    def register_prototypes(self, dependencies: Dict[Union[str, type], Callable[[IContainer], Any]]) -> None:
        """Register multiple prototype components built by supplier functions.

        Prototype components are created fresh on each request.

        Example:
            >>> container.register_prototypes({
            ...     RequestHandler: lambda c: RequestHandler(c.resolve(DatabaseConnection)),
            ... })
        """
        for key, builder in dependencies.items():
            self._register_supplier(key, builder, Scope.PROTOTYPE)

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a ready-made instance as a singleton.

        Raises:
            DefinitionOverrideError: If an instance is already bound to the name.
        """
        self._registry.register_singleton(name, instance)

    def register_scope(self, scope_name: str, scope: IScope) -> None:
        self._lifetime_manager.register_scope(scope_name, scope)

    def register_interceptor(self, kind: InterceptorKind, callback: Callable[..., Any]) -> None:
        self._interceptors.register(kind, callback)

    def add_interceptor(self, interceptor: ComponentInterceptor) -> List[InterceptorKind]:
        """Register the hooks a `ComponentInterceptor` subclass overrides."""
        return self._interceptors.add(interceptor)

    @staticmethod
    def type_key_name(dependency_type: type) -> str:
        """Name under which a type key of `register_singletons` is registered."""
        return f"{dependency_type.__module__}.{dependency_type.__qualname__}"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: Any, required_type: Optional[type] = None, *args: Any) -> Any:
        """Return the component registered under a name, or the unique one of a type.

        Args:
            name: A name, an alias, `&name` for a factory component itself, or a type.
            required_type: Type the component must be an instance of.
            *args: Explicit constructor arguments. They force a new instance,
                bypassing the singleton cache.

        Returns:
            The component; None when its recipe produced None.

        Raises:
            NotFoundError: If nothing is registered under the name or type.
            TypeMismatchError: If the component is not a `required_type`.
            AmbiguousResolutionError: If several components match a type.
            DIException: Any error raised while creating the component.

        Example:
            >>> service = container.get("service")
            >>> fresh = container.get("report", Report, "2024-01")
        """
        explicit_args = list(args) if args else None
        if not isinstance(name, str):
            return self._get_by_type(name, explicit_args)
        return self._get_by_name(name, required_type, explicit_args)

    def resolve(self, dependency_type: type[T]) -> T:
        """Resolve the unique component of a type.

        Args:
            dependency_type: The type to resolve.

        Returns:
            The matching component.

        Example:
            >>> user_service = container.resolve(UserService)
        """
        return self._get_by_type(dependency_type, None)

    def contains(self, name: str) -> bool:
        """Whether a component can be served under the name, here or in a parent."""
        canonical = self.transformed_name(name)
        if self._registry.contains_singleton(canonical) or self.contains_definition(canonical):
            return True
        return self._parent is not None and self._parent.contains(name)

    def is_singleton(self, name: str) -> bool:
        """Whether `get(name)` always returns the same instance.

        Raises:
            NotFoundError: If the name is unknown.
        """
        canonical = self.transformed_name(name)
        dereference = is_factory_dereference(name)
        if self._registry.contains_singleton(canonical):
            instance = self._registry.get_singleton(canonical)
            if isinstance(instance, FactoryComponent) and not dereference:
                return instance.is_singleton()
            return True
        if not self.contains_definition(canonical) and self._parent is not None:
            return self._parent.is_singleton(name)
        merged = self._merger.get_merged_definition(canonical)
        if not merged.is_singleton:
            return False
        if not dereference and self._is_factory_definition(canonical, merged):
            return self.get("&" + canonical).is_singleton()
        return True

    def is_prototype(self, name: str) -> bool:
        """Whether `get(name)` always returns a new instance.

        Raises:
            NotFoundError: If the name is unknown.
        """
        canonical = self.transformed_name(name)
        dereference = is_factory_dereference(name)
        if self._registry.contains_singleton(canonical):
            instance = self._registry.get_singleton(canonical)
            return isinstance(instance, FactoryComponent) and not dereference and not instance.is_singleton()
        if not self.contains_definition(canonical) and self._parent is not None:
            return self._parent.is_prototype(name)
        merged = self._merger.get_merged_definition(canonical)
        if merged.is_prototype:
            return True
        if merged.is_singleton and not dereference and self._is_factory_definition(canonical, merged):
            return not self.get("&" + canonical).is_singleton()
        return False

    def get_type(self, name: str) -> Optional[type]:
        """Return the type `get(name)` would return, without creating it when possible.

        Raises:
            NotFoundError: If the name is unknown.
        """
        canonical = self.transformed_name(name)
        dereference = is_factory_dereference(name)
        if self._registry.contains_singleton(canonical):
            instance = self._registry.get_singleton(canonical)
            if isinstance(instance, FactoryComponent) and not dereference:
                return FactoryComponentSupport.object_type(instance)
            return None if instance is NULL else type(instance)
        if not self.contains_definition(canonical) and self._parent is not None:
            return self._parent.get_type(name)
        merged = self._merger.get_merged_definition(canonical)
        predicted = self.predict_type(canonical, merged)
        if predicted is not None and issubclass(predicted, FactoryComponent) and not dereference:
            return FactoryComponentSupport.object_type(predicted)
        return predicted

    def names_for_type(self, dependency_type: type, include_non_singletons: bool = True) -> List[str]:
        """Return the names of local components matching a type.

        Factory components match by the type they produce. Abstract
        definitions never match.

        Args:
            dependency_type: The type to match.
            include_non_singletons: Whether prototype and custom-scoped
                components are included.
        """
        names: List[str] = []
        for name in self.definition_names():
            try:
                merged = self._merger.get_merged_definition(name)
            except (InvalidDefinitionError, NotFoundError) as e:
                logger.debug("Ignoring component '%s' during type matching: %s", name, e)
                continue
            if merged.abstract:
                continue
            if not include_non_singletons and not merged.is_singleton:
                continue
            if self._matches_type(name, merged, dependency_type):
                names.append(name)

        for name in self._registry.singleton_names():
            if name in names or self.contains_definition(name):
                continue
            if self._instance_matches(self._registry.get_singleton(name), dependency_type):
                names.append(name)
        return names

    def components_of_type(self, dependency_type: type, include_non_singletons: bool = True) -> Dict[str, Any]:
        """Return the components matching a type, by name."""
        return {name: self.get(name) for name in self.names_for_type(dependency_type, include_non_singletons)}

    def resolve_dependency(
        self,
        descriptor: DependencyDescriptor,
        requesting_name: Optional[str] = None,
        autowired_names: Optional[List[str]] = None,
    ) -> Any:
        """Resolve an injection point by type.

        `Optional[X]` makes the dependency non-required. Lists, sets, tuples
        and `Dict[str, X]` collect every component of `X`. Among several
        candidates the primary one wins, then the one named like the
        injection point.

        Args:
            descriptor: The injection point.
            requesting_name: Component being injected; it is never injected into itself.
            autowired_names: Receives the names of the injected components.

        Returns:
            The dependency, or None when it is not required and has no candidate.

        Raises:
            UnsatisfiedDependencyError: If a required dependency has no candidate.
            AmbiguousResolutionError: If several candidates remain.
        """
        dependency_type = self._converter.resolve_type(descriptor.dependency_type)
        required = descriptor.required
        inner = _optional_inner(dependency_type)
        if inner is not None:
            dependency_type, required = inner, False

        collected = self._resolve_multiple(descriptor, dependency_type, required, requesting_name, autowired_names)
        if collected is not None:
            return collected

        if not inspect.isclass(dependency_type):
            raise UnsatisfiedDependencyError(
                f"Cannot autowire type [{dependency_type!r}]: only classes and collections of classes are supported",
                descriptor.describe(),
                requesting_name,
            )

        candidates = self._autowire_candidates(dependency_type, requesting_name)
        if not candidates:
            if required:
                raise UnsatisfiedDependencyError(
                    f"No qualifying component of type [{dependency_type.__qualname__}] available: "
                    "expected at least 1 component which qualifies as autowire candidate",
                    descriptor.describe(),
                    requesting_name,
                )
            return None

        chosen = candidates[0]
        if len(candidates) > 1:
            determined = self._determine_candidate(candidates, descriptor.name, requesting_name)
            if determined is None:
                raise AmbiguousResolutionError(
                    f"No qualifying component of type [{dependency_type.__qualname__}] available: "
                    f"expected single matching component but found {len(candidates)}",
                    candidates,
                    requesting_name,
                )
            chosen = determined

        if autowired_names is not None:
            autowired_names.append(chosen)
        return self.get(chosen)

    # ------------------------------------------------------------------
    # Ad-hoc creation
    # ------------------------------------------------------------------

    def create(self, definition_or_type: Union[ComponentDefinition, type]) -> Any:
        """Build an unregistered component through the full pipeline.

        A bare type is autowired through its constructor. The result is a
        prototype: it is neither cached nor tracked for disposal.

        Example:
            >>> handler = container.create(RequestHandler)
        """
        if isinstance(definition_or_type, ComponentDefinition):
            definition = definition_or_type.model_copy()
        else:
            definition = ComponentDefinition(component_type=definition_or_type, autowire_mode=AutowireMode.CONSTRUCTOR)
        name = self._ad_hoc_name(definition.component_type)
        merged = self._merger.merge(name, definition)
        merged.scope = Scope.PROTOTYPE.value
        with self._detector.guard(name):
            instance = self._creator.create_component(name, merged)
        return None if instance is NULL else instance

    def autowire_instance(self, instance: Any, mode: AutowireMode = AutowireMode.BY_TYPE) -> Any:
        """Wire the properties of an existing object and initialize it.

        Returns:
            The initialized object, possibly wrapped by interceptors.
        """
        name = self._ad_hoc_name(type(instance))
        merged = MergedDefinition(component_type=type(instance), autowire_mode=mode, scope=Scope.PROTOTYPE.value)
        self._property_populator.populate(name, merged, instance)
        return self._lifecycle.initialize(name, instance, merged)

    # ------------------------------------------------------------------
    # Eager initialization and destruction
    # ------------------------------------------------------------------

    def preinstantiate_singletons(self) -> None:
        """Create every non-lazy singleton, then notify `SmartInitializingSingleton`s.

        Factory components are created themselves; their product stays lazy.
        """
        names = self.definition_names()
        for name in names:
            merged = self._merger.get_merged_definition(name)
            if merged.abstract or not merged.is_singleton or merged.lazy_init:
                continue
            if self._is_factory_definition(name, merged):
                self.get("&" + name)
            else:
                self.get(name)

        for name in names:
            instance = self._registry.get_singleton(name)
            if isinstance(instance, SmartInitializingSingleton):
                logger.debug("Invoking after_singletons_instantiated() on component '%s'", name)
                instance.after_singletons_instantiated()

    def destroy(self, name: str) -> None:
        """Destroy a singleton after every component depending on it."""
        canonical = self.transformed_name(name)
        self._factory_support.remove(canonical)
        self._registry.destroy_singleton(canonical)

    def destroy_all(self) -> None:
        """Destroy every singleton, most recently registered first."""
        self._factory_support.clear()
        self._registry.destroy_singletons()

    def destroy_instance(self, name: str, instance: Any) -> None:
        """Run the destruction callbacks of an untracked instance, such as a prototype."""
        canonical = self.transformed_name(name)
        merged = self._merger.get_merged_definition(canonical) if self.contains_definition(canonical) else None
        self._lifecycle.destroy_instance(canonical, instance, merged)

    def clear(self) -> None:
        """Destroy all singletons and drop every registration.

        Useful for testing or resetting the container state.
        """
        self.destroy_all()
        with self._definitions_lock:
            self._definitions.clear()
            self._aliases.clear()
            self._created.clear()
        self._merger.clear_all()
        self._detector.clear()

    def create_child(self) -> "DIContainer":
        """Create a child container that falls back to this one.

        The child shares settings and collaborators but keeps its own
        definitions, singletons and interceptors.

        Example:
            >>> with container.create_child() as child:
            ...     child.register_definition("request", ComponentDefinition(component_type=Request))
            ...     child.get("config") is container.get("config")
            True
        """
        return DIContainer(
            settings=self._settings,
            parent=self,
            expression_evaluator=self._expression_evaluator,
            type_loader=self._type_loader,
            introspector=self._introspector,
        )

    def __enter__(self) -> "DIContainer":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        self.destroy_all()
        return False

    # ------------------------------------------------------------------
    # Support for the creation pipeline
    # ------------------------------------------------------------------

    def register_dependent_component(self, name: str, dependent: str) -> None:
        """Record that `dependent` holds a reference to the component `name`."""
        self._registry.register_dependent(self.transformed_name(name), dependent)

    def was_created(self, name: str) -> bool:
        with self._definitions_lock:
            return name in self._created

    def is_name_in_use(self, name: str) -> bool:
        with self._definitions_lock:
            if name in self._aliases or name in self._definitions:
                return True
        return self._registry.has_dependents(name)

    def load_component_type(self, name: str, merged: MergedDefinition) -> Optional[type]:
        """Return the declared component class, loading it when given by name."""
        component_type = merged.component_type
        if component_type is None:
            return None
        if isinstance(component_type, str):
            try:
                return self._type_loader.load(component_type)
            except InvalidDefinitionError as e:
                raise e.add_context(name)
        return component_type

    def predict_type(self, name: str, merged: MergedDefinition) -> Optional[type]:
        """Predict the class of the raw instance a merged definition creates."""
        cached = merged.cache.resolved_type
        if cached is not None:
            return cached
        try:
            if merged.factory_method_name:
                predicted = self._factory_method_type(name, merged)
            else:
                predicted = self.load_component_type(name, merged)
        except (InvalidDefinitionError, NotFoundError) as e:
            logger.debug("Cannot predict type of component '%s': %s", name, e)
            return None
        if inspect.isclass(predicted):
            merged.cache.resolved_type = predicted
            return predicted
        return None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_by_name(self, requested: str, required_type: Optional[type], explicit_args: Optional[List[Any]]) -> Any:
        name = self.transformed_name(requested)

        shared = self._registry.get_singleton(name) if explicit_args is None else None
        if shared is not None:
            if self._registry.is_currently_in_creation(name):
                logger.debug(
                    "Returning eagerly cached instance of singleton '%s' that is not fully initialized yet - "
                    "a consequence of a circular reference",
                    name,
                )
            merged = self._merger.get_merged_definition(name) if self.contains_definition(name) else None
            instance = self._factory_support.object_for_instance(shared, requested, name, merged)
            return self._adapt(instance, name, required_type)

        if not self.contains_definition(name) and self._parent is not None:
            prefix = "&" if is_factory_dereference(requested) else ""
            return self._parent._get_by_name(prefix + name, required_type, explicit_args)

        self._mark_created(name)
        merged = self._merger.get_merged_definition(name)
        if merged.abstract:
            raise InvalidDefinitionError("Component definition is abstract", name)
        self._initialize_depends_on(name, merged)

        if explicit_args is not None:
            with self._detector.guard(name):
                instance = self._creator.create_component(name, merged, explicit_args)
        elif merged.is_singleton:
            instance = self._lifetime_manager.get_or_create(name, merged, lambda: self._create_singleton(name, merged))
        else:
            instance = self._lifetime_manager.get_or_create(
                name, merged, lambda: self._creator.create_component(name, merged)
            )

        instance = self._factory_support.object_for_instance(instance, requested, name, merged)
        return self._adapt(instance, name, required_type)

    def _create_singleton(self, name: str, merged: MergedDefinition) -> Any:
        try:
            return self._creator.create_component(name, merged)
        except BaseException:
            # Components that captured an early reference go as well
            self._registry.destroy_singleton(name)
            raise

    def _get_by_type(self, dependency_type: Any, explicit_args: Optional[List[Any]]) -> Any:
        dependency_type = self._converter.resolve_type(dependency_type)
        type_name = getattr(dependency_type, "__qualname__", repr(dependency_type))
        names = self.names_for_type(dependency_type)
        if len(names) > 1:
            names = [name for name in names if self._is_autowire_candidate(name)]

        if len(names) == 1:
            return self._get_by_name(names[0], dependency_type, explicit_args)
        if len(names) > 1:
            chosen = self._determine_candidate(names, None, None)
            if chosen is None:
                raise AmbiguousResolutionError(
                    f"No qualifying component of type [{type_name}] available: "
                    f"expected single matching component but found {len(names)}",
                    names,
                )
            return self._get_by_name(chosen, dependency_type, explicit_args)

        if self._parent is not None:
            return self._parent._get_by_type(dependency_type, explicit_args)
        raise NotFoundError(type_name, f"No qualifying component of type [{type_name}] available")

    def _adapt(self, instance: Any, name: str, required_type: Optional[type]) -> Any:
        if instance is NULL or instance is None:
            return None
        if required_type is not None and inspect.isclass(required_type) and not isinstance(instance, required_type):
            raise TypeMismatchError(
                f"Component named '{name}' is expected to be of type [{required_type.__qualname__}] "
                f"but was actually of type [{type(instance).__qualname__}]",
                name,
            )
        return instance

    def _mark_created(self, name: str) -> None:
        if name in self._created:
            return
        with self._definitions_lock:
            if name not in self._created:
                # Re-merge once, in case the definition changed before first use
                self._merger.mark_stale(name)
                self._created.add(name)

    def _initialize_depends_on(self, name: str, merged: MergedDefinition) -> None:
        for dependency in merged.depends_on:
            if self._registry.is_dependent(name, dependency):
                raise CircularCreationError(
                    name,
                    [name, dependency],
                    detail=f"Circular depends-on relationship between '{name}' and '{dependency}'",
                )
            self._registry.register_dependent(self.transformed_name(dependency), name)
            try:
                self.get(dependency)
            except NotFoundError as e:
                raise UnsatisfiedDependencyError(
                    f"Component depends on missing component '{dependency}'", "depends-on", name
                ) from e

    def _register_supplier(self, key: Union[str, type], builder: Callable[[IContainer], Any], scope: Scope) -> None:
        if isinstance(key, str):
            name, component_type = key, None
        else:
            name, component_type = self.type_key_name(key), key
        self.register_definition(
            name,
            ComponentDefinition(component_type=component_type, instance_supplier=builder, scope=scope.value),
        )

    def _reset_definition(self, name: str, visited: Set[str]) -> None:
        visited.add(name)
        self._merger.clear(name)
        self._factory_support.remove(name)
        self._registry.destroy_singleton(name)
        with self._definitions_lock:
            children = [
                child
                for child, definition in self._definitions.items()
                if definition.parent_name == name and child not in visited
            ]
        for child in children:
            self._reset_definition(child, visited)

    def _find_definition(self, name: str) -> Optional[ComponentDefinition]:
        with self._definitions_lock:
            return self._definitions.get(name)

    def _parent_merged_definition(self, name: str) -> MergedDefinition:
        parent = self._parent
        while parent is not None:
            canonical = parent.canonical_name(name)
            if parent.contains_definition(canonical):
                return parent.merger.get_merged_definition(canonical)
            parent = parent.parent
        raise NotFoundError(name)

    def _factory_method_type(self, name: str, merged: MergedDefinition) -> Optional[type]:
        cache = merged.cache
        if cache.factory_method_return_type is not None:
            return cache.factory_method_return_type
        factory_name = merged.factory_component_name
        if factory_name:
            if factory_name == name:
                return None
            factory_type = self.get_type("&" + factory_name)
            static = False
        else:
            factory_type = self.load_component_type(name, merged)
            static = True
        if not inspect.isclass(factory_type):
            return None
        candidates = self._introspector.describe_factory_methods(factory_type, merged.factory_method_name, static)
        return_types = {candidate.return_type for candidate in candidates}
        if len(return_types) != 1:
            return None
        return_type = return_types.pop()
        if inspect.isclass(return_type):
            cache.factory_method_return_type = return_type
            return return_type
        return None

    def _is_factory_definition(self, name: str, merged: MergedDefinition) -> bool:
        cached = merged.cache.is_factory_component
        if cached is not None:
            return cached
        predicted = self.predict_type(name, merged)
        if predicted is None:
            return False
        merged.cache.is_factory_component = issubclass(predicted, FactoryComponent)
        return merged.cache.is_factory_component

    def _matches_type(self, name: str, merged: MergedDefinition, dependency_type: Any) -> bool:
        if dependency_type is object or dependency_type is Any:
            return True
        if self._registry.contains_singleton(name):
            return self._instance_matches(self._registry.get_singleton(name), dependency_type)
        predicted = self.predict_type(name, merged)
        if self._is_factory_definition(name, merged):
            predicted = FactoryComponentSupport.object_type(predicted)
        return inspect.isclass(predicted) and inspect.isclass(dependency_type) and issubclass(predicted, dependency_type)

    @staticmethod
    def _instance_matches(instance: Any, dependency_type: Any) -> bool:
        if instance is NULL or instance is None or not inspect.isclass(dependency_type):
            return False
        if isinstance(instance, FactoryComponent):
            produced = FactoryComponentSupport.object_type(instance)
            return inspect.isclass(produced) and issubclass(produced, dependency_type)
        return isinstance(instance, dependency_type)

    def _is_autowire_candidate(self, name: str) -> bool:
        if self.contains_definition(name):
            try:
                return self._merger.get_merged_definition(name).autowire_candidate
            except InvalidDefinitionError:
                return False
        if self._parent is not None and self._parent.contains(name):
            return self._parent._is_autowire_candidate(name)
        return True

    def _is_primary(self, name: str) -> bool:
        if self.contains_definition(name):
            return self._merger.get_merged_definition(name).primary
        if self._parent is not None and not self._registry.contains_singleton(name):
            return self._parent._is_primary(name)
        return False

    def _candidate_names(self, dependency_type: type) -> List[str]:
        names = self.names_for_type(dependency_type)
        if self._parent is not None:
            names += [name for name in self._parent._candidate_names(dependency_type) if not self.contains(name)]
        return names

    def _autowire_candidates(self, dependency_type: type, requesting_name: Optional[str]) -> List[str]:
        return [
            name
            for name in self._candidate_names(dependency_type)
            if name != requesting_name and self._is_autowire_candidate(name)
        ]

    def _determine_candidate(
        self, candidates: List[str], slot_name: Optional[str], requesting_name: Optional[str]
    ) -> Optional[str]:
        primaries = [name for name in candidates if self._is_primary(name)]
        if len(primaries) > 1:
            raise AmbiguousResolutionError("More than one 'primary' component found among candidates", primaries, requesting_name)
        if primaries:
            return primaries[0]
        if slot_name:
            for name in candidates:
                if name == slot_name or slot_name in self.aliases_of(name):
                    return name
        return None

    def _resolve_multiple(
        self,
        descriptor: DependencyDescriptor,
        dependency_type: Any,
        required: bool,
        requesting_name: Optional[str],
        autowired_names: Optional[List[str]],
    ) -> Optional[Any]:
        origin = typing.get_origin(dependency_type)
        arguments = typing.get_args(dependency_type)
        if origin is None:
            return None

        if origin in _MAPPING_ORIGINS:
            if len(arguments) != 2 or arguments[0] is not str:
                return None
            element_type, build = arguments[1], dict
        elif origin is tuple:
            if len(arguments) != 2 or arguments[1] is not Ellipsis:
                return None
            element_type, build = arguments[0], tuple
        elif origin in _SET_ORIGINS:
            element_type, build = (arguments[0] if arguments else object), set
        elif origin in _SEQUENCE_ORIGINS:
            element_type, build = (arguments[0] if arguments else object), list
        else:
            return None

        names = self._autowire_candidates(element_type, requesting_name)
        if not names and required:
            raise UnsatisfiedDependencyError(
                f"No qualifying component of type [{getattr(element_type, '__qualname__', element_type)}] available "
                "for collection injection",
                descriptor.describe(),
                requesting_name,
            )
        components: List[Tuple[str, Any]] = [(name, self.get(name)) for name in names]
        if autowired_names is not None:
            autowired_names.extend(names)
        if build is dict:
            return dict(components)
        return build(instance for _, instance in components)

    @staticmethod
    def _ad_hoc_name(component_type: Any) -> str:
        type_name = getattr(component_type, "__qualname__", str(component_type))
        return f"{type_name}#{id(object()):x}"


def _optional_inner(dependency_type: Any) -> Optional[Any]:
    if typing.get_origin(dependency_type) is not Union:
        return None
    arguments = [arg for arg in typing.get_args(dependency_type) if arg is not type(None)]
    if len(arguments) == 1 and len(typing.get_args(dependency_type)) == 2:
        return arguments[0]
    return None
