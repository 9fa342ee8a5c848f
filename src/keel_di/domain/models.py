import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from keel_di.domain.enums import AutowireMode, DependencyCheck, RecordState, Scope

INFERRED_METHOD = "(inferred)"


class NullInstance:
    """Marker for components whose recipe produced `None`.

    Lets the engine tell "the component is None" apart from "not resolved
    yet". The container hands `None` back to callers.
    """

    _instance: Optional["NullInstance"] = None

    def __new__(cls) -> "NullInstance":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NULL"


NULL = NullInstance()


class ConstructorArgument(BaseModel):
    """One declared constructor or factory-method argument.

    Attributes:
        value: A value descriptor or a plain object.
        index: Position of the argument; `None` makes it a generic argument.
        declared_type: Type the argument must match (class or dotted name).
        name: Parameter name the argument must match.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: Any = Field(..., description="The raw argument value.")
    index: Optional[int] = Field(default=None, ge=0, description="Position of an indexed argument.")
    declared_type: Optional[Any] = Field(default=None, description="Declared parameter type.")
    name: Optional[str] = Field(default=None, description="Declared parameter name.")

    @property
    def is_indexed(self) -> bool:
        return self.index is not None

    def copy_argument(self) -> "ConstructorArgument":
        return ConstructorArgument(value=self.value, index=self.index, declared_type=self.declared_type, name=self.name)


class PropertyValue(BaseModel):
    """A named property value with its conversion cache.

    Once a value has been resolved and converted without depending on
    anything dynamic, the converted value is kept here so repeated creation
    of the same definition can skip evaluation and conversion.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Property name.")
    value: Any = Field(default=None, description="The raw property value.")

    _converted: bool = PrivateAttr(default=False)
    _converted_value: Any = PrivateAttr(default=None)

    @property
    def is_converted(self) -> bool:
        return self._converted

    @property
    def converted_value(self) -> Any:
        return self._converted_value

    def mark_converted(self, value: Any) -> None:
        self._converted_value = value
        self._converted = True

    def copy_value(self) -> "PropertyValue":
        """Copy without the conversion cache."""
        return PropertyValue(name=self.name, value=self.value)


class ComponentDefinition(BaseModel):
    """Declarative, possibly partial description of a component.

    Definitions stay mutable until first use. Fields set explicitly (either in
    the constructor or by assignment) are tracked by pydantic in
    `model_fields_set`; when a definition has a parent, exactly those fields
    override the parent's merged values.

    Attributes:
        component_type: The class to build, or its dotted name.
        parent_name: Name of a definition to inherit from.
        scope: "singleton", "prototype" or a custom scope name. Empty means
            singleton, or the parent's scope when there is a parent.
        constructor_args: Declared constructor/factory-method arguments.
        property_values: Declared property values.
        factory_component_name: Component holding an instance factory method.
        factory_method_name: Name of the factory method.
        instance_supplier: Callable receiving the container and returning the instance.
        autowire_mode: How undeclared dependencies are filled in.
        dependency_check: Which properties must be set after wiring.
        lazy_init: Skip this singleton during eager pre-instantiation.
        depends_on: Components that must be created first.
        synthetic: Generated internally; skipped by several interceptors.
        abstract: Template definition that is never instantiated.
        primary: Preferred candidate when several match a type.
        autowire_candidate: Whether by-type autowiring may pick this component.
        init_method_name: Method called after properties are set.
        destroy_method_name: Method called on destruction, "(inferred)" for close/shutdown.
        lenient_resolution: Accept the first tie between candidates instead of failing.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    component_type: Optional[Any] = Field(default=None, description="Class or dotted class name.")
    parent_name: Optional[str] = Field(default=None, description="Parent definition name.")
    scope: str = Field(default="", description="Scope name.")
    constructor_args: List[ConstructorArgument] = Field(default_factory=list)
    property_values: List[PropertyValue] = Field(default_factory=list)
    factory_component_name: Optional[str] = None
    factory_method_name: Optional[str] = None
    instance_supplier: Optional[Callable[[Any], Any]] = None
    autowire_mode: AutowireMode = AutowireMode.NONE
    dependency_check: DependencyCheck = DependencyCheck.NONE
    lazy_init: bool = False
    depends_on: List[str] = Field(default_factory=list)
    synthetic: bool = False
    abstract: bool = False
    primary: bool = False
    autowire_candidate: bool = True
    init_method_name: Optional[str] = None
    destroy_method_name: Optional[str] = None
    lenient_resolution: bool = False
    description: Optional[str] = None

    @property
    def is_singleton(self) -> bool:
        return self.scope in ("", Scope.SINGLETON.value)

    @property
    def is_prototype(self) -> bool:
        return self.scope == Scope.PROTOTYPE.value

    @property
    def has_constructor_args(self) -> bool:
        return bool(self.constructor_args)

    def indexed_args(self) -> Dict[int, ConstructorArgument]:
        return {arg.index: arg for arg in self.constructor_args if arg.is_indexed}

    def generic_args(self) -> List[ConstructorArgument]:
        return [arg for arg in self.constructor_args if not arg.is_indexed]

    def min_argument_count(self) -> int:
        """Smallest number of parameters a candidate needs to take all declared arguments."""
        if not self.has_constructor_args:
            return 0
        indexed = self.indexed_args()
        highest = max(indexed) + 1 if indexed else 0
        return max(highest, len(indexed) + len(self.generic_args()))

    def get_property(self, name: str) -> Optional[PropertyValue]:
        for prop in self.property_values:
            if prop.name == name:
                return prop
        return None

    def add_argument(self, value: Any, index: Optional[int] = None, **kwargs: Any) -> "ComponentDefinition":
        """Append a constructor argument and return the definition for chaining."""
        self.constructor_args = self.constructor_args + [ConstructorArgument(value=value, index=index, **kwargs)]
        return self

    def add_property(self, name: str, value: Any) -> "ComponentDefinition":
        """Set a property value, replacing an existing one of the same name."""
        kept = [prop for prop in self.property_values if prop.name != name]
        self.property_values = kept + [PropertyValue(name=name, value=value)]
        return self

    def describe(self) -> str:
        type_name = getattr(self.component_type, "__qualname__", self.component_type)
        parts = [f"type [{type_name}]", f"scope={self.scope or Scope.SINGLETON.value}"]
        if self.factory_method_name:
            parts.append(f"factory={self.factory_component_name or '<static>'}.{self.factory_method_name}")
        if self.parent_name:
            parts.append(f"parent={self.parent_name}")
        return "Definition with " + "; ".join(parts)


class ResolutionCache(BaseModel):
    """Derived facts cached on a merged definition."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    resolved_type: Optional[type] = None
    factory_method_return_type: Optional[Any] = None
    is_factory_component: Optional[bool] = None
    resolved_candidate: Optional[Any] = None
    constructor_args_resolved: bool = False
    resolved_arguments: Optional[List[Any]] = None
    prepared_arguments: Optional[List[Any]] = None
    post_processed: bool = False
    before_instantiation_resolved: Optional[bool] = None


class MergedDefinition(ComponentDefinition):
    """Self-contained definition: a component definition combined with its ancestors.

    Owned by the definition merger. Carries a lock and derived caches that are
    reused across creations of the same component.
    """

    _stale: bool = PrivateAttr(default=False)
    _lock: Any = PrivateAttr(default_factory=threading.RLock)
    _cache: ResolutionCache = PrivateAttr(default_factory=ResolutionCache)

    @classmethod
    def from_definition(cls, definition: ComponentDefinition) -> "MergedDefinition":
        """Copy a definition, giving it fresh argument and property holders."""
        data = {name: getattr(definition, name) for name in ComponentDefinition.model_fields}
        data["constructor_args"] = [arg.copy_argument() for arg in definition.constructor_args]
        data["property_values"] = [prop.copy_value() for prop in definition.property_values]
        data["depends_on"] = list(definition.depends_on)
        return cls(**data)

    @property
    def stale(self) -> bool:
        return self._stale

    @stale.setter
    def stale(self, value: bool) -> None:
        self._stale = value

    @property
    def lock(self) -> Any:
        return self._lock

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    def copy_type_caches_from(self, previous: "MergedDefinition") -> None:
        """Keep derived type facts of a previous merge if the recipe did not change."""
        if (
            previous.component_type == self.component_type
            and previous.factory_component_name == self.factory_component_name
            and previous.factory_method_name == self.factory_method_name
        ):
            self._cache.resolved_type = previous.cache.resolved_type
            self._cache.is_factory_component = previous.cache.is_factory_component
            self._cache.factory_method_return_type = previous.cache.factory_method_return_type


class DependencyDescriptor(BaseModel):
    """Describes one injection point. Used as a lookup key only.

    Attributes:
        dependency_type: Required type.
        name: Parameter or property name, used as a tie-breaker.
        required: Whether a missing candidate is an error.
        declaring_component: Name of the component being injected.
        site: "parameter", "property" or "reference".
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    dependency_type: Any = Field(..., description="The type to look up.")
    name: Optional[str] = None
    required: bool = True
    declaring_component: Optional[str] = None
    site: str = "reference"

    def describe(self) -> str:
        type_name = getattr(self.dependency_type, "__qualname__", repr(self.dependency_type))
        if self.name:
            return f"{self.site} '{self.name}' of type [{type_name}]"
        return f"{self.site} of type [{type_name}]"


class InstanceRecord(BaseModel):
    """Entry of the circular-reference cache for one singleton name."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    state: RecordState
    early_factory: Optional[Callable[[], Any]] = None
    instance: Any = None


class ParameterSpec(BaseModel):
    """One parameter of a constructor or factory method."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    annotation: Optional[Any] = None
    has_default: bool = False
    default: Any = None
    positional_only: bool = False
    keyword_only: bool = False


class ExecutableCandidate(BaseModel):
    """A constructor or factory method that may produce an instance.

    Attributes:
        name: "__init__" for the regular constructor, else the method name.
        parameters: Parameters excluding self/cls and variadic ones.
        public: False when the name starts with an underscore.
        static: True when no instance is needed to call it.
        function: The callable; for instance methods it takes the target first.
        return_type: Declared return annotation, if any.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    parameters: Tuple[ParameterSpec, ...] = ()
    public: bool = True
    static: bool = True
    function: Callable[..., Any]
    return_type: Optional[Any] = None

    @property
    def parameter_count(self) -> int:
        return len(self.parameters)

    @property
    def parameter_types(self) -> Tuple[Any, ...]:
        return tuple(param.annotation for param in self.parameters)

    def invoke(self, target: Any, arguments: List[Tuple[ParameterSpec, Any]]) -> Any:
        """Call the candidate, passing keyword arguments wherever the parameter allows it."""
        args: List[Any] = []
        kwargs: Dict[str, Any] = {}
        for param, value in arguments:
            if param.positional_only:
                args.append(value)
            else:
                kwargs[param.name] = value
        if self.static:
            return self.function(*args, **kwargs)
        return self.function(target, *args, **kwargs)

    def describe(self) -> str:
        params = ", ".join(
            f"{param.name}: {getattr(param.annotation, '__name__', param.annotation or 'Any')}"
            for param in self.parameters
        )
        return f"{self.name}({params})"


class PropertySpec(BaseModel):
    """A settable property of a component type."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    annotation: Optional[Any] = None
    simple: bool = False
