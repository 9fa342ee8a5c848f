from enum import Enum


class Scope(str, Enum):
    """Built-in scopes a component definition can declare.

    Any other string used as a definition scope names a custom scope that
    must be registered on the container.

    Attributes:
        SINGLETON: One shared instance per container.
        PROTOTYPE: A new instance on every request.
    """

    SINGLETON = "singleton"
    PROTOTYPE = "prototype"

    def __str__(self) -> str:
        return self.value


class AutowireMode(str, Enum):
    """How unassigned dependencies of a component are filled in.

    Attributes:
        NONE: Only explicitly declared values are injected.
        BY_NAME: Settable properties are matched against component names.
        BY_TYPE: Settable properties are matched against component types.
        CONSTRUCTOR: Unmatched constructor parameters are resolved by type.
    """

    NONE = "none"
    BY_NAME = "by-name"
    BY_TYPE = "by-type"
    CONSTRUCTOR = "constructor"

    def __str__(self) -> str:
        return self.value


class DependencyCheck(str, Enum):
    """Which settable properties must end up with a value after wiring."""

    NONE = "none"
    SIMPLE = "simple"
    OBJECTS = "objects"
    ALL = "all"

    def __str__(self) -> str:
        return self.value


class InterceptorKind(str, Enum):
    """Extension points of the construction lifecycle, in pipeline order."""

    BEFORE_INSTANTIATION = "before-instantiation"
    MERGED_DEFINITION = "merged-definition"
    EARLY_REFERENCE = "early-reference"
    AFTER_INSTANTIATION = "after-instantiation"
    PROPERTY_VALUES = "property-values"
    BEFORE_INITIALIZATION = "before-initialization"
    AFTER_INITIALIZATION = "after-initialization"
    BEFORE_DESTRUCTION = "before-destruction"

    def __str__(self) -> str:
        return self.value


class ValueKind(str, Enum):
    """Discriminator of the value descriptor union."""

    LITERAL = "literal"
    COMPONENT_REF = "component-ref"
    TYPE_REF = "type-ref"
    NESTED = "nested"
    LIST = "list"
    SET = "set"
    MAP = "map"
    ARRAY = "array"
    PROPERTIES = "properties"
    AUTOWIRE = "autowire"

    def __str__(self) -> str:
        return self.value


class RecordState(str, Enum):
    """State of a singleton name inside the circular-reference cache.

    A name only ever moves forward: FACTORY_PENDING -> EARLY_REFERENCE -> FINISHED.
    """

    FACTORY_PENDING = "factory-pending"
    EARLY_REFERENCE = "early-reference"
    FINISHED = "finished"

    def __str__(self) -> str:
        return self.value
