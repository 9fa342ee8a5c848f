"""Value descriptors: the raw, unresolved values a definition can declare.

The set of descriptors is closed. Every descriptor has a `kind` taken from
`ValueKind`, and the value resolver keeps one handler per kind. Anything that
is not a `ValueDescriptor` and appears where a value is expected is treated
as an already-resolved object and injected as-is.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from keel_di.domain.enums import ValueKind

if TYPE_CHECKING:
    from keel_di.domain.models import ComponentDefinition


class ValueDescriptor(BaseModel):
    """Base class of all value descriptors."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: ValueKind


class LiteralValue(ValueDescriptor):
    """A literal string, optionally typed, possibly holding an expression.

    Attributes:
        text: The literal text as declared.
        target_type: Type to convert the evaluated text to, if known.
        dynamic: Set by the resolver when evaluation changed the text. Dynamic
            literals are never cached as pre-converted values.
    """

    kind: Literal[ValueKind.LITERAL] = ValueKind.LITERAL
    text: str = Field(..., description="The literal text.")
    target_type: Optional[Any] = Field(default=None, description="Declared target type (class or dotted name).")
    dynamic: bool = Field(default=False, description="Whether evaluation produced something else than the text.")


class ComponentRef(ValueDescriptor):
    """A reference to another component by name."""

    kind: Literal[ValueKind.COMPONENT_REF] = ValueKind.COMPONENT_REF
    name: str = Field(..., min_length=1, description="Name of the referenced component.")
    to_parent: bool = Field(default=False, description="Look the name up in the parent container only.")


class TypeRef(ValueDescriptor):
    """A reference to the unique component of a given type."""

    kind: Literal[ValueKind.TYPE_REF] = ValueKind.TYPE_REF
    dependency_type: Any = Field(..., description="Required type (class or dotted name).")
    required: bool = Field(default=True, description="Fail when no candidate exists.")


class NestedDefinition(ValueDescriptor):
    """An inner, anonymous definition built on the spot for its owner."""

    kind: Literal[ValueKind.NESTED] = ValueKind.NESTED
    definition: "ComponentDefinition" = Field(..., description="The inner component definition.")
    name: Optional[str] = Field(default=None, description="Optional name of the inner component.")


class ListValue(ValueDescriptor):
    """An ordered list of values."""

    kind: Literal[ValueKind.LIST] = ValueKind.LIST
    items: List[Any] = Field(default_factory=list)
    element_type: Optional[Any] = None


class SetValue(ValueDescriptor):
    """A set of values, insertion order preserved during resolution."""

    kind: Literal[ValueKind.SET] = ValueKind.SET
    items: List[Any] = Field(default_factory=list)
    element_type: Optional[Any] = None


class ArrayValue(ValueDescriptor):
    """A fixed sequence of values, resolved to a tuple."""

    kind: Literal[ValueKind.ARRAY] = ValueKind.ARRAY
    items: List[Any] = Field(default_factory=list)
    element_type: Optional[Any] = None


class MapValue(ValueDescriptor):
    """A mapping; keys and values may both be descriptors."""

    kind: Literal[ValueKind.MAP] = ValueKind.MAP
    entries: List[Tuple[Any, Any]] = Field(default_factory=list)
    key_type: Optional[Any] = None
    value_type: Optional[Any] = None

    @field_validator("entries", mode="before")
    @classmethod
    def _entries_from_dict(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return list(value.items())
        return value


class PropertiesValue(ValueDescriptor):
    """A flat string-to-string mapping whose values may hold expressions."""

    kind: Literal[ValueKind.PROPERTIES] = ValueKind.PROPERTIES
    entries: Dict[str, str] = Field(default_factory=dict)


class AutowireMarker(ValueDescriptor):
    """Requests by-type autowiring for the slot that holds it."""

    kind: Literal[ValueKind.AUTOWIRE] = ValueKind.AUTOWIRE
    required: bool = True


def literal(text: str, target_type: Optional[Any] = None) -> LiteralValue:
    """Shortcut for `LiteralValue(text=..., target_type=...)`."""
    return LiteralValue(text=text, target_type=target_type)


def ref(name: str) -> ComponentRef:
    """Shortcut for `ComponentRef(name=...)`."""
    return ComponentRef(name=name)


def type_ref(dependency_type: Any, required: bool = True) -> TypeRef:
    """Shortcut for `TypeRef(dependency_type=..., required=...)`."""
    return TypeRef(dependency_type=dependency_type, required=required)


def nested(definition: "ComponentDefinition", name: Optional[str] = None) -> NestedDefinition:
    """Shortcut for `NestedDefinition(definition=..., name=...)`."""
    return NestedDefinition(definition=definition, name=name)


def autowired(required: bool = True) -> AutowireMarker:
    """Shortcut for `AutowireMarker(required=...)`."""
    return AutowireMarker(required=required)
