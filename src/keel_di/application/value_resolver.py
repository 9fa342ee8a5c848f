"""Application layer - Resolution of value descriptors into live objects."""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from keel_di.domain import (
    NULL,
    ArrayValue,
    AutowireMarker,
    ComponentRef,
    DependencyDescriptor,
    DIException,
    ListValue,
    LiteralValue,
    MapValue,
    MergedDefinition,
    NestedDefinition,
    PropertiesValue,
    SetValue,
    TypeRef,
    UnsatisfiedDependencyError,
    ValueDescriptor,
    ValueKind,
)

if TYPE_CHECKING:
    from keel_di.application.container import DIContainer

logger = logging.getLogger(__name__)

Handler = Callable[[str, MergedDefinition, str, Any, Optional[Any], Optional[str]], Any]


class ValueResolver:
    """Turns the values declared on a definition into objects to inject.

    Dispatch is a table with one handler per `ValueKind`; building the
    resolver fails if a kind has no handler. Objects that are not value
    descriptors are already resolved and returned unchanged.

    Attributes:
        _container: The owning container.
        _handlers: Handler per value kind.
    """

    def __init__(self, container: "DIContainer") -> None:
        self._container = container
        self._handlers: Dict[ValueKind, Handler] = {
            ValueKind.LITERAL: self._resolve_literal,
            ValueKind.COMPONENT_REF: self._resolve_reference,
            ValueKind.TYPE_REF: self._resolve_type_reference,
            ValueKind.NESTED: self._resolve_nested,
            ValueKind.LIST: self._resolve_list,
            ValueKind.SET: self._resolve_set,
            ValueKind.MAP: self._resolve_map,
            ValueKind.ARRAY: self._resolve_array,
            ValueKind.PROPERTIES: self._resolve_properties,
            ValueKind.AUTOWIRE: self._resolve_autowire,
        }
        missing = set(ValueKind) - set(self._handlers)
        if missing:
            raise TypeError(f"No value handler for kinds: {sorted(str(kind) for kind in missing)}")

    def resolve(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: Any,
        declared_type: Optional[Any] = None,
        slot_name: Optional[str] = None,
    ) -> Any:
        """Resolve one declared value.

        Args:
            owner_name: Name of the component being built.
            owner: Its merged definition.
            label: Describes the slot in error messages, e.g. "property 'url'".
            value: A value descriptor or an already-resolved object.
            declared_type: Type of the slot, used by autowire markers.
            slot_name: Parameter or property name, a tie-breaker for autowiring.

        Returns:
            The resolved object; None where a component resolved to null.

        Raises:
            UnsatisfiedDependencyError: If resolution fails with a non-DI error.
            DIException: Errors of the engine keep their kind and gain the
                owner name as context.

        Example:
            >>> resolver.resolve("service", merged, "property 'repo'", ref("repository"))
            <Repository object at ...>
        """
        if not isinstance(value, ValueDescriptor):
            return None if value is NULL else value
        handler = self._handlers[value.kind]
        try:
            return handler(owner_name, owner, label, value, declared_type, slot_name)
        except DIException as e:
            raise e.add_context(owner_name)
        except Exception as e:
            raise UnsatisfiedDependencyError(f"Error resolving value: {e}", label, owner_name) from e

    def _resolve_literal(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: LiteralValue,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> Any:
        evaluated = self._container.expression_evaluator.evaluate(value.text, owner)
        if not (isinstance(evaluated, str) and evaluated == value.text):
            value.dynamic = True
        if value.target_type is not None:
            return self._container.converter.convert(evaluated, value.target_type, label)
        return evaluated

    def _resolve_reference(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: ComponentRef,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> Any:
        if value.to_parent:
            parent = self._container.parent
            if parent is None:
                raise UnsatisfiedDependencyError(
                    f"Cannot resolve reference to component '{value.name}' in parent container: "
                    "no parent container available",
                    label,
                )
            return parent.get(value.name)

        instance = self._container.get(value.name)
        self._container.register_dependent_component(value.name, owner_name)
        return instance

    def _resolve_type_reference(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: TypeRef,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> Any:
        descriptor = DependencyDescriptor(
            dependency_type=self._container.converter.resolve_type(value.dependency_type),
            required=value.required,
            declaring_component=owner_name,
        )
        return self._resolve_descriptor(owner_name, descriptor)

    def _resolve_nested(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: NestedDefinition,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> Any:
        instance = self._container.creator.create_inner_component(owner_name, owner, value.definition, value.name)
        return None if instance is NULL else instance

    def _resolve_list(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: ListValue,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> List[Any]:
        return self._resolve_items(owner_name, owner, label, value.items, value.element_type)

    def _resolve_set(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: SetValue,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> set:
        return set(self._resolve_items(owner_name, owner, label, value.items, value.element_type))

    def _resolve_array(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: ArrayValue,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> tuple:
        return tuple(self._resolve_items(owner_name, owner, label, value.items, value.element_type))

    def _resolve_map(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: MapValue,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> Dict[Any, Any]:
        converter = self._container.converter
        resolved: Dict[Any, Any] = {}
        for key, item in value.entries:
            entry_label = f"{label} with key [{key!r}]"
            resolved_key = self.resolve(owner_name, owner, f"{label} key [{key!r}]", key)
            resolved_item = self.resolve(owner_name, owner, entry_label, item)
            if value.key_type is not None:
                resolved_key = converter.convert(resolved_key, value.key_type, entry_label)
            if value.value_type is not None:
                resolved_item = converter.convert(resolved_item, value.value_type, entry_label)
            resolved[resolved_key] = resolved_item
        return resolved

    def _resolve_properties(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: PropertiesValue,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> Dict[str, str]:
        evaluator = self._container.expression_evaluator
        resolved: Dict[str, str] = {}
        for key, text in value.entries.items():
            evaluated = evaluator.evaluate(text, owner)
            resolved[key] = text if evaluated is None else str(evaluated)
        return resolved

    def _resolve_autowire(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        value: AutowireMarker,
        declared_type: Optional[Any],
        slot_name: Optional[str],
    ) -> Any:
        if declared_type is None:
            raise UnsatisfiedDependencyError("Cannot autowire a slot without a declared type", label)
        descriptor = DependencyDescriptor(
            dependency_type=declared_type,
            name=slot_name,
            required=value.required,
            declaring_component=owner_name,
            site="parameter" if label.startswith("constructor") else "property",
        )
        return self._resolve_descriptor(owner_name, descriptor)

    def _resolve_items(
        self,
        owner_name: str,
        owner: MergedDefinition,
        label: str,
        items: List[Any],
        element_type: Optional[Any],
    ) -> List[Any]:
        resolved = []
        for index, item in enumerate(items):
            item_label = f"{label} with index [{index}]"
            element = self.resolve(owner_name, owner, item_label, item)
            if element_type is not None:
                element = self._container.converter.convert(element, element_type, item_label)
            resolved.append(element)
        return resolved

    def _resolve_descriptor(self, owner_name: str, descriptor: DependencyDescriptor) -> Any:
        autowired_names: List[str] = []
        result = self._container.resolve_dependency(descriptor, owner_name, autowired_names)
        for autowired_name in autowired_names:
            self._container.register_dependent_component(autowired_name, owner_name)
        return result
