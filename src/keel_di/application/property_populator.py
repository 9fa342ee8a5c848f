"""Application layer - Property wiring of freshly created instances."""

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from keel_di.application.type_converter import is_unconstrained
from keel_di.domain import (
    NULL,
    AutowireMode,
    ComponentCreationError,
    DependencyCheck,
    DependencyDescriptor,
    DIException,
    InterceptorKind,
    InvalidDefinitionError,
    LiteralValue,
    MergedDefinition,
    PropertySpec,
    PropertyValue,
    UnsatisfiedDependencyError,
    ValueDescriptor,
)

if TYPE_CHECKING:
    from keel_di.application.container import DIContainer

logger = logging.getLogger(__name__)


class PropertyPopulator:
    """Assigns explicit and autowired property values to an instance.

    Attributes:
        _container: The owning container.
    """

    def __init__(self, container: "DIContainer") -> None:
        self._container = container

    def populate(self, name: str, merged: MergedDefinition, instance: Any) -> None:
        """Wire the properties of an instance.

        Steps: after-instantiation interceptors (any returning False stops
        wiring), by-name or by-type autowiring of unset collaborator
        properties, property-value interceptors, the dependency check, then
        resolution, conversion and assignment of every value.

        Args:
            name: The component name.
            merged: The merged definition.
            instance: The raw instance.

        Raises:
            InvalidDefinitionError: If a property does not exist on the instance.
            UnsatisfiedDependencyError: If the dependency check fails.
            AmbiguousResolutionError: If by-type autowiring finds several candidates.
        """
        if instance is NULL:
            if merged.property_values:
                raise InvalidDefinitionError("Cannot apply property values to a null instance", name)
            return

        interceptors = self._container.interceptors
        if not merged.synthetic:
            for callback in interceptors.get(InterceptorKind.AFTER_INSTANTIATION):
                if callback(instance, name) is False:
                    logger.debug("Property wiring of component '%s' skipped by an interceptor", name)
                    return

        specs = {spec.name: spec for spec in self._container.introspector.describe_settable_properties(type(instance))}
        explicit = {prop.name for prop in merged.property_values}
        staged: List[PropertyValue] = []
        if merged.autowire_mode is AutowireMode.BY_NAME:
            staged = self._autowire_by_name(name, specs, explicit)
        elif merged.autowire_mode is AutowireMode.BY_TYPE:
            staged = self._autowire_by_type(name, specs, explicit)

        values: List[PropertyValue] = list(merged.property_values) + staged
        if not merged.synthetic:
            for callback in interceptors.get(InterceptorKind.PROPERTY_VALUES):
                replaced = callback(values, instance, name)
                if replaced is None:
                    return
                values = list(replaced)

        if merged.dependency_check is not DependencyCheck.NONE:
            self._check_dependencies(name, merged.dependency_check, specs, values)

        self._apply(name, merged, instance, values, specs)

    def _autowire_by_name(self, name: str, specs: Dict[str, PropertySpec], explicit: set) -> List[PropertyValue]:
        staged = []
        for spec in specs.values():
            if spec.simple or spec.name in explicit:
                continue
            if not self._container.contains(spec.name):
                logger.debug("Not autowiring property '%s' of component '%s' by name: no matching component", spec.name, name)
                continue
            value = self._container.get(spec.name)
            self._container.register_dependent_component(spec.name, name)
            logger.debug("Added autowiring by name from component '%s' via property '%s'", name, spec.name)
            staged.append(PropertyValue(name=spec.name, value=value))
        return staged

    def _autowire_by_type(self, name: str, specs: Dict[str, PropertySpec], explicit: set) -> List[PropertyValue]:
        staged = []
        for spec in specs.values():
            if spec.simple or spec.name in explicit or is_unconstrained(spec.annotation):
                continue
            descriptor = DependencyDescriptor(
                dependency_type=spec.annotation,
                name=spec.name,
                required=False,
                declaring_component=name,
                site="property",
            )
            autowired_names: List[str] = []
            value = self._container.resolve_dependency(descriptor, name, autowired_names)
            if value is None:
                continue
            for autowired_name in autowired_names:
                self._container.register_dependent_component(autowired_name, name)
                logger.debug("Autowiring by type from component '%s' to '%s'", name, autowired_name)
            staged.append(PropertyValue(name=spec.name, value=value))
        return staged

    @staticmethod
    def _check_dependencies(
        name: str, check: DependencyCheck, specs: Dict[str, PropertySpec], values: List[PropertyValue]
    ) -> None:
        assigned = {prop.name for prop in values}
        for spec in specs.values():
            if spec.name in assigned:
                continue
            unsatisfied = (
                check is DependencyCheck.ALL
                or (check is DependencyCheck.SIMPLE and spec.simple)
                or (check is DependencyCheck.OBJECTS and not spec.simple)
            )
            if unsatisfied:
                raise UnsatisfiedDependencyError(
                    "Set this property value or disable dependency checking for this component",
                    f"property '{spec.name}'",
                    name,
                )

    def _apply(
        self,
        name: str,
        merged: MergedDefinition,
        instance: Any,
        values: List[PropertyValue],
        specs: Dict[str, PropertySpec],
    ) -> None:
        converter = self._container.converter
        for prop in values:
            spec = specs.get(prop.name)
            if spec is None:
                raise InvalidDefinitionError(
                    f"Invalid property '{prop.name}' of component class [{type(instance).__qualname__}]: "
                    "not an annotated attribute or a property with a setter",
                    name,
                )
            label = f"property '{prop.name}'"

            if prop.is_converted:
                value = prop.converted_value
            else:
                original = prop.value
                resolved = self._container.value_resolver.resolve(
                    name, merged, label, original, spec.annotation, prop.name
                )
                try:
                    value = converter.convert(resolved, spec.annotation, label)
                except DIException as e:
                    raise e.add_context(name)
                if self._is_cacheable(original):
                    prop.mark_converted(value)

            try:
                setattr(instance, prop.name, value)
            except DIException as e:
                raise e.add_context(name)
            except Exception as e:
                raise ComponentCreationError(f"Error setting property values: {label}: {e}", name) from e

    @staticmethod
    def _is_cacheable(original: Any) -> bool:
        if isinstance(original, LiteralValue):
            return not original.dynamic
        return not isinstance(original, ValueDescriptor)
