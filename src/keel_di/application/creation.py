"""Application layer - The creation pipeline of one component instance."""

import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

from keel_di.domain import (
    NULL,
    ComponentCreationError,
    ComponentDefinition,
    DIException,
    FactoryComponent,
    InconsistentExposureError,
    MergedDefinition,
)

if TYPE_CHECKING:
    from keel_di.application.container import DIContainer

logger = logging.getLogger(__name__)


class ComponentCreator:
    """Builds, wires and initializes component instances.

    The pipeline: before-instantiation interceptors, raw instantiation,
    merged-definition interceptors, early exposure of singletons in a
    cycle, property wiring, initialization, the early-exposure consistency
    check and registration for disposal.

    Attributes:
        _container: The owning container.
    """

    def __init__(self, container: "DIContainer") -> None:
        self._container = container

    def create_component(
        self, name: str, merged: MergedDefinition, explicit_args: Optional[Sequence[Any]] = None
    ) -> Any:
        """Create a fully initialized instance for a merged definition.

        Args:
            name: The component name.
            merged: The merged definition.
            explicit_args: Caller-supplied constructor arguments. Instances built
                with explicit arguments are neither exposed early nor tracked
                for disposal.

        Returns:
            The instance to expose, `NULL` when the recipe produced None.

        Raises:
            DIException: Any engine error, with `name` added to its context.
            InconsistentExposureError: If the instance was wrapped after
                circular dependents captured its raw version.
        """
        logger.debug("Creating instance of component '%s'", name)
        try:
            substitute = self._container.lifecycle.before_instantiation(name, merged)
        except DIException as e:
            raise e.add_context(name)
        except Exception as e:
            raise ComponentCreationError(f"Before-instantiation interceptor failed: {e}", name) from e
        if substitute is not None:
            return substitute

        try:
            instance = self._do_create(name, merged, explicit_args)
        except DIException as e:
            raise e.add_context(name)
        except Exception as e:
            # Interceptor callbacks run unwrapped inside the pipeline
            raise ComponentCreationError(f"Interceptor failed during creation: {e}", name) from e
        logger.debug("Finished creating instance of component '%s'", name)
        return instance

    def _do_create(self, name: str, merged: MergedDefinition, explicit_args: Optional[Sequence[Any]]) -> Any:
        container = self._container
        settings = container.settings
        registry = container.registry
        lifecycle = container.lifecycle

        instance = container.constructor_resolver.create_raw_instance(name, merged, explicit_args)
        lifecycle.apply_merged_definition(name, merged, None if instance is NULL else type(instance))

        early_exposure = (
            explicit_args is None
            and merged.is_singleton
            and settings.allow_circular_references
            and registry.is_currently_in_creation(name)
        )
        if early_exposure:
            logger.debug("Eagerly caching component '%s' to allow for resolving potential circular references", name)
            registry.add_early_factory(name, lambda: lifecycle.early_reference(name, merged, instance))

        container.property_populator.populate(name, merged, instance)
        exposed = lifecycle.initialize(name, instance, merged)

        if early_exposure:
            early = registry.get_singleton(name, allow_early=False)
            if early is not None:
                if exposed is instance:
                    exposed = early
                elif not settings.allow_raw_injection_despite_wrapping:
                    captured = [dependent for dependent in registry.dependents_of(name) if container.was_created(dependent)]
                    if captured:
                        raise InconsistentExposureError(
                            f"Component has been injected into other components [{', '.join(captured)}] in its raw "
                            "version as part of a circular reference, but has eventually been wrapped. This means "
                            "that said other components do not use the final version of the component.",
                            name,
                        )

        if explicit_args is None:
            lifecycle.register_disposable_if_necessary(name, exposed, merged)
        return exposed

    def create_inner_component(
        self,
        owner_name: str,
        owner: MergedDefinition,
        definition: ComponentDefinition,
        inner_name: Optional[str] = None,
    ) -> Any:
        """Create an anonymous component declared inline in another definition.

        Inner components are never cached by name. A singleton-scoped inner
        component is destroyed together with its owner.

        Args:
            owner_name: Name of the component declaring the inner definition.
            owner: Merged definition of the owner.
            definition: The inner definition.
            inner_name: Name given to the inner component, generated if None.

        Returns:
            The inner instance, or the object it produces for a factory component.
        """
        container = self._container
        name = inner_name or self._generated_name(definition)
        merged = container.merger.get_merged_definition(name, definition, owner)
        if merged.is_singleton:
            name = self._unique_name(name)

        instance = self.create_component(name, merged)
        if merged.is_singleton:
            container.registry.register_contained(name, owner_name)
        if isinstance(instance, FactoryComponent):
            instance = container.factory_support.object_for_instance(instance, name, name, merged)
        return instance

    @staticmethod
    def _generated_name(definition: ComponentDefinition) -> str:
        component_type = definition.component_type
        if isinstance(component_type, str):
            type_name = component_type
        elif component_type is not None:
            type_name = f"{component_type.__module__}.{component_type.__qualname__}"
        else:
            type_name = "(inner component)"
        return f"{type_name}#{id(definition):x}"

    def _unique_name(self, name: str) -> str:
        unique = name
        counter = 0
        while self._container.is_name_in_use(unique):
            counter += 1
            unique = f"{name}#{counter}"
        return unique
