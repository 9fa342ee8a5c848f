"""Application layer - Factory components and their produced objects."""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from keel_di.application.singleton_registry import SingletonRegistry
from keel_di.domain import NULL, ComponentCreationError, DIException, FactoryComponent, MergedDefinition, TypeMismatchError

logger = logging.getLogger(__name__)

FACTORY_PREFIX = "&"


def is_factory_dereference(name: str) -> bool:
    """Whether a requested name asks for the factory component itself."""
    return name.startswith(FACTORY_PREFIX)


def strip_factory_prefix(name: str) -> str:
    return name.lstrip(FACTORY_PREFIX)


class FactoryComponentSupport:
    """Unwraps factory components into the objects they produce.

    Objects produced by a singleton factory component that reports
    `is_singleton()` are cached by name, so the factory runs once.

    Attributes:
        _registry: Singleton registry, to check whether the factory is shared.
        _post_process: After-initialization interceptor chain applied to
            produced objects.
        _produced: Cached products by factory component name.
    """

    def __init__(self, registry: SingletonRegistry, post_process: Callable[[Any, str], Any]) -> None:
        self._registry = registry
        self._post_process = post_process
        self._lock = threading.RLock()
        self._produced: Dict[str, Any] = {}

    def object_for_instance(
        self,
        instance: Any,
        requested_name: str,
        name: str,
        merged: Optional[MergedDefinition] = None,
    ) -> Any:
        """Return what a request for `requested_name` resolves to.

        Args:
            instance: The component instance registered under `name`.
            requested_name: The name as requested, possibly `&`-prefixed.
            name: The canonical component name.
            merged: Merged definition of the component, if any.

        Returns:
            The factory itself for `&name`, the product for a factory
            component, or the instance unchanged.

        Raises:
            TypeMismatchError: If `&name` designates something that is not a factory component.
        """
        if is_factory_dereference(requested_name):
            if instance is NULL:
                return instance
            if not isinstance(instance, FactoryComponent):
                raise TypeMismatchError(f"Component named '{name}' is not a factory component", name)
            return instance

        if not isinstance(instance, FactoryComponent):
            return instance

        post_process = merged is None or not merged.synthetic
        return self.get_object(instance, name, post_process)

    def get_object(self, factory: FactoryComponent, name: str, post_process: bool = True) -> Any:
        """Return the product of a factory component, caching shared products."""
        if factory.is_singleton() and self._registry.contains_singleton(name):
            with self._lock:
                cached = self._produced.get(name)
                if cached is not None:
                    return cached
                produced = self._produce(factory, name)
                # get_object() may have recursed into this very component
                already = self._produced.get(name)
                if already is not None:
                    return already
                if post_process:
                    if self._registry.is_currently_in_creation(name):
                        return produced
                    produced = self._apply_post_processing(produced, name)
                if self._registry.contains_singleton(name):
                    self._produced[name] = produced
                return produced

        produced = self._produce(factory, name)
        if post_process:
            produced = self._apply_post_processing(produced, name)
        return produced

    @staticmethod
    def object_type(factory: Any) -> Optional[type]:
        """Type produced by a factory component class or instance, if declared."""
        return getattr(factory, "object_type", None)

    def remove(self, name: str) -> None:
        with self._lock:
            self._produced.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._produced.clear()

    def _produce(self, factory: FactoryComponent, name: str) -> Any:
        try:
            produced = factory.get_object()
        except DIException as e:
            raise e.add_context(name)
        except Exception as e:
            raise ComponentCreationError(f"Factory component threw exception on object creation: {e}", name) from e
        logger.debug("Factory component '%s' produced [%r]", name, produced)
        return NULL if produced is None else produced

    def _apply_post_processing(self, produced: Any, name: str) -> Any:
        if produced is NULL:
            return produced
        try:
            return self._post_process(produced, name)
        except DIException as e:
            raise e.add_context(name)
        except Exception as e:
            raise ComponentCreationError(f"Post-processing of factory component's object failed: {e}", name) from e
