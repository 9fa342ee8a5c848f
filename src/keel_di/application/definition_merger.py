"""Application layer - Flattening of definitions along their parent chain."""

import logging
import threading
from typing import Callable, Dict, List, Optional

from keel_di.domain import (
    ComponentDefinition,
    ConstructorArgument,
    InvalidDefinitionError,
    MergedDefinition,
    NotFoundError,
    PropertyValue,
    Scope,
)
from keel_di.settings import EngineSettings

logger = logging.getLogger(__name__)

_MERGED_SEPARATELY = ("constructor_args", "property_values")


class DefinitionMerger:
    """Produces self-contained merged definitions and caches them by name.

    A child definition inherits everything from its parent and overrides
    exactly the fields it set explicitly. Constructor arguments and property
    values are merged entry by entry instead of being replaced.

    Attributes:
        _definitions: Looks up a raw definition by name, None when unknown.
        _settings: Engine settings (`cache_metadata`).
        _parent: Looks up a merged definition in the parent container.
        _canonical_name: Resolves aliases of parent names.
        _cache: Merged definitions by name.
    """

    def __init__(
        self,
        definitions: Callable[[str], Optional[ComponentDefinition]],
        settings: EngineSettings,
        parent: Optional[Callable[[str], MergedDefinition]] = None,
        canonical_name: Optional[Callable[[str], str]] = None,
    ) -> None:
        """Initialize the merger.

        Args:
            definitions: Raw definition lookup of the owning container.
            settings: Engine settings.
            parent: Merged definition lookup of the parent container, if any.
            canonical_name: Alias resolution of the owning container.
        """
        self._definitions = definitions
        self._settings = settings
        self._parent = parent
        self._canonical_name = canonical_name or (lambda name: name)
        self._lock = threading.RLock()
        self._cache: Dict[str, MergedDefinition] = {}

    def get_merged_definition(
        self,
        name: str,
        definition: Optional[ComponentDefinition] = None,
        containing: Optional[MergedDefinition] = None,
    ) -> MergedDefinition:
        """Return the merged definition for a name.

        Args:
            name: The component name.
            definition: Raw definition to merge; looked up by name when omitted.
            containing: Outer definition when merging an inner definition.
                Inner definitions are never cached.

        Returns:
            The merged definition.

        Raises:
            NotFoundError: If no definition is registered under the name.
            InvalidDefinitionError: If the parent chain cannot be resolved.

        Example:
            >>> merger.get_merged_definition("child").scope
            'prototype'
        """
        return self._get(name, definition, containing, [])

    def merge(self, name: str, definition: ComponentDefinition) -> MergedDefinition:
        """Merge a definition without consulting or filling the cache."""
        return self._default_scope(self._merge(name, definition, []))

    def mark_stale(self, name: str) -> None:
        """Force the next lookup of a name to merge again."""
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                cached.stale = True

    def clear(self, name: str) -> None:
        with self._lock:
            self._cache.pop(name, None)

    def clear_all(self) -> None:
        with self._lock:
            self._cache.clear()

    def is_cached(self, name: str) -> bool:
        with self._lock:
            cached = self._cache.get(name)
            return cached is not None and not cached.stale

    def _get(
        self,
        name: str,
        definition: Optional[ComponentDefinition],
        containing: Optional[MergedDefinition],
        chain: List[str],
    ) -> MergedDefinition:
        with self._lock:
            previous: Optional[MergedDefinition] = None
            if containing is None:
                previous = self._cache.get(name)
                if previous is not None and not previous.stale:
                    return previous

            if definition is None:
                definition = self._definitions(name)
                if definition is None:
                    raise NotFoundError(name)

            merged = self._default_scope(self._merge(name, definition, chain))

            # Inner components cannot outlive a non-singleton owner
            if containing is not None and not containing.is_singleton and merged.is_singleton:
                merged.scope = containing.scope

            if containing is None and self._settings.cache_metadata:
                if previous is not None:
                    merged.copy_type_caches_from(previous)
                self._cache[name] = merged
                logger.debug("Cached merged definition of component '%s'", name)
            return merged

    def _merge(self, name: str, definition: ComponentDefinition, chain: List[str]) -> MergedDefinition:
        if not definition.parent_name:
            return MergedDefinition.from_definition(definition)

        if name in chain:
            raise InvalidDefinitionError(
                f"Parent chain of component '{name}' is circular: {' -> '.join(chain + [name])}",
                name,
            )

        parent_name = self._canonical_name(definition.parent_name)
        try:
            if parent_name != name and (self._parent is None or self._definitions(parent_name) is not None):
                parent = self._get(parent_name, None, None, chain + [name])
            elif self._parent is not None:
                parent = self._parent(parent_name)
            else:
                raise InvalidDefinitionError(
                    f"Parent name '{parent_name}' is equal to component name '{name}': "
                    "cannot be resolved without a parent container",
                    name,
                )
        except NotFoundError as e:
            raise InvalidDefinitionError(
                f"Could not resolve parent definition '{definition.parent_name}'",
                name,
            ) from e

        merged = MergedDefinition.from_definition(parent)
        self._override(merged, definition)
        return merged

    def _override(self, merged: MergedDefinition, child: ComponentDefinition) -> None:
        for field_name in child.model_fields_set:
            if field_name in _MERGED_SEPARATELY:
                continue
            value = getattr(child, field_name)
            if field_name == "depends_on":
                value = list(value)
            setattr(merged, field_name, value)

        # Never inherited from a template
        merged.abstract = child.abstract
        merged.parent_name = child.parent_name

        merged.constructor_args = self._merge_arguments(merged.constructor_args, child.constructor_args)
        merged.property_values = self._merge_properties(merged.property_values, child.property_values)

    @staticmethod
    def _merge_arguments(
        inherited: List[ConstructorArgument], declared: List[ConstructorArgument]
    ) -> List[ConstructorArgument]:
        indexed: Dict[int, ConstructorArgument] = {arg.index: arg for arg in inherited if arg.is_indexed}
        generic = [arg for arg in inherited if not arg.is_indexed]
        for arg in declared:
            copy = arg.copy_argument()
            if copy.is_indexed:
                indexed[copy.index] = copy
            elif copy.name is not None:
                generic = [existing for existing in generic if existing.name != copy.name] + [copy]
            else:
                generic.append(copy)
        return [indexed[index] for index in sorted(indexed)] + generic

    @staticmethod
    def _merge_properties(inherited: List[PropertyValue], declared: List[PropertyValue]) -> List[PropertyValue]:
        merged: Dict[str, PropertyValue] = {prop.name: prop for prop in inherited}
        for prop in declared:
            merged[prop.name] = prop.copy_value()
        return list(merged.values())

    @staticmethod
    def _default_scope(merged: MergedDefinition) -> MergedDefinition:
        if not merged.scope:
            merged.scope = Scope.SINGLETON.value
        return merged
