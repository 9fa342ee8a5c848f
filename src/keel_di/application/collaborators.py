"""Application layer - Default strategy objects for literal evaluation and type loading."""

import importlib
import inspect
from typing import Any, Dict, Optional

from keel_di.domain import IExpressionEvaluator, InvalidDefinitionError, ITypeLoader, MergedDefinition


class IdentityEvaluator(IExpressionEvaluator):
    """Treats every literal as plain text."""

    def evaluate(self, text: str, definition: Optional[MergedDefinition] = None) -> Any:
        return text


class ImportTypeLoader(ITypeLoader):
    """Loads types from "package.module.Class" or "package.module:Outer.Inner" names.

    Attributes:
        _cache: Types already loaded, by name.
    """

    def __init__(self) -> None:
        self._cache: Dict[str, type] = {}

    def load(self, type_name: str) -> type:
        """Import the module part of the name and walk the attribute part.

        Args:
            type_name: Dotted name; a colon separates module from attribute path.

        Returns:
            The loaded class.

        Raises:
            InvalidDefinitionError: If the name does not designate a class.
        """
        cached = self._cache.get(type_name)
        if cached is not None:
            return cached

        loaded = self._import(type_name)
        if not inspect.isclass(loaded):
            raise InvalidDefinitionError(f"'{type_name}' does not name a class")
        self._cache[type_name] = loaded
        return loaded

    @staticmethod
    def _import(type_name: str) -> Any:
        if ":" in type_name:
            module_name, _, attribute_path = type_name.partition(":")
            attempts = [(module_name, attribute_path)]
        else:
            parts = type_name.split(".")
            # Try the longest importable module prefix first
            attempts = [(".".join(parts[:i]), ".".join(parts[i:])) for i in range(len(parts) - 1, 0, -1)]

        for module_name, attribute_path in attempts:
            try:
                target: Any = importlib.import_module(module_name)
            except ImportError:
                continue
            try:
                for attribute in attribute_path.split("."):
                    target = getattr(target, attribute)
            except AttributeError:
                continue
            return target
        raise InvalidDefinitionError(f"Cannot load type '{type_name}'")
