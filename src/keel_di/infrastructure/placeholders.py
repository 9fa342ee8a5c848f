"""
Placeholder expressions for literal values.

Resolves `${name}` and `${name:default}` placeholders in literal text from
a mapping of values and the process environment.
"""

import os
from typing import Mapping, Optional, Set

from keel_di.domain import IExpressionEvaluator, InvalidDefinitionError, MergedDefinition


class PlaceholderEvaluator(IExpressionEvaluator):
    """Expression evaluator substituting `${...}` placeholders.

    Placeholders may be nested, both in their name (`${db.${env}.url}`) and
    in resolved values, which are resolved again until no placeholder is
    left. Explicit values take precedence over environment variables.

    Attributes:
        _values: Explicit placeholder values.
        _use_environment: Whether `os.environ` is consulted.
        _ignore_unresolvable: Leave unknown placeholders untouched instead of failing.

    Example:
        >>> container = DIContainer(expression_evaluator=PlaceholderEvaluator({"db.port": "5432"}))
        >>> container.register_definition(
        ...     "db", ComponentDefinition(component_type=Database).add_property("port", literal("${db.port:5432}"))
        ... )
    """

    def __init__(
        self,
        values: Optional[Mapping[str, str]] = None,
        use_environment: bool = True,
        ignore_unresolvable: bool = False,
        prefix: str = "${",
        suffix: str = "}",
        separator: str = ":",
    ) -> None:
        self._values = dict(values or {})
        self._use_environment = use_environment
        self._ignore_unresolvable = ignore_unresolvable
        self._prefix = prefix
        self._suffix = suffix
        self._separator = separator

    def evaluate(self, text: str, definition: Optional[MergedDefinition] = None) -> str:
        """Replace every placeholder in a text.

        Raises:
            InvalidDefinitionError: If a placeholder has no value and no default,
                or placeholders refer to each other in a cycle.
        """
        return self._resolve(text, set())

    def _resolve(self, text: str, visiting: Set[str]) -> str:
        parts = []
        index = 0
        while True:
            start = text.find(self._prefix, index)
            if start == -1:
                parts.append(text[index:])
                break
            end = self._find_end(text, start)
            if end == -1:
                parts.append(text[index:])
                break

            parts.append(text[index:start])
            key = self._resolve(text[start + len(self._prefix) : end], visiting)
            if key in visiting:
                raise InvalidDefinitionError(f"Circular placeholder reference '{key}' in value \"{text}\"")

            name, found, default = key.partition(self._separator)
            value = self._lookup(name)
            if value is None and found:
                value = default
            if value is None:
                if not self._ignore_unresolvable:
                    raise InvalidDefinitionError(f"Could not resolve placeholder '{name}' in value \"{text}\"")
                parts.append(text[start : end + len(self._suffix)])
            else:
                parts.append(self._resolve(value, visiting | {key}))
            index = end + len(self._suffix)
        return "".join(parts)

    def _find_end(self, text: str, start: int) -> int:
        position = start + len(self._prefix)
        depth = 0
        while position < len(text):
            if text.startswith(self._suffix, position):
                if depth == 0:
                    return position
                depth -= 1
                position += len(self._suffix)
            elif text.startswith(self._prefix, position):
                depth += 1
                position += len(self._prefix)
            else:
                position += 1
        return -1

    def _lookup(self, name: str) -> Optional[str]:
        if name in self._values:
            return self._values[name]
        if self._use_environment:
            return os.environ.get(name)
        return None
