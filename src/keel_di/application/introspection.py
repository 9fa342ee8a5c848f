"""Application layer - Type introspection through `inspect` and type hints."""

import datetime
import decimal
import enum
import inspect
import pathlib
import typing
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union, get_type_hints

from keel_di.domain import ExecutableCandidate, IIntrospector, ParameterSpec, PropertySpec

CANDIDATE_ATTRIBUTE = "__keel_candidate__"

SIMPLE_TYPES = (
    str,
    bytes,
    int,
    float,
    bool,
    complex,
    decimal.Decimal,
    pathlib.PurePath,
    enum.Enum,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    type,
)


def candidate(target: Union[Callable[..., Any], str, None] = None) -> Any:
    """Mark an alternative constructor or an overload of a factory method.

    Used bare on a classmethod/staticmethod, the method becomes an extra
    constructor candidate of its class. Used with a name, the method becomes an
    extra candidate for the factory method of that name.

    Example:
        >>> class Port:
        ...     def __init__(self, number: int):
        ...         self.number = number
        ...
        ...     @candidate
        ...     @classmethod
        ...     def from_text(cls, text: str) -> "Port":
        ...         return cls(int(text))
        ...
        ...     @candidate("create")
        ...     @staticmethod
        ...     def create_default() -> "Port":
        ...         return Port(80)
    """

    def mark(function: Any, alias: Optional[str]) -> Any:
        inner = function.__func__ if isinstance(function, (classmethod, staticmethod)) else function
        setattr(inner, CANDIDATE_ATTRIBUTE, alias or "__init__")
        return function

    if callable(target) or isinstance(target, (classmethod, staticmethod)):
        return mark(target, None)

    def decorator(function: Any) -> Any:
        return mark(function, target)

    return decorator


def is_simple_type(annotation: Any) -> bool:
    """Whether a type holds plain data rather than a collaborator.

    `Optional[X]`, unions and containers are simple when all their arguments are.
    """
    if annotation is None or annotation is inspect.Parameter.empty:
        return False
    origin = typing.get_origin(annotation)
    if origin is not None:
        arguments = [arg for arg in typing.get_args(annotation) if arg is not type(None) and arg is not Ellipsis]
        if origin is typing.Literal:
            return True
        if origin is type:
            return True
        return bool(arguments) and all(is_simple_type(arg) for arg in arguments)
    return inspect.isclass(annotation) and issubclass(annotation, SIMPLE_TYPES)


class Introspector(IIntrospector):
    """Describes constructors, factory methods and settable properties.

    Uses Python's inspect module and type hints. Results are cached per type
    since classes are not expected to change once used as components.

    Attributes:
        _constructor_cache: Constructor candidates per type.
        _property_cache: Settable properties per type.
    """

    def __init__(self) -> None:
        """Initialize the introspector with empty caches."""
        self._constructor_cache: Dict[type, List[ExecutableCandidate]] = {}
        self._property_cache: Dict[type, List[PropertySpec]] = {}

    def describe_constructors(self, component_type: type) -> List[ExecutableCandidate]:
        """Return `__init__` plus every classmethod/staticmethod marked with `@candidate`.

        Args:
            component_type: The class to describe.

        Returns:
            Constructor candidates, `__init__` first.
        """
        cached = self._constructor_cache.get(component_type)
        if cached is not None:
            return cached

        candidates = [self._describe_init(component_type)]
        for attribute_name, raw in self._iter_static_members(component_type):
            if self._candidate_alias(raw) == "__init__":
                candidates.append(self._describe_static(component_type, attribute_name, raw))

        self._constructor_cache[component_type] = candidates
        return candidates

    def describe_factory_methods(self, factory_type: type, method_name: str, static: bool) -> List[ExecutableCandidate]:
        """Return the method named `method_name` and every `@candidate(method_name)` overload.

        Args:
            factory_type: Class declaring the factory method(s).
            method_name: The factory method name.
            static: Whether static/class methods (True) or instance methods (False) are wanted.

        Returns:
            Matching candidates; may be empty.
        """
        candidates: List[ExecutableCandidate] = []
        for attribute_name, raw in self._iter_members(factory_type):
            if attribute_name != method_name and self._candidate_alias(raw) != method_name:
                continue
            is_static = isinstance(raw, (staticmethod, classmethod))
            if is_static != static:
                continue
            if is_static:
                candidates.append(self._describe_static(factory_type, attribute_name, raw))
            elif inspect.isfunction(raw):
                candidates.append(self._describe_instance_method(attribute_name, raw))
        return candidates

    def describe_settable_properties(self, component_type: type) -> List[PropertySpec]:
        """Return annotated public attributes and properties with a setter.

        Args:
            component_type: The class to describe.

        Returns:
            Settable properties in declaration order, base classes first.
        """
        cached = self._property_cache.get(component_type)
        if cached is not None:
            return cached

        specs: Dict[str, PropertySpec] = {}
        hints = self._safe_type_hints(component_type)
        for klass in reversed(component_type.__mro__):
            if klass is object:
                continue
            for attribute_name in inspect.get_annotations(klass):
                if attribute_name.startswith("_"):
                    continue
                annotation = hints.get(attribute_name)
                if typing.get_origin(annotation) is ClassVar or annotation is ClassVar:
                    continue
                specs[attribute_name] = PropertySpec(
                    name=attribute_name,
                    annotation=annotation,
                    simple=is_simple_type(annotation),
                )
            for attribute_name, raw in vars(klass).items():
                if isinstance(raw, property) and raw.fset is not None and not attribute_name.startswith("_"):
                    annotation = self._setter_annotation(raw)
                    specs[attribute_name] = PropertySpec(
                        name=attribute_name,
                        annotation=annotation,
                        simple=is_simple_type(annotation),
                    )

        result = list(specs.values())
        self._property_cache[component_type] = result
        return result

    def _describe_init(self, component_type: type) -> ExecutableCandidate:
        init = component_type.__init__
        if init is object.__init__:
            parameters: List[ParameterSpec] = []
        else:
            try:
                parameters = self._parameters(init, skip_first=True)
            except (TypeError, ValueError):
                parameters = []
        return ExecutableCandidate(
            name="__init__",
            parameters=tuple(parameters),
            public=True,
            static=True,
            function=component_type,
            return_type=component_type,
        )

    def _describe_static(self, owner: type, attribute_name: str, raw: Any) -> ExecutableCandidate:
        bound = getattr(owner, attribute_name)
        return ExecutableCandidate(
            name=attribute_name,
            parameters=tuple(self._parameters(bound, skip_first=False)),
            public=not attribute_name.startswith("_"),
            static=True,
            function=bound,
            return_type=self._return_type(bound),
        )

    def _describe_instance_method(self, attribute_name: str, function: Callable[..., Any]) -> ExecutableCandidate:
        return ExecutableCandidate(
            name=attribute_name,
            parameters=tuple(self._parameters(function, skip_first=True)),
            public=not attribute_name.startswith("_"),
            static=False,
            function=function,
            return_type=self._return_type(function),
        )

    def _parameters(self, function: Callable[..., Any], skip_first: bool) -> List[ParameterSpec]:
        signature = inspect.signature(function)
        hints = self._safe_type_hints(function)
        parameters: List[ParameterSpec] = []
        for index, (param_name, param) in enumerate(signature.parameters.items()):
            if skip_first and index == 0:
                continue
            # *args and **kwargs never take declared arguments
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            annotation = hints.get(param_name)
            if annotation is None and param.annotation is not inspect.Parameter.empty:
                annotation = param.annotation
            parameters.append(
                ParameterSpec(
                    name=param_name,
                    annotation=annotation,
                    has_default=param.default is not inspect.Parameter.empty,
                    default=None if param.default is inspect.Parameter.empty else param.default,
                    positional_only=param.kind is inspect.Parameter.POSITIONAL_ONLY,
                    keyword_only=param.kind is inspect.Parameter.KEYWORD_ONLY,
                )
            )
        return parameters

    def _return_type(self, function: Callable[..., Any]) -> Optional[Any]:
        return self._safe_type_hints(function).get("return")

    def _setter_annotation(self, prop: property) -> Optional[Any]:
        hints = self._safe_type_hints(prop.fset)
        values = [hint for key, hint in hints.items() if key != "return"]
        if values:
            return values[0]
        if prop.fget is not None:
            return self._safe_type_hints(prop.fget).get("return")
        return None

    @staticmethod
    def _safe_type_hints(target: Any) -> Dict[str, Any]:
        # Forward references that cannot be evaluated fall back to raw annotations
        try:
            return get_type_hints(target)
        except Exception:
            if inspect.isclass(target):
                merged: Dict[str, Any] = {}
                for klass in reversed(target.__mro__):
                    merged.update(inspect.get_annotations(klass))
                return merged
            return dict(getattr(target, "__annotations__", {}) or {})

    @staticmethod
    def _iter_members(owner: type) -> List[Any]:
        seen: Dict[str, Any] = {}
        for klass in reversed(owner.__mro__):
            if klass is object:
                continue
            seen.update(vars(klass))
        return list(seen.items())

    def _iter_static_members(self, owner: type) -> List[Any]:
        return [(name, raw) for name, raw in self._iter_members(owner) if isinstance(raw, (staticmethod, classmethod))]

    @staticmethod
    def _candidate_alias(raw: Any) -> Optional[str]:
        inner = raw.__func__ if isinstance(raw, (classmethod, staticmethod)) else raw
        return getattr(inner, CANDIDATE_ATTRIBUTE, None)
