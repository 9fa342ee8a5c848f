"""Application layer - Conversion of resolved values to declared types."""

import functools
import inspect
import re
from typing import Any, Optional

from pydantic import ConfigDict, PydanticUserError, TypeAdapter, ValidationError

from keel_di.domain import NULL, ITypeLoader, TypeConversionError

_INTEGER = re.compile(r"[+-]?\d+")
_BOOLEANS = {"true": True, "false": False}


@functools.lru_cache(maxsize=512)
def _cached_adapter(target_type: Any) -> TypeAdapter:
    return _build_adapter(target_type)


def _build_adapter(target_type: Any) -> TypeAdapter:
    try:
        return TypeAdapter(target_type, config=ConfigDict(arbitrary_types_allowed=True))
    except PydanticUserError:
        # Models, dataclasses and TypedDicts carry their own config
        return TypeAdapter(target_type)


def natural_type(text: str) -> type:
    """Most specific builtin type a literal text reads as: bool, int, float, else str."""
    stripped = text.strip()
    if stripped.lower() in _BOOLEANS:
        return bool
    if _INTEGER.fullmatch(stripped):
        return int
    try:
        float(stripped)
    except ValueError:
        return str
    return float


def is_unconstrained(target_type: Any) -> bool:
    """Whether a declared type accepts anything as-is."""
    return target_type is None or target_type is Any or target_type is inspect.Parameter.empty or target_type is object


class TypeConverter:
    """Converts values to declared types using pydantic validation in lax mode.

    Declared types given as dotted names are loaded through the type loader.

    Attributes:
        _type_loader: Collaborator loading types by name.
    """

    def __init__(self, type_loader: ITypeLoader) -> None:
        """Initialize the converter.

        Args:
            type_loader: Used for declared types given as strings.
        """
        self._type_loader = type_loader

    def resolve_type(self, declared_type: Any) -> Any:
        """Return the type object for a declared type (loading dotted names)."""
        if isinstance(declared_type, str):
            return self._type_loader.load(declared_type)
        return declared_type

    def convert(self, value: Any, target_type: Any, label: Optional[str] = None) -> Any:
        """Convert `value` to `target_type`.

        Args:
            value: The resolved value.
            target_type: Declared type, or None for no conversion.
            label: Description of the target used in error messages.

        Returns:
            The converted value; values already of the type are returned unchanged.

        Raises:
            TypeConversionError: If pydantic cannot validate the value against the type.
        """
        target_type = self.resolve_type(target_type)
        if is_unconstrained(target_type) or value is None or value is NULL:
            return None if value is NULL else value
        if inspect.isclass(target_type) and isinstance(value, target_type):
            return value

        target_name = getattr(target_type, "__qualname__", repr(target_type))
        where = f" for {label}" if label else ""
        try:
            adapter = self._adapter(target_type)
            return adapter.validate_python(value)
        except ValidationError as e:
            raise TypeConversionError(
                f"Cannot convert value of type [{type(value).__qualname__}] to required type [{target_name}]{where}: "
                f"{e.errors()[0].get('msg', e)}"
            ) from e
        except PydanticUserError as e:
            raise TypeConversionError(f"No conversion available to type [{target_name}]{where}: {e}") from e

    def can_convert(self, value: Any, target_type: Any) -> bool:
        """Whether `convert` would succeed."""
        try:
            self.convert(value, target_type)
        except TypeConversionError:
            return False
        return True

    @staticmethod
    def _adapter(target_type: Any) -> TypeAdapter:
        try:
            return _cached_adapter(target_type)
        except TypeError:
            # Unhashable type expressions are not cached
            return _build_adapter(target_type)
