from typing import Iterable, List, Optional


class DIException(Exception):
    """Base exception for DI-related errors.

    Every error carries the chain of components that were being created
    when it happened. Each layer boundary adds the name it owns through
    `add_context`, so an error raised deep inside a dependency graph reads
    like `Error creating component 'service' -> 'repository': <detail>`
    once it reaches the caller, while keeping its original class.

    Attributes:
        detail: The innermost description of the failure.
        component_chain: Component names, outermost first.
    """

    def __init__(self, detail: str, component_name: Optional[str] = None) -> None:
        self.detail = detail
        self.component_chain: List[str] = []
        if component_name:
            self.component_chain.append(component_name)
        super().__init__(detail)

    @property
    def component_name(self) -> Optional[str]:
        """The innermost component the error belongs to, if known."""
        return self.component_chain[-1] if self.component_chain else None

    def add_context(self, component_name: Optional[str]) -> "DIException":
        """Record that the error propagated out of `component_name`.

        Consecutive duplicates are ignored so that several layers of the same
        component do not repeat its name.
        """
        if component_name and (not self.component_chain or self.component_chain[0] != component_name):
            self.component_chain.insert(0, component_name)
        return self

    def __str__(self) -> str:
        if not self.component_chain:
            return self.detail
        path = " -> ".join(f"'{name}'" for name in self.component_chain)
        return f"Error creating component {path}: {self.detail}"


class NotFoundError(DIException):
    """Raised when no definition or instance exists for a requested name or type."""

    def __init__(self, name: str, detail: Optional[str] = None) -> None:
        self.name = name
        super().__init__(detail or f"No component named '{name}' is defined")


class InvalidDefinitionError(DIException):
    """Raised for malformed definitions.

    This occurs when:
    - A parent definition cannot be resolved.
    - A type name cannot be loaded.
    - A declared init/destroy method or property does not exist.
    """


class DefinitionOverrideError(DIException):
    """Raised when registering a name that is already taken and overriding is disabled."""


class NoViableConstructorError(DIException):
    """Raised when no constructor or factory method can be satisfied.

    Attributes:
        attempted: Type names of the arguments that were offered.
    """

    def __init__(self, detail: str, attempted: Iterable[str] = (), component_name: Optional[str] = None) -> None:
        self.attempted = list(attempted)
        if self.attempted:
            detail += f" (argument types tried: [{', '.join(self.attempted)}])"
        super().__init__(detail, component_name)


class AmbiguousResolutionError(DIException):
    """Raised when several candidates match equally well.

    Attributes:
        candidates: Descriptions of the tied candidates.
    """

    def __init__(self, detail: str, candidates: Iterable[str] = (), component_name: Optional[str] = None) -> None:
        self.candidates = list(candidates)
        if self.candidates:
            detail += f": {', '.join(self.candidates)}"
        super().__init__(detail, component_name)


class UnsatisfiedDependencyError(DIException):
    """Raised when a required reference, argument or property cannot be resolved.

    Attributes:
        injection_point: The argument or property label, if known.
    """

    def __init__(self, detail: str, injection_point: Optional[str] = None, component_name: Optional[str] = None) -> None:
        self.injection_point = injection_point
        if injection_point:
            detail = f"Unsatisfied dependency expressed through {injection_point}: {detail}"
        super().__init__(detail, component_name)


class CircularCreationError(DIException):
    """Raised when a cycle cannot be broken with an early reference.

    This occurs when:
    - Non-singleton components depend on each other.
    - Singletons depend on each other through constructors.
    - Circular-reference resolution is disabled.
    - `depends_on` declarations form a cycle.

    Attributes:
        dependency_chain: Names involved in the cycle, when known.
    """

    def __init__(self, name: str, dependency_chain: Optional[List[str]] = None, detail: Optional[str] = None) -> None:
        self.dependency_chain = dependency_chain or []
        if detail is None:
            detail = "Requested component is currently in creation: is there an unresolvable circular reference?"
            if self.dependency_chain:
                detail += f" ({' -> '.join(self.dependency_chain)})"
        super().__init__(detail, name)


class InconsistentExposureError(DIException):
    """Raised when a component was wrapped after others captured its raw instance."""


class InitializationFailedError(DIException):
    """Raised when an init callback of a component fails."""


class ComponentCreationError(DIException):
    """Raised when user code fails while instantiating a component."""


class TypeMismatchError(DIException):
    """Raised when a component is not of the type the caller required."""


class TypeConversionError(DIException):
    """Raised when a value cannot be converted to a declared type."""


class CreationNotAllowedError(DIException):
    """Raised when a singleton is requested while singletons are being destroyed."""


class ScopeError(DIException):
    """Raised for invalid scope operations.

    This occurs when:
    - A definition names a custom scope that was never registered.
    - A custom scope is used outside of its active context (e.g. no request).
    """
