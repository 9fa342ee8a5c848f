"""
keel-di: Definition-driven dependency injection engine with autowiring.

Public API exports for the keel-di package.
"""

# Application exports
from keel_di.application.container import DIContainer
from keel_di.application.introspection import candidate
from keel_di.application.scopes import ThreadScope

# Domain exports
from keel_di.domain.enums import AutowireMode, DependencyCheck, InterceptorKind, Scope
from keel_di.domain.exceptions import (
    AmbiguousResolutionError,
    CircularCreationError,
    ComponentCreationError,
    CreationNotAllowedError,
    DefinitionOverrideError,
    DIException,
    InconsistentExposureError,
    InitializationFailedError,
    InvalidDefinitionError,
    NoViableConstructorError,
    NotFoundError,
    ScopeError,
    TypeConversionError,
    TypeMismatchError,
    UnsatisfiedDependencyError,
)
from keel_di.domain.interfaces import (
    ComponentInterceptor,
    DisposableComponent,
    FactoryComponent,
    InitializingComponent,
    NameAware,
    RegistryAware,
    SmartInitializingSingleton,
)
from keel_di.domain.models import NULL, ComponentDefinition, ConstructorArgument, PropertyValue
from keel_di.domain.values import (
    ArrayValue,
    ListValue,
    MapValue,
    PropertiesValue,
    SetValue,
    autowired,
    literal,
    nested,
    ref,
    type_ref,
)
from keel_di.settings import EngineSettings

__version__ = "0.1.0"

__all__ = [
    # Container
    "DIContainer",
    "EngineSettings",
    "ThreadScope",
    "candidate",
    # Enums
    "AutowireMode",
    "DependencyCheck",
    "InterceptorKind",
    "Scope",
    # Definitions
    "NULL",
    "ComponentDefinition",
    "ConstructorArgument",
    "PropertyValue",
    # Values
    "ArrayValue",
    "ListValue",
    "MapValue",
    "PropertiesValue",
    "SetValue",
    "autowired",
    "literal",
    "nested",
    "ref",
    "type_ref",
    # Lifecycle
    "ComponentInterceptor",
    "DisposableComponent",
    "FactoryComponent",
    "InitializingComponent",
    "NameAware",
    "RegistryAware",
    "SmartInitializingSingleton",
    # Exceptions
    "DIException",
    "AmbiguousResolutionError",
    "CircularCreationError",
    "ComponentCreationError",
    "CreationNotAllowedError",
    "DefinitionOverrideError",
    "InconsistentExposureError",
    "InitializationFailedError",
    "InvalidDefinitionError",
    "NoViableConstructorError",
    "NotFoundError",
    "ScopeError",
    "TypeConversionError",
    "TypeMismatchError",
    "UnsatisfiedDependencyError",
]
