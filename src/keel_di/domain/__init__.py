"""
Domain layer - Core business logic and models.

This layer contains component definitions, value descriptors, the error
taxonomy and the interfaces of pluggable collaborators.
It has no dependencies on other layers.
"""

from .enums import AutowireMode, DependencyCheck, InterceptorKind, RecordState, Scope, ValueKind
from .exceptions import (
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
from .interfaces import (
    ComponentInterceptor,
    DisposableComponent,
    FactoryComponent,
    IContainer,
    IExpressionEvaluator,
    IIntrospector,
    InitializingComponent,
    IScope,
    ITypeLoader,
    NameAware,
    RegistryAware,
    SmartInitializingSingleton,
)
from .models import (
    INFERRED_METHOD,
    NULL,
    ComponentDefinition,
    ConstructorArgument,
    DependencyDescriptor,
    ExecutableCandidate,
    InstanceRecord,
    MergedDefinition,
    NullInstance,
    ParameterSpec,
    PropertySpec,
    PropertyValue,
    ResolutionCache,
)
from .values import (
    ArrayValue,
    AutowireMarker,
    ComponentRef,
    ListValue,
    LiteralValue,
    MapValue,
    NestedDefinition,
    PropertiesValue,
    SetValue,
    TypeRef,
    ValueDescriptor,
    autowired,
    literal,
    nested,
    ref,
    type_ref,
)

# Rebuild Pydantic models to resolve forward references
NestedDefinition.model_rebuild(_types_namespace={"ComponentDefinition": ComponentDefinition})

__all__ = [
    # Enums
    "AutowireMode",
    "DependencyCheck",
    "InterceptorKind",
    "RecordState",
    "Scope",
    "ValueKind",
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
    # Interfaces
    "IContainer",
    "IExpressionEvaluator",
    "IIntrospector",
    "IScope",
    "ITypeLoader",
    "ComponentInterceptor",
    "DisposableComponent",
    "FactoryComponent",
    "InitializingComponent",
    "NameAware",
    "RegistryAware",
    "SmartInitializingSingleton",
    # Models
    "INFERRED_METHOD",
    "NULL",
    "NullInstance",
    "ComponentDefinition",
    "ConstructorArgument",
    "DependencyDescriptor",
    "ExecutableCandidate",
    "InstanceRecord",
    "MergedDefinition",
    "ParameterSpec",
    "PropertySpec",
    "PropertyValue",
    "ResolutionCache",
    # Values
    "ValueDescriptor",
    "ArrayValue",
    "AutowireMarker",
    "ComponentRef",
    "ListValue",
    "LiteralValue",
    "MapValue",
    "NestedDefinition",
    "PropertiesValue",
    "SetValue",
    "TypeRef",
    "autowired",
    "literal",
    "nested",
    "ref",
    "type_ref",
]
