"""
Application layer - Use cases and orchestration.

This layer contains the container and the machinery that builds, wires
and destroys components. It depends only on the Domain layer.
"""

from .circular_detector import CircularCreationDetector
from .collaborators import IdentityEvaluator, ImportTypeLoader
from .constructor_resolver import ConstructorResolver
from .container import DIContainer
from .creation import ComponentCreator
from .definition_merger import DefinitionMerger
from .factory_support import FACTORY_PREFIX, FactoryComponentSupport
from .introspection import Introspector
from .lifecycle import DisposableAdapter, InterceptorRegistry, LifecycleOrchestrator
from .lifetime_manager import LifetimeManager
from .property_populator import PropertyPopulator
from .scopes import ThreadScope
from .singleton_registry import SingletonRegistry
from .type_converter import TypeConverter
from .value_resolver import ValueResolver

__all__ = [
    # Container
    "DIContainer",
    # Creation pipeline
    "ComponentCreator",
    "ConstructorResolver",
    "PropertyPopulator",
    "ValueResolver",
    "TypeConverter",
    "DefinitionMerger",
    "FACTORY_PREFIX",
    "FactoryComponentSupport",
    # Lifetimes
    "CircularCreationDetector",
    "LifetimeManager",
    "SingletonRegistry",
    "ThreadScope",
    # Lifecycle
    "DisposableAdapter",
    "InterceptorRegistry",
    "LifecycleOrchestrator",
    # Collaborators
    "IdentityEvaluator",
    "ImportTypeLoader",
    "Introspector",
]
