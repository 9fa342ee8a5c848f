"""
FastAPI integration module.

Provides the request scope and helpers for integrating keel-di with FastAPI.
"""

from .integration import (
    REQUEST_SCOPE,
    RequestScope,
    RequestScopeMiddleware,
    create_fastapi_dependency,
    create_scoped_dependency,
    inject_dependencies,
)

__all__ = [
    "REQUEST_SCOPE",
    "RequestScope",
    "RequestScopeMiddleware",
    "create_fastapi_dependency",
    "create_scoped_dependency",
    "inject_dependencies",
]
