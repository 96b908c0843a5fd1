"""
FastAPI integration module.

Provides helpers for using hiera-di injectors as FastAPI dependencies, with one
child injector per request.
"""

from .integration import (
    ScopedInjectorMiddleware,
    create_fastapi_dependency,
    create_scoped_dependency,
)

__all__ = [
    "create_fastapi_dependency",
    "create_scoped_dependency",
    "ScopedInjectorMiddleware",
]
