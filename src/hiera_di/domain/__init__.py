"""
Domain layer - Core models and rules.

This layer contains tokens, provider recipes, cache states and the error taxonomy.
It has no dependencies on other layers.
"""

from .enums import CacheState, ProviderKind
from .exceptions import (
    CircularDependencyError,
    DIException,
    InjectorDestroyedError,
    InvalidProviderError,
    NoProviderError,
    ProviderFactoryError,
    TeardownError,
)
from .interfaces import IInjector, IInstanceCache, IResolver
from .models import CacheEntry, ProviderSpec, ResolutionContext, Token

# Rebuild Pydantic models to resolve forward references
ProviderSpec.model_rebuild()

__all__ = [
    # Enums
    "CacheState",
    "ProviderKind",
    # Exceptions
    "DIException",
    "CircularDependencyError",
    "InjectorDestroyedError",
    "InvalidProviderError",
    "NoProviderError",
    "ProviderFactoryError",
    "TeardownError",
    # Interfaces
    "IInjector",
    "IInstanceCache",
    "IResolver",
    # Models
    "CacheEntry",
    "ProviderSpec",
    "ResolutionContext",
    "Token",
]
