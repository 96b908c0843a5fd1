"""
hiera-di: Hierarchical dependency injection container with scoped injectors.

Public API exports for the hiera-di package.
"""

# Application exports
from hiera_di.application.injector import Injector, create_injector

# Domain exports
from hiera_di.domain.enums import ProviderKind
from hiera_di.domain.exceptions import (
    CircularDependencyError,
    DIException,
    InjectorDestroyedError,
    InvalidProviderError,
    NoProviderError,
    ProviderFactoryError,
    TeardownError,
)
from hiera_di.domain.models import ProviderSpec, Token

__version__ = "0.1.0"

__all__ = [
    # Injector
    "Injector",
    "create_injector",
    # Models
    "Token",
    "ProviderSpec",
    # Enums
    "ProviderKind",
    # Exceptions
    "DIException",
    "CircularDependencyError",
    "InjectorDestroyedError",
    "InvalidProviderError",
    "NoProviderError",
    "ProviderFactoryError",
    "TeardownError",
]
