"""
Application layer - Registration, resolution and instance lifetimes.

This layer contains the injector tree and the components it orchestrates.
It depends only on the Domain layer.
"""

from .circular_detector import CircularDependencyDetector
from .injector import Injector, create_injector
from .instance_cache import InstanceCache
from .provider_table import ProviderTable
from .resolver import DependencyResolver

__all__ = [
    "Injector",
    "create_injector",
    "DependencyResolver",
    "InstanceCache",
    "ProviderTable",
    "CircularDependencyDetector",
]
