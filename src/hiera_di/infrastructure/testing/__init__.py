"""
Testing utilities module.

Provides helpers and utilities for testing applications using hiera-di.
"""

from .utilities import MockScope, TestInjector, create_mock_injector

__all__ = [
    "TestInjector",
    "create_mock_injector",
    "MockScope",
]
