"""Minimal inversion-of-control container.

This package provides a small dependency injection container for Python. It
resolves classes by introspecting their constructors, lets callers register
custom factories or singletons, and injects dependencies into method calls.

Exports:
- `Container`: The container. Register factories with `register`/`singleton`,
  build instances with `resolve`, invoke methods with `call`.
- `DependencyContainer`: Protocol describing what factories receive.
- `UnresolvableDependency`: Raised when a type, parameter or method cannot be satisfied.
- `CircularDependency`: Raised when a dependency graph loops back on itself.
"""

from ._container import CircularDependency, Container, DependencyContainer, UnresolvableDependency


__all__ = ["CircularDependency", "Container", "DependencyContainer", "UnresolvableDependency"]
