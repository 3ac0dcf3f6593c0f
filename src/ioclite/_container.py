from __future__ import annotations

import inspect
import logging
import threading
import typing
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    TypeVar,
    cast,
    get_type_hints,
    overload,
    runtime_checkable,
)


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    T = TypeVar("T")

    Token = type[T] | str
    Factory = Callable[["DependencyContainer"], Any]

# Classes from these modules are values, never dependencies to build.
_SCALAR_MODULES = frozenset({"builtins", "typing"})


class UnresolvableDependency(RuntimeError):
    """Raised when a type, parameter or method cannot be satisfied."""

    def __init__(self, dependency: object, message: str | None = None) -> None:
        self.dependency = dependency
        if message is None:
            message = f"Unable to resolve [{_describe(dependency)}]"
        super().__init__(message)


class CircularDependency(UnresolvableDependency):
    """Raised when a dependency is requested again while it is still being resolved."""

    def __init__(self, chain: Sequence[object]) -> None:
        self.chain = tuple(chain)
        path = " -> ".join(_describe(token) for token in self.chain)
        super().__init__(self.chain[-1], f"Circular dependency detected: {path}")


@runtime_checkable
class DependencyContainer(Protocol):
    """What factories receive: enough of the container to resolve sub-dependencies."""

    def register(self, dependency: Any, factory: Factory) -> DependencyContainer: ...

    def singleton(self, dependency: Any, factory: Factory) -> DependencyContainer: ...

    def resolve(self, dependency: Any) -> Any: ...

    def call(self, obj: object, method: str) -> Any: ...


@dataclass(frozen=True)
class ParameterDescriptor:
    name: str
    annotation: Any = inspect.Parameter.empty
    default: Any = inspect.Parameter.empty
    keyword_only: bool = False
    variadic: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty


@dataclass(frozen=True)
class Inference:
    """Outcome of trying to derive a factory for an unregistered dependency."""

    factory: Factory | None = None
    reason: str | None = None
    cause: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.factory is not None

    @classmethod
    def failed(cls, reason: str, cause: BaseException | None = None) -> Inference:
        return cls(reason=reason, cause=cause)


class Container:
    """Minimal IoC container.

    - register factories, optionally as singletons
    - resolve with constructor injection, auto-registering concrete classes
    - call methods with their parameters injected.
    """

    def __init__(self) -> None:
        self._factories: dict[Any, Factory] = {}
        self._singletons: dict[Any, Any] = {}
        self._resolving: list[Any] = []
        self._lock = threading.RLock()
        self._autowirer = Autowirer(self)

    def register(self, dependency: Token[T], factory: Factory) -> Container:
        """Register a factory for a dependency, replacing any previous one.

        Example:
          container.register(Cache, lambda c: RedisCache(c.resolve(Settings)))

        """
        with self._lock:
            self._factories[dependency] = factory
        logger.debug("Registered factory for %s", _describe(dependency))
        return self

    def singleton(self, dependency: Token[T], factory: Factory) -> Container:
        """Register a factory whose first result is reused for every resolution."""

        def shared(container: DependencyContainer) -> Any:
            with self._lock:
                if dependency in self._singletons:
                    return self._singletons[dependency]

                instance = factory(container)
                self._singletons[dependency] = instance
                logger.debug("Created singleton instance for %s", _describe(dependency))
                return instance

        return self.register(dependency, shared)

    @overload
    def resolve(self, dependency: type[T]) -> T: ...

    @overload
    def resolve(self, dependency: str) -> object: ...

    def resolve(self, dependency: Token[T]) -> object:
        """Resolve the dependency to an instance.

        - If a registration exists: invoke its factory.
        - Otherwise, if the dependency is a concrete class: derive a factory from its
          constructor, register it and invoke it.
        """
        with self._lock, self._in_progress(dependency):
            if dependency not in self._factories:
                self._auto_register(dependency)

            factory = self._factories[dependency]
            return factory(self)

    def has(self, dependency: Token[T]) -> bool:
        """Check whether a factory is registered, explicitly or by auto-registration."""
        with self._lock:
            return dependency in self._factories

    def can_resolve(self, dependency: Token[T]) -> bool:
        """Check whether the dependency is registered or can be inferred.

        A successful inference is registered, exactly as `resolve` would do.
        """
        with self._lock, self._in_progress(dependency):
            if dependency in self._factories:
                return True

            inference = self._autowirer.infer(dependency)
            if inference.succeeded:
                self.register(dependency, cast("Factory", inference.factory))
            return inference.succeeded

    def call(self, obj: object, method: str) -> Any:
        """Invoke `obj.method`, resolving its parameters from the container."""
        try:
            callee = getattr(obj, method)
            parameters = describe_parameters(callee, _get_type_hints(callee, f"{type(obj).__name__}.{method}"))
            args, kwargs = self._autowirer.resolve_arguments(parameters)
            return callee(*args, **kwargs)
        except Exception as e:
            raise UnresolvableDependency(method, f"Unable to call [{method}]") from e

    @contextmanager
    def _in_progress(self, dependency: Any) -> Iterator[None]:
        if dependency in self._resolving:
            raise CircularDependency([*self._resolving, dependency])

        self._resolving.append(dependency)
        try:
            yield
        finally:
            self._resolving.pop()

    def _auto_register(self, dependency: Any) -> None:
        inference = self._autowirer.infer(dependency)
        if not inference.succeeded:
            msg = f"Unable to resolve [{_describe(dependency)}]: {inference.reason}"
            raise UnresolvableDependency(dependency, msg) from inference.cause

        logger.debug("Auto-registered %s from its constructor", _describe(dependency))
        self.register(dependency, cast("Factory", inference.factory))


class Autowirer:
    """Derives factories for concrete classes by introspecting their constructors."""

    def __init__(self, container: Container) -> None:
        self._container = container

    def infer(self, dependency: Any) -> Inference:
        inference = self._infer(dependency)
        if not inference.succeeded:
            logger.debug("Cannot infer %s: %s", _describe(dependency), inference.reason)
        return inference

    def _infer(self, dependency: Any) -> Inference:
        if not inspect.isclass(dependency):
            return Inference.failed("not registered and cannot be introspected")

        # Interfaces and abstract classes need an explicit registration;
        # the container never guesses an implementation.
        if inspect.isabstract(dependency) or _is_protocol(dependency):
            return Inference.failed(f"{dependency.__name__} is abstract and has no registered factory")

        try:
            parameters = self.describe_constructor(dependency)
        except (TypeError, ValueError) as e:
            return Inference.failed(f"cannot inspect the constructor of {dependency.__name__}", e)

        try:
            args, kwargs = self.resolve_arguments(parameters)
        except CircularDependency:
            raise
        except Exception as e:  # noqa: BLE001
            return Inference.failed(f"cannot satisfy the constructor of {dependency.__name__} ({e})", e)

        def factory(_container: DependencyContainer) -> Any:
            return dependency(*args, **kwargs)

        return Inference(factory=factory)

    def describe_constructor(self, cls: type) -> list[ParameterDescriptor]:
        # If there is no constructor, there are no dependencies.
        if not _declares_constructor(cls):
            return []

        return describe_parameters(cls, _get_type_hints(inspect.getattr_static(cls, "__init__"), cls.__qualname__))

    def resolve_arguments(self, parameters: Sequence[ParameterDescriptor]) -> tuple[list[Any], dict[str, Any]]:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        for p in parameters:
            # Variadic parameters are never filled
            if p.variadic:
                continue

            value = self.resolve_parameter(p)
            if p.keyword_only:
                kwargs[p.name] = value
            else:
                args.append(value)

        return args, kwargs

    def resolve_parameter(self, p: ParameterDescriptor) -> Any:
        """Resolving param.

        Resolution precedence:
        1. object-type annotation, resolved through the container
        2. default, also when the object type itself cannot be resolved
        3. error.
        """
        if self._is_object_type(p):
            try:
                return self._container.resolve(p.annotation)
            except CircularDependency:
                raise
            except UnresolvableDependency:
                if not p.has_default:
                    raise
                logger.debug("Using default for parameter '%s': %s is unresolvable", p.name, _describe(p.annotation))
                return p.default

        if p.has_default:
            return p.default

        ann_repr = _describe(p.annotation) if p.annotation is not inspect.Parameter.empty else "no-annotation"
        msg = f"Cannot satisfy parameter '{p.name}': no registration or default found (annotation: {ann_repr})"
        raise UnresolvableDependency(p.name, msg)

    def _is_object_type(self, p: ParameterDescriptor) -> bool:
        annotation = p.annotation
        if annotation is inspect.Parameter.empty:
            return False

        try:
            if self._container.has(annotation):
                return True
        except TypeError:  # unhashable annotation
            return False

        if not inspect.isclass(annotation) or getattr(annotation, "__module__", "") in _SCALAR_MODULES:
            return False

        # Enums and classes whose default is already one of their instances are values.
        if issubclass(annotation, Enum):
            return False
        if p.has_default and not _is_protocol(annotation):
            return not isinstance(p.default, annotation)
        return True


def describe_parameters(target: Callable[..., Any], hints: dict[str, Any]) -> list[ParameterDescriptor]:
    """Describe the parameters of a callable.

    Annotations come from the resolved type hints. A parameter missing from them keeps
    its raw annotation unless that is an unevaluated string.
    """
    sig = inspect.signature(target)
    descriptors = []
    for name, p in sig.parameters.items():
        annotation = hints.get(name, p.annotation)
        if isinstance(annotation, str):
            annotation = inspect.Parameter.empty

        descriptors.append(
            ParameterDescriptor(
                name=name,
                annotation=annotation,
                default=p.default,
                keyword_only=p.kind is p.KEYWORD_ONLY,
                variadic=p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD),
            )
        )
    return descriptors


def _declares_constructor(cls: type) -> bool:
    return cls.__init__ is not object.__init__ or cls.__new__ is not object.__new__


def _describe(token: object) -> str:
    return getattr(token, "__qualname__", None) or repr(token)


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def _is_protocol(tp: type) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def _is_protocol(tp: type) -> bool:
        """Detect whether 'tp' is itself a typing.Protocol class, not an implementation of one."""
        return inspect.isclass(tp) and bool(getattr(tp, "_is_protocol", False))


def _get_type_hints(target: Any, owner: str) -> dict[str, Any]:
    try:
        hints = get_type_hints(target)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s type hints", exc.name, owner)
        hints = {}

    hints.pop("return", None)
    return hints
