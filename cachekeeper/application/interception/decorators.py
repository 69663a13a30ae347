"""Interception decorators: expire_cache and update_cache.

Both wrap sync and async callables and run the engine around the call:
side effects finish after the body and before control returns to the
caller. The wrapped call's return value is passed through untouched and
its exceptions are re-raised unchanged.

    @expire_cache(service_type=UserCache, include_value=("save", "remove"))
    class UserService:
        def save_user(self, user): ...          # expires via UserCache.expire_all()

        @expire_cache(method_expression="@user_cache.expire(user_id)")
        def remove_user(self, user_id): ...     # method rule wins over the class rule

    class OrderService:
        @update_cache(service_type=OrderCache, on_exception=True)
        async def save(self, order: Annotated[Order, CacheData]) -> bool: ...
"""

from __future__ import annotations

import functools
import inspect
import logging
import typing
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from cachekeeper.application.interception.engine import InterceptionEngine
from cachekeeper.application.interception.rules import ExpireRule, UpdateRule
from cachekeeper.core.constants import (
    DEFAULT_EXPIRE_INCLUDE_VALUES,
    DEFAULT_EXPIRE_METHOD,
    DEFAULT_UPDATE_METHOD,
    EXPIRE_RULE_ATTR,
    UPDATE_RULE_ATTR,
)
from cachekeeper.domain.declarations import CacheData, InvocationContext, is_marker
from cachekeeper.infrastructure.container import CollaboratorResolver
from cachekeeper.infrastructure.expressions import ExpressionEvaluator

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_engine: InterceptionEngine | None = None

_UNRESOLVED = object()

# Receiver parameters are not exposed to expressions.
_RECEIVER_NAMES = frozenset({"self", "cls"})


def set_engine(engine: InterceptionEngine | None) -> None:
    """Set the process-wide engine used by decorators without an explicit engine."""
    global _engine
    _engine = engine


def get_engine() -> InterceptionEngine | None:
    """Return the process-wide engine, or None before configure_interception."""
    return _engine


def reset_engine() -> None:
    set_engine(None)


def configure_interception(
    container: CollaboratorResolver,
    marker: str | None = None,
) -> InterceptionEngine:
    """Build the process-wide engine over container. Call once at startup.

    Args:
        container: Collaborator resolver (e.g. ServiceContainer).
        marker: Expression marker; defaults to settings.expression_marker.

    Returns:
        The installed engine.
    """
    engine = InterceptionEngine(container, ExpressionEvaluator(container, marker))
    set_engine(engine)
    logger.info("Cache interception configured")
    return engine


def _as_tuple(values: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(values, str):
        return (values,)
    return tuple(values)


class _CallBinding:
    """Builds InvocationContext for calls of one wrapped function."""

    def __init__(self, func: Callable[..., Any], engine: InterceptionEngine | None) -> None:
        self.func = func
        self.engine = engine
        self.signature = inspect.signature(func)
        self._data_param: Any = _UNRESOLVED

    def resolve_engine(self) -> InterceptionEngine | None:
        engine = self.engine or get_engine()
        if engine is None:
            logger.warning(
                "Cache interception not configured; side effect skipped: method=%s",
                self.func.__name__,
            )
        return engine

    def data_param(self) -> str | None:
        """Name of the parameter annotated with CacheData (resolved on first call)."""
        if self._data_param is _UNRESOLVED:
            self._data_param = None
            try:
                hints = typing.get_type_hints(self.func, include_extras=True)
            except (NameError, TypeError):
                logger.warning(
                    "Unresolvable annotations on %s; CacheData marker ignored",
                    self.func.__qualname__,
                )
                hints = {}
            for name in self.signature.parameters:
                metadata = getattr(hints.get(name), "__metadata__", ())
                if any(is_marker(meta, CacheData) for meta in metadata):
                    self._data_param = name
                    break
        return self._data_param

    def context(
        self,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        result: Any = None,
        error: BaseException | None = None,
    ) -> InvocationContext:
        bound = self.signature.bind_partial(*args, **kwargs)
        bound.apply_defaults()
        arguments = {
            name: value
            for name, value in bound.arguments.items()
            if name not in _RECEIVER_NAMES
        }
        return InvocationContext(
            method_name=self.func.__name__,
            arguments=arguments,
            data_argument=self.data_param(),
            result=result,
            error=error,
        )

    def prepare(
        self,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        result: Any = None,
        error: BaseException | None = None,
    ) -> tuple[InterceptionEngine | None, InvocationContext | None]:
        """Return the engine and call context, or (None, None) when interception cannot run."""
        engine = self.resolve_engine()
        if engine is None:
            return None, None
        try:
            return engine, self.context(args, kwargs, result=result, error=error)
        except Exception:
            logger.exception("Cache interception context failed: method=%s", self.func.__name__)
            return None, None


class _ExpireBinding(_CallBinding):
    def __init__(self, func: Callable[..., Any], rule: ExpireRule, engine: InterceptionEngine | None) -> None:
        super().__init__(func, engine)
        self.rule = rule
        self.class_rule: ExpireRule | None = None
        self._effective: ExpireRule | None = None

    def attach_class_rule(self, class_rule: ExpireRule) -> None:
        self.class_rule = class_rule
        self._effective = None

    def effective_rule(self) -> ExpireRule:
        """Method rule completed from the class rule (computed once)."""
        if self._effective is None:
            self._effective = self.rule.merged_with(self.class_rule)
        return self._effective


class _UpdateBinding(_CallBinding):
    def __init__(self, func: Callable[..., Any], rule: UpdateRule, engine: InterceptionEngine | None) -> None:
        super().__init__(func, engine)
        self.rule = rule


def _wrap_expire(func: F, binding: _ExpireBinding) -> F:
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            result = await func(*args, **kwargs)
            engine, ctx = binding.prepare(args, kwargs, result)
            if engine is not None:
                await engine.ahandle_expire(binding.effective_rule(), ctx)
            return result

        wrapper = async_wrapper
    else:

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            result = func(*args, **kwargs)
            engine, ctx = binding.prepare(args, kwargs, result)
            if engine is not None:
                engine.handle_expire(binding.effective_rule(), ctx)
            return result

        wrapper = sync_wrapper
    setattr(wrapper, EXPIRE_RULE_ATTR, binding)
    return typing.cast(F, wrapper)


def _wrap_update(func: F, binding: _UpdateBinding) -> F:
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                engine, ctx = binding.prepare(args, kwargs, None, e)
                if engine is not None:
                    await engine.ahandle_update(binding.rule, ctx)
                raise
            engine, ctx = binding.prepare(args, kwargs, result, None)
            if engine is not None:
                await engine.ahandle_update(binding.rule, ctx)
            return result

        wrapper = async_wrapper
    else:

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                engine, ctx = binding.prepare(args, kwargs, None, e)
                if engine is not None:
                    engine.handle_update(binding.rule, ctx)
                raise
            engine, ctx = binding.prepare(args, kwargs, result, None)
            if engine is not None:
                engine.handle_update(binding.rule, ctx)
            return result

        wrapper = sync_wrapper
    setattr(wrapper, UPDATE_RULE_ATTR, binding)
    return typing.cast(F, wrapper)


def _expire_class(cls: type, rule: ExpireRule, engine: InterceptionEngine | None) -> type:
    """Apply rule to every public method defined on cls.

    Methods already decorated with expire_cache keep their own rule and
    use the class rule only to fill a missing service type or method name.
    """
    for name, attr in list(vars(cls).items()):
        if name.startswith("_"):
            continue
        if isinstance(attr, (staticmethod, classmethod)):
            func = attr.__func__
            wrapper_type: type | None = type(attr)
        elif inspect.isfunction(attr):
            func = attr
            wrapper_type = None
        else:
            continue
        existing = getattr(func, EXPIRE_RULE_ATTR, None)
        if isinstance(existing, _ExpireBinding):
            existing.attach_class_rule(rule)
            continue
        wrapped = _wrap_expire(func, _ExpireBinding(func, rule, engine))
        setattr(cls, name, wrapper_type(wrapped) if wrapper_type else wrapped)
    return cls


def expire_cache(
    *,
    include_pattern: str | Iterable[str] = (),
    exclude_pattern: str | Iterable[str] = (),
    include_value: str | Iterable[str] = DEFAULT_EXPIRE_INCLUDE_VALUES,
    exclude_value: str | Iterable[str] = (),
    service_type: type | None = None,
    method_name: str = DEFAULT_EXPIRE_METHOD,
    method_expression: str = "",
    engine: InterceptionEngine | None = None,
) -> Callable[[Any], Any]:
    """Expire cache entries after a successful call.

    Applies to a function, or to a class (every public method). The
    intercepted method name must pass the include/exclude rules.

    Args:
        include_pattern: Regexes that must fully match the method name.
        exclude_pattern: Regexes that exclude a method name; checked first.
        include_value: Substrings that select a method name; pass () to
            match every method that is not excluded.
        exclude_value: Substrings that exclude a method name.
        service_type: Collaborator type looked up in the container.
        method_name: Zero-argument collaborator method to call.
        method_expression: Expression yielding the method name, or, when it
            starts with the marker, the whole side effect.
        engine: Engine to use instead of the process-wide one.

    Returns:
        Decorator for a function or class.
    """
    rule = ExpireRule(
        service_type=service_type,
        method_name=method_name,
        method_expression=method_expression,
        include_patterns=_as_tuple(include_pattern),
        exclude_patterns=_as_tuple(exclude_pattern),
        include_values=_as_tuple(include_value),
        exclude_values=_as_tuple(exclude_value),
    )

    def decorator(target: Any) -> Any:
        if inspect.isclass(target):
            return _expire_class(target, rule, engine)
        return _wrap_expire(target, _ExpireBinding(target, rule, engine))

    return decorator


def update_cache(
    *,
    service_type: type | None = None,
    method_name: str = DEFAULT_UPDATE_METHOD,
    method_expression: str = "",
    ignore_result: bool = False,
    on_exception: bool = False,
    engine: InterceptionEngine | None = None,
) -> Callable[[F], F]:
    """Update cache entries after a call completes.

    The update argument is the parameter annotated with CacheData, else
    the return value. A False return skips the update unless
    ignore_result; a raised exception skips it unless on_exception, and
    the exception is always re-raised.

    Args:
        service_type: Collaborator type looked up in the container.
        method_name: One-parameter collaborator method to call.
        method_expression: Expression yielding the method name, or, when it
            starts with the marker, the whole side effect (`result` bound).
        ignore_result: Update even when the call returned False.
        on_exception: Update even when the call raised.
        engine: Engine to use instead of the process-wide one.
    """
    rule = UpdateRule(
        service_type=service_type,
        method_name=method_name,
        method_expression=method_expression,
        ignore_result=ignore_result,
        on_exception=on_exception,
    )

    def decorator(func: F) -> F:
        return _wrap_update(func, _UpdateBinding(func, rule, engine))

    return decorator
