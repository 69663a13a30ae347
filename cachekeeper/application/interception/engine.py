"""Interception engine: decide, resolve and dispatch cache side effects.

Both rule kinds share one resolution path:

- a method expression starting with the marker is evaluated as the whole
  side effect (parameters bound by name, `result` for updates);
- otherwise the collaborator is looked up by service type and the method
  name is taken literally or from the method expression.

Expire calls the resolved method with no arguments. Update passes one
argument (the CacheData parameter, else the return value) to a method
whose single parameter accepts it; verdicts are cached per
(collaborator type, method name, argument type).

Every failure is logged and swallowed here. The handlers never raise, so
the intercepted call's own result or error is never replaced.
"""

from __future__ import annotations

import functools
import inspect
import logging
import types
import typing
from collections.abc import Callable
from typing import Any, Union

from cachekeeper.application.interception.rules import (
    ExpireRule,
    InterceptionRule,
    UpdateRule,
)
from cachekeeper.domain.declarations import InvocationContext
from cachekeeper.domain.exceptions import (
    DispatchException,
    InterceptionConfigurationException,
)
from cachekeeper.infrastructure.container import CollaboratorResolver
from cachekeeper.infrastructure.expressions import ExpressionEvaluator

logger = logging.getLogger(__name__)

_SKIPPED = object()

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


# int is acceptable where float or complex is annotated.
_NUMERIC_TOWER: dict[type, tuple[type, ...]] = {
    float: (int, float),
    complex: (int, float, complex),
}


def _accepts(annotation: Any, value: Any) -> bool:
    """Return True if a parameter annotated with annotation accepts value."""
    if value is None:
        return True
    if annotation in (inspect.Parameter.empty, Any, object):
        return True
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return any(_accepts(arg, value) for arg in typing.get_args(annotation))
    if origin is typing.Literal:
        return value in typing.get_args(annotation)
    if isinstance(origin, type):
        return isinstance(value, origin)
    if isinstance(annotation, type):
        return isinstance(value, _NUMERIC_TOWER.get(annotation, annotation))
    # TypeVar, NewType and other typing constructs are not checked.
    return True


def _public_method(collaborator: Any, method_name: str) -> Callable[..., Any]:
    if method_name.startswith("_"):
        raise DispatchException(type(collaborator), method_name, "method is not public")
    method = getattr(collaborator, method_name, None)
    if method is None or not callable(method):
        raise DispatchException(type(collaborator), method_name, "no such method")
    return method


class InterceptionEngine:
    """Runs expire and update rules for intercepted calls.

    Side effects run synchronously on the caller's thread, after the
    intercepted body and before control returns to the caller.
    """

    def __init__(
        self,
        container: CollaboratorResolver,
        evaluator: ExpressionEvaluator | None = None,
    ) -> None:
        """Initialize with a collaborator container and an optional evaluator.

        Args:
            container: Resolves collaborators by type (and by name for expressions).
            evaluator: Expression evaluator; built over container when omitted.
        """
        self.container = container
        self.evaluator = evaluator or ExpressionEvaluator(container)
        self._update_verdicts: dict[tuple[type, str, type], str | None] = {}

    # ---- public handlers ----

    def handle_expire(self, rule: ExpireRule, ctx: InvocationContext) -> Any:
        """Run an expire rule after a successful call. Never raises."""
        try:
            outcome = self._expire(rule, ctx)
            return self._settle_sync(outcome, "expire", ctx)
        except Exception:
            logger.exception("Cache expire failed: method=%s", ctx.method_name)
            return None

    def handle_update(self, rule: UpdateRule, ctx: InvocationContext) -> Any:
        """Run an update rule after a call completed or raised. Never raises."""
        try:
            outcome = self._update(rule, ctx)
            return self._settle_sync(outcome, "update", ctx)
        except Exception:
            logger.exception("Cache update failed: method=%s", ctx.method_name)
            return None

    async def ahandle_expire(self, rule: ExpireRule, ctx: InvocationContext) -> Any:
        """Async variant of handle_expire; awaits awaitable side effects."""
        try:
            outcome = self._expire(rule, ctx)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return None if outcome is _SKIPPED else outcome
        except Exception:
            logger.exception("Cache expire failed: method=%s", ctx.method_name)
            return None

    async def ahandle_update(self, rule: UpdateRule, ctx: InvocationContext) -> Any:
        """Async variant of handle_update; awaits awaitable side effects."""
        try:
            outcome = self._update(rule, ctx)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return None if outcome is _SKIPPED else outcome
        except Exception:
            logger.exception("Cache update failed: method=%s", ctx.method_name)
            return None

    # ---- rule evaluation ----

    def _expire(self, rule: ExpireRule, ctx: InvocationContext) -> Any:
        if ctx.failed:
            return _SKIPPED
        if not rule.matches(ctx.method_name):
            logger.debug("Cache expire not matched: method=%s", ctx.method_name)
            return _SKIPPED
        return self._dispatch(
            rule,
            ctx,
            include_result=False,
            invoke=lambda collaborator, name: self.resolve_expire_method(collaborator, name)(),
        )

    def _update(self, rule: UpdateRule, ctx: InvocationContext) -> Any:
        if not rule.should_fire(ctx.result, ctx.error):
            logger.debug(
                "Cache update skipped: method=%s (result=%r, failed=%s)",
                ctx.method_name,
                ctx.result,
                ctx.failed,
            )
            return _SKIPPED
        if ctx.failed:
            logger.debug("Cache update after exception (on_exception): method=%s", ctx.method_name)
        argument = ctx.update_argument()
        return self._dispatch(
            rule,
            ctx,
            include_result=True,
            invoke=lambda collaborator, name: self.resolve_update_method(
                collaborator, name, argument
            )(argument),
        )

    def _dispatch(
        self,
        rule: InterceptionRule,
        ctx: InvocationContext,
        include_result: bool,
        invoke: Callable[[Any, str], Any],
    ) -> Any:
        expression = rule.method_expression
        variables = ctx.variables(include_result=include_result)
        if self.evaluator.is_full_expression(expression):
            value = self.evaluator.evaluate(expression, variables)
            logger.debug("Cache side effect expression run: %s", expression)
            return value

        if rule.service_type is None:
            raise InterceptionConfigurationException(
                f"No service_type declared for intercepted method {ctx.method_name}"
            )
        collaborator = self.container.get(rule.service_type)
        if expression.strip():
            method_name = self.evaluator.evaluate_name(expression, variables)
        else:
            method_name = rule.method_name.strip()
        if not method_name:
            raise InterceptionConfigurationException(
                f"No side-effect method resolved for intercepted method {ctx.method_name}"
            )
        value = invoke(collaborator, method_name)
        logger.debug(
            "Cache side effect dispatched: service=%s, method=%s",
            rule.service_type.__qualname__,
            method_name,
        )
        return value

    def _settle_sync(self, outcome: Any, kind: str, ctx: InvocationContext) -> Any:
        if outcome is _SKIPPED:
            return None
        if inspect.isawaitable(outcome):
            logger.warning(
                "Cache %s returned an awaitable from sync method %s; it was not awaited",
                kind,
                ctx.method_name,
            )
            if inspect.iscoroutine(outcome):
                outcome.close()
            return None
        return outcome

    # ---- method resolution ----

    def resolve_expire_method(self, collaborator: Any, method_name: str) -> Callable[[], Any]:
        """Return the zero-argument public method named method_name.

        Raises:
            DispatchException: If missing, private, or requires arguments.
        """
        method = _public_method(collaborator, method_name)
        try:
            inspect.signature(method).bind()
        except TypeError:
            raise DispatchException(
                type(collaborator), method_name, "expire methods take no arguments"
            ) from None
        return method

    def resolve_update_method(
        self, collaborator: Any, method_name: str, argument: Any
    ) -> Callable[[Any], Any]:
        """Return the one-parameter public method that accepts argument.

        functools.singledispatchmethod methods are accepted and dispatch
        on the argument type themselves. Verdicts are cached per
        (collaborator type, method name, argument type).

        Raises:
            DispatchException: If missing, wrong arity, or incompatible type.
        """
        method = _public_method(collaborator, method_name)
        key = (type(collaborator), method_name, type(argument))
        if key not in self._update_verdicts:
            self._update_verdicts[key] = self._update_mismatch(collaborator, method_name, method, argument)
        reason = self._update_verdicts[key]
        if reason is not None:
            raise DispatchException(type(collaborator), method_name, reason)
        return method

    def _update_mismatch(
        self,
        collaborator: Any,
        method_name: str,
        method: Callable[..., Any],
        argument: Any,
    ) -> str | None:
        """Return why method cannot take argument, or None if it can."""
        static = inspect.getattr_static(type(collaborator), method_name, None)
        if isinstance(static, functools.singledispatchmethod):
            return None

        parameters = list(inspect.signature(method).parameters.values())
        positional = [p for p in parameters if p.kind in _POSITIONAL]
        required_kw = [
            p
            for p in parameters
            if p.kind is inspect.Parameter.KEYWORD_ONLY and p.default is inspect.Parameter.empty
        ]
        if len(positional) != 1 or required_kw:
            return "update methods take exactly one parameter"

        param = positional[0]
        try:
            hints = typing.get_type_hints(method)
        except (NameError, TypeError):
            logger.debug("Unresolvable annotations on %s; parameter type not checked", method_name)
            hints = {}
        annotation = hints.get(param.name, param.annotation)
        if isinstance(annotation, str):
            return None
        if not _accepts(annotation, argument):
            return f"parameter {param.name!r} does not accept {type(argument).__qualname__}"
        return None
