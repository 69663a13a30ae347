"""Expression evaluator for interception markers (Jinja expressions).

Expressions use Jinja expression syntax. Intercepted parameters are bound
by name (and `result` for update markers). Collaborators are referenced
with the marker character: `@order_cache.expire(order.id)` is rewritten
to `__collaborator__("order_cache").expire(order.id)` before compiling,
where `__collaborator__` resolves a collaborator by name. The marker is
left alone inside string literals. Parameters are bound after `result`,
so a parameter named `result` shadows the return value.

A method expression that starts with the marker is a full side-effect
expression; any other expression must evaluate to a method name.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from cachekeeper.core.config import get_settings
from cachekeeper.core.constants import EXPRESSION_SERVICE_FUNC
from cachekeeper.domain.exceptions import ExpressionEvaluationException
from cachekeeper.infrastructure.container import CollaboratorResolver

logger = logging.getLogger(__name__)


class ExpressionEvaluator:
    """Compiles and evaluates marker expressions against a variable context."""

    def __init__(
        self,
        resolver: CollaboratorResolver,
        marker: str | None = None,
    ) -> None:
        """Initialize with a collaborator resolver and the marker character.

        Args:
            resolver: Resolves `@name` references.
            marker: Marker character; defaults to settings.expression_marker.
        """
        self.resolver = resolver
        self.marker = marker or get_settings().expression_marker
        # Quoted spans are matched first so markers inside them are skipped.
        self._reference_re = re.compile(
            r"('(?:\\.|[^'\\])*'|\"(?:\\.|[^\"\\])*\")"
            + r"|"
            + re.escape(self.marker)
            + r"([A-Za-z_]\w*)"
        )
        self._env = Environment(autoescape=False, undefined=StrictUndefined)
        self._compiled: dict[str, Callable[..., Any]] = {}

    def is_full_expression(self, text: str) -> bool:
        """Return True if text starts (ignoring whitespace) with the marker."""
        return bool(text) and text.strip().startswith(self.marker)

    def translate(self, expression: str) -> str:
        """Rewrite `@name` references outside string literals into collaborator lookups."""

        def replace(match: re.Match[str]) -> str:
            if match.group(1) is not None:
                return match.group(1)
            return f'{EXPRESSION_SERVICE_FUNC}("{match.group(2)}")'

        return self._reference_re.sub(replace, expression.strip())

    def _compile(self, expression: str) -> Callable[..., Any]:
        compiled = self._compiled.get(expression)
        if compiled is None:
            try:
                compiled = self._env.compile_expression(
                    self.translate(expression), undefined_to_none=False
                )
            except TemplateError as e:
                raise ExpressionEvaluationException(expression, str(e)) from e
            self._compiled[expression] = compiled
        return compiled

    def evaluate(self, expression: str, variables: Mapping[str, Any] | None = None) -> Any:
        """Evaluate expression with variables bound by name.

        Args:
            expression: Jinja expression, optionally using `@name` references.
            variables: Name -> value bindings (intercepted parameters, result).

        Returns:
            The expression value.

        Raises:
            ExpressionEvaluationException: On syntax errors, undefined names,
                or any error raised while evaluating.
        """
        compiled = self._compile(expression)
        context = dict(variables or {})
        context[EXPRESSION_SERVICE_FUNC] = self.resolver.get_by_name
        try:
            value = compiled(**context)
        except ExpressionEvaluationException:
            raise
        except Exception as e:
            raise ExpressionEvaluationException(expression, f"{type(e).__name__}: {e}") from e
        logger.debug("Expression evaluated: %s -> %r", expression, value)
        return value

    def evaluate_name(self, expression: str, variables: Mapping[str, Any] | None = None) -> str | None:
        """Evaluate expression to a method name; None when the value is None or blank."""
        value = self.evaluate(expression, variables)
        if value is None:
            return None
        name = str(value).strip()
        return name or None
