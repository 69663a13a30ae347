"""Expressions: Jinja-based evaluator for interception markers."""

from cachekeeper.infrastructure.expressions.evaluator import ExpressionEvaluator

__all__ = ["ExpressionEvaluator"]
