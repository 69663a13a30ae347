"""Interception rules declared by expire_cache / update_cache.

Rules are immutable after the decorated class or function is defined.
ExpireRule.matches decides, from the intercepted method name alone,
whether a side effect fires:

1. any exclude pattern fully matches -> no match
2. any exclude value is a substring -> no match
3. any include pattern fully matches, or any include value is a
   substring -> match
4. no include rules at all -> match

Patterns are compiled when the rule is created; an invalid regex raises
InterceptionConfigurationException at decoration time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace

from cachekeeper.core.constants import (
    DEFAULT_EXPIRE_INCLUDE_VALUES,
    DEFAULT_EXPIRE_METHOD,
    DEFAULT_UPDATE_METHOD,
)
from cachekeeper.domain.exceptions import InterceptionConfigurationException


def _compile_patterns(patterns: tuple[str, ...], option: str) -> tuple[re.Pattern[str], ...]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise InterceptionConfigurationException(
                f"Invalid {option} {pattern!r}: {e}",
                {"option": option, "pattern": pattern},
            ) from e
    return tuple(compiled)


@dataclass(frozen=True)
class InterceptionRule:
    """Side-effect target shared by expire and update rules.

    method_expression takes precedence over method_name. When it starts
    with the expression marker it is the whole side effect and
    service_type/method_name are ignored.
    """

    service_type: type | None = None
    method_name: str = ""
    method_expression: str = ""


@dataclass(frozen=True)
class ExpireRule(InterceptionRule):
    """Expire side effect, fired after a successful return."""

    method_name: str = DEFAULT_EXPIRE_METHOD
    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    include_values: tuple[str, ...] = DEFAULT_EXPIRE_INCLUDE_VALUES
    exclude_values: tuple[str, ...] = ()
    _compiled: tuple[tuple[re.Pattern[str], ...], tuple[re.Pattern[str], ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_compiled",
            (
                _compile_patterns(self.include_patterns, "include_pattern"),
                _compile_patterns(self.exclude_patterns, "exclude_pattern"),
            ),
        )

    def matches(self, method_name: str) -> bool:
        """Return True if a call to method_name should trigger expiry."""
        include_res, exclude_res = self._compiled
        if any(p.fullmatch(method_name) for p in exclude_res):
            return False
        if any(value in method_name for value in self.exclude_values):
            return False
        if include_res and any(p.fullmatch(method_name) for p in include_res):
            return True
        if self.include_values and any(v in method_name for v in self.include_values):
            return True
        return not include_res and not self.include_values

    def merged_with(self, class_rule: ExpireRule | None) -> ExpireRule:
        """Fill a missing service type or blank method name from the class rule."""
        if class_rule is None:
            return self
        changes: dict[str, object] = {}
        if self.service_type is None and class_rule.service_type is not None:
            changes["service_type"] = class_rule.service_type
        if not self.method_name.strip() and class_rule.method_name.strip():
            changes["method_name"] = class_rule.method_name
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class UpdateRule(InterceptionRule):
    """Update side effect, fired after a call completes.

    ignore_result: run even when the call returned False.
    on_exception: run even when the call raised (the error still propagates).
    """

    method_name: str = DEFAULT_UPDATE_METHOD
    ignore_result: bool = False
    on_exception: bool = False

    def should_fire(self, result: object, error: BaseException | None) -> bool:
        """Gate on the call outcome: errors need on_exception, False needs ignore_result."""
        if error is not None:
            return self.on_exception
        if result is False and not self.ignore_result:
            return False
        return True
