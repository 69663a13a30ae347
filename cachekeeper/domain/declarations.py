"""Declaration markers and the per-call invocation context.

Markers are plain immutable values attached through class decorators or
typing.Annotated metadata. The scanner and the interception engine read
them; nothing here performs registration or dispatch.

Usage:
    @cache_keys(prefix="service", second_prefix="user:cache", keys_constant=True)
    class UserKeys:
        USER_LIST = "userList"
        LEGACY: Annotated[str, ExcludeKey] = "legacy"

    class OrderService:
        @update_cache(service_type=OrderCache)
        def save(self, order: Annotated[Order, CacheData]) -> bool: ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final

from cachekeeper.core.constants import EXPRESSION_RESULT_VAR


@dataclass(frozen=True)
class KeyDeclaration:
    """Key marker options for a class or a field (FieldKeyDeclaration).

    prefix and separator are None when unset, meaning "inherit or use the
    registry default". second_prefix is None when not explicitly set, so
    an explicit "" on a field still overrides the class value.
    """

    prefix: str | None = None
    second_prefix: str | None = None
    separator: str | None = None
    name: str = ""
    as_name: bool = False
    inherit_prefix: bool = True
    keys_constant: bool = False


# Field-level marker; same options as the class marker.
KeyField = KeyDeclaration


class _Marker:
    """Presence-only marker used as typing.Annotated metadata."""

    def __init__(self, label: str) -> None:
        self._label = label

    def __repr__(self) -> str:
        return self._label


ExcludeKey: Final = _Marker("ExcludeKey")
"""Removes a constant member from constant-class scanning."""

CacheData: Final = _Marker("CacheData")
"""Selects the parameter whose value is passed to the update method."""


def is_marker(metadata: Any, marker: _Marker) -> bool:
    """Return True if metadata is the given presence marker."""
    return metadata is marker


@dataclass
class InvocationContext:
    """Transient record of one intercepted call.

    arguments holds bound parameter values in declaration order, without
    self/cls. data_argument is set when a parameter carries CacheData.
    """

    method_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    data_argument: str | None = None
    result: Any = None
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def update_argument(self) -> Any:
        """Return the CacheData parameter value if declared, else the return value."""
        if self.data_argument is not None:
            return self.arguments.get(self.data_argument)
        return self.result

    def variables(self, include_result: bool = False) -> dict[str, Any]:
        """Return expression bindings: parameters, plus result when requested.

        Parameters are bound after result, so a parameter named result wins.
        """
        bindings: dict[str, Any] = {}
        if include_result:
            bindings[EXPRESSION_RESULT_VAR] = self.result
        bindings.update(self.arguments)
        return bindings
