"""Collaborator container: look up side-effect targets by type or name.

The interception engine only needs CollaboratorResolver. Applications
with their own DI container can adapt it to this protocol; ServiceContainer
is a small instance registry for everything else (and for tests).
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol, TypeVar

from cachekeeper.domain.exceptions import CollaboratorNotFoundException

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def default_service_name(service_type: type) -> str:
    """Snake-case name of a class (RedisKeyspace -> redis_keyspace)."""
    return _CAMEL_BOUNDARY_RE.sub("_", service_type.__name__).lower()


class CollaboratorResolver(Protocol):
    """Protocol for resolving collaborator instances."""

    def get(self, service_type: type[T]) -> T:
        """Return the collaborator registered for service_type."""
        ...

    def get_by_name(self, name: str) -> Any:
        """Return the collaborator registered under name."""
        ...


class ServiceContainer:
    """Registry of collaborator instances, resolvable by type or by name."""

    def __init__(self) -> None:
        self._by_type: dict[type, Any] = {}
        self._by_name: dict[str, Any] = {}

    def register(
        self,
        instance: Any,
        *,
        name: str | None = None,
        service_type: type | None = None,
    ) -> Any:
        """Register instance under its type (or service_type) and a name.

        Args:
            instance: Collaborator instance.
            name: Lookup name for expressions; defaults to the snake-cased class name.
            service_type: Type to register under; defaults to type(instance).

        Returns:
            instance, so registration can be inlined.
        """
        key_type = service_type or type(instance)
        key_name = name or default_service_name(key_type)
        self._by_type[key_type] = instance
        self._by_name[key_name] = instance
        logger.debug("Collaborator registered: %s as %s", key_type.__qualname__, key_name)
        return instance

    def get(self, service_type: type[T]) -> T:
        """Return the instance for service_type.

        Exact type registrations win; otherwise the first registered
        instance of a subclass is returned.

        Raises:
            CollaboratorNotFoundException: If nothing matches.
        """
        instance = self._by_type.get(service_type)
        if instance is not None:
            return instance
        for instance in self._by_type.values():
            if isinstance(instance, service_type):
                return instance
        raise CollaboratorNotFoundException(service_type)

    def get_by_name(self, name: str) -> Any:
        """Return the instance registered under name.

        Raises:
            CollaboratorNotFoundException: If name is unknown.
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise CollaboratorNotFoundException(name) from None

    def clear(self) -> None:
        self._by_type.clear()
        self._by_name.clear()
