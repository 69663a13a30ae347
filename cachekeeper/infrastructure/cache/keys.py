"""Cache key registry. Single place for key composition (DRY).

Physical keys are built by joining [prefix, second_prefix, *name_segments]
with the separator after dropping empty segments. The three register
variants differ only in where the second-level prefix comes from.

Key components are not validated: a segment containing the separator
yields an ambiguous key, and changing the separator after registration
leaves earlier physical keys untouched. Both are the caller's concern.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache

from cachekeeper.core.config import get_settings
from cachekeeper.domain.exceptions import UnknownKeyException

logger = logging.getLogger(__name__)


@dataclass
class NamespaceConfig:
    """Global prefix and separator used for every key composition."""

    prefix: str
    separator: str


@dataclass(frozen=True)
class KeyEntry:
    """Logical key and the physical key composed for it."""

    logical_key: str
    physical_key: str


def compose_key(separator: str, *parts: str | None) -> str:
    """Join non-empty parts with separator, preserving order.

    Args:
        separator: Delimiter between segments.
        parts: Ordered segments; None and "" are dropped.

    Returns:
        Composed physical key.
    """
    return separator.join(part for part in parts if part)


class KeyRegistry:
    """Logical key -> physical key mapping with a configurable namespace.

    The secondary-prefix builder (set_secondary_prefix followed by
    register_key) is stateful and not safe for concurrent use: another
    thread may overwrite the prefix between the two calls. Use
    register_key_with_secondary_prefix when registering concurrently.
    """

    def __init__(self, prefix: str | None = None, separator: str | None = None) -> None:
        """Initialize with explicit namespace values or settings defaults.

        Args:
            prefix: Global key prefix; defaults to settings.cache_key_prefix.
            separator: Segment separator; defaults to settings.cache_key_separator.
        """
        settings = get_settings()
        self._config = NamespaceConfig(
            prefix=settings.cache_key_prefix if prefix is None else prefix,
            separator=settings.cache_key_separator if separator is None else separator,
        )
        self._second_prefix = ""
        self._entries: dict[str, KeyEntry] = {}

    @property
    def config(self) -> NamespaceConfig:
        return self._config

    @property
    def prefix(self) -> str:
        return self._config.prefix

    @property
    def separator(self) -> str:
        return self._config.separator

    @property
    def secondary_prefix(self) -> str:
        """Secondary prefix currently held by the builder."""
        return self._second_prefix

    def configure(self, prefix: str, separator: str) -> None:
        """Set the global prefix and separator. Intended to be called once at startup."""
        if self._entries and separator != self._config.separator:
            logger.warning(
                "Key separator changed from %r to %r after %s keys were registered",
                self._config.separator,
                separator,
                len(self._entries),
            )
        self._config.prefix = prefix
        self._config.separator = separator

    def set_secondary_prefix(self, *segments: str) -> KeyRegistry:
        """Store segments joined by the separator as the current secondary prefix.

        The value is kept until the next call. Not safe for concurrent use.

        Returns:
            self, for chaining with register_key.
        """
        self._second_prefix = self.join(*segments)
        return self

    def join(self, *segments: str | None) -> str:
        """Join non-empty segments with the configured separator."""
        return compose_key(self._config.separator, *segments)

    def build_key(
        self,
        name_segments: Iterable[str],
        second_prefix: str = "",
        prefix: str | None = None,
        separator: str | None = None,
    ) -> str:
        """Compose a physical key without registering it.

        Args:
            name_segments: Ordered name segments.
            second_prefix: Second-level prefix segment.
            prefix: Overrides the global prefix when not None.
            separator: Overrides the configured separator when not None.
        """
        sep = self._config.separator if separator is None else separator
        head = self._config.prefix if prefix is None else prefix
        return compose_key(sep, head, second_prefix, *name_segments)

    def register_key(self, logical_key: str, *name_segments: str) -> KeyEntry:
        """Register logical_key using the builder's current secondary prefix."""
        physical_key = self.build_key(name_segments, self._second_prefix)
        return self._store(logical_key, physical_key)

    def register_key_with_secondary_prefix(
        self,
        logical_key: str,
        name_segments: Iterable[str],
        *secondary_prefix_segments: str,
    ) -> KeyEntry:
        """Register logical_key with an explicit secondary prefix (builder untouched)."""
        second_prefix = self.join(*secondary_prefix_segments)
        physical_key = self.build_key(name_segments, second_prefix)
        return self._store(logical_key, physical_key)

    def register_key_with_full_prefix(
        self,
        logical_key: str,
        name_segments: Iterable[str],
        full_prefix: str,
    ) -> KeyEntry:
        """Register logical_key under full_prefix instead of the global prefix."""
        physical_key = compose_key(self._config.separator, full_prefix, *name_segments)
        return self._store(logical_key, physical_key)

    def register_physical_key(self, logical_key: str, physical_key: str) -> KeyEntry:
        """Store an already composed physical key (used by the scanner)."""
        return self._store(logical_key, physical_key)

    def _store(self, logical_key: str, physical_key: str) -> KeyEntry:
        entry = KeyEntry(logical_key=logical_key, physical_key=physical_key)
        previous = self._entries.get(logical_key)
        if previous is not None and previous.physical_key != physical_key:
            logger.debug(
                "Cache key %s re-registered: %s -> %s",
                logical_key,
                previous.physical_key,
                physical_key,
            )
        self._entries[logical_key] = entry
        logger.debug("Cache key registered: %s -> %s", logical_key, physical_key)
        return entry

    def get_key(self, logical_key: str) -> str:
        """Return the physical key for logical_key.

        Raises:
            UnknownKeyException: If logical_key is not registered.
        """
        entry = self._entries.get(logical_key)
        if entry is None:
            raise UnknownKeyException(logical_key)
        return entry.physical_key

    def get_entry(self, logical_key: str) -> KeyEntry | None:
        return self._entries.get(logical_key)

    def get_keys(self) -> set[str]:
        """Return the set of registered logical keys."""
        return set(self._entries)

    def get_key_map(self) -> dict[str, str]:
        """Return a snapshot mapping of logical key -> physical key."""
        return {key: entry.physical_key for key, entry in self._entries.items()}

    def contains(self, logical_key: str) -> bool:
        return logical_key in self._entries

    def remove_key(self, logical_key: str) -> bool:
        """Remove logical_key. Returns True if it was registered."""
        return self._entries.pop(logical_key, None) is not None

    def clear(self) -> None:
        """Remove all entries. The namespace config and secondary prefix are kept."""
        self._entries.clear()

    def __contains__(self, logical_key: object) -> bool:
        return logical_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@lru_cache
def get_default_registry() -> KeyRegistry:
    """Return the process-wide registry seeded from settings.

    Call get_default_registry.cache_clear() to drop it (tests).
    """
    return KeyRegistry()
