"""Cache: key registry, declarative scanner and Redis keyspace expiry.

Key format lives in keys.py (DRY); scanner.py fills the registry from
class/field markers; redis_keyspace.py is an expiry collaborator built on
the registry.
"""

from cachekeeper.infrastructure.cache.keys import (
    KeyEntry,
    KeyRegistry,
    NamespaceConfig,
    compose_key,
    get_default_registry,
)
from cachekeeper.infrastructure.cache.redis_keyspace import RedisKeyspace
from cachekeeper.infrastructure.cache.scanner import (
    KeyScanner,
    cache_keys,
    declared_classes,
    derive_name_segments,
)

__all__ = [
    "KeyEntry",
    "KeyRegistry",
    "KeyScanner",
    "NamespaceConfig",
    "RedisKeyspace",
    "cache_keys",
    "compose_key",
    "declared_classes",
    "derive_name_segments",
    "get_default_registry",
]
