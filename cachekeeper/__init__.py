"""cachekeeper: declarative cache key namespaces and invalidation rules.

Key names are declared once (class/field markers scanned at startup into a
KeyRegistry); invalidation and update side effects are declared on business
methods (expire_cache / update_cache) and dispatched to collaborators after
the method completes.
"""

from cachekeeper.application.interception import (
    InterceptionEngine,
    expire_cache,
    get_engine,
    set_engine,
    update_cache,
)
from cachekeeper.domain.declarations import CacheData, ExcludeKey, KeyField
from cachekeeper.infrastructure.cache import (
    KeyRegistry,
    KeyScanner,
    cache_keys,
    get_default_registry,
)
from cachekeeper.infrastructure.container import ServiceContainer
from cachekeeper.infrastructure.expressions import ExpressionEvaluator

__all__ = [
    "CacheData",
    "ExcludeKey",
    "ExpressionEvaluator",
    "InterceptionEngine",
    "KeyField",
    "KeyRegistry",
    "KeyScanner",
    "ServiceContainer",
    "cache_keys",
    "expire_cache",
    "get_default_registry",
    "get_engine",
    "set_engine",
    "update_cache",
]
