"""Interception: rules, engine and decorators for cache side effects."""

from cachekeeper.application.interception.decorators import (
    configure_interception,
    expire_cache,
    get_engine,
    reset_engine,
    set_engine,
    update_cache,
)
from cachekeeper.application.interception.engine import InterceptionEngine
from cachekeeper.application.interception.rules import (
    ExpireRule,
    InterceptionRule,
    UpdateRule,
)

__all__ = [
    "ExpireRule",
    "InterceptionEngine",
    "InterceptionRule",
    "UpdateRule",
    "configure_interception",
    "expire_cache",
    "get_engine",
    "reset_engine",
    "set_engine",
    "update_cache",
]
