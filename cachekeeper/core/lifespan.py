"""Startup and shutdown wiring for hosting applications.

Single place for cachekeeper's startup work: scan key declarations into
the registry, install the interception engine, connect Redis keyspaces.
Shutdown disconnects keyspaces and uninstalls the engine. Usable as a
FastAPI lifespan or directly as an async context manager.
"""

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI

from cachekeeper.application.interception import configure_interception, reset_engine
from cachekeeper.infrastructure.cache import (
    KeyRegistry,
    KeyScanner,
    RedisKeyspace,
    get_default_registry,
)
from cachekeeper.infrastructure.container import ServiceContainer
from cachekeeper.shared.telemetry import setup_logging

logger = logging.getLogger(__name__)


def create_cache_lifespan(
    container: ServiceContainer,
    *,
    registry: KeyRegistry | None = None,
    scan_packages: Iterable[str] = (),
    keyspaces: Iterable[RedisKeyspace] = (),
    configure_logging: bool = False,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Build a lifespan that prepares keys and interception for app.

    Args:
        container: Collaborators for side-effect dispatch.
        registry: Registry to fill; defaults to get_default_registry().
        scan_packages: Packages scanned for key declarations, in addition
            to every class decorated with cache_keys.
        keyspaces: Redis keyspaces to connect on startup.
        configure_logging: Attach a stdout handler to the cachekeeper
            logger before anything else runs.

    Returns:
        Lifespan callable for FastAPI(lifespan=...).
    """
    packages = tuple(scan_packages)
    redis_keyspaces = tuple(keyspaces)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ---- Startup ----
        if configure_logging:
            setup_logging()
        key_registry = registry if registry is not None else get_default_registry()
        scanner = KeyScanner(key_registry)
        for package in packages:
            scanner.scan_package(package)
        scanner.scan_declared()
        logger.info("Cache key registry ready: %s keys", len(key_registry))

        app.state.cache_registry = key_registry
        app.state.cache_engine = configure_interception(container)
        for keyspace in redis_keyspaces:
            await keyspace.connect()

        yield

        # ---- Shutdown ----
        for keyspace in redis_keyspaces:
            await keyspace.disconnect()
        reset_engine()
        app.state.cache_engine = None
        logger.info("Cache interception shut down")

    return lifespan
