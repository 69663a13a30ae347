"""Pytest configuration and fixtures for cachekeeper.

Settings, the default registry and the process-wide interception engine
are process globals; every test starts and ends with them reset.
"""

import pytest

from cachekeeper.application.interception import (
    InterceptionEngine,
    reset_engine,
    set_engine,
)
from cachekeeper.core.config import get_settings
from cachekeeper.infrastructure.cache import KeyRegistry, get_default_registry
from cachekeeper.infrastructure.container import ServiceContainer


@pytest.fixture(autouse=True)
def _reset_globals():
    """Clear cached settings, default registry and engine around each test."""
    get_settings.cache_clear()
    get_default_registry.cache_clear()
    reset_engine()
    yield
    reset_engine()
    get_default_registry.cache_clear()
    get_settings.cache_clear()


@pytest.fixture
def registry() -> KeyRegistry:
    """Fresh registry with the default namespace (default, ':')."""
    return KeyRegistry(prefix="default", separator=":")


@pytest.fixture
def container() -> ServiceContainer:
    """Empty collaborator container."""
    return ServiceContainer()


@pytest.fixture
def engine(container: ServiceContainer) -> InterceptionEngine:
    """Engine over container, installed as the process-wide engine."""
    interception_engine = InterceptionEngine(container)
    set_engine(interception_engine)
    return interception_engine
