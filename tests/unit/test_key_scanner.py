"""Tests for KeyScanner: constant classes, field markers, precedence, diagnostics."""

import logging
from typing import Annotated

import pytest

from cachekeeper.core.config import Settings
from cachekeeper.domain.declarations import ExcludeKey, KeyField
from cachekeeper.domain.exceptions import KeyRegistrationException
from cachekeeper.infrastructure.cache import (
    KeyRegistry,
    KeyScanner,
    cache_keys,
    declared_classes,
    derive_name_segments,
)


@cache_keys(prefix="service", second_prefix="user:cache", keys_constant=True)
class UserKeys:
    USER_LIST = "userList"
    USER_DETAIL = "userDetail"
    LEGACY_LIST: Annotated[str, ExcludeKey] = "legacyList"
    _PRIVATE = "private"
    lower_case = "lowerCase"
    MAX_SIZE = 100


@cache_keys(prefix="svc", second_prefix="y")
class OrderKeys:
    EXPLICIT: Annotated[str, KeyField(second_prefix="x", name="order")] = "explicit"
    EXPLICIT_NO_INHERIT: Annotated[
        str, KeyField(second_prefix="x", name="order", inherit_prefix=False)
    ] = "explicitNoInherit"
    INHERITED: Annotated[str, KeyField(name="order")] = "inherited"
    NOT_INHERITED: Annotated[str, KeyField(name="order", inherit_prefix=False)] = "notInherited"
    ORDER_ITEMS: Annotated[str, KeyField(name="cart", as_name=True)] = "orderItems"
    UNMARKED = "unmarked"


class SessionKeys:
    AUTH_SESSION: Annotated[str, KeyField(prefix="auth", separator="/", as_name=True)] = "session"
    TOKEN: Annotated[str, KeyField(as_name=True)] = "token"


class Plain:
    VALUE = "value"


class BlankKeys:
    BLANK_VALUE: Annotated[str, KeyField(as_name=True)] = "   "


@cache_keys(keys_constant=True)
class FirstFeed:
    FEED = "feed"


@cache_keys(keys_constant=True)
class SecondFeed:
    NEWS_FEED = "feed"


@pytest.fixture
def scanner(registry: KeyRegistry) -> KeyScanner:
    return KeyScanner(registry, Settings())


class TestDeriveNameSegments:
    def test_split_and_lower(self) -> None:
        assert derive_name_segments("USER_LIST") == ["user", "list"]

    def test_drops_empty_tokens(self) -> None:
        assert derive_name_segments("__USER__LIST_") == ["user", "list"]


class TestConstantClass:
    """Every public UPPER_CASE str constant is registered under its value."""

    def test_registers_value_as_logical_key(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        scanner.scan_class(UserKeys)
        assert registry.get_key("userList") == "service:user:cache:user:list"
        assert registry.get_key("userDetail") == "service:user:cache:user:detail"

    def test_skips_excluded_private_lowercase_and_non_str(
        self, scanner: KeyScanner, registry: KeyRegistry
    ) -> None:
        scanner.scan_class(UserKeys)
        assert registry.get_keys() == {"userList", "userDetail"}

    def test_mixed_case_str_attribute_logged_at_debug(
        self, scanner: KeyScanner, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Public str attributes that are not UPPER_CASE are reported, not registered."""
        with caplog.at_level(logging.DEBUG, logger="cachekeeper.infrastructure.cache.scanner"):
            scanner.scan_class(UserKeys)
        assert "not UPPER_CASE): UserKeys.lower_case" in caplog.text
        assert "_PRIVATE" not in caplog.text

    def test_registry_defaults_when_unset(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        scanner.scan_class(FirstFeed)
        assert registry.get_key("feed") == "default:feed"

    def test_collision_last_wins_with_warning(
        self, scanner: KeyScanner, registry: KeyRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            scanner.scan_classes([FirstFeed, SecondFeed])
        assert registry.get_key("feed") == "default:news:feed"
        assert "collides" in caplog.text

    def test_collision_raises_in_strict_mode(self, registry: KeyRegistry) -> None:
        scanner = KeyScanner(registry, Settings(strict_key_registration=True))
        scanner.scan_class(FirstFeed)
        with pytest.raises(KeyRegistrationException):
            scanner.scan_class(SecondFeed)

    def test_class_scanned_once_per_scanner(self, scanner: KeyScanner) -> None:
        assert len(scanner.scan_class(UserKeys)) == 2
        assert scanner.scan_class(UserKeys) == []


class TestFieldMarkers:
    """Prefix/separator/second_prefix precedence between field and class markers."""

    def test_field_second_prefix_wins(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        scanner.scan_class(OrderKeys)
        assert registry.get_key("explicit") == "svc:x:order"

    def test_field_second_prefix_wins_without_inherit(
        self, scanner: KeyScanner, registry: KeyRegistry
    ) -> None:
        scanner.scan_class(OrderKeys)
        assert registry.get_key("explicitNoInherit") == "default:x:order"

    def test_class_second_prefix_inherited(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        scanner.scan_class(OrderKeys)
        assert registry.get_key("inherited") == "svc:y:order"

    def test_no_inherit_yields_empty_second_prefix(
        self, scanner: KeyScanner, registry: KeyRegistry
    ) -> None:
        scanner.scan_class(OrderKeys)
        assert registry.get_key("notInherited") == "default:order"

    def test_name_then_identifier_tokens(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        scanner.scan_class(OrderKeys)
        assert registry.get_key("orderItems") == "svc:y:cart:order:items"

    def test_unmarked_field_ignored(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        scanner.scan_class(OrderKeys)
        assert "unmarked" not in registry

    def test_field_own_values_without_class_marker(
        self, scanner: KeyScanner, registry: KeyRegistry
    ) -> None:
        scanner.scan_class(SessionKeys)
        assert registry.get_key("session") == "auth/auth/session"
        assert registry.get_key("token") == "default:token"

    def test_blank_value_falls_back_to_identifier(
        self, scanner: KeyScanner, registry: KeyRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            entries = scanner.scan_class(BlankKeys)
        assert entries[0].logical_key == "blank_value"
        assert registry.get_key("blank_value") == "default:blank:value"
        assert "Blank logical key" in caplog.text

    def test_blank_value_raises_in_strict_mode(self, registry: KeyRegistry) -> None:
        scanner = KeyScanner(registry, Settings(strict_key_registration=True))
        with pytest.raises(KeyRegistrationException) as exc_info:
            scanner.scan_class(BlankKeys)
        assert exc_info.value.details == {"logical_key": "BLANK_VALUE"}


class TestDiscovery:
    """Declared classes, modules and packages."""

    def test_decorated_classes_are_recorded(self) -> None:
        declared = declared_classes()
        assert UserKeys in declared
        assert OrderKeys in declared
        assert SessionKeys not in declared

    def test_is_declared(self, scanner: KeyScanner) -> None:
        assert scanner.is_declared(UserKeys)
        assert scanner.is_declared(SessionKeys)
        assert not scanner.is_declared(Plain)

    def test_scan_module(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        from sample_keys import catalog

        scanner.scan_module(catalog)
        assert registry.get_key_map() == {
            "productList": "shop:catalog:product:list",
            "productDetail": "shop:catalog:product:detail",
            "cartItems": "shop:cart:items",
        }

    def test_scan_package_walks_submodules(self, scanner: KeyScanner, registry: KeyRegistry) -> None:
        scanner.scan_package("sample_keys")
        assert registry.get_key("invoiceList") == "shop:billing:invoice:list"
        assert registry.get_key("productList") == "shop:catalog:product:list"
