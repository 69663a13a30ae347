"""Tests for cachekeeper exceptions (error_code, message, details)."""

from cachekeeper.domain.exceptions import (
    CacheKeeperException,
    CollaboratorNotFoundException,
    DispatchException,
    ExpressionEvaluationException,
    InterceptionConfigurationException,
    KeyRegistrationException,
    UnknownKeyException,
)


class UserCache:
    pass


def test_base_exception_default_error_code() -> None:
    """Base exception uses class name as error_code when not provided."""
    exc = CacheKeeperException("Something failed")
    assert exc.message == "Something failed"
    assert exc.error_code == "CacheKeeperException"
    assert exc.details == {}


def test_base_exception_custom_error_code_and_details() -> None:
    exc = CacheKeeperException("Oops", error_code="CUSTOM", details={"key": "value"})
    assert exc.error_code == "CUSTOM"
    assert exc.details == {"key": "value"}
    assert str(exc) == "Oops"


def test_unknown_key_exception() -> None:
    """UnknownKeyException carries the logical key."""
    exc = UnknownKeyException("userList")
    assert exc.error_code == "UNKNOWN_KEY"
    assert exc.details == {"logical_key": "userList"}
    assert "userList" in exc.message


def test_key_registration_exception_with_and_without_key() -> None:
    assert KeyRegistrationException("blank", "user").details == {"logical_key": "user"}
    assert KeyRegistrationException("blank").details == {}
    assert KeyRegistrationException("blank").error_code == "KEY_REGISTRATION_ERROR"


def test_collaborator_not_found_by_type_and_name() -> None:
    """Type lookups report the class name, name lookups the name itself."""
    by_type = CollaboratorNotFoundException(UserCache)
    by_name = CollaboratorNotFoundException("user_cache")
    assert by_type.details == {"service": "UserCache"}
    assert by_name.details == {"service": "user_cache"}
    assert by_type.error_code == "COLLABORATOR_NOT_FOUND"


def test_dispatch_exception() -> None:
    exc = DispatchException(UserCache, "expire_all", "no such method")
    assert exc.error_code == "DISPATCH_ERROR"
    assert exc.message == "Cannot dispatch UserCache.expire_all: no such method"
    assert exc.details == {"service": "UserCache", "method_name": "expire_all"}


def test_expression_and_configuration_exceptions() -> None:
    expr = ExpressionEvaluationException("a +", "unexpected end")
    assert expr.error_code == "EXPRESSION_ERROR"
    assert expr.details == {"expression": "a +"}
    config = InterceptionConfigurationException("bad pattern", {"pattern": "("})
    assert config.error_code == "INTERCEPTION_CONFIG_ERROR"
    assert config.details == {"pattern": "("}


def test_all_inherit_from_base() -> None:
    for exc in (
        UnknownKeyException("k"),
        KeyRegistrationException("m"),
        CollaboratorNotFoundException("n"),
        DispatchException(UserCache, "m", "r"),
        ExpressionEvaluationException("e", "r"),
        InterceptionConfigurationException("m"),
    ):
        assert isinstance(exc, CacheKeeperException)
