"""Exceptions for cachekeeper.

Only lookup failures (UnknownKeyException) and strict-mode registration
failures reach callers. Interception exceptions are raised inside the
interception engine and caught at its boundary; they never change the
outcome of the intercepted call.
"""

from typing import Any


class CacheKeeperException(Exception):
    """Base exception for all cachekeeper errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. logical_key, method_name).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class UnknownKeyException(CacheKeeperException):
    """Raised when a logical key is looked up but was never registered."""

    def __init__(self, logical_key: str) -> None:
        """Initialize with the missing logical key.

        Args:
            logical_key: The logical key that is not registered.
        """
        super().__init__(
            f"Unknown cache key: {logical_key}",
            "UNKNOWN_KEY",
            {"logical_key": logical_key},
        )


class KeyRegistrationException(CacheKeeperException):
    """Raised in strict mode for a blank logical key or a colliding constant value."""

    def __init__(self, message: str, logical_key: str | None = None) -> None:
        details = {"logical_key": logical_key} if logical_key is not None else {}
        super().__init__(message, "KEY_REGISTRATION_ERROR", details)


class CollaboratorNotFoundException(CacheKeeperException):
    """Raised when no collaborator is registered for a type or name."""

    def __init__(self, service: type | str) -> None:
        """Initialize with the requested type or name.

        Args:
            service: Collaborator type or registered name that was not found.
        """
        label = service if isinstance(service, str) else service.__qualname__
        super().__init__(
            f"Collaborator not found: {label}",
            "COLLABORATOR_NOT_FOUND",
            {"service": label},
        )


class DispatchException(CacheKeeperException):
    """Raised when no collaborator method matches the requested name and argument."""

    def __init__(self, service_type: type, method_name: str, reason: str) -> None:
        """Initialize with the collaborator type, method name and reason.

        Args:
            service_type: Type of the resolved collaborator.
            method_name: Method name that could not be dispatched.
            reason: Why dispatch failed (missing, arity, argument type).
        """
        super().__init__(
            f"Cannot dispatch {service_type.__qualname__}.{method_name}: {reason}",
            "DISPATCH_ERROR",
            {"service": service_type.__qualname__, "method_name": method_name},
        )


class ExpressionEvaluationException(CacheKeeperException):
    """Raised when an expression fails to compile or evaluate."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(
            f"Expression {expression!r} failed: {reason}",
            "EXPRESSION_ERROR",
            {"expression": expression},
        )


class InterceptionConfigurationException(CacheKeeperException):
    """Raised when a marker cannot be dispatched or declares an invalid pattern."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "INTERCEPTION_CONFIG_ERROR", details)
