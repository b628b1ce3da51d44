"""
Custom exceptions for MDB_COMPAT.

Every error raised by the compatibility layer derives from CompatError, which
keeps backward compatibility with RuntimeError while carrying a stable,
inspectable kind (and, for auth failures, a stable code).

Not-found conditions are never raised: they are represented as a
DocumentSnapshot whose ``exists`` flag is False.
"""

from typing import Any, Dict, Optional


class CompatError(RuntimeError):
    """
    Base exception for compatibility layer errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (collection,
                 document_id, operation, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(CompatError):
    """
    Raised when configuration is invalid or missing.

    Detected eagerly, at validation time, and always surfaced to the caller.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class UnsupportedOperatorError(CompatError, ValueError):
    """
    Raised by ``where()`` when the operator is not part of the legacy query DSL.

    This is a programmer error: it fails at call time and is never retried.
    """

    def __init__(self, operator: str, context: Optional[Dict[str, Any]] = None) -> None:
        context = context or {}
        context["operator"] = operator
        super().__init__(f"Unsupported operator: {operator}", context=context)
        self.operator = operator


class NetworkError(CompatError):
    """
    Raised when a transport-level failure prevents a request from completing.

    Transient: callers may retry.
    """


class BackendUnavailableError(NetworkError):
    """
    Raised when the document database cannot be reached.

    Distinct from a genuine not-found, which is a non-existent snapshot.
    """


class DatabaseOperationError(CompatError):
    """Raised when the document database rejects an operation."""


class AuthError(CompatError):
    """
    Authentication failure carrying a stable code.

    Codes follow the legacy ``auth/<reason>`` convention, for example
    ``auth/invalid-credential`` or ``auth/network-error``.

    Attributes:
        code: Stable error code
        message: Human readable message
    """

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        context["code"] = code
        super().__init__(message or code, context=context)
        self.code = code


class ProfileCreationError(AuthError):
    """
    Raised by sign-up when the account was created but its profile record
    could not be written.

    The session has already been rolled back when this is raised.

    Attributes:
        user: The account that was created server-side
    """

    def __init__(self, message: str, user: Any = None) -> None:
        super().__init__("auth/profile-creation-failed", message)
        self.user = user


class ChannelError(CompatError):
    """
    Connection-level realtime failure.

    Delivered to listeners through ``on_error``; it never tears down
    individual listeners.
    """

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if code is not None:
            context["close_code"] = code
        super().__init__(message, context=context)
        self.code = code
