"""
Custom Exception Hierarchy for Key Vault RBAC Migrator

This module provides the exception hierarchy used across the migrator. Each
exception carries structured context so that a failure can be written to the
operation log and the structured logs without losing detail.

Fatal errors (mapping input problems, no accessible subscriptions) abort the
run before any processing. Every other error is caught at the row,
subscription, scope or action level and recorded.
"""

from typing import Any, Dict, Optional


class KvRbacMigratorError(Exception):
    """
    Base exception class for all migrator errors.

    Provides structured error information including context, error codes,
    and optional recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
        }


# Input / configuration exceptions
class MappingInputError(KvRbacMigratorError):
    """Raised when the mapping CSV cannot be used. Always fatal."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        row_number: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if path:
            context["path"] = path
        if row_number is not None:
            context["row"] = row_number
        kwargs["context"] = context
        kwargs.setdefault("error_code", "MAPPING_INPUT_INVALID")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check that the CSV has a header with OldPrincipal and NewPrincipal columns",
        )
        super().__init__(message, **kwargs)


class ConfigurationError(KvRbacMigratorError):
    """Raised when run configuration is invalid."""

    def __init__(
        self, message: str, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        kwargs["context"] = context
        kwargs.setdefault("error_code", "CONFIG_INVALID")
        super().__init__(message, **kwargs)


# Azure-related exceptions
class AzureError(KvRbacMigratorError):
    """Base class for Azure control-plane errors."""

    pass


class AzureAuthenticationError(AzureError):
    """Raised when Azure authentication fails."""

    def __init__(
        self, message: str, tenant_id: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if tenant_id:
            context["tenant_id"] = tenant_id
        kwargs["context"] = context
        kwargs.setdefault("error_code", "AZURE_AUTH_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Try running 'az login' or check your Azure credentials",
        )
        super().__init__(message, **kwargs)


class SubscriptionDiscoveryError(AzureError):
    """Raised when no accessible subscription can be listed. Always fatal."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "AZURE_SUBSCRIPTION_DISCOVERY_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check that the signed-in identity has Reader access to at least one subscription",
        )
        super().__init__(message, **kwargs)


class ScopeEnumerationError(AzureError):
    """Raised when vault resources cannot be listed for a subscription."""

    def __init__(
        self, message: str, subscription_id: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if subscription_id:
            context["subscription_id"] = subscription_id
        kwargs["context"] = context
        kwargs.setdefault("error_code", "AZURE_SCOPE_ENUMERATION_FAILED")
        super().__init__(message, **kwargs)


class AssignmentQueryError(AzureError):
    """Raised when role assignments cannot be listed at a scope."""

    def __init__(self, message: str, scope: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if scope:
            context["scope"] = scope
        kwargs["context"] = context
        kwargs.setdefault("error_code", "AZURE_ASSIGNMENT_QUERY_FAILED")
        super().__init__(message, **kwargs)


class RoleAssignmentOperationError(AzureError):
    """Raised when creating or deleting a role assignment fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        scope: Optional[str] = None,
        principal_id: Optional[str] = None,
        role_definition_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if operation:
            context["operation"] = operation
        if scope:
            context["scope"] = scope
        if principal_id:
            context["principal_id"] = principal_id
        if role_definition_id:
            context["role_definition_id"] = role_definition_id
        kwargs["context"] = context
        kwargs.setdefault("error_code", "AZURE_ROLE_ASSIGNMENT_FAILED")
        super().__init__(message, **kwargs)


# Directory (Microsoft Graph) exceptions
class DirectoryError(KvRbacMigratorError):
    """Base class for directory lookup errors."""

    pass


class DirectoryLookupError(DirectoryError):
    """Raised when a directory query itself fails (not when it finds nothing)."""

    def __init__(
        self, message: str, query: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if query:
            context["query"] = query
        kwargs["context"] = context
        kwargs.setdefault("error_code", "DIRECTORY_LOOKUP_FAILED")
        super().__init__(message, **kwargs)


class ResolutionError(DirectoryError):
    """Raised when an identity string cannot be resolved to an object id."""

    def __init__(
        self, message: str, identifier: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if identifier is not None:
            context["identifier"] = identifier
        kwargs["context"] = context
        kwargs.setdefault("error_code", "IDENTITY_NOT_RESOLVED")
        super().__init__(message, **kwargs)


def wrap_azure_exception(
    exc: Exception, context: Optional[Dict[str, Any]] = None
) -> AzureError:
    """
    Wrap a generic Azure SDK exception in our custom exception hierarchy.

    Args:
        exc: The original exception
        context: Optional context information

    Returns:
        AzureError: Wrapped exception with enhanced context
    """
    if isinstance(exc, AzureError):
        return exc

    error_message = str(exc)

    if (
        "authentication" in error_message.lower()
        or "unauthorized" in error_message.lower()
        or "credential" in error_message.lower()
    ):
        return AzureAuthenticationError(
            f"Azure authentication failed: {error_message}", context=context, cause=exc
        )
    return AzureError(
        f"Azure operation failed: {error_message}", context=context, cause=exc
    )
