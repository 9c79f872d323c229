"""
Custom exception hierarchy for structured error handling.

WHY: Every failure raised by the cascade engine, the scope resolver or the
mutation coordinator must reach the caller with:
1. A stable machine-readable code
2. A human-readable message
3. Structured context (e.g. which ancestor is blocking a restore)
4. An HTTP status code for the API layer

IMPORTANT: NEVER raise the base Exception class from application code.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    All custom exceptions inherit from this class. Subclasses override
    ``status_code``, ``code`` and ``default_message``.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            code: Machine-readable error code (overrides class default)
            **context: Structured context for the caller (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "retryable": self.retryable,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when no actor, or an invalid actor, is attached to the request.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    code = "AUTHENTICATION_REQUIRED"
    default_message = "Authentication required"


class AuthorizationError(AppException):
    """
    Raised when the actor lacks any permitted scope for an operation, or
    the target resource falls outside every scope the actor was granted.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    code = "AUTHORIZATION_DENIED"
    default_message = "You do not have permission to perform this action"


class ScopeCeilingError(AuthorizationError):
    """
    Raised when a write would place a resource outside the actor's
    highest granted scope (e.g. a Manager moving a task to another
    department).

    HTTP Status: 403 Forbidden
    """

    code = "SCOPE_CEILING_EXCEEDED"
    default_message = "Target organization or department is outside your scope"


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input is malformed or cross-referentially invalid
    (e.g. a department that belongs to another organization).

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    Soft-deleted resources are reported as missing unless the caller
    explicitly asked for deleted records.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    code = "RESOURCE_NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppException):
    """
    Raised when the request conflicts with the current state of the
    entity graph.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    code = "CONFLICT"
    default_message = "Request conflicts with the current state of the resource"


class ResourceAlreadyExistsError(ConflictError):
    """
    Raised on uniqueness violations.

    HTTP Status: 409 Conflict
    """

    code = "RESOURCE_ALREADY_EXISTS"
    default_message = "Resource already exists"


class AncestorStillDeletedError(ConflictError):
    """
    Raised when a restore is attempted while an ancestor is deleted or
    missing. Context carries ``ancestor_type`` and ``ancestor_id`` so the
    UI can tell the user which parent to restore first.

    HTTP Status: 409 Conflict
    """

    code = "RESTORE_BLOCKED_PARENT_DELETED"
    default_message = "Cannot restore while a parent is deleted. Restore the parent first."


class RestoreDependencyError(ConflictError):
    """
    Raised when a restore is blocked by a deleted non-parent dependency
    (e.g. the vendor of a project task).

    HTTP Status: 409 Conflict
    """

    code = "RESTORE_BLOCKED_DEPENDENCY_DELETED"
    default_message = "Cannot restore while a required dependency is deleted"


class NoActiveAssigneesError(ConflictError):
    """
    Raised when an assigned task would be restored without any active
    assignee left.

    HTTP Status: 409 Conflict
    """

    code = "ASSIGNED_TASK_NO_ACTIVE_ASSIGNEES"
    default_message = "Cannot restore assigned task. No active assignees available."


class TransactionConflictError(ConflictError):
    """
    Raised when the persistence layer aborts a transaction because of a
    concurrent write (serialization failure, deadlock, lock timeout).

    This is the only error a caller is expected to retry automatically.

    HTTP Status: 409 Conflict
    """

    code = "TRANSACTION_CONFLICT"
    default_message = "The operation conflicted with a concurrent change. Please retry."
    retryable = True


# ============================================================================
# Internal Exceptions
# ============================================================================


class InternalError(AppException):
    """
    Raised on unexpected failures (database errors with no better mapping,
    broken invariants).

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"


class ConfigurationError(InternalError):
    """
    Raised when static configuration (authorization matrix, cascade graph)
    is malformed.

    HTTP Status: 500 Internal Server Error
    """

    code = "CONFIGURATION_ERROR"
    default_message = "Invalid configuration"
