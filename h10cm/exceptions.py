"""
H10CM - Access Control Exception Hierarchy
==========================================

Structured exception types for the access-control core.

Exception Categories:
    - AuthenticationError: identity could not be resolved
    - PermissionDeniedError: caller lacks the role for an administrative action
    - StoreError: identity/grant store or program registry failure
    - ValidationError: malformed decision input or grant arguments
    - CatalogError: permission catalog is missing a role
    - SessionStateError: operation on a session in the wrong state

Denied access is never an exception; decision functions return it as a value.
"""

from typing import Any, Dict, Iterable, Optional, Tuple


class H10CMError(Exception):
    """
    Base exception for all H10CM access-control errors.

    Attributes:
        message: Human-readable error description
        code: Optional error code for programmatic handling
        details: Optional dict with additional context
        recoverable: Whether the caller may retry
    """

    recoverable: bool = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


# =============================================================================
# AUTHENTICATION & AUTHORIZATION ERRORS
# =============================================================================


class AuthenticationError(H10CMError):
    """No usable identity (no credentials, expired session)."""

    recoverable: bool = False  # Recovered by re-authenticating, not retrying


class PermissionDeniedError(H10CMError, PermissionError):
    """An administrative action was attempted without the required role."""

    recoverable: bool = False

    def __init__(
        self,
        message: str,
        required_roles: Iterable[Any] = (),
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.required_roles: Tuple[Any, ...] = tuple(required_roles)


# =============================================================================
# COLLABORATOR ERRORS
# =============================================================================


class StoreError(H10CMError):
    """The identity provider, grant store or program registry failed."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(H10CMError, ValueError):
    """Base exception for malformed input."""

    recoverable: bool = False


class InvalidAccessRequestError(ValidationError):
    """Access request names an unknown resource type or action."""

    pass


class InvalidGrantError(ValidationError):
    """Grant arguments (role, access level, scope) are invalid."""

    pass


# =============================================================================
# PROGRAMMING ERRORS
# =============================================================================


class CatalogError(H10CMError):
    """A role has no permission catalog entry."""

    recoverable: bool = False


class SessionStateError(H10CMError):
    """Operation not allowed in the session's current state."""

    recoverable: bool = False


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def is_recoverable(error: Exception) -> bool:
    """
    Determine if an error is potentially recoverable.

    Store failures may be retried by the caller; authentication and
    permission failures require a different identity.
    """
    if hasattr(error, "recoverable"):
        return error.recoverable

    return not isinstance(error, (SystemExit, KeyboardInterrupt, MemoryError))


__all__ = [
    "H10CMError",
    "AuthenticationError",
    "PermissionDeniedError",
    "StoreError",
    "ValidationError",
    "InvalidAccessRequestError",
    "InvalidGrantError",
    "CatalogError",
    "SessionStateError",
    "is_recoverable",
]
