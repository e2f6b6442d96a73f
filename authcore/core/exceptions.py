"""Custom exception classes for the access core."""

from fastapi import status


class AuthCoreError(Exception):
    """Base exception for the access core."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(AuthCoreError):
    """Raised when input validation fails."""
    pass


class AuthenticationError(AuthCoreError):
    """Raised when no resolved identity is attached to the request."""

    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(AuthCoreError):
    """Raised by caller-side gates when a permission check returns False."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions", missing: list | None = None):
        self.missing = list(missing or [])
        super().__init__(message)


class ResourceNotFoundError(AuthCoreError):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(AuthCoreError):
    """Raised on duplicate names and protected-resource violations."""

    status_code = status.HTTP_409_CONFLICT


class RoleInUseError(ResourceConflictError):
    """Raised when deleting a role that users still reference."""

    def __init__(self, role_name: str, user_count: int):
        self.role_name = role_name
        self.user_count = user_count
        super().__init__(
            f"Cannot delete role '{role_name}'. "
            f"{user_count} user(s) are assigned to this role."
        )


class AuditPersistenceError(AuthCoreError):
    """Raised when an audit entry cannot be stored."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CredentialError(AuthCoreError):
    """Base class for credential service failures."""
    pass


class HashingError(CredentialError):
    """Raised when a secret cannot be hashed (empty, non-string, too short)."""
    pass


class VerificationFailedError(CredentialError):
    """Raised when a secret does not verify against its stored digest."""

    status_code = status.HTTP_401_UNAUTHORIZED


class DigestFormatError(CredentialError):
    """Raised when a stored digest is not in any recognised format."""
    pass
