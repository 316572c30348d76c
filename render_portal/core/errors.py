"""
Error taxonomy for the collaboration workflow.

Each kind subclasses the builtin that the API layer already maps to an HTTP
status, so services can raise them without importing FastAPI.
"""

from __future__ import annotations


ACCESS_DENIED = "Access denied"
INVALID_OR_EXPIRED = "Invalid or expired invitation"
EMAIL_MISMATCH = "Email does not match invitation"


class ValidationFailed(ValueError):
    """Missing or malformed input. Raised before any state change."""


class AuthenticationRequired(Exception):
    """No authenticated identity was supplied."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AccessDenied(PermissionError):
    """Insufficient permission, or the project does not exist.

    The message never says which of the two it was.
    """

    def __init__(self) -> None:
        super().__init__(ACCESS_DENIED)


class InvitationInvalid(LookupError):
    def __init__(self) -> None:
        super().__init__(INVALID_OR_EXPIRED)


class EmailMismatch(PermissionError):
    def __init__(self) -> None:
        super().__init__(EMAIL_MISMATCH)


class DeliveryFailed(RuntimeError):
    """Outbound email could not be delivered."""
