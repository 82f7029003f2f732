"""
Application exception hierarchy.

Services report expected failures through ServiceResult. These exceptions
are raised at the boundaries that cannot return a result (async client
core, transports, consumers) and carry the same machine-readable codes.

Hierarchy:
    BaseApplicationError
    ├── ValidationError - Rejected input
    ├── NotFoundError - Unknown resource
    ├── PermissionDeniedError - Caller may not perform the operation
    └── ExternalServiceError - A remote dependency failed (network, broker)

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError("Conversation 12 not found", error_code="CONVERSATION_NOT_FOUND")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base for all application errors.

    Attributes:
        message: Human-readable description
        error_code: Machine-readable code for clients
        details: Extra context (field errors, ids)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize for an API or WebSocket error payload.

        Example:
            {"error": "Message not found", "error_code": "MESSAGE_NOT_FOUND"}
        """
        payload: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Input was rejected (empty content, content too long, same user)."""

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """A requested record does not exist or is hidden from the caller."""

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    The caller is authenticated but not allowed to do this.

    Authentication failures (missing or invalid token) are handled by
    DRF and the WebSocket middleware, not by this class.
    """

    default_error_code: str = "PERMISSION_DENIED"


class ExternalServiceError(BaseApplicationError):
    """
    A remote dependency failed.

    Covers network drops, channel layer outages and timeouts. These are
    the only errors a caller may reasonably retry.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
