"""
Chat error taxonomy.

The service layer reports expected failures as ServiceResult error codes.
Code that cannot return a result (the asyncio client core, transports)
raises these exceptions instead. raise_for_result() is the single place
where codes become exceptions.

    ValidationError  - bad input; never retried
    AccessDenied     - the access gate refused a read or write
    Forbidden        - allowed in the channel but not on this record
                       (editing someone else's message)
    NotFound         - unknown channel, conversation, message or user
    TransportError   - network or channel layer failure; the only
                       retryable kind
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
)
from core.exceptions import ValidationError as CoreValidationError

if TYPE_CHECKING:
    from core.services import ServiceResult


class ValidationError(CoreValidationError):
    default_error_code = "VALIDATION_ERROR"


class AccessDenied(PermissionDeniedError):
    default_error_code = "ACCESS_DENIED"


class Forbidden(PermissionDeniedError):
    default_error_code = "FORBIDDEN"


class NotFound(NotFoundError):
    default_error_code = "NOT_FOUND"


class TransportError(ExternalServiceError):
    default_error_code = "TRANSPORT_ERROR"


ERROR_CODE_MAP: dict[str, type] = {
    # Validation
    "VALIDATION_ERROR": ValidationError,
    "EMPTY_CONTENT": ValidationError,
    "CONTENT_TOO_LONG": ValidationError,
    "INVALID_IMAGE_URL": ValidationError,
    "SAME_USER": ValidationError,
    "EDIT_NOT_SUPPORTED": ValidationError,
    "DELETE_NOT_SUPPORTED": ValidationError,
    # Access gate
    "ACCESS_DENIED": AccessDenied,
    # Record-level permission
    "NOT_AUTHOR": Forbidden,
    "FORBIDDEN": Forbidden,
    # Missing
    "NOT_FOUND": NotFound,
    "CHANNEL_NOT_FOUND": NotFound,
    "CONVERSATION_NOT_FOUND": NotFound,
    "MESSAGE_NOT_FOUND": NotFound,
    "USER_NOT_FOUND": NotFound,
}


def exception_for(error_code: str | None, message: str) -> Exception:
    """Build the exception matching an error code; unknown codes become TransportError."""
    exc_class = ERROR_CODE_MAP.get(error_code or "", TransportError)
    return exc_class(message, error_code=error_code)


def raise_for_result(result: ServiceResult):
    """
    Return result.data, or raise the exception matching result.error_code.

    Example:
        message = raise_for_result(MessageService.send_message(channel, user, text))
    """
    if result.success:
        return result.data
    raise exception_for(result.error_code, result.error or "Request failed")
