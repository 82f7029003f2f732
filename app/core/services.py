"""
Service layer primitives shared by every domain app.

ServiceResult carries the outcome of an operation that can fail for an
expected reason (bad input, missing access, unknown record). Anything
unexpected (database outage, programming error) is raised instead.

Usage:
    from core.services import BaseService, ServiceResult

    class ConversationService(BaseService):
        @classmethod
        def mark_read(cls, conversation, user) -> ServiceResult[Participant]:
            participant = Participant.objects.filter(
                conversation=conversation, user=user
            ).first()
            if participant is None:
                return ServiceResult.failure("Not a participant", "ACCESS_DENIED")

            with cls.atomic():
                participant.last_read_at = timezone.now()
                participant.save(update_fields=["last_read_at"])

            return ServiceResult.success(participant)

    # In a view
    result = ConversationService.mark_read(conversation, request.user)
    if not result:
        return Response(result.to_response(), status=403)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success, None on failure
        error: Human-readable message on failure
        error_code: Machine-readable code (e.g. "ACCESS_DENIED")
        errors: Optional field-level errors

    Example:
        result = MessageService.send_message(channel, user, "hi")
        if result.success:
            message = result.data
        else:
            logger.info(f"send refused: {result.error_code}")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    # Alias, reads better for queries
    ok = success

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Build a failed result.

        Args:
            error: Human-readable message
            error_code: Machine-readable code the transport layers map on
            errors: Field-level details for validation failures
        """
        return cls(success=False, error=error, error_code=error_code, errors=errors)

    def to_response(self) -> dict[str, Any]:
        """Shape the result as a DRF response body."""
        if self.success:
            return {"success": True, "data": self.data}

        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            body["error_code"] = self.error_code
        if self.errors:
            body["errors"] = self.errors
        return body

    def map(self, func: Callable[[T], U]) -> ServiceResult[U]:
        """Apply func to the payload of a successful result."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless service classes.

    Services expose classmethods only. They return ServiceResult for
    expected failures and let unexpected exceptions propagate.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the concrete service, e.g. chat.services.MessageService."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the enclosed block in a database transaction.

        Nested use creates a savepoint, so a failing inner block can be
        rolled back without aborting the outer transaction.
        """
        with transaction.atomic():
            yield

