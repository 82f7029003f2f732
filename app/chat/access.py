"""
Access gate for chat channels.

Every read or write against a channel passes through
ChatAuthorizationService before touching messages. Group channels consult
squad membership through a MembershipProvider; direct conversations only
check that the caller is one of the two participants.

Rules:
    Group read:   creator, active member, or the squad is public
                  (pending members and outsiders read public squads only)
    Group write:  creator or active member
    Direct read/write: one of the two participants; squad state never matters

Error Codes:
    CHANNEL_NOT_FOUND: Unknown conversation or squad
    ACCESS_DENIED: Channel exists but the gate refused the caller
    MESSAGE_NOT_FOUND: Message does not exist or is soft-deleted
    INVALID_REQUEST: Decorated call is missing the user or target

Usage:
    result = ChatAuthorizationService.check_access(user, channel, write=True)
    if not result:
        return result

    class MessageService(BaseService):
        @classmethod
        @require_channel_access(write=True)
        def send_message(cls, channel, sender, content): ...
"""

from __future__ import annotations

import inspect
import logging
from functools import wraps
from typing import TYPE_CHECKING, Callable, Protocol, TypeVar

from chat.channel_ref import ChannelRef
from core.services import ServiceResult
from squads.services import MembershipService

if TYPE_CHECKING:
    from authentication.models import User
    from chat.models import Message
    from squads.services import GroupInfo, Membership

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MembershipProvider(Protocol):
    """Where the gate learns about groups and memberships."""

    def get_group(self, group_id: int) -> GroupInfo | None: ...

    def get_membership(self, group_id: int, user_id: int) -> Membership: ...


class ChatAuthorizationService:
    """
    Stateless authorization checks for chat channels.

    membership_provider defaults to squads.services.MembershipService and
    can be swapped for any object satisfying MembershipProvider.
    """

    membership_provider: MembershipProvider = MembershipService

    @classmethod
    def is_conversation_participant(cls, user: User, conversation_id: int) -> bool:
        from chat.models import Participant

        return Participant.objects.filter(
            conversation_id=conversation_id,
            user_id=user.id,
        ).exists()

    @classmethod
    def is_message_author(cls, user: User, message: Message) -> bool:
        return message.sender_id is not None and message.sender_id == user.id

    @classmethod
    def check_access(
        cls,
        user: User,
        channel: ChannelRef,
        write: bool = False,
    ) -> ServiceResult[None]:
        """
        Decide whether user may read (or write, when write=True) channel.

        Returns:
            ServiceResult.success(None) when allowed, otherwise a failure
            with CHANNEL_NOT_FOUND or ACCESS_DENIED.
        """
        if user is None or not user.is_authenticated:
            return ServiceResult.failure("Authentication required", "ACCESS_DENIED")

        if channel.is_direct:
            return cls._check_direct(user, channel)
        return cls._check_group(user, channel, write)

    @classmethod
    def _check_direct(cls, user: User, channel: ChannelRef) -> ServiceResult[None]:
        from chat.models import Conversation

        if not Conversation.objects.filter(id=channel.id).exists():
            return ServiceResult.failure(f"Conversation {channel.id} not found", "CHANNEL_NOT_FOUND")

        if not cls.is_conversation_participant(user, channel.id):
            logger.warning(f"User {user.id} denied access to {channel}")
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                "ACCESS_DENIED",
            )
        return ServiceResult.success(None)

    @classmethod
    def _check_group(cls, user: User, channel: ChannelRef, write: bool) -> ServiceResult[None]:
        group = cls.membership_provider.get_group(channel.id)
        if group is None:
            return ServiceResult.failure(f"Group {channel.id} not found", "CHANNEL_NOT_FOUND")

        if group.created_by_id == user.id:
            return ServiceResult.success(None)

        membership = cls.membership_provider.get_membership(channel.id, user.id)
        if membership.is_active:
            return ServiceResult.success(None)

        if not write and group.is_public:
            return ServiceResult.success(None)

        action = "post in" if write else "read"
        logger.warning(
            f"User {user.id} ({membership.status}) denied {action} access to {channel}"
        )
        if write:
            message = "Only active members can post in this group"
        else:
            message = "This group is private"
        return ServiceResult.failure(message, "ACCESS_DENIED")

    @classmethod
    def can_read(cls, user: User, channel: ChannelRef) -> bool:
        return cls.check_access(user, channel).success

    @classmethod
    def can_write(cls, user: User, channel: ChannelRef) -> bool:
        return cls.check_access(user, channel, write=True).success


def _bound_arguments(func: Callable, args: tuple, kwargs: dict) -> dict:
    """Map a call's positional and keyword arguments to parameter names."""
    return inspect.signature(func).bind_partial(*args, **kwargs).arguments


def require_channel_access(
    write: bool = False,
    channel_param: str = "channel",
    user_param: str = "user",
) -> Callable:
    """
    Decorator that runs the access gate before a service method.

    Args:
        write: Check write access instead of read access
        channel_param: Name of the ChannelRef argument
        user_param: Name of the acting user argument

    Returns:
        The gate's failure result when access is refused, otherwise the
        wrapped method's result.

    Example:
        class MessageService(BaseService):
            @classmethod
            @require_channel_access(user_param="sender", write=True)
            def send_message(cls, channel, sender, content): ...
    """

    def decorator(func: Callable[..., ServiceResult[T]]) -> Callable[..., ServiceResult[T]]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> ServiceResult[T]:
            arguments = _bound_arguments(func, args, kwargs)
            user = arguments.get(user_param)
            channel = arguments.get(channel_param)

            if user is None or channel is None:
                return ServiceResult.failure(
                    "Missing required parameters",
                    error_code="INVALID_REQUEST",
                )

            access = ChatAuthorizationService.check_access(user, channel, write=write)
            if not access:
                return access

            return func(*args, **kwargs)

        return wrapper

    return decorator


def require_message_access(
    message_id_param: str = "message_id",
    user_param: str = "user",
) -> Callable:
    """
    Decorator that loads a live message and checks the caller can read its channel.

    On success the message is injected as the _message keyword argument so
    the wrapped method does not query it again.

    Example:
        class MessageService(BaseService):
            @classmethod
            @require_message_access()
            def edit_message(cls, user, message_id, new_content, _message=None): ...
    """

    def decorator(func: Callable[..., ServiceResult[T]]) -> Callable[..., ServiceResult[T]]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> ServiceResult[T]:
            arguments = _bound_arguments(func, args, kwargs)
            user = arguments.get(user_param)
            message_id = arguments.get(message_id_param)

            if user is None or message_id is None:
                return ServiceResult.failure(
                    "Missing required parameters",
                    error_code="INVALID_REQUEST",
                )

            from chat.models import Message

            message = Message.objects.filter(id=message_id, is_deleted=False).first()
            if message is None:
                return ServiceResult.failure("Message not found", "MESSAGE_NOT_FOUND")

            access = ChatAuthorizationService.check_access(user, message.channel)
            if not access:
                return access

            kwargs["_message"] = message
            return func(*args, **kwargs)

        return wrapper

    return decorator
