"""
Chat service layer.

This module holds the business logic of the messaging core: the channel
directory for direct conversations, read state, and the message store
shared by direct conversations and squad group channels.

Services:
    ConversationService: Direct conversation get-or-create, listing, read state
    MessageService: Send, page through, edit and delete messages

Design Principles:
    - Services are stateless (class methods only)
    - Expected failures return ServiceResult.failure() with an error code
    - Unexpected failures raise
    - Access checks run through chat.access before any message is touched
    - Realtime events are published on commit (chat.realtime)

Usage:
    from chat.channel_ref import ChannelRef
    from chat.services import ConversationService, MessageService

    conversation = ConversationService.get_or_create_direct(user, other).data
    channel = ChannelRef.direct(conversation.id)

    result = MessageService.send_message(channel, user, "Court 3 at 6?")
    page = MessageService.fetch_page(channel, user).data
    older = MessageService.fetch_page(
        channel, user, before=page.items[0].created_at, before_id=page.items[0].id
    ).data
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.db import IntegrityError
from django.db.models import Q
from django.db.models.functions import Coalesce
from django.utils import timezone

from authentication.services import ProfileService, ProfileSummary
from chat.access import (
    ChatAuthorizationService,
    require_channel_access,
    require_message_access,
)
from chat.constants import MESSAGE_CONFIG
from chat.models import Conversation, DirectConversationPair, Message, Participant
from chat.pagination import Page, fetch_backward
from chat.realtime import MESSAGE_DELETED, MESSAGE_EDITED, MESSAGE_NEW, publish_message_event
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from datetime import datetime

    from authentication.models import User
    from chat.channel_ref import ChannelRef


@dataclass
class ConversationSummary:
    """
    One row of a user's conversation list.

    Attributes:
        conversation: The direct conversation
        other_user: Display data of the other participant
        last_message: Most recent message, None for a new conversation
        unread_count: Messages from the other user after last_read_at
        profiles: Display data for every user referenced by this row
    """

    conversation: Conversation
    other_user: ProfileSummary
    last_message: Message | None
    unread_count: int
    profiles: dict[int, ProfileSummary] = field(default_factory=dict)


class ConversationService(BaseService):
    """
    Channel directory and read state for direct conversations.

    Methods:
        get_or_create_direct: Find or create the conversation for a user pair
        get_conversation_for_user: Load a conversation the user takes part in
        list_conversations: User's conversations, most recent activity first
        summarize: Build the list entry for one conversation
        mark_read: Move the user's read marker to now
        get_unread_count: Messages from the other user after the read marker
    """

    @classmethod
    def _find_direct(cls, user_lower_id: int, user_higher_id: int) -> Conversation | None:
        pair = (
            DirectConversationPair.objects.select_related("conversation")
            .filter(user_lower_id=user_lower_id, user_higher_id=user_higher_id)
            .first()
        )
        return pair.conversation if pair else None

    @classmethod
    def get_or_create_direct(
        cls,
        user: User,
        other_user: User | int,
    ) -> ServiceResult[Conversation]:
        """
        Return the direct conversation between two users, creating it if needed.

        Direct conversations are unique per unordered pair. When both users
        open the conversation at the same moment, the database unique
        constraint on DirectConversationPair lets exactly one insert win;
        the other call rolls back its savepoint and returns the winner's row.

        Args:
            user: The acting user
            other_user: The other participant, as a User or a user id

        Returns:
            ServiceResult with the Conversation (existing or new)

        Error codes:
            SAME_USER: Cannot open a conversation with yourself
            USER_NOT_FOUND: Other user does not exist or is inactive
        """
        if not hasattr(other_user, "pk"):
            other_user = get_user_model().objects.filter(pk=other_user, is_active=True).first()
            if other_user is None:
                return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")

        if user.id == other_user.id:
            return ServiceResult.failure(
                "Cannot create a direct conversation with yourself",
                error_code="SAME_USER",
            )

        lower_id, higher_id = DirectConversationPair.canonical(user.id, other_user.id)

        existing = cls._find_direct(lower_id, higher_id)
        if existing is not None:
            cls.get_logger().debug(
                f"Found existing direct conversation {existing.id} "
                f"between users {lower_id} and {higher_id}"
            )
            return ServiceResult.success(existing)

        try:
            with cls.atomic():
                conversation = Conversation.objects.create()
                DirectConversationPair.objects.create(
                    conversation=conversation,
                    user_lower_id=lower_id,
                    user_higher_id=higher_id,
                )
                Participant.objects.bulk_create(
                    [
                        Participant(conversation=conversation, user_id=lower_id),
                        Participant(conversation=conversation, user_id=higher_id),
                    ]
                )
        except IntegrityError:
            existing = cls._find_direct(lower_id, higher_id)
            if existing is None:
                raise
            cls.get_logger().info(
                f"Concurrent create for users {lower_id} and {higher_id}; "
                f"using conversation {existing.id}"
            )
            return ServiceResult.success(existing)

        cls.get_logger().info(
            f"Created direct conversation {conversation.id} "
            f"between users {lower_id} and {higher_id}"
        )
        return ServiceResult.success(conversation)

    @classmethod
    def get_conversation_for_user(
        cls,
        conversation_id: int,
        user: User,
    ) -> ServiceResult[Conversation]:
        """
        Error codes:
            CONVERSATION_NOT_FOUND: No such conversation
            ACCESS_DENIED: User is not one of the two participants
        """
        conversation = (
            Conversation.objects.select_related("direct_pair")
            .filter(id=conversation_id)
            .first()
        )
        if conversation is None:
            return ServiceResult.failure("Conversation not found", "CONVERSATION_NOT_FOUND")

        if not ChatAuthorizationService.is_conversation_participant(user, conversation.id):
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                "ACCESS_DENIED",
            )
        return ServiceResult.success(conversation)

    @classmethod
    def _latest_message(cls, conversation: Conversation) -> Message | None:
        return conversation.messages.order_by("-created_at", "-id").first()

    @classmethod
    def _count_unread(cls, conversation_id: int, user_id: int, last_read_at: datetime | None) -> int:
        queryset = Message.objects.filter(conversation_id=conversation_id).exclude(
            sender_id=user_id
        )
        if last_read_at is not None:
            queryset = queryset.filter(created_at__gt=last_read_at)
        return queryset.count()

    @classmethod
    def list_conversations(cls, user: User) -> list[ConversationSummary]:
        """
        List the user's direct conversations, most recent activity first.

        Activity is last_message_at, or created_at for conversations with
        no messages yet. Display data for every other participant and
        last-message sender comes from one batched profile lookup.
        """
        participations = list(
            Participant.objects.filter(user_id=user.id)
            .select_related("conversation__direct_pair")
            .annotate(
                activity=Coalesce("conversation__last_message_at", "conversation__created_at")
            )
            .order_by("-activity", "-conversation_id")
        )

        rows = []
        user_ids = set()
        for participation in participations:
            conversation = participation.conversation
            other_id = conversation.get_other_user_id(user.id)
            last_message = cls._latest_message(conversation)
            unread = cls._count_unread(conversation.id, user.id, participation.last_read_at)

            user_ids.add(other_id)
            if last_message is not None and last_message.sender_id is not None:
                user_ids.add(last_message.sender_id)
            rows.append((conversation, other_id, last_message, unread))

        profiles = ProfileService.get_profiles(user_ids)

        return [
            ConversationSummary(
                conversation=conversation,
                other_user=profiles[other_id],
                last_message=last_message,
                unread_count=unread,
                profiles=profiles,
            )
            for conversation, other_id, last_message, unread in rows
        ]

    @classmethod
    def summarize(cls, conversation: Conversation, user: User) -> ConversationSummary:
        """List entry for a single conversation the user takes part in."""
        participant = Participant.objects.get(conversation=conversation, user_id=user.id)
        other_id = conversation.get_other_user_id(user.id)
        last_message = cls._latest_message(conversation)

        ids = {other_id}
        if last_message is not None and last_message.sender_id is not None:
            ids.add(last_message.sender_id)
        profiles = ProfileService.get_profiles(ids)

        return ConversationSummary(
            conversation=conversation,
            other_user=profiles[other_id],
            last_message=last_message,
            unread_count=cls._count_unread(conversation.id, user.id, participant.last_read_at),
            profiles=profiles,
        )

    @classmethod
    def mark_read(cls, conversation: Conversation, user: User) -> ServiceResult[Participant]:
        """
        Set the user's last_read_at to now.

        Error codes:
            ACCESS_DENIED: User is not in this conversation
        """
        participant = Participant.objects.filter(
            conversation=conversation,
            user_id=user.id,
        ).first()
        if participant is None:
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code="ACCESS_DENIED",
            )

        participant.last_read_at = timezone.now()
        participant.save(update_fields=["last_read_at", "updated_at"])

        cls.get_logger().debug(f"User {user.id} marked conversation {conversation.id} as read")
        return ServiceResult.success(participant)

    @classmethod
    def get_unread_count(cls, conversation: Conversation, user: User) -> int:
        """
        Count messages from the other participant after the user's read marker.

        With no read marker every message from the other participant is
        unread. Soft-deleted messages still count. Returns 0 for users who
        are not participants.
        """
        participant = Participant.objects.filter(
            conversation=conversation,
            user_id=user.id,
        ).first()
        if participant is None:
            return 0
        return cls._count_unread(conversation.id, user.id, participant.last_read_at)


class MessageService(BaseService):
    """
    Message store for both channel kinds.

    Methods:
        send_message: Append a message to a channel
        fetch_page: Backward history page with sender profiles
        edit_message: Author-only edit of a direct message
        delete_message: Author-only soft delete of a direct message
    """

    @classmethod
    def _channel_messages(cls, channel: ChannelRef):
        if channel.is_direct:
            return Message.objects.filter(conversation_id=channel.id)
        return Message.objects.filter(squad_id=channel.id)

    @classmethod
    def _validate_content(cls, content: str | None) -> tuple[str, ServiceResult | None]:
        content = content.strip() if content else ""
        if not content:
            return content, ServiceResult.failure(
                "Message content cannot be empty",
                error_code="EMPTY_CONTENT",
            )
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return content, ServiceResult.failure(
                f"Message content exceeds {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )
        return content, None

    @classmethod
    @require_channel_access(write=True, user_param="sender")
    def send_message(
        cls,
        channel: ChannelRef,
        sender: User,
        content: str,
        image_url: str | None = None,
        client_id: str | None = None,
    ) -> ServiceResult[Message]:
        """
        Append a message to a direct conversation or group channel.

        The server assigns id and created_at. For direct conversations the
        conversation's last_message_at moves to the new message. A
        message.new event is published once the transaction commits.

        Args:
            channel: Target channel
            sender: Author; must pass the write gate
            content: Message text, stripped before storing
            image_url: Optional single image reference
            client_id: Sender's provisional id, echoed on the message.new event

        Returns:
            ServiceResult with the stored Message

        Error codes:
            CHANNEL_NOT_FOUND: Unknown conversation or squad
            ACCESS_DENIED: Sender may not post in this channel
            EMPTY_CONTENT: Content is blank after stripping
            CONTENT_TOO_LONG: Content exceeds MESSAGE_CONFIG.MAX_CONTENT_LENGTH
            INVALID_IMAGE_URL: image_url is not a valid URL
        """
        content, invalid = cls._validate_content(content)
        if invalid:
            return invalid

        image_url = (image_url or "").strip()
        if image_url:
            try:
                URLValidator()(image_url)
            except DjangoValidationError:
                return ServiceResult.failure("Invalid image URL", error_code="INVALID_IMAGE_URL")

        with cls.atomic():
            if channel.is_direct:
                message = Message.objects.create(
                    conversation_id=channel.id,
                    sender=sender,
                    content=content,
                    image_url=image_url,
                )
                # Concurrent sends may commit out of order; never move it backward
                Conversation.objects.filter(id=channel.id).filter(
                    Q(last_message_at__isnull=True) | Q(last_message_at__lt=message.created_at)
                ).update(last_message_at=message.created_at)
            else:
                message = Message.objects.create(
                    squad_id=channel.id,
                    sender=sender,
                    content=content,
                    image_url=image_url,
                )
            publish_message_event(MESSAGE_NEW, message, client_id=client_id)

        cls.get_logger().debug(f"User {sender.id} sent message {message.id} to {channel}")
        return ServiceResult.success(message)

    @classmethod
    @require_channel_access()
    def fetch_page(
        cls,
        channel: ChannelRef,
        user: User,
        before: datetime | None = None,
        before_id: int | None = None,
        page_size: int | None = None,
    ) -> ServiceResult[Page[Message]]:
        """
        Read one page of channel history.

        Without a cursor the newest page_size messages are returned;
        with one, the page_size messages just older than it. Messages come
        back in ascending (created_at, id) order together with the
        senders' display data from a single profile lookup.

        Error codes:
            CHANNEL_NOT_FOUND: Unknown conversation or squad
            ACCESS_DENIED: User may not read this channel
        """
        page = fetch_backward(
            cls._channel_messages(channel),
            before=before,
            before_id=before_id,
            page_size=page_size,
        )
        sender_ids = {m.sender_id for m in page.items if m.sender_id is not None}
        page.profiles = ProfileService.get_profiles(sender_ids)
        return ServiceResult.success(page)

    @classmethod
    @require_message_access()
    def edit_message(
        cls,
        user: User,
        message_id: int,
        new_content: str,
        _message: Message | None = None,
    ) -> ServiceResult[Message]:
        """
        Replace the content of the user's own direct message.

        Group channels have no per-message editing. The message keeps its
        id and position; is_edited and edited_at are set and a
        message.edited event is published on commit.

        Error codes:
            MESSAGE_NOT_FOUND: Message does not exist or is deleted
            ACCESS_DENIED: User can no longer read the message's channel
            EDIT_NOT_SUPPORTED: Message belongs to a group channel
            NOT_AUTHOR: User did not send the message
            EMPTY_CONTENT / CONTENT_TOO_LONG: Invalid new content
        """
        message = _message
        if message.channel.is_group:
            return ServiceResult.failure(
                "Group messages cannot be edited",
                error_code="EDIT_NOT_SUPPORTED",
            )

        if not ChatAuthorizationService.is_message_author(user, message):
            return ServiceResult.failure(
                "You can only edit your own messages",
                error_code="NOT_AUTHOR",
            )

        new_content, invalid = cls._validate_content(new_content)
        if invalid:
            return invalid

        with cls.atomic():
            message.content = new_content
            message.is_edited = True
            message.edited_at = timezone.now()
            message.save(update_fields=["content", "is_edited", "edited_at", "updated_at"])
            publish_message_event(MESSAGE_EDITED, message)

        cls.get_logger().info(f"User {user.id} edited message {message.id}")
        return ServiceResult.success(message)

    @classmethod
    @require_message_access()
    def delete_message(
        cls,
        user: User,
        message_id: int,
        _message: Message | None = None,
    ) -> ServiceResult[Message]:
        """
        Soft delete the user's own direct message.

        The row stays in history with placeholder content; a
        message.deleted event is published on commit.

        Error codes:
            MESSAGE_NOT_FOUND: Message does not exist or is already deleted
            ACCESS_DENIED: User can no longer read the message's channel
            DELETE_NOT_SUPPORTED: Message belongs to a group channel
            NOT_AUTHOR: User did not send the message
        """
        message = _message
        if message.channel.is_group:
            return ServiceResult.failure(
                "Group messages cannot be deleted",
                error_code="DELETE_NOT_SUPPORTED",
            )

        if not ChatAuthorizationService.is_message_author(user, message):
            return ServiceResult.failure(
                "You can only delete your own messages",
                error_code="NOT_AUTHOR",
            )

        with cls.atomic():
            message.soft_delete()
            publish_message_event(MESSAGE_DELETED, message)

        cls.get_logger().info(f"User {user.id} deleted message {message.id}")
        return ServiceResult.success(message)
