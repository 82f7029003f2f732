"""
Chat models.

This module defines the storage for both channel kinds:
- Direct (1:1) conversations, with per-participant read state
- Squad group channels, which reuse the squad id and keep no local row

Models:
    Conversation: A direct conversation between two users
    DirectConversationPair: Enforces one conversation per user pair
    Participant: One of the two users, with last_read_at
    Message: A message in exactly one channel (conversation XOR squad)

Design Decisions:
    - Messages are append-only apart from edits and soft deletes; a
      message never moves between channels
    - History order is (created_at, id); id breaks timestamp ties
    - Soft deleted messages keep their slot so cursors never skip
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from chat.channel_ref import ChannelRef
from chat.constants import MESSAGE_CONFIG
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from authentication.models import User


class Conversation(BaseModel):
    """
    A direct conversation between exactly two users.

    Never deleted by the chat core. The user pair lives in
    DirectConversationPair; read state lives on Participant.

    Fields:
        last_message_at: Timestamp of the most recent message (conversation
            list ordering), null until the first message
    """

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of most recent message (for sorting conversation lists)",
    )

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_at", "-created_at"]

    def __str__(self) -> str:
        return f"Direct({self.pk})"

    @property
    def channel(self) -> ChannelRef:
        return ChannelRef.direct(self.pk)

    def has_participant(self, user: User) -> bool:
        return self.participants.filter(user=user).exists()

    def get_other_user_id(self, user_id: int) -> int | None:
        """Id of the other participant, None if user_id is not in the pair."""
        pair = self.direct_pair
        if pair.user_lower_id == user_id:
            return pair.user_higher_id
        if pair.user_higher_id == user_id:
            return pair.user_lower_id
        return None


class DirectConversationPair(models.Model):
    """
    Canonical (lower id, higher id) pair for a direct conversation.

    The unique constraint makes concurrent get-or-create calls from both
    users converge on one conversation: the loser's insert fails and it
    reads the winner's row.

    Constraints:
        - UniqueConstraint(user_lower, user_higher)
        - CheckConstraint(user_lower_id < user_higher_id)
    """

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
        help_text="The direct conversation this pair represents",
    )
    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower ID in this conversation pair",
    )
    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher ID in this conversation pair",
    )

    class Meta:
        db_table = "chat_direct_conversation_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_direct_conversation_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="user_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        return f"DirectPair({self.user_lower_id}, {self.user_higher_id})"

    @staticmethod
    def canonical(user_a_id: int, user_b_id: int) -> tuple[int, int]:
        return (user_a_id, user_b_id) if user_a_id < user_b_id else (user_b_id, user_a_id)


class Participant(BaseModel):
    """
    A user's seat in a direct conversation.

    Fields:
        last_read_at: When the user last marked the conversation read;
            null means nothing has been read yet
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="participants",
        help_text="Conversation this participation belongs to",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversation_participations",
        help_text="User participating in the conversation",
    )
    last_read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time user marked conversation as read (for unread counts)",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                name="unique_participation",
            ),
        ]

    def __str__(self) -> str:
        return f"Participant: {self.user_id} in {self.conversation_id}"


class Message(SoftDeleteMixin, BaseModel):
    """
    A message in a direct conversation or a squad group channel.

    Exactly one of conversation / squad is set (database check). The
    server assigns id and created_at; clients never choose them.

    Soft Delete Behavior:
        Content stays in the row; serializers render "[Message deleted]".
        The message keeps counting toward unread counts and keeps its
        position in history.
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="messages",
        help_text="Direct conversation (null for group messages)",
    )
    squad = models.ForeignKey(
        "squads.Squad",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="messages",
        help_text="Squad whose group channel holds this message (null for direct)",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="sent_messages",
        help_text="User who sent this message",
    )
    content = models.TextField(help_text="Message text")
    image_url = models.URLField(
        max_length=MESSAGE_CONFIG.MAX_IMAGE_URL_LENGTH,
        blank=True,
        default="",
        help_text="Optional single image attachment",
    )
    is_edited = models.BooleanField(default=False)
    edited_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when message was last edited",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["conversation", "created_at", "id"],
                name="chat_msg_conv_cursor_idx",
            ),
            models.Index(
                fields=["squad", "created_at", "id"],
                name="chat_msg_squad_cursor_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(conversation__isnull=False, squad__isnull=True)
                    | Q(conversation__isnull=True, squad__isnull=False)
                ),
                name="chat_message_exactly_one_channel",
            ),
        ]

    def __str__(self) -> str:
        preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        deleted = " [deleted]" if self.is_deleted else ""
        return f"User {self.sender_id} in {self.channel}: {preview}{deleted}"

    @property
    def channel(self) -> ChannelRef:
        if self.conversation_id is not None:
            return ChannelRef.direct(self.conversation_id)
        return ChannelRef.group(self.squad_id)

    def get_display_content(self) -> str:
        if self.is_deleted:
            return MESSAGE_CONFIG.DELETED_PLACEHOLDER
        return self.content
