"""
Serializers for the chat API and realtime payloads.

Wire record (REST responses, WebSocket events, client core):
    {id, channel_id, sender_id, sender, content, image_url,
     created_at, is_edited, edited_at, is_deleted}

channel_id is "direct:<id>" or "group:<id>". sender is {id, name, avatar}
resolved from the "profiles" context entry, which callers fill with one
batched ProfileService.get_profiles() call per page.

Serializer Hierarchy:
    MessageSerializer: Read serializer for one message
    MessageCreateSerializer / MessageEditSerializer: Request bodies
    MessagePageQuerySerializer: History cursor query parameters
    ConversationSummarySerializer: Conversation list entry
    ConversationCreateSerializer: Get-or-create a direct conversation
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.services import ProfileSummary
from chat.constants import MESSAGE_CONFIG
from chat.models import Message

# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Wire form of a message.

    Soft-deleted messages keep their slot with placeholder content and no image.
    """

    channel_id = serializers.SerializerMethodField()
    sender = serializers.SerializerMethodField()
    content = serializers.SerializerMethodField(
        help_text="Message content (replaced if deleted)"
    )
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id",
            "channel_id",
            "sender_id",
            "sender",
            "content",
            "image_url",
            "created_at",
            "is_edited",
            "edited_at",
            "is_deleted",
        ]
        read_only_fields = fields

    def get_channel_id(self, obj: Message) -> str:
        return str(obj.channel)

    def get_sender(self, obj: Message) -> dict | None:
        if obj.sender_id is None:
            return None
        profiles = self.context.get("profiles") or {}
        summary = profiles.get(obj.sender_id) or ProfileSummary.unknown(obj.sender_id)
        return summary.to_dict()

    def get_content(self, obj: Message) -> str:
        return obj.get_display_content()

    def get_image_url(self, obj: Message) -> str | None:
        if obj.is_deleted or not obj.image_url:
            return None
        return obj.image_url


class MessageCreateSerializer(serializers.Serializer):
    """
    Request body for sending a message.

    Blank and oversized content is not rejected here; the service layer
    owns those rules so REST and WebSocket senders get the same codes.
    """

    content = serializers.CharField(
        allow_blank=True,
        trim_whitespace=False,
        help_text=f"Message text (max {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters)",
    )
    image_url = serializers.URLField(
        required=False,
        allow_blank=True,
        max_length=MESSAGE_CONFIG.MAX_IMAGE_URL_LENGTH,
        default="",
    )
    client_id = serializers.CharField(
        required=False,
        max_length=64,
        help_text="Client-generated id echoed back for optimistic UI reconciliation",
    )


class MessageEditSerializer(serializers.Serializer):
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)


class MessagePageQuerySerializer(serializers.Serializer):
    """Query parameters for backward history paging."""

    before = serializers.DateTimeField(required=False)
    before_id = serializers.IntegerField(required=False, min_value=1)
    page_size = serializers.IntegerField(
        required=False,
        min_value=1,
        default=MESSAGE_CONFIG.PAGE_SIZE,
    )

    def validate(self, attrs: dict) -> dict:
        if "before_id" in attrs and "before" not in attrs:
            raise serializers.ValidationError({"before_id": "before_id requires before"})
        return attrs


def serialize_page(page) -> dict:
    """Body for a history page response."""
    context = {"profiles": page.profiles}
    next_cursor = page.next_cursor
    return {
        "results": MessageSerializer(page.items, many=True, context=context).data,
        "has_more": page.has_more,
        "next_cursor": next_cursor.to_params() if next_cursor else None,
    }


# =============================================================================
# Conversation Serializers
# =============================================================================


class ConversationSummarySerializer(serializers.Serializer):
    """
    Conversation list entry built from chat.services.ConversationSummary.
    """

    id = serializers.IntegerField(source="conversation.id")
    channel_id = serializers.SerializerMethodField()
    created_at = serializers.DateTimeField(source="conversation.created_at")
    last_message_at = serializers.DateTimeField(
        source="conversation.last_message_at", allow_null=True
    )
    other_user_id = serializers.IntegerField(source="other_user.id")
    other_user = serializers.SerializerMethodField()
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.IntegerField()

    def get_channel_id(self, obj) -> str:
        return str(obj.conversation.channel)

    def get_other_user(self, obj) -> dict:
        return obj.other_user.to_dict()

    def get_last_message(self, obj) -> dict | None:
        if obj.last_message is None:
            return None
        context = {"profiles": obj.profiles}
        return MessageSerializer(obj.last_message, context=context).data


class ConversationCreateSerializer(serializers.Serializer):
    """Open (get or create) the direct conversation with user_id."""

    user_id = serializers.IntegerField(min_value=1)
