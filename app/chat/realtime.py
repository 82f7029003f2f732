"""
Server side of the realtime distributor.

Stored messages and membership changes are fanned out through the
Channels layer to every consumer subscribed to the channel's group,
including the sender's other sessions. Publication is registered with
transaction.on_commit, so nothing is delivered for a rolled-back write
and delivery order follows commit order.

Events (channel layer "type" -> consumer handler):
    message.new         -> ChatConsumer.message_new
    message.edited      -> ChatConsumer.message_edited
    message.deleted     -> ChatConsumer.message_deleted
    membership.changed  -> ChatConsumer.membership_changed   (group channels)
    inbox.updated       -> InboxConsumer.inbox_updated       (per-user inbox)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

from authentication.services import ProfileService
from chat.channel_ref import ChannelRef, inbox_group_name

if TYPE_CHECKING:
    from chat.models import Message

logger = logging.getLogger(__name__)

MESSAGE_NEW = "message.new"
MESSAGE_EDITED = "message.edited"
MESSAGE_DELETED = "message.deleted"
MEMBERSHIP_CHANGED = "membership.changed"
INBOX_UPDATED = "inbox.updated"

MESSAGE_EVENTS = (MESSAGE_NEW, MESSAGE_EDITED, MESSAGE_DELETED)


def message_payload(message: Message) -> dict:
    """Wire record for one message, with its sender's profile."""
    from chat.serializers import MessageSerializer

    profiles = {}
    if message.sender_id is not None:
        profiles = ProfileService.get_profiles([message.sender_id])
    return dict(MessageSerializer(message, context={"profiles": profiles}).data)


def group_send(group: str, event: dict) -> None:
    """Synchronous group_send; no-op when no channel layer is configured."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning(f"No channel layer configured; dropping {event['type']} for {group}")
        return
    async_to_sync(channel_layer.group_send)(group, event)


def _send_message_event(event_type: str, message: Message, client_id: str | None = None) -> None:
    payload = message_payload(message)
    channel = message.channel

    event = {"type": event_type, "message": payload}
    if client_id:
        event["client_id"] = client_id
    group_send(channel.group_name, event)
    logger.debug(f"Published {event_type} for message {message.id} to {channel.group_name}")

    if channel.is_direct and event_type == MESSAGE_NEW:
        _send_inbox_updates(message, payload)


def _send_inbox_updates(message: Message, payload: dict) -> None:
    from chat.models import DirectConversationPair

    pair = DirectConversationPair.objects.filter(
        conversation_id=message.conversation_id
    ).values_list("user_lower_id", "user_higher_id").first()
    if pair is None:
        return

    for user_id in pair:
        group_send(
            inbox_group_name(user_id),
            {
                "type": INBOX_UPDATED,
                "conversation_id": message.conversation_id,
                "last_message": payload,
            },
        )


def publish_message_event(event_type: str, message: Message, client_id: str | None = None) -> None:
    """
    Schedule a message event for delivery after the current transaction commits.

    client_id is the sender's provisional id; carried on message.new so the
    sending client can swap its pending entry as soon as the echo lands.

    Outside a transaction the callback runs immediately. Delivery errors
    are logged by Django (robust on_commit) and do not undo the stored write.
    """
    if event_type not in MESSAGE_EVENTS:
        raise ValueError(f"Unknown message event: {event_type}")

    transaction.on_commit(
        lambda: _send_message_event(event_type, message, client_id),
        robust=True,
    )


def publish_membership_change(group_id: int, user_id: int, status: str, role: str) -> None:
    """Schedule a membership.changed event on the squad's group channel."""
    channel = ChannelRef.group(group_id)
    event = {
        "type": MEMBERSHIP_CHANGED,
        "group_id": group_id,
        "user_id": user_id,
        "status": status,
        "role": role,
    }

    def send():
        group_send(channel.group_name, event)
        logger.info(f"Membership of user {user_id} in {channel} is now {status}/{role}")

    transaction.on_commit(send, robust=True)
