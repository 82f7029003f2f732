"""
Transport boundary of the client core.

ChatTransport is everything a session needs from the server: history
pages, sends, read markers, direct conversation lookup and a live event
stream per channel. Failures surface as chat.exceptions classes:
ValidationError / AccessDenied / Forbidden / NotFound for refused
requests and TransportError for anything network shaped.

ServiceTransport is the in-process implementation. It calls the service
layer through database_sync_to_async and reads live events straight from
the Channels layer, so it sees exactly what ChatConsumer would forward.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from django.db import DatabaseError

from chat.access import ChatAuthorizationService
from chat.channel_ref import ChannelRef
from chat.client.window import MessageRecord
from chat.exceptions import TransportError, raise_for_result
from chat.models import Conversation
from chat.realtime import message_payload
from chat.serializers import serialize_page
from chat.services import ConversationService, MessageService

if TYPE_CHECKING:
    from datetime import datetime

    from authentication.models import User

logger = logging.getLogger(__name__)

# (event_type, event) where event is the channel layer message
EventHandler = Callable[[str, dict], None]
DropHandler = Callable[[TransportError], None]


@contextlib.contextmanager
def service_errors(action: str):
    """Report database and socket failures of a service call as TransportError."""
    try:
        yield
    except (DatabaseError, OSError) as exc:
        logger.warning(f"{action} failed: {exc}")
        raise TransportError(f"{action} failed: {exc}") from exc


@dataclass
class PageResult:
    items: list[MessageRecord] = field(default_factory=list)
    has_more: bool = False


@runtime_checkable
class TransportSubscription(Protocol):
    async def close(self) -> None:
        """Stop delivering events. Safe to call more than once."""
        ...


@runtime_checkable
class ChatTransport(Protocol):
    """
    Protocol for client transports.

    subscribe() delivers events through on_event until closed. When the
    underlying connection is lost the transport calls on_drop once and
    delivers nothing more on that subscription; reconnecting is the
    caller's job (chat.client.live).
    """

    async def fetch_page(
        self,
        channel: ChannelRef,
        before: datetime | None = None,
        before_id: int | None = None,
        page_size: int | None = None,
    ) -> PageResult: ...

    async def send(
        self,
        channel: ChannelRef,
        content: str,
        image_url: str | None = None,
        client_id: str | None = None,
    ) -> MessageRecord: ...

    async def mark_read(self, channel: ChannelRef) -> None: ...

    async def get_or_create_conversation(self, other_user_id: int) -> ChannelRef: ...

    async def subscribe(
        self,
        channel: ChannelRef,
        on_event: EventHandler,
        on_drop: DropHandler,
    ) -> TransportSubscription: ...


class LayerSubscription:
    """Reader task bound to one channel layer channel."""

    def __init__(self, layer, channel: ChannelRef, layer_channel: str, on_event, on_drop):
        self.layer = layer
        self.channel = channel
        self.layer_channel = layer_channel
        self.on_event = on_event
        self.on_drop = on_drop
        self._task: asyncio.Task | None = asyncio.ensure_future(self._read())

    async def _read(self):
        try:
            while True:
                event = await self.layer.receive(self.layer_channel)
                self.on_event(event["type"], event)
        except (OSError, ConnectionError) as exc:
            logger.warning(f"Live connection to {self.channel} dropped: {exc}")
            self._task = None
            self.on_drop(TransportError(str(exc)))

    async def close(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        await self.layer.group_discard(self.channel.group_name, self.layer_channel)


class ServiceTransport:
    """
    In-process transport acting as one user.

    Usage:
        transport = ServiceTransport(user)
        session = ChannelSession(transport, ChannelRef.group(squad.id), user.id)
        await session.open()
    """

    def __init__(self, user: User, channel_layer=None):
        self.user = user
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    async def fetch_page(self, channel, before=None, before_id=None, page_size=None) -> PageResult:
        with service_errors(f"Loading {channel}"):
            return await self._fetch_page(channel, before, before_id, page_size)

    @database_sync_to_async
    def _fetch_page(self, channel, before, before_id, page_size) -> PageResult:
        page = raise_for_result(
            MessageService.fetch_page(
                channel,
                self.user,
                before=before,
                before_id=before_id,
                page_size=page_size,
            )
        )
        body = serialize_page(page)
        return PageResult(
            items=[MessageRecord.from_wire(item) for item in body["results"]],
            has_more=body["has_more"],
        )

    async def send(self, channel, content, image_url=None, client_id=None) -> MessageRecord:
        with service_errors(f"Sending to {channel}"):
            return await self._send(channel, content, image_url, client_id)

    @database_sync_to_async
    def _send(self, channel, content, image_url, client_id) -> MessageRecord:
        message = raise_for_result(
            MessageService.send_message(
                channel, self.user, content, image_url=image_url, client_id=client_id
            )
        )
        return MessageRecord.from_wire(message_payload(message))

    async def mark_read(self, channel: ChannelRef) -> None:
        with service_errors(f"Marking {channel} read"):
            await self._mark_read(channel)

    @database_sync_to_async
    def _mark_read(self, channel: ChannelRef) -> None:
        if not channel.is_direct:
            return
        conversation = raise_for_result(
            ConversationService.get_conversation_for_user(channel.id, self.user)
        )
        raise_for_result(ConversationService.mark_read(conversation, self.user))

    async def get_or_create_conversation(self, other_user_id: int) -> ChannelRef:
        with service_errors(f"Opening conversation with user {other_user_id}"):
            return await self._get_or_create_conversation(other_user_id)

    @database_sync_to_async
    def _get_or_create_conversation(self, other_user_id: int) -> ChannelRef:
        conversation: Conversation = raise_for_result(
            ConversationService.get_or_create_direct(self.user, other_user_id)
        )
        return conversation.channel

    @database_sync_to_async
    def _check_read_access(self, channel: ChannelRef) -> None:
        raise_for_result(ChatAuthorizationService.check_access(self.user, channel))

    async def subscribe(self, channel, on_event, on_drop) -> LayerSubscription:
        layer = self.channel_layer
        if layer is None:
            raise TransportError("No channel layer configured")

        with service_errors(f"Subscribing to {channel}"):
            await self._check_read_access(channel)

        try:
            layer_channel = await layer.new_channel()
            await layer.group_add(channel.group_name, layer_channel)
        except (OSError, ConnectionError) as exc:
            raise TransportError(f"Could not subscribe to {channel}: {exc}") from exc

        logger.debug(f"User {self.user.id} subscribed to {channel}")
        return LayerSubscription(layer, channel, layer_channel, on_event, on_drop)
