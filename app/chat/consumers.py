"""
WebSocket consumers for the chat application.

Consumers:
    ChatConsumer: One direct conversation or group channel
    InboxConsumer: Conversation-list updates for the connected user

Authentication:
    JWTAuthMiddleware (chat.middleware) attaches the user to
    self.scope["user"]. Anonymous connections are closed with 4001.

Channel Groups:
    "chat.direct.<id>" / "chat.group.<id>" for channels (ChannelRef.group_name)
    "chat.inbox.<user_id>" for inbox feeds
    Events are published by chat.realtime after the write commits.

Message Types (from client):
    - message: {"type": "message", "content": "...", "image_url": "...", "client_id": "..."}
    - typing: {"type": "typing", "is_typing": true}
    - read: {"type": "read"}   (direct conversations only)

Message Types (to client):
    - message.ack: The sender's own message was stored (carries client_id)
    - message.new / message.edited / message.deleted: Server events
    - membership.changed: Group membership update
    - typing: Another user is typing
    - read.ack: Read marker moved
    - error: {"error_code": ..., "error": ..., "client_id": ...}

Close Codes:
    4001 unauthenticated, 4003 access denied (also when a membership
    change revokes read access), 4004 channel not found
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from chat.access import ChatAuthorizationService
from chat.channel_ref import ChannelRef, inbox_group_name
from chat.constants import CLOSE_CODES
from chat.middleware import JWT_SUBPROTOCOL
from chat.models import Conversation
from chat.realtime import message_payload
from chat.services import ConversationService, MessageService

logger = logging.getLogger(__name__)


def _is_authenticated(user) -> bool:
    return user is not None and user.is_authenticated


class AuthenticatedConsumer(AsyncJsonWebsocketConsumer):
    """Shared accept logic for the chat consumers."""

    async def accept_connection(self):
        subprotocols = self.scope.get("subprotocols", [])
        if subprotocols and subprotocols[0] == JWT_SUBPROTOCOL:
            await self.accept(subprotocol=JWT_SUBPROTOCOL)
        else:
            await self.accept()


class ChatConsumer(AuthenticatedConsumer):
    """
    Live connection to one channel.

    Attributes:
        channel: ChannelRef of the connected channel
        user: Authenticated user (after connect)
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.channel: ChannelRef | None = None
        self.user = None
        self.joined = False

    async def connect(self):
        """
        Validate and join the channel group.

        Validates:
            1. User is authenticated (4001)
            2. Channel exists (4004)
            3. Access gate allows reading (4003)
        """
        kwargs = self.scope["url_route"]["kwargs"]
        self.channel = ChannelRef(kwargs["kind"], kwargs["channel_id"])
        self.user = self.scope.get("user")

        if not _is_authenticated(self.user):
            logger.warning(f"Rejected unauthenticated connection to {self.channel}")
            await self.close(code=CLOSE_CODES.UNAUTHENTICATED)
            return

        access = await self._check_access()
        if not access:
            if access.error_code == "CHANNEL_NOT_FOUND":
                logger.warning(f"User {self.user.id} tried to connect to missing {self.channel}")
                await self.close(code=CLOSE_CODES.NOT_FOUND)
            else:
                await self.close(code=CLOSE_CODES.ACCESS_DENIED)
            return

        await self.channel_layer.group_add(self.channel.group_name, self.channel_name)
        self.joined = True
        await self.accept_connection()
        logger.info(f"User {self.user.id} connected to {self.channel}")

    async def disconnect(self, close_code):
        if self.joined:
            await self.channel_layer.group_discard(self.channel.group_name, self.channel_name)
            self.joined = False
            logger.info(f"User {self.user.id} disconnected from {self.channel} ({close_code})")

    async def receive_json(self, content, **kwargs):
        """
        Dispatch a client frame.

        Expected formats:
            {"type": "message", "content": "Hello!", "client_id": "c-1"}
            {"type": "typing", "is_typing": true}
            {"type": "read"}
        """
        frame_type = content.get("type")

        if frame_type == "message":
            await self._handle_message(content)
        elif frame_type == "typing":
            await self._handle_typing(content)
        elif frame_type == "read":
            await self._handle_read()
        else:
            await self._send_error("UNKNOWN_TYPE", f"Unknown message type: {frame_type}")

    async def _send_error(self, error_code: str, error: str, client_id: str | None = None):
        payload = {"type": "error", "error_code": error_code, "error": error}
        if client_id is not None:
            payload["client_id"] = client_id
        await self.send_json(payload)

    async def _handle_message(self, content):
        """
        Store a message through MessageService.

        The sender gets a message.ack with its client_id; every subscriber
        (sender included) gets message.new from the channel layer once the
        write commits.
        """
        client_id = content.get("client_id")
        result = await self._send_message(
            content=content.get("content", ""),
            image_url=content.get("image_url"),
            client_id=client_id,
        )

        if not result["success"]:
            await self._send_error(result["error_code"], result["error"], client_id)
            return

        await self.send_json(
            {"type": "message.ack", "client_id": client_id, "message": result["data"]}
        )

    async def _handle_typing(self, content):
        await self.channel_layer.group_send(
            self.channel.group_name,
            {
                "type": "chat.typing",
                "user_id": self.user.id,
                "is_typing": bool(content.get("is_typing", False)),
            },
        )

    async def _handle_read(self):
        if not self.channel.is_direct:
            await self._send_error("NOT_SUPPORTED", "Read markers exist only for direct conversations")
            return

        result = await self._mark_read()
        if not result["success"]:
            await self._send_error(result["error_code"], result["error"])
            return
        await self.send_json({"type": "read.ack", "last_read_at": result["data"]})

    # ------------------------------------------------------------------
    # Channel layer event handlers
    # ------------------------------------------------------------------

    async def message_new(self, event):
        frame = {"type": "message.new", "message": event["message"]}
        if event.get("client_id") and event["message"]["sender_id"] == self.user.id:
            frame["client_id"] = event["client_id"]
        await self.send_json(frame)

    async def message_edited(self, event):
        await self.send_json({"type": "message.edited", "message": event["message"]})

    async def message_deleted(self, event):
        await self.send_json({"type": "message.deleted", "message": event["message"]})

    async def chat_typing(self, event):
        """Forward typing indicators from other users only."""
        if event["user_id"] == self.user.id:
            return
        await self.send_json(
            {"type": "typing", "user_id": event["user_id"], "is_typing": event["is_typing"]}
        )

    async def membership_changed(self, event):
        """
        Forward a membership change and re-check the connected user's access.

        When the change concerns this user and read access is gone (removed
        from a private squad), the connection is closed with 4003.
        """
        await self.send_json(
            {
                "type": "membership.changed",
                "user_id": event["user_id"],
                "status": event["status"],
                "role": event["role"],
            }
        )

        if event["user_id"] != self.user.id:
            return

        access = await self._check_access()
        if not access:
            logger.info(f"User {self.user.id} lost access to {self.channel}; closing")
            await self.close(code=CLOSE_CODES.ACCESS_DENIED)

    # ------------------------------------------------------------------
    # Database access
    # ------------------------------------------------------------------

    @database_sync_to_async
    def _check_access(self):
        return ChatAuthorizationService.check_access(self.user, self.channel)

    @database_sync_to_async
    def _send_message(self, content: str, image_url: str | None, client_id: str | None = None) -> dict:
        """
        Send a message using MessageService.

        Returns dict with success status and either data or error.
        """
        result = MessageService.send_message(
            self.channel, self.user, content, image_url=image_url, client_id=client_id
        )
        if result.success:
            return {"success": True, "data": message_payload(result.data)}
        return {"success": False, "error": result.error, "error_code": result.error_code}

    @database_sync_to_async
    def _mark_read(self) -> dict:
        conversation = Conversation.objects.get(id=self.channel.id)
        result = ConversationService.mark_read(conversation, self.user)
        if result.success:
            return {"success": True, "data": result.data.last_read_at.isoformat()}
        return {"success": False, "error": result.error, "error_code": result.error_code}


class InboxConsumer(AuthenticatedConsumer):
    """
    Conversation-list feed for the connected user.

    Receives inbox.updated whenever a message is stored in any of the
    user's direct conversations.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.group_name: str | None = None

    async def connect(self):
        user = self.scope.get("user")
        if not _is_authenticated(user):
            logger.warning("Rejected unauthenticated inbox connection")
            await self.close(code=CLOSE_CODES.UNAUTHENTICATED)
            return

        self.group_name = inbox_group_name(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept_connection()
        logger.info(f"User {user.id} connected to inbox")

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
            self.group_name = None

    async def receive_json(self, content, **kwargs):
        await self.send_json({"type": "error", "error_code": "READ_ONLY", "error": "Inbox is read-only"})

    async def inbox_updated(self, event):
        await self.send_json(
            {
                "type": "inbox.updated",
                "conversation_id": event["conversation_id"],
                "last_message": event["last_message"],
            }
        )
