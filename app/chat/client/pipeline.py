"""
Optimistic send pipeline.

    1. A provisional record (client_id, pending=True) goes into the window
       and the draft is cleared.
    2. transport.send() returns the stored record; the provisional entry is
       swapped for it by client_id.
    3. The live echo carries the same client_id and replaces the
       provisional entry if it lands first; a later echo is recognized by
       id and merged as a no-op.
    4. On failure the provisional entry is removed, the draft restored and
       the error re-raised. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from chat.client.window import MessageRecord

if TYPE_CHECKING:
    from chat.channel_ref import ChannelRef
    from chat.client.transport import ChatTransport
    from chat.client.window import MessageWindow

logger = logging.getLogger(__name__)


class SendPipeline:
    """
    Sends messages for one channel session.

    Attributes:
        draft: Text in the composer; restored when a send fails
    """

    def __init__(
        self,
        transport: ChatTransport,
        window: MessageWindow,
        channel: ChannelRef,
        sender_id: int,
    ):
        self.transport = transport
        self.window = window
        self.channel = channel
        self.sender_id = sender_id
        self.draft = ""

    async def send(self, content: str | None = None, image_url: str | None = None) -> MessageRecord:
        """
        Send content (or the current draft).

        Returns:
            The stored record as returned by the server

        Raises:
            ValidationError / AccessDenied / NotFound: The server refused it
            TransportError: The request never completed
            Anything else the transport raised, after the same rollback
        """
        text = self.draft if content is None else content
        provisional = MessageRecord.provisional(self.channel, self.sender_id, text, image_url)
        self.window.add_pending(provisional)
        self.draft = ""

        try:
            record = await self.transport.send(
                self.channel, text, image_url=image_url, client_id=provisional.client_id
            )
        except (Exception, asyncio.CancelledError) as exc:
            self.window.discard_pending(provisional.client_id)
            self.draft = text
            logger.info(f"Send to {self.channel} rolled back: {exc!r}")
            raise

        self.window.confirm(provisional.client_id, record)
        logger.debug(f"Message {record.id} confirmed in {self.channel}")
        return record
