"""
In-memory ChatTransport for client core tests.

FakeTransport plays the server: it stores messages per channel, serves
backward pages with the same has_more rule as chat.pagination, echoes
every stored message to live subscribers and can drop, refuse or stall
on demand.

Usage:
    transport = FakeTransport()
    transport.post(channel, sender_id=2, content="hi")   # another user's message
    transport.drop(channel)                              # connection lost
    transport.subscribe_failures = 3                     # next 3 subscribes fail
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from chat.channel_ref import ChannelRef
from chat.client.transport import PageResult
from chat.client.window import MessageRecord
from chat.exceptions import TransportError
from chat.realtime import MESSAGE_NEW

EPOCH = datetime(2026, 5, 1, 18, 0, tzinfo=timezone.utc)


class FakeSubscription:
    def __init__(self, transport, channel, on_event, on_drop):
        self.transport = transport
        self.channel = channel
        self.on_event = on_event
        self.on_drop = on_drop
        self.closed = False

    async def close(self):
        self.closed = True


class FakeTransport:
    """
    Attributes:
        stored: Server-side messages per channel, ascending
        fetch_calls: (channel, before_id) for every fetch_page call
        mark_read_calls: Channels passed to mark_read
        subscribe_failures: Number of upcoming subscribe calls that fail
        send_error: Exception raised by the next send, if set
        fetch_gate: When set, fetch_page waits for this event
        send_gate: When set, send waits for this event after the echo
        page_size: Default page size
    """

    def __init__(self, page_size: int = 50):
        self.page_size = page_size
        self.stored: dict[ChannelRef, list[MessageRecord]] = {}
        self.subscriptions: list[FakeSubscription] = []
        self.fetch_calls = []
        self.mark_read_calls = []
        self.subscribe_calls = 0
        self.subscribe_failures = 0
        self.subscribe_error: Exception | None = None
        self.send_error: Exception | None = None
        self.fetch_gate: asyncio.Event | None = None
        self.send_gate: asyncio.Event | None = None
        self._ids = itertools.count(1)
        self._ticks = itertools.count(1)

    # ------------------------------------------------------------------
    # Server-side helpers
    # ------------------------------------------------------------------

    def _store(self, channel, sender_id, content, image_url=None) -> MessageRecord:
        record = MessageRecord(
            id=next(self._ids),
            channel_id=str(channel),
            sender_id=sender_id,
            content=content,
            created_at=EPOCH + timedelta(seconds=next(self._ticks)),
            image_url=image_url,
        )
        self.stored.setdefault(channel, []).append(record)
        return record

    def _broadcast(self, channel, event_type, event):
        for subscription in list(self.subscriptions):
            if subscription.channel == channel and not subscription.closed:
                subscription.on_event(event_type, event)

    def _wire(self, record: MessageRecord) -> dict:
        return {
            "id": record.id,
            "channel_id": record.channel_id,
            "sender_id": record.sender_id,
            "sender": None,
            "content": record.content,
            "image_url": record.image_url,
            "created_at": record.created_at.isoformat(),
            "is_edited": record.is_edited,
            "edited_at": record.edited_at.isoformat() if record.edited_at else None,
            "is_deleted": record.is_deleted,
        }

    def post(self, channel, sender_id, content) -> MessageRecord:
        """Store a message from any user and deliver it live."""
        record = self._store(channel, sender_id, content)
        self._broadcast(channel, MESSAGE_NEW, {"type": MESSAGE_NEW, "message": self._wire(record)})
        return record

    def seed(self, channel, count, sender_id=2) -> list[MessageRecord]:
        """Store history without live delivery."""
        return [self._store(channel, sender_id, f"m{n}") for n in range(1, count + 1)]

    def emit(self, channel, event_type, **event):
        self._broadcast(channel, event_type, {"type": event_type, **event})

    def edit(self, channel, record, content) -> dict:
        edited = replace(record, content=content, is_edited=True)
        messages = self.stored[channel]
        messages[messages.index(record)] = edited
        wire = self._wire(edited)
        self._broadcast(channel, "message.edited", {"type": "message.edited", "message": wire})
        return wire

    def drop(self, channel):
        """Lose the live connection of every subscription on channel."""
        for subscription in list(self.subscriptions):
            if subscription.channel == channel and not subscription.closed:
                subscription.closed = True
                subscription.on_drop(TransportError("connection reset"))

    def active_subscriptions(self, channel) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if s.channel == channel and not s.closed]

    # ------------------------------------------------------------------
    # ChatTransport
    # ------------------------------------------------------------------

    async def fetch_page(self, channel, before=None, before_id=None, page_size=None):
        self.fetch_calls.append((channel, before_id))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()

        items = self.stored.get(channel, [])
        if before is not None:
            items = [
                r
                for r in items
                if r.created_at < before or (r.created_at == before and before_id and r.id < before_id)
            ]
        size = page_size or self.page_size
        page = items[-size:]
        return PageResult(items=list(page), has_more=len(page) == size)

    async def send(self, channel, content, image_url=None, client_id=None):
        await asyncio.sleep(0)
        if self.send_error is not None:
            error, self.send_error = self.send_error, None
            raise error
        record = self._store(channel, 1, content, image_url)
        # Echo arrives before the send returns, like a fast channel layer
        event = {"type": MESSAGE_NEW, "message": self._wire(record)}
        if client_id:
            event["client_id"] = client_id
        self._broadcast(channel, MESSAGE_NEW, event)
        if self.send_gate is not None:
            await self.send_gate.wait()
        return record

    async def mark_read(self, channel):
        self.mark_read_calls.append(channel)

    async def get_or_create_conversation(self, other_user_id):
        return ChannelRef.direct(100 + other_user_id)

    async def subscribe(self, channel, on_event, on_drop):
        self.subscribe_calls += 1
        if self.subscribe_error is not None:
            raise self.subscribe_error
        if self.subscribe_failures > 0:
            self.subscribe_failures -= 1
            raise TransportError("connection refused")
        subscription = FakeSubscription(self, channel, on_event, on_drop)
        self.subscriptions.append(subscription)
        return subscription


class RecordingSleep:
    """Replacement for asyncio.sleep that records delays and yields once."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


async def settle(predicate=None, turns: int = 200):
    """Let scheduled tasks run until predicate() holds (or just run them)."""
    for _ in range(turns):
        if predicate is not None and predicate():
            return
        await asyncio.sleep(0)
    if predicate is not None:
        assert predicate(), "condition not reached"
