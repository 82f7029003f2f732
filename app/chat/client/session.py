"""
Channel sessions: the client core's view of one open channel.

A ChannelSession owns a MessageWindow, a SendPipeline and a live
Subscription for as long as the channel is open:

    open()          subscribe, then latest page; marks direct conversations read
    load_earlier()  next older page, merged by key
    send()          optimistic send through the pipeline
    refresh()       manual catch-up, used when live updates are unavailable
    close()         unsubscribe and cancel in-flight page loads

Every open() starts a new generation. Results of page loads that finish
after close() or a re-open are discarded instead of being merged into
the wrong window.

Usage:
    client = ChatClient(ServiceTransport(user), user.id)
    session = await client.open_direct(other_user.id)
    await session.send("See you at court 4")
    older = await session.load_earlier()
    await session.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from chat.channel_ref import ChannelRef
from chat.client.live import LiveFeed, LiveStatus
from chat.client.pipeline import SendPipeline
from chat.client.window import MessageWindow
from chat.constants import REALTIME_CONFIG
from chat.exceptions import TransportError
from chat.realtime import MESSAGE_NEW

if TYPE_CHECKING:
    from chat.client.live import Subscription
    from chat.client.transport import ChatTransport, PageResult
    from chat.client.window import MessageRecord

logger = logging.getLogger(__name__)


class ChannelSession:
    """
    One open channel.

    Attributes:
        window: Messages of the channel, sorted by (created_at, id)
        has_more: Whether older history may exist beyond the window
        generation: Incremented by every open() and close()
    """

    def __init__(
        self,
        transport: ChatTransport,
        channel: ChannelRef,
        user_id: int,
        live_feed: LiveFeed | None = None,
        page_size: int | None = None,
        auto_mark_read: bool = True,
        on_membership_change: Callable[[dict], None] | None = None,
    ):
        self.transport = transport
        self.channel = channel
        self.user_id = user_id
        self.live_feed = live_feed or LiveFeed(transport)
        self.page_size = page_size
        self.auto_mark_read = auto_mark_read and channel.is_direct
        self.on_membership_change = on_membership_change

        self.window = MessageWindow()
        self.pipeline = SendPipeline(transport, self.window, channel, user_id)
        self.subscription: Subscription | None = None
        self.has_more = False
        self.is_open = False
        self.generation = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def messages(self) -> list[MessageRecord]:
        return self.window.messages

    @property
    def live_status(self) -> LiveStatus:
        if self.subscription is None:
            return LiveStatus.CLOSED
        return self.subscription.status

    @property
    def draft(self) -> str:
        return self.pipeline.draft

    @draft.setter
    def draft(self, value: str) -> None:
        self.pipeline.draft = value

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fetch(self, before: MessageRecord | None = None) -> PageResult:
        return await self.transport.fetch_page(
            self.channel,
            before=before.created_at if before else None,
            before_id=before.id if before else None,
            page_size=self.page_size,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> list[MessageRecord]:
        """
        Start live updates, then load the latest page.

        Subscribing first means a message committed while the page is in
        flight arrives live; the window dedupes it against the page.

        Returns:
            The loaded messages, ascending

        Raises:
            AccessDenied / NotFound: The channel cannot be read
            TransportError: The first page or subscribe failed
        """
        if self.is_open:
            await self.close()

        self.generation += 1
        generation = self.generation
        self.window.clear()
        self.has_more = False
        self.is_open = True

        try:
            subscription = await self.live_feed.subscribe(
                self.channel,
                self._on_message,
                on_membership_change=self._on_membership if self.channel.is_group else None,
                on_resubscribed=self.reconcile,
            )
        except (Exception, asyncio.CancelledError):
            if generation == self.generation:
                self.is_open = False
            raise

        if generation != self.generation:
            await subscription.unsubscribe()
            return []
        self.subscription = subscription

        try:
            page = await self._fetch()
        except (Exception, asyncio.CancelledError):
            if generation == self.generation:
                await self.close()
            raise

        if generation != self.generation:
            return []

        added = self.window.merge(page.items)
        self.has_more = page.has_more

        if self.auto_mark_read:
            await self.transport.mark_read(self.channel)

        logger.info(f"Opened {self.channel} with {len(added)} messages")
        return added

    async def close(self) -> None:
        """Stop live updates and drop in-flight work. Idempotent."""
        if not self.is_open and self.subscription is None:
            return

        self.generation += 1
        self.is_open = False

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        subscription, self.subscription = self.subscription, None
        if subscription is not None:
            await subscription.unsubscribe()

        logger.info(f"Closed {self.channel}")

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_earlier(self) -> list[MessageRecord]:
        """
        Fetch the page just older than the window and merge it.

        Returns:
            Newly added messages; empty when history is exhausted or the
            session was closed or re-opened while the page was loading

        Raises:
            TransportError and friends; the window is left untouched
        """
        if not self.is_open or not self.has_more:
            return []

        generation = self.generation
        task = self._track(self._fetch(before=self.window.oldest))
        try:
            page = await task
        except asyncio.CancelledError:
            if generation != self.generation:
                logger.debug(f"Discarded cancelled page load for {self.channel}")
                return []
            raise

        if generation != self.generation:
            logger.debug(f"Discarded stale page for {self.channel}")
            return []

        self.has_more = page.has_more
        return self.window.merge(page.items)

    async def reconcile(self) -> list[MessageRecord]:
        """
        Catch up after a gap in live delivery.

        Fetches the latest page and walks backward until a page overlaps
        messages already in the window (or history runs out), merging
        everything by key. Runs after every resubscribe.

        Returns:
            Messages that were missing from the window, ascending
        """
        if not self.is_open:
            return []

        generation = self.generation
        had_messages = self.window.newest is not None
        added = []
        cursor = None
        page = None

        for _ in range(REALTIME_CONFIG.MAX_RECONCILE_PAGES):
            page = await self._fetch(before=cursor)
            if generation != self.generation:
                return []

            overlaps = any(record.id in self.window for record in page.items)
            added.extend(self.window.merge(page.items))

            if overlaps or not had_messages or not page.has_more or not page.items:
                break
            cursor = page.items[0]
        else:
            logger.warning(f"Reconciliation of {self.channel} stopped before reaching the window")

        # The walk started from an empty window, so its oldest page now
        # bounds the window and decides whether older history remains
        if not had_messages and page is not None:
            self.has_more = page.has_more

        added.sort(key=lambda record: record.key)
        if added:
            logger.info(f"Reconciled {len(added)} missed messages in {self.channel}")
            if self.auto_mark_read and any(r.sender_id != self.user_id for r in added):
                await self.transport.mark_read(self.channel)
        return added

    async def refresh(self) -> list[MessageRecord]:
        """
        Manual catch-up for when live updates are unavailable.

        Also asks the subscription to try resubscribing again.
        """
        added = await self.reconcile()
        if self.subscription is not None:
            self.subscription.retry()
        return added

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, content: str | None = None, image_url: str | None = None) -> MessageRecord:
        if not self.is_open:
            raise RuntimeError(f"Session for {self.channel} is not open")
        return await self.pipeline.send(content, image_url=image_url)

    # ------------------------------------------------------------------
    # Live events
    # ------------------------------------------------------------------

    def _on_message(self, event_type: str, record: MessageRecord) -> None:
        if not self.is_open:
            return

        if event_type != MESSAGE_NEW:
            self.window.update(record)
            return

        added = self.window.merge([record])
        if added and self.auto_mark_read and record.sender_id != self.user_id:
            self._track(self._mark_read_quietly())

    async def _mark_read_quietly(self) -> None:
        try:
            await self.transport.mark_read(self.channel)
        except TransportError as exc:
            logger.warning(f"Could not mark {self.channel} read: {exc}")

    def _on_membership(self, event: dict) -> None:
        logger.info(
            f"Membership of user {event['user_id']} in {self.channel} "
            f"changed to {event['status']}/{event['role']}"
        )
        if self.on_membership_change is not None:
            self.on_membership_change(event)


class ChatClient:
    """
    Entry point of the client core for one signed-in user.

    Sessions opened through the same client share one LiveFeed.
    """

    def __init__(self, transport: ChatTransport, user_id: int, **feed_options):
        self.transport = transport
        self.user_id = user_id
        self.live_feed = LiveFeed(transport, **feed_options)

    def session(self, channel: ChannelRef, **options) -> ChannelSession:
        return ChannelSession(
            self.transport,
            channel,
            self.user_id,
            live_feed=self.live_feed,
            **options,
        )

    async def open_direct(self, other_user_id: int, **options) -> ChannelSession:
        channel = await self.transport.get_or_create_conversation(other_user_id)
        session = self.session(channel, **options)
        await session.open()
        return session

    async def open_group(self, group_id: int, **options) -> ChannelSession:
        session = self.session(ChannelRef.group(group_id), **options)
        await session.open()
        return session
