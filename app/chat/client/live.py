"""
Live feed: per-channel subscriptions that survive transport drops.

A Subscription lives exactly as long as the channel is open. When the
transport drops it, the subscription resubscribes with exponential
backoff (REALTIME_CONFIG) and, after every successful resubscribe, runs
the owner's on_resubscribed hook so the session can fetch what was
missed during the gap. After MAX_RESUBSCRIBE_ATTEMPTS consecutive
failures the status becomes UNAVAILABLE and the owner falls back to
manual refresh.

Usage:
    feed = LiveFeed(transport)
    subscription = await feed.subscribe(
        ChannelRef.group(7),
        on_message=handle_message,
        on_membership_change=handle_membership,
        on_resubscribed=session.reconcile,
    )
    ...
    await subscription.unsubscribe()
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from chat.client.window import MessageRecord
from chat.constants import REALTIME_CONFIG
from chat.exceptions import TransportError
from core.exceptions import BaseApplicationError
from chat.realtime import MEMBERSHIP_CHANGED, MESSAGE_EVENTS

if TYPE_CHECKING:
    from chat.channel_ref import ChannelRef
    from chat.client.transport import ChatTransport, TransportSubscription

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, MessageRecord], None]
MembershipHandler = Callable[[dict], None]
StatusHandler = Callable[["LiveStatus"], None]


class LiveStatus(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    RECONNECTING = "reconnecting"
    UNAVAILABLE = "unavailable"  # live updates unavailable, refresh manually
    CLOSED = "closed"


class Subscription:
    """
    Handle for one channel's live events.

    Attributes:
        channel: The subscribed channel
        status: Current LiveStatus
        attempts: Consecutive failed resubscribe attempts
    """

    def __init__(
        self,
        feed: LiveFeed,
        channel: ChannelRef,
        on_message: MessageHandler,
        on_membership_change: MembershipHandler | None = None,
        on_resubscribed: Callable[[], Awaitable] | None = None,
        on_status: StatusHandler | None = None,
    ):
        self.feed = feed
        self.channel = channel
        self.on_message = on_message
        self.on_membership_change = on_membership_change
        self.on_resubscribed = on_resubscribed
        self.on_status = on_status
        self.status = LiveStatus.CONNECTING
        self.attempts = 0
        self._handle: TransportSubscription | None = None
        self._resubscribe_task: asyncio.Task | None = None
        self._closed = False

    @property
    def is_active(self) -> bool:
        return not self._closed

    def _set_status(self, status: LiveStatus) -> None:
        if status == self.status:
            return
        self.status = status
        if self.on_status is not None:
            self.on_status(status)

    async def _connect(self) -> None:
        self._handle = await self.feed.transport.subscribe(
            self.channel,
            self._dispatch,
            self._on_drop,
        )

    def _dispatch(self, event_type: str, event: dict) -> None:
        if self._closed:
            return

        if event_type in MESSAGE_EVENTS:
            self.on_message(
                event_type,
                MessageRecord.from_wire(event["message"], client_id=event.get("client_id")),
            )
        elif event_type == MEMBERSHIP_CHANGED:
            if self.on_membership_change is not None:
                self.on_membership_change(event)
        else:
            logger.debug(f"Ignoring {event_type} on {self.channel}")

    def _on_drop(self, exc: TransportError) -> None:
        if self._closed:
            return
        logger.warning(f"Live updates for {self.channel} interrupted: {exc}")
        self._handle = None
        self._set_status(LiveStatus.RECONNECTING)
        self._start_resubscribe()

    def _start_resubscribe(self) -> None:
        if self._resubscribe_task is not None and not self._resubscribe_task.done():
            return
        self.attempts = 0
        self._resubscribe_task = asyncio.ensure_future(self._resubscribe())

    async def _resubscribe(self) -> None:
        while not self._closed:
            await self.feed.sleep(self.feed.delay_for(self.attempts))
            if self._closed:
                return

            try:
                await self._connect()
                if self.on_resubscribed is not None:
                    await self.on_resubscribed()
            except TransportError as exc:
                await self._release_handle()
                self.attempts += 1
                logger.warning(
                    f"Resubscribe to {self.channel} failed "
                    f"({self.attempts}/{self.feed.max_attempts}): {exc}"
                )
                if self.attempts >= self.feed.max_attempts:
                    logger.error(f"Live updates unavailable for {self.channel}")
                    self._set_status(LiveStatus.UNAVAILABLE)
                    return
                continue
            except BaseApplicationError as exc:
                await self._release_handle()
                logger.warning(f"Resubscribe to {self.channel} refused: {exc}")
                self._set_status(LiveStatus.UNAVAILABLE)
                return

            self.attempts = 0
            self._set_status(LiveStatus.LIVE)
            logger.info(f"Resubscribed to {self.channel}")
            return

    async def _release_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            await handle.close()

    def retry(self) -> None:
        """Start resubscribing again after the feed gave up."""
        if self._closed or self.status != LiveStatus.UNAVAILABLE:
            return
        self._set_status(LiveStatus.RECONNECTING)
        self._start_resubscribe()

    async def unsubscribe(self) -> None:
        """Stop live updates for this channel. Idempotent."""
        if self._closed:
            return
        self._closed = True

        task = self._resubscribe_task
        self._resubscribe_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        await self._release_handle()
        self._set_status(LiveStatus.CLOSED)
        logger.debug(f"Unsubscribed from {self.channel}")


class LiveFeed:
    """
    Factory for subscriptions over one transport.

    Args:
        transport: ChatTransport implementation
        base_delay / max_delay: Backoff bounds in seconds
        max_attempts: Consecutive failures before UNAVAILABLE
        sleep: Awaitable sleep, replaceable in tests
    """

    def __init__(
        self,
        transport: ChatTransport,
        base_delay: float | None = None,
        max_delay: float | None = None,
        max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.transport = transport
        self.base_delay = REALTIME_CONFIG.RESUBSCRIBE_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = REALTIME_CONFIG.RESUBSCRIBE_MAX_DELAY if max_delay is None else max_delay
        self.max_attempts = max_attempts or REALTIME_CONFIG.MAX_RESUBSCRIBE_ATTEMPTS
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2**attempt), self.max_delay)

    async def subscribe(
        self,
        channel: ChannelRef,
        on_message: MessageHandler,
        on_membership_change: MembershipHandler | None = None,
        on_resubscribed: Callable[[], Awaitable] | None = None,
        on_status: StatusHandler | None = None,
    ) -> Subscription:
        """
        Subscribe to a channel's live events.

        The first subscribe is not retried: its errors (AccessDenied,
        NotFound, TransportError) propagate so the caller can report them.

        Raises:
            ValueError: A membership handler was given for a direct channel
        """
        if channel.is_direct and on_membership_change is not None:
            raise ValueError("Direct conversations have no membership events")

        subscription = Subscription(
            self,
            channel,
            on_message,
            on_membership_change=on_membership_change,
            on_resubscribed=on_resubscribed,
            on_status=on_status,
        )
        await subscription._connect()
        subscription._set_status(LiveStatus.LIVE)
        logger.info(f"Subscribed to {channel}")
        return subscription
