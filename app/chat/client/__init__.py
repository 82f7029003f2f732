"""
Client core for the messaging system.

Single-threaded asyncio code that keeps an open channel's messages in a
sorted window, sends optimistically and keeps live updates flowing
across transport drops.

    ChatClient / ChannelSession   open, page, send, refresh, close
    SendPipeline                  optimistic append with rollback
    MessageWindow / MessageRecord sorted, deduplicated message set
    LiveFeed / Subscription       resubscribe with backoff, LiveStatus
    ChatTransport                 protocol; ServiceTransport runs in-process
"""

from chat.client.live import LiveFeed, LiveStatus, Subscription
from chat.client.pipeline import SendPipeline
from chat.client.session import ChannelSession, ChatClient
from chat.client.transport import ChatTransport, PageResult, ServiceTransport
from chat.client.window import MessageRecord, MessageWindow

__all__ = [
    "ChannelSession",
    "ChatClient",
    "ChatTransport",
    "LiveFeed",
    "LiveStatus",
    "MessageRecord",
    "MessageWindow",
    "PageResult",
    "SendPipeline",
    "ServiceTransport",
    "Subscription",
]
