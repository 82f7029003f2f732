"""
Chat app: the real-time messaging core.

This app handles:
- Direct (1:1) conversations and squad group channels
- Message history with backward keyset pagination
- Realtime fan-out through the Channels layer
- Read state and unread counts for direct conversations
- The asyncio client core (chat.client): sorted message window,
  optimistic send pipeline, live feed with reconnection

Related apps:
    - authentication: User and ProfileService (sender names and avatars)
    - squads: Squad membership consulted by the access gate

WebSocket Support:
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.channel_ref import ChannelRef
    from chat.services import ConversationService, MessageService

    conversation = ConversationService.get_or_create_direct(user, other).data
    channel = ChannelRef.direct(conversation.id)
    MessageService.send_message(channel, user, "Court 3 at 6?")
    page = MessageService.fetch_page(channel, user).data
"""
