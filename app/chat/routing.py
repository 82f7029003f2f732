"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/direct/<conversation_id>/ - A direct conversation
    ws/chat/group/<squad_id>/         - A squad group channel
    ws/chat/inbox/                    - Conversation-list updates

Authentication:
    JWT access token as query parameter (?token=<jwt>) or via the
    "jwt" subprotocol; see chat.middleware.JWTAuthMiddleware.
"""

from django.urls import path, re_path

from chat import consumers

websocket_urlpatterns = [
    path("ws/chat/inbox/", consumers.InboxConsumer.as_asgi()),
    re_path(
        r"^ws/chat/(?P<kind>direct|group)/(?P<channel_id>\d+)/$",
        consumers.ChatConsumer.as_asgi(),
    ),
]
