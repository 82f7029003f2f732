"""
ASGI config for the messaging backend.

Exposes the ASGI callable as a module-level variable named `application`:
- HTTP requests go to Django (REST API, admin, schema, health check)
- WebSocket connections go to the chat consumers through Django Channels

Run with an ASGI server, e.g.:
    uvicorn config.asgi:application
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Settings and app registry must be ready before consumers import models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from chat.middleware import JWTAuthMiddleware  # noqa: E402
from chat.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        # Origin check against ALLOWED_HOSTS, then JWT auth, then routing to
        # ChatConsumer (ws/chat/<kind>/<id>/) or InboxConsumer (ws/chat/inbox/)
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)
