"""
Root URL configuration.

URL Structure:
    /                              - ReDoc API documentation
    /schema/                       - OpenAPI schema (YAML)
    /admin/                        - Django admin interface
    /health/                       - Health check (database + channel layer)
    /api/v1/auth/token/            - Obtain JWT access/refresh pair
    /api/v1/auth/token/refresh/    - Refresh an access token
    /api/v1/chat/                  - Messaging endpoints (see chat.urls)
        conversations/             - Conversation list / get-or-create
        conversations/{id}/        - Conversation summary
        conversations/{id}/read/   - Mark conversation as read
        conversations/{id}/messages/ - History / send
        conversations/{id}/messages/{pk}/ - Delete message
        conversations/{id}/messages/{pk}/edit/ - Edit message
        groups/{group_id}/messages/ - Squad channel history / send

WebSocket routes live in chat.routing.
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    # Authentication (JWT, also accepted by the WebSocket middleware)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Chat
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Courtside Messaging Admin"
admin.site.site_title = "Courtside Admin"
admin.site.index_title = "Messaging administration"
