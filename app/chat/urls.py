"""
URL configuration for chat API.

URL Structure:
    Conversations:
        /conversations/                          GET, POST
        /conversations/{id}/                     GET
        /conversations/{id}/read/                POST

    Messages:
        /conversations/{id}/messages/            GET, POST
        /conversations/{id}/messages/{pk}/       DELETE
        /conversations/{id}/messages/{pk}/edit/  PATCH

    Group channels:
        /groups/{group_id}/messages/             GET, POST

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import ConversationViewSet, GroupMessageViewSet, MessageViewSet

router = DefaultRouter()
router.register(r"conversations", ConversationViewSet, basename="conversation")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
    # Nested routes for messages
    path(
        "conversations/<int:conversation_pk>/messages/",
        MessageViewSet.as_view({"get": "list", "post": "create"}),
        name="conversation-message-list",
    ),
    path(
        "conversations/<int:conversation_pk>/messages/<int:pk>/",
        MessageViewSet.as_view({"delete": "destroy"}),
        name="conversation-message-detail",
    ),
    path(
        "conversations/<int:conversation_pk>/messages/<int:pk>/edit/",
        MessageViewSet.as_view({"patch": "edit"}),
        name="conversation-message-edit",
    ),
    # Squad group channels
    path(
        "groups/<int:group_pk>/messages/",
        GroupMessageViewSet.as_view({"get": "list", "post": "create"}),
        name="group-message-list",
    ),
]
