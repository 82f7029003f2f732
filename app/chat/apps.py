"""
Chat application configuration.

This app provides the messaging core:
- Direct (1:1) conversations with read state
- Squad group channels gated by membership
- Realtime delivery over Django Channels
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    def ready(self):
        """Connect the squad membership signal handlers."""
        from chat import signals  # noqa: F401
