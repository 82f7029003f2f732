"""
Constants and configuration for the chat core.

This module centralizes tunables for:
- Message content and history paging
- Realtime delivery and client reconnection

Page size and reconnection attempts can be overridden through Django
settings (CHAT_PAGE_SIZE, CHAT_MAX_PAGE_SIZE, CHAT_RESUBSCRIBE_ATTEMPTS).

Import example:
    from chat.constants import MESSAGE_CONFIG, REALTIME_CONFIG
"""

from typing import Final

from django.conf import settings


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    # Content limits
    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters, after stripping
    MAX_IMAGE_URL_LENGTH: Final[int] = 500

    # History paging
    PAGE_SIZE: Final[int] = getattr(settings, "CHAT_PAGE_SIZE", 50)
    MAX_PAGE_SIZE: Final[int] = getattr(settings, "CHAT_MAX_PAGE_SIZE", 100)

    # Rendered in place of soft-deleted content
    DELETED_PLACEHOLDER: Final[str] = "[Message deleted]"


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Configuration for the realtime distributor and client live feed."""

    # Channel layer group prefixes
    GROUP_PREFIX: Final[str] = "chat"
    INBOX_GROUP_PREFIX: Final[str] = "chat.inbox"

    # Client resubscribe backoff (seconds)
    RESUBSCRIBE_BASE_DELAY: Final[float] = 0.5
    RESUBSCRIBE_MAX_DELAY: Final[float] = 30.0
    MAX_RESUBSCRIBE_ATTEMPTS: Final[int] = getattr(settings, "CHAT_RESUBSCRIBE_ATTEMPTS", 5)

    # Upper bound on backward pages walked while reconciling after a reconnect
    MAX_RECONCILE_PAGES: Final[int] = 20


# =============================================================================
# WebSocket close codes
# =============================================================================


class CLOSE_CODES:
    UNAUTHENTICATED: Final[int] = 4001
    ACCESS_DENIED: Final[int] = 4003
    NOT_FOUND: Final[int] = 4004
