"""
Tests for chat app.

This package contains test modules for:
- test_models.py: Conversation, pair and Message model tests
- test_access.py: Access gate rules and decorators
- test_pagination.py: Backward keyset paging
- test_services.py: ConversationService and MessageService
- test_realtime.py: On-commit event publishing
- test_views.py: REST API endpoint tests
- test_consumers.py: WebSocket consumer tests
- client/: asyncio client core (window, pipeline, live feed, sessions)

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
