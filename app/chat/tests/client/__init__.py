"""Tests for the asyncio client core (chat.client)."""
