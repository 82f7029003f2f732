"""
Tests for authentication app.

This package contains test modules for:
- test_services.py: ProfileService batch lookups and profile auto-creation

Usage:
    pytest authentication/tests/
"""
