"""
Tests for authentication app.

This package contains test modules for:
- test_managers.py: UserManager tests
- test_capabilities.py: Role capabilities and booking authorization
- test_views.py: Token and /me/ endpoint tests

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_capabilities.py
"""
