"""Pytest configuration for all tests."""

from hypothesis import settings

# Property tests start a fresh event loop per example
settings.register_profile("steward", deadline=None)
settings.load_profile("steward")
