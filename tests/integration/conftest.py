"""
Pytest configuration for integration tests.

These tests run against the public Injective indexer and chronos API and
require network connectivity. They are skipped unless INJECTIVE_LIVE_TESTS=1.
"""
import os

import pytest


def pytest_configure(config):
    """Configure pytest for integration tests."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (runs against real services)"
    )


def pytest_collection_modifyitems(config, items):
    """Add integration marker to all tests in this directory."""
    live = os.getenv("INJECTIVE_LIVE_TESTS") == "1"
    skip_live = pytest.mark.skip(reason="set INJECTIVE_LIVE_TESTS=1 to run live tests")
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
            if not live:
                item.add_marker(skip_live)
