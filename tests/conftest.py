"""
Pytest configuration for nostrwiki tests.

Shared fixtures live in ``tests/fixtures`` and are registered as plugins
below; helper classes and factories are imported from there directly
(``from fixtures.nostr import ...``).
"""

import logging

import pytest


pytest_plugins = ["fixtures.nostr"]


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)
