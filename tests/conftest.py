"""Root-level pytest configuration for all tests."""

from __future__ import annotations

import pytest
import structlog

from skillcore.skill_runtime.config import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Drop cached settings so environment changes in one test never leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration made by CLI invocations.

    The CLI binds its renderer to the current stderr, which the test runner
    closes after each invocation.
    """
    yield
    structlog.reset_defaults()
