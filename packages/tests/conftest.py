"""Pytest configuration and shared fixtures."""

import pytest

# The ruleprobe testing plugin is registered via a ``pytest11`` entry
# point (pyproject.toml) for external consumers.  In our own test suite
# we disable it (``-p no:ruleprobe``) and load it here instead, so the
# ruleprobe import chain happens after ``pytest-cov`` starts tracing.
pytest_plugins = ["ruleprobe.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (in-memory store, simulated engine)"
    )
