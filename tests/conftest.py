"""Pytest Configuration and Shared Fixtures

This file is automatically loaded by pytest and makes all fixtures available to all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Import all fixture modules to register them
pytest_plugins = [
    "tests.fixtures.test_database",
    "tests.fixtures.market_data",
    "tests.fixtures.managers",
]

# Fixture modules are plugins, not test modules
collect_ignore = ["fixtures"]


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: Service-path tests using an in-memory store and mocked transports"
    )
    config.addinivalue_line(
        "markers",
        "unit: Unit tests with mocks only (fast)"
    )
    config.addinivalue_line(
        "markers",
        "db: Tests requiring the in-memory row store"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Auto-mark tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Auto-mark tests in integration/ directory
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        # Auto-mark tests that use the store fixture
        if "store_engine" in item.fixturenames:
            item.add_marker(pytest.mark.db)
