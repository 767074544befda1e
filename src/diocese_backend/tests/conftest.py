"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys

# Ensure diocese_backend is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from diocese_backend.tests.fixtures import *  # noqa: E402,F401,F403


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
