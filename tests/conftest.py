"""
Root pytest configuration shared by all test tiers.

This conftest.py is automatically loaded by pytest for all tests in the tests/ directory.
"""

import pytest


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "scenario: end-to-end gameplay scenarios through the pipeline"
    )
